"""
Refund models.

- Refund: One refund attempt for a sold line item (django-fsm status)
- RefundItem: The refunded line, one-to-one with the sale item
- CustomerCreditTransaction: Auditable account-credit row (from refunds.ledger)
"""

from refunds.ledger.models import CustomerCreditTransaction
from refunds.models.refund import Refund
from refunds.models.refund_item import RefundItem

__all__ = [
    "CustomerCreditTransaction",
    "Refund",
    "RefundItem",
]
