"""
Ledger - auditable customer account credits.

Public API:
    Models:
        CustomerCreditTransaction - One row per balance change

    Service:
        CustomerCreditLedger - Credit, balance and history operations
        refund_credit_key - Idempotency key used for refund credits

    Exceptions:
        LedgerError - Base exception for ledger operations
        CustomerAccountNotFound - Customer lookup failures
        InvalidCreditAmount - Non-positive credit amounts

Usage:
    from refunds.ledger import CustomerCreditLedger

    CustomerCreditLedger.credit(customer.id, Decimal("200.00"), refund_id=refund.id)
    CustomerCreditLedger.get_balance(customer.id)
"""

from .exceptions import CustomerAccountNotFound, InvalidCreditAmount, LedgerError
from .models import CustomerCreditTransaction
from .services import CustomerCreditLedger, refund_credit_key

__all__ = [
    # Models
    "CustomerCreditTransaction",
    # Service
    "CustomerCreditLedger",
    "refund_credit_key",
    # Exceptions
    "LedgerError",
    "CustomerAccountNotFound",
    "InvalidCreditAmount",
]
