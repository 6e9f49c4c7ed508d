"""
Ledger model for customer account credits.

Every change the refund saga makes to ``Customer.account_balance`` is
mirrored by one CustomerCreditTransaction, which makes the balance
reconstructible and the credit idempotent.

Usage:
    from refunds.ledger.models import CustomerCreditTransaction

    history = CustomerCreditTransaction.objects.filter(customer=customer)
    credited = sum(txn.amount for txn in history)
"""

from __future__ import annotations

from django.db import models

from core.models import UUIDPrimaryKeyMixin

from refunds.state_machines import CreditReason


class CustomerCreditTransaction(UUIDPrimaryKeyMixin, models.Model):
    """
    An immutable credit applied to a customer's account balance.

    Fields:
        id: UUID primary key (from UUIDPrimaryKeyMixin)
        customer: Customer whose balance was credited
        amount: Credited amount (always positive)
        reason: Why the credit happened (refund)
        refund: Refund that produced the credit, if any
        idempotency_key: Unique key preventing duplicate credits
        balance_after: Customer balance right after this credit
        created_at: When the credit was applied

    Constraints:
        - idempotency_key is unique
        - amount > 0
    """

    customer = models.ForeignKey(
        "pos.Customer",
        on_delete=models.PROTECT,
        related_name="credit_transactions",
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Credited amount",
    )
    reason = models.CharField(
        max_length=20,
        choices=CreditReason.choices,
        default=CreditReason.REFUND,
    )
    refund = models.ForeignKey(
        "refunds.Refund",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="credit_transactions",
    )
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key to prevent duplicate credits",
    )
    balance_after = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Customer balance after this credit",
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["customer", "created_at"], name="credit_customer_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="credit_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Credit({self.customer_id}, +{self.amount}, {self.reason})"
