"""
Customer credit ledger service.

CustomerCreditLedger is the only code path that changes a customer's
account balance. Each credit:

1. Locks the customer row (select_for_update)
2. Returns the existing transaction if the idempotency key was seen before
3. Writes a CustomerCreditTransaction
4. Increments the balance with an atomic F() expression
5. Stores the resulting balance on the transaction

All of it happens in one transaction, so a balance change never exists
without its audit row and vice versa.

Usage:
    from refunds.ledger.services import CustomerCreditLedger

    txn = CustomerCreditLedger.credit(
        customer_id=customer.id,
        amount=Decimal("200.00"),
        refund_id=refund.id,
    )
    print(txn.balance_after)
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import F

from pos.models import Customer

from .exceptions import CustomerAccountNotFound, InvalidCreditAmount
from .models import CustomerCreditTransaction
from refunds.state_machines import CreditReason

logger = logging.getLogger(__name__)


def refund_credit_key(refund_id: uuid.UUID) -> str:
    """Idempotency key for the credit issued by a refund."""
    return f"refund:{refund_id}:credit"


class CustomerCreditLedger:
    """
    Service class for customer account credits.

    Key features:
    - Atomic balance increments (no read-modify-write window)
    - Idempotency via unique keys (safe to retry a saga step)
    - One audit row per balance change

    All methods are static - no instance state is maintained.
    """

    @staticmethod
    def credit(
        customer_id: uuid.UUID,
        amount: Decimal,
        refund_id: uuid.UUID | None = None,
        idempotency_key: str | None = None,
        reason: str = CreditReason.REFUND,
    ) -> CustomerCreditTransaction:
        """
        Credit a customer's account balance.

        Idempotent - calling again with the same key returns the original
        transaction without changing the balance. When ``refund_id`` is
        given and no key is passed, the key is derived from the refund.

        Args:
            customer_id: UUID of the customer to credit
            amount: Positive amount to add to the balance
            refund_id: Refund producing the credit, if any
            idempotency_key: Unique key for this credit
            reason: Credit reason (default: refund)

        Returns:
            The created or existing CustomerCreditTransaction

        Raises:
            InvalidCreditAmount: If amount is not positive
            CustomerAccountNotFound: If the customer doesn't exist
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidCreditAmount(
                f"Credit amount must be positive, got {amount}",
                details={"amount": str(amount)},
            )

        if idempotency_key is None:
            if refund_id is None:
                idempotency_key = f"credit:{uuid.uuid4()}"
            else:
                idempotency_key = refund_credit_key(refund_id)

        with transaction.atomic():
            customer = (
                Customer.objects.select_for_update()
                .filter(pk=customer_id)
                .first()
            )
            if customer is None:
                raise CustomerAccountNotFound(
                    f"Customer {customer_id} not found",
                    details={"customer_id": str(customer_id)},
                )

            existing = CustomerCreditTransaction.objects.filter(
                idempotency_key=idempotency_key
            ).first()
            if existing is not None:
                logger.info(
                    "Credit already applied, returning existing transaction",
                    extra={
                        "customer_id": str(customer_id),
                        "idempotency_key": idempotency_key,
                    },
                )
                return existing

            # Handle a concurrent writer creating the same key between our
            # check and create; the savepoint keeps the outer block usable.
            try:
                with transaction.atomic():
                    txn = CustomerCreditTransaction.objects.create(
                        customer=customer,
                        amount=amount,
                        reason=reason,
                        refund_id=refund_id,
                        idempotency_key=idempotency_key,
                        balance_after=customer.account_balance,
                    )
            except IntegrityError:
                return CustomerCreditTransaction.objects.get(
                    idempotency_key=idempotency_key
                )

            Customer.objects.filter(pk=customer_id).update(
                account_balance=F("account_balance") + amount
            )
            txn.balance_after = Customer.objects.values_list(
                "account_balance", flat=True
            ).get(pk=customer_id)
            txn.save(update_fields=["balance_after"])

        logger.info(
            "Customer account credited",
            extra={
                "customer_id": str(customer_id),
                "amount": str(amount),
                "refund_id": str(refund_id) if refund_id else None,
                "balance_after": str(txn.balance_after),
            },
        )
        return txn

    @staticmethod
    def get_balance(customer_id: uuid.UUID) -> Decimal:
        """
        Get the current balance of a customer account.

        Raises:
            CustomerAccountNotFound: If the customer doesn't exist
        """
        try:
            return Customer.objects.values_list("account_balance", flat=True).get(
                pk=customer_id
            )
        except Customer.DoesNotExist:
            raise CustomerAccountNotFound(
                f"Customer {customer_id} not found",
                details={"customer_id": str(customer_id)},
            )

    @staticmethod
    def transactions_for_customer(
        customer_id: uuid.UUID,
        limit: int = 100,
    ) -> list[CustomerCreditTransaction]:
        """Return the customer's credits, newest first."""
        return list(
            CustomerCreditTransaction.objects.filter(customer_id=customer_id)
            .order_by("-created_at")[:limit]
        )
