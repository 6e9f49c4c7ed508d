"""
Tests for the customer credit ledger.

Verifies atomic balance increments, idempotent credits and the audit row
written for every balance change.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from pos.models import Customer
from refunds.ledger import (
    CustomerAccountNotFound,
    CustomerCreditLedger,
    CustomerCreditTransaction,
    InvalidCreditAmount,
    refund_credit_key,
)
from refunds.tests.factories import CreditTransactionFactory, RefundFactory


class TestCredit:
    """Tests for CustomerCreditLedger.credit()."""

    def test_credit_increments_balance(self, db, customer):
        txn = CustomerCreditLedger.credit(customer.id, Decimal("200.00"))

        assert Customer.objects.get(pk=customer.pk).account_balance == Decimal("250.00")
        assert txn.amount == Decimal("200.00")
        assert txn.balance_after == Decimal("250.00")
        assert txn.customer_id == customer.id

    def test_refund_credit_uses_refund_key(self, db, customer):
        refund = RefundFactory(customer=customer)

        txn = CustomerCreditLedger.credit(
            customer.id, Decimal("20.00"), refund_id=refund.id
        )

        assert txn.idempotency_key == refund_credit_key(refund.id)
        assert txn.refund_id == refund.id

    def test_same_key_credits_once(self, db, customer):
        refund = RefundFactory(customer=customer)

        first = CustomerCreditLedger.credit(
            customer.id, Decimal("200.00"), refund_id=refund.id
        )
        second = CustomerCreditLedger.credit(
            customer.id, Decimal("200.00"), refund_id=refund.id
        )

        assert first.pk == second.pk
        assert Customer.objects.get(pk=customer.pk).account_balance == Decimal("250.00")
        assert CustomerCreditTransaction.objects.filter(customer=customer).count() == 1

    def test_explicit_key_wins(self, db, customer):
        txn = CustomerCreditLedger.credit(
            customer.id, Decimal("5.00"), idempotency_key="manual-adjustment-1"
        )

        assert txn.idempotency_key == "manual-adjustment-1"

    def test_credits_without_key_are_independent(self, db, customer):
        CustomerCreditLedger.credit(customer.id, Decimal("10.00"))
        CustomerCreditLedger.credit(customer.id, Decimal("10.00"))

        assert Customer.objects.get(pk=customer.pk).account_balance == Decimal("70.00")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1.00")])
    def test_non_positive_amount_rejected(self, db, customer, amount):
        with pytest.raises(InvalidCreditAmount):
            CustomerCreditLedger.credit(customer.id, amount)

        assert Customer.objects.get(pk=customer.pk).account_balance == Decimal("50.00")

    def test_unknown_customer(self, db):
        with pytest.raises(CustomerAccountNotFound) as exc_info:
            CustomerCreditLedger.credit(uuid4(), Decimal("10.00"))

        assert exc_info.value.error_code == "CUSTOMER_ACCOUNT_NOT_FOUND"
        assert not CustomerCreditTransaction.objects.exists()


class TestQueries:
    """Tests for balance and history lookups."""

    def test_get_balance(self, db, customer):
        assert CustomerCreditLedger.get_balance(customer.id) == Decimal("50.00")

    def test_get_balance_unknown_customer(self, db):
        with pytest.raises(CustomerAccountNotFound):
            CustomerCreditLedger.get_balance(uuid4())

    def test_transactions_for_customer(self, db, customer):
        mine = CreditTransactionFactory.create_batch(3, customer=customer)
        CreditTransactionFactory()

        history = CustomerCreditLedger.transactions_for_customer(customer.id, limit=2)

        assert len(history) == 2
        assert {txn.pk for txn in history} <= {txn.pk for txn in mine}
