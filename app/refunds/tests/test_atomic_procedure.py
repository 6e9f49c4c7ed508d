"""
Tests for the single-transaction refund procedure.

Covers the committed end state, rollback on failure and how failures are
classified for the orchestrator's fallback decision.
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from django.db import DatabaseError, OperationalError

from core.logging import correlation_context
from pos.models import Customer, Product, SaleItem
from refunds.exceptions import (
    AlreadyRefundedError,
    AtomicProcedureError,
    InventoryRecordNotFound,
    SaleItemNotFoundError,
)
from refunds.ledger.models import CustomerCreditTransaction
from refunds.models import Refund, RefundItem
from refunds.services.atomic_procedure import AtomicRefundProcedure
from refunds.services.inventory import InventoryAdjuster
from refunds.state_machines import ExecutionPath, RefundMethod, RefundStatus, SagaStep


class FailingCommit:
    """Context manager whose exit fails as if COMMIT was lost."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            raise OperationalError("server closed the connection unexpectedly")
        return False


class TestAvailability:
    def test_available_by_default(self, db):
        assert AtomicRefundProcedure.is_available() is True

    def test_disabled_in_settings(self, db, atomic_disabled):
        assert AtomicRefundProcedure.is_available() is False

    def test_unavailable_raises_without_writes(self, db, atomic_disabled, sale_item, make_request):
        with pytest.raises(AtomicProcedureError) as exc_info:
            AtomicRefundProcedure.execute(make_request(sale_item), "REF-1-AAAAA")

        assert exc_info.value.unavailable is True
        assert exc_info.value.rolled_back is True
        assert not Refund.objects.exists()


class TestExecute:
    def test_cash_refund_commits_everything(self, db, sale_item, make_request):
        refund = AtomicRefundProcedure.execute(make_request(sale_item), "REF-1-CASH1")

        assert refund.refund_number == "REF-1-CASH1"
        assert refund.status == RefundStatus.COMPLETED
        assert refund.execution_path == ExecutionPath.ATOMIC
        assert refund.last_completed_step == SagaStep.MARK_REFUNDED
        assert refund.completed_at is not None
        assert refund.amount == Decimal("200.00")

        item = SaleItem.objects.get(pk=sale_item.pk)
        assert item.refunded is True
        assert item.refund_amount == Decimal("200.00")
        assert item.refund_date is not None

        refund_item = RefundItem.objects.get(refund=refund)
        assert refund_item.original_sale_item_id == sale_item.id
        assert refund_item.quantity == 2
        assert Product.objects.get(pk=sale_item.product_id).stock_quantity == 12
        assert not CustomerCreditTransaction.objects.exists()

    def test_account_refund_credits_customer(self, db, customer_sale_item, customer, make_request):
        request = make_request(customer_sale_item, refund_method=RefundMethod.ACCOUNT)

        refund = AtomicRefundProcedure.execute(request, "REF-1-ACCT1")

        assert refund.customer_id == customer.id
        assert Customer.objects.get(pk=customer.pk).account_balance == Decimal("250.00")
        txn = CustomerCreditTransaction.objects.get(customer=customer)
        assert txn.refund_id == refund.id
        assert txn.balance_after == Decimal("250.00")

    def test_partial_amount(self, db, sale_item, make_request):
        request = make_request(sale_item, refund_amount=Decimal("50.00"))

        refund = AtomicRefundProcedure.execute(request, "REF-1-PART1")

        assert refund.amount == Decimal("50.00")
        assert SaleItem.objects.get(pk=sale_item.pk).refund_amount == Decimal("50.00")

    def test_records_correlation_id(self, db, sale_item, make_request):
        with correlation_context("c0ffee00"):
            refund = AtomicRefundProcedure.execute(make_request(sale_item), "REF-1-CORR1")

        assert refund.metadata["correlation_id"] == "c0ffee00"


class TestFailures:
    def test_domain_error_propagates_unchanged(self, db, completed_refund, make_request):
        request = make_request(completed_refund.sale_item)

        with pytest.raises(AlreadyRefundedError):
            AtomicRefundProcedure.execute(request, "REF-1-DUPE1")

        assert not Refund.objects.filter(refund_number="REF-1-DUPE1").exists()

    def test_missing_sale_item(self, db, sale_item, make_request):
        with pytest.raises(SaleItemNotFoundError):
            AtomicRefundProcedure.execute(make_request(sale_item, item_id=uuid4()), "REF-1-MISS1")

    def test_missing_product_row_rolls_back(self, db, sale_item, make_request):
        with patch.object(
            InventoryAdjuster,
            "increment_product",
            side_effect=InventoryRecordNotFound("Product not found while restocking"),
        ):
            with pytest.raises(InventoryRecordNotFound):
                AtomicRefundProcedure.execute(make_request(sale_item), "REF-1-NOPR1")

        assert not Refund.objects.exists()
        assert not RefundItem.objects.exists()

    def test_storage_error_rolls_back_with_known_outcome(
        self, db, customer_sale_item, customer, make_request
    ):
        request = make_request(customer_sale_item, refund_method=RefundMethod.ACCOUNT)

        with patch(
            "refunds.services.atomic_procedure.CustomerCreditLedger.credit",
            side_effect=DatabaseError("deadlock detected"),
        ):
            with pytest.raises(AtomicProcedureError) as exc_info:
                AtomicRefundProcedure.execute(request, "REF-1-ROLL1")

        assert exc_info.value.outcome_known is True
        assert exc_info.value.rolled_back is True
        assert not Refund.objects.exists()
        assert Product.objects.get(pk=customer_sale_item.product_id).stock_quantity == 10
        assert SaleItem.objects.get(pk=customer_sale_item.pk).refunded is False

    def test_commit_failure_has_unknown_outcome(self, db, sale_item, make_request):
        with (
            patch.object(AtomicRefundProcedure, "_apply", return_value=MagicMock()),
            patch("refunds.services.atomic_procedure.transaction") as mock_transaction,
        ):
            mock_transaction.atomic.return_value = FailingCommit()
            with pytest.raises(AtomicProcedureError) as exc_info:
                AtomicRefundProcedure.execute(make_request(sale_item), "REF-1-UNKN1")

        assert exc_info.value.outcome_known is False
        assert exc_info.value.rolled_back is False
        assert exc_info.value.details["refund_number"] == "REF-1-UNKN1"
