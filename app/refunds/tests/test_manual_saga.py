"""
Tests for the manual refund saga.

Verifies step ordering, the persisted cursor, partial failure handling
and that resume never re-applies a committed step.
"""

from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.db import DatabaseError

from core.logging import correlation_context
from pos.models import Customer, Product, ProductVariant, SaleItem
from refunds.exceptions import (
    AlreadyRefundedError,
    InvalidRefundStateError,
    RefundNotFoundError,
    SagaStepError,
)
from refunds.ledger.models import CustomerCreditTransaction
from refunds.models import Refund, RefundItem
from refunds.services.inventory import InventoryAdjuster
from refunds.services.manual_saga import ManualRefundSaga
from refunds.state_machines import (
    ExecutionPath,
    RefundMethod,
    RefundStatus,
    SagaStep,
)
from refunds.tests.factories import RefundFactory, RefundItemFactory


def product_stock(sale_item):
    return Product.objects.get(pk=sale_item.product_id).stock_quantity


class TestExecute:
    """Tests for a saga that runs to completion."""

    def test_cash_refund(self, db, sale_item, make_request):
        refund = ManualRefundSaga.execute(make_request(sale_item))

        refund = Refund.objects.get(pk=refund.pk)
        assert refund.status == RefundStatus.COMPLETED
        assert refund.execution_path == ExecutionPath.MANUAL
        assert refund.last_completed_step == SagaStep.MARK_REFUNDED
        assert refund.failed_step == ""
        assert refund.completed_at is not None
        assert RefundItem.objects.filter(refund=refund).count() == 1
        assert product_stock(sale_item) == 12
        assert SaleItem.objects.get(pk=sale_item.pk).refunded is True

    def test_variant_and_branch_levels(self, db, variant_sale_item, make_request):
        ManualRefundSaga.execute(make_request(variant_sale_item))

        assert product_stock(variant_sale_item) == 12
        assert ProductVariant.objects.get(pk=variant_sale_item.variant_id).stock_quantity == 7
        assert variant_sale_item.product.branch_stock.get().stock_quantity == 6

    def test_account_refund(self, db, customer_sale_item, customer, make_request):
        request = make_request(customer_sale_item, refund_method=RefundMethod.ACCOUNT)

        refund = ManualRefundSaga.execute(request)

        assert Customer.objects.get(pk=customer.pk).account_balance == Decimal("250.00")
        assert CustomerCreditTransaction.objects.get(refund=refund).amount == Decimal("200.00")

    def test_cash_refund_leaves_balance_alone(self, db, customer_sale_item, customer, make_request):
        ManualRefundSaga.execute(make_request(customer_sale_item))

        assert Customer.objects.get(pk=customer.pk).account_balance == Decimal("50.00")
        assert not CustomerCreditTransaction.objects.exists()

    def test_records_correlation_id(self, db, sale_item, make_request):
        with correlation_context("feedface"):
            refund = ManualRefundSaga.execute(make_request(sale_item))

        assert Refund.objects.get(pk=refund.pk).metadata["correlation_id"] == "feedface"

    def test_rejection_before_any_write(self, db, completed_refund, make_request):
        with pytest.raises(AlreadyRefundedError):
            ManualRefundSaga.execute(make_request(completed_refund.sale_item))

        assert Refund.objects.count() == 1


class TestStepFailures:
    """Tests for failures after the refund record exists."""

    def test_failure_records_step_and_cursor(self, db, sale_item, make_request):
        with patch.object(
            InventoryAdjuster, "increment_product", side_effect=DatabaseError("disk full")
        ):
            with pytest.raises(SagaStepError) as exc_info:
                ManualRefundSaga.execute(make_request(sale_item))

        error = exc_info.value
        assert error.step == SagaStep.RESTOCK_PRODUCT
        assert error.last_completed_step == SagaStep.CREATE_REFUND_ITEM
        assert error.error_code == "REFUND_PARTIALLY_FAILED"

        refund = Refund.objects.get(pk=error.refund_id)
        assert refund.status == RefundStatus.PARTIALLY_FAILED
        assert refund.failed_step == SagaStep.RESTOCK_PRODUCT
        assert refund.last_completed_step == SagaStep.CREATE_REFUND_ITEM
        assert "disk full" in refund.failure_reason
        # Committed steps stay committed, later ones never ran
        assert RefundItem.objects.filter(refund=refund).exists()
        assert product_stock(sale_item) == 10
        assert SaleItem.objects.get(pk=sale_item.pk).refunded is False

    def test_create_refund_failure(self, db, sale_item, make_request):
        with patch(
            "refunds.services.manual_saga.create_refund",
            side_effect=DatabaseError("connection refused"),
        ):
            with pytest.raises(SagaStepError) as exc_info:
                ManualRefundSaga.execute(make_request(sale_item))

        assert exc_info.value.step == SagaStep.CREATE_REFUND
        assert exc_info.value.refund_id is None
        assert exc_info.value.last_completed_step == SagaStep.GUARD
        assert not Refund.objects.exists()

    def test_losing_the_refund_item_race_voids_attempt(self, db, sale_item, make_request):
        # A voided competitor still holds the sale item's RefundItem
        RefundItemFactory(refund__sale_item=sale_item, refund__status=RefundStatus.VOIDED)

        with pytest.raises(AlreadyRefundedError):
            ManualRefundSaga.execute(make_request(sale_item))

        attempt = Refund.objects.exclude(status=RefundStatus.VOIDED).first()
        assert attempt is None
        assert Refund.objects.filter(status=RefundStatus.VOIDED).count() == 2
        assert product_stock(sale_item) == 10

    def test_item_marked_by_another_attempt_before_last_step(self, db, sale_item, make_request):
        def mark_elsewhere(context):
            SaleItem.objects.filter(pk=context.sale_item.pk).update(refunded=True)

        with patch.object(ManualRefundSaga, "_step_credit_account", side_effect=mark_elsewhere):
            with pytest.raises(SagaStepError) as exc_info:
                ManualRefundSaga.execute(make_request(sale_item))

        assert exc_info.value.step == SagaStep.MARK_REFUNDED
        refund = Refund.objects.get(pk=exc_info.value.refund_id)
        assert refund.status == RefundStatus.PARTIALLY_FAILED
        assert refund.failed_step == SagaStep.MARK_REFUNDED


class TestResume:
    """Tests for ManualRefundSaga.resume()."""

    def test_resume_runs_remaining_steps_only(self, db, partially_failed_refund):
        sale_item = partially_failed_refund.sale_item

        refund = ManualRefundSaga.resume(partially_failed_refund.id)

        refund = Refund.objects.get(pk=refund.pk)
        assert refund.status == RefundStatus.COMPLETED
        assert refund.metadata["resume_count"] == 1
        assert RefundItem.objects.filter(original_sale_item=sale_item).count() == 1
        assert product_stock(sale_item) == 12
        assert SaleItem.objects.get(pk=sale_item.pk).refunded is True

    def test_failed_twice_then_resumed(self, db, sale_item, make_request):
        with patch.object(
            InventoryAdjuster, "increment_branch_stock", side_effect=DatabaseError("timeout")
        ):
            with pytest.raises(SagaStepError) as exc_info:
                ManualRefundSaga.execute(make_request(sale_item))
            refund_id = exc_info.value.refund_id

            with pytest.raises(SagaStepError):
                ManualRefundSaga.resume(refund_id)

        refund = ManualRefundSaga.resume(refund_id)

        refund = Refund.objects.get(pk=refund.pk)
        assert refund.status == RefundStatus.COMPLETED
        assert refund.metadata["resume_count"] == 2
        assert product_stock(sale_item) == 12

    def test_resume_with_stale_cursor_credits_once(
        self, db, customer_sale_item, customer, make_request
    ):
        request = make_request(customer_sale_item, refund_method=RefundMethod.ACCOUNT)
        with patch.object(
            ManualRefundSaga, "_step_mark_refunded", side_effect=DatabaseError("timeout")
        ):
            with pytest.raises(SagaStepError) as exc_info:
                ManualRefundSaga.execute(request)
        refund_id = exc_info.value.refund_id
        # Cursor behind the ledger: the credit step will run again
        Refund.objects.filter(pk=refund_id).update(last_completed_step=SagaStep.RESTOCK_BRANCH)

        ManualRefundSaga.resume(refund_id)

        assert Customer.objects.get(pk=customer.pk).account_balance == Decimal("250.00")
        assert CustomerCreditTransaction.objects.filter(customer=customer).count() == 1
        assert Refund.objects.get(pk=refund_id).status == RefundStatus.COMPLETED

    def test_resume_unknown_refund(self, db):
        with pytest.raises(RefundNotFoundError):
            ManualRefundSaga.resume(uuid4())

    @pytest.mark.parametrize(
        "status", [RefundStatus.PROCESSING, RefundStatus.COMPLETED, RefundStatus.VOIDED]
    )
    def test_only_partially_failed_can_resume(self, db, status):
        refund = RefundFactory(status=status)

        with pytest.raises(InvalidRefundStateError):
            ManualRefundSaga.resume(refund.id)

    def test_resume_rejected_when_item_refunded_elsewhere(self, db, partially_failed_refund):
        SaleItem.objects.filter(pk=partially_failed_refund.sale_item_id).update(refunded=True)

        with pytest.raises(AlreadyRefundedError):
            ManualRefundSaga.resume(partially_failed_refund.id)

        refund = Refund.objects.get(pk=partially_failed_refund.pk)
        assert refund.status == RefundStatus.PARTIALLY_FAILED
        assert product_stock(partially_failed_refund.sale_item) == 10
