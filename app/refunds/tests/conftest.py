"""
Pytest fixtures for refund tests.

Redis is never contacted: every test gets a MagicMock in place of the
connection used by DistributedLock. Fixtures provide sale items in the
shapes the refund scenarios need and refunds in each status.

Usage:
    def test_cash_refund(sale_item, make_request):
        result = RefundOrchestrator.process_refund(make_request(sale_item))
        assert result.success
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from pos.tests.factories import (
    BranchStockFactory,
    CustomerFactory,
    SaleItemFactory,
)
from refunds.services.atomic_procedure import AtomicRefundProcedure
from refunds.services.orchestrator import RefundOrchestrator
from refunds.services.types import RefundRequest
from refunds.state_machines import RefundMethod, RefundStatus, SagaStep
from refunds.tests.factories import RefundFactory, RefundItemFactory


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis():
    """
    Mock Redis for distributed locking.

    Locks are always granted and released unless a test overrides
    ``set.return_value``.
    """
    client = MagicMock()
    client.set.return_value = True
    client.get.return_value = None
    client.eval.return_value = 1

    with patch("refunds.locks.get_redis_connection", return_value=client):
        yield client


@pytest.fixture(autouse=True)
def restore_atomic_procedure():
    """Undo any set_atomic_procedure() a test performs."""
    yield
    RefundOrchestrator.set_atomic_procedure(AtomicRefundProcedure)


@pytest.fixture
def atomic_disabled(settings):
    """Force the manual saga by disabling the atomic procedure."""
    settings.REFUND_ATOMIC_PROCEDURE_ENABLED = False


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a back-office operator."""
    return get_user_model().objects.create_user(
        username="cashier-7",
        email="cashier7@example.com",
        password="testpass123",
    )


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def authenticated_client(api_client, user):
    api_client.force_authenticate(user=user)
    return api_client


# =============================================================================
# Point-of-sale Fixtures
# =============================================================================


@pytest.fixture
def sale_item(db):
    """Walk-in sale item: 2 units at 100.00, product stock 10."""
    return SaleItemFactory()


@pytest.fixture
def customer(db):
    """Customer with 50.00 standing credit."""
    return CustomerFactory(account_balance=Decimal("50.00"))


@pytest.fixture
def customer_sale_item(db, customer):
    """Sale item sold to ``customer``."""
    return SaleItemFactory(sale__customer=customer)


@pytest.fixture
def variant_sale_item(db):
    """
    Sale item with a variant, tracked in branch stock.

    Stock before refund: product 10, variant 5, branch 4.
    """
    item = SaleItemFactory(with_variant=True)
    BranchStockFactory(
        branch=item.sale.branch,
        product=item.product,
        variant=item.variant,
    )
    return item


@pytest.fixture
def make_request():
    """Build a RefundRequest for a sale item."""

    def _make(sale_item, **overrides):
        params = {
            "item_id": sale_item.id,
            "refund_amount": Decimal("200.00"),
            "reason": "Damaged",
            "refund_method": RefundMethod.CASH,
            "processed_by": "cashier-7",
            "branch_id": sale_item.sale.branch_id,
            "customer_id": None,
        }
        params.update(overrides)
        return RefundRequest(**params)

    return _make


# =============================================================================
# Refund State Fixtures
# =============================================================================


@pytest.fixture
def processing_refund(db, sale_item):
    """Manual refund with its record created and nothing else applied."""
    return RefundFactory(sale_item=sale_item)


@pytest.fixture
def partially_failed_refund(db, sale_item):
    """
    Manual refund that failed at restock_product.

    Its RefundItem exists; no stock has been returned yet.
    """
    refund = RefundFactory(
        sale_item=sale_item,
        status=RefundStatus.PARTIALLY_FAILED,
        last_completed_step=SagaStep.CREATE_REFUND_ITEM,
        failed_step=SagaStep.RESTOCK_PRODUCT,
        failure_reason="database unavailable",
    )
    RefundItemFactory(refund=refund)
    return refund


@pytest.fixture
def completed_refund(db, sale_item):
    """Completed refund with its item marked refunded."""
    refund = RefundFactory(
        sale_item=sale_item,
        status=RefundStatus.COMPLETED,
        last_completed_step=SagaStep.MARK_REFUNDED,
    )
    RefundItemFactory(refund=refund)
    sale_item.refunded = True
    sale_item.refund_amount = refund.amount
    sale_item.save()
    return refund
