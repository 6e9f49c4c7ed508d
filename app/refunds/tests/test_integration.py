"""
End-to-end refund journeys through the API.

Each test drives the public endpoints only and checks the resulting
stock, ledger and refund history.
"""

from decimal import Decimal

from django.db import DatabaseError
from django.urls import reverse
from rest_framework import status

from pos.models import Customer, Product, ProductVariant, SaleItem
from refunds.ledger.models import CustomerCreditTransaction
from refunds.services.inventory import InventoryAdjuster


def refund_body(sale_item, method="cash"):
    return {
        "itemId": str(sale_item.id),
        "refundAmount": str(sale_item.total_price),
        "reason": "Wrong size",
        "refundMethod": method,
        "processedBy": "cashier-7",
        "branchId": str(sale_item.sale.branch_id),
    }


class TestRefundJourney:
    def test_partial_failure_then_operator_resume(
        self, db, authenticated_client, variant_sale_item, atomic_disabled, mocker
    ):
        restock = mocker.patch.object(
            InventoryAdjuster, "increment_variant", side_effect=DatabaseError("timeout")
        )

        response = authenticated_client.post(
            reverse("refunds:create"), refund_body(variant_sale_item), format="json"
        )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        refund_id = response.data["refundId"]

        # The item cannot be refunded again while the attempt awaits resume
        retry = authenticated_client.post(
            reverse("refunds:create"), refund_body(variant_sale_item), format="json"
        )
        assert retry.status_code == status.HTTP_409_CONFLICT
        assert retry.data["errorCode"] == "REFUND_PENDING_RESUME"

        mocker.stop(restock)
        resumed = authenticated_client.post(reverse("refunds:resume", args=[refund_id]))

        assert resumed.status_code == status.HTTP_201_CREATED
        assert Product.objects.get(pk=variant_sale_item.product_id).stock_quantity == 12
        variant = ProductVariant.objects.get(pk=variant_sale_item.variant_id)
        assert variant.stock_quantity == 7
        assert variant_sale_item.product.branch_stock.get().stock_quantity == 6
        assert SaleItem.objects.get(pk=variant_sale_item.pk).refunded is True

        history = authenticated_client.get(reverse("refunds:history"))
        [entry] = history.data["data"]
        assert entry["id"] == refund_id
        assert entry["status"] == "completed"
        assert entry["executionPath"] == "manual"

    def test_account_refund_then_duplicate(
        self, db, authenticated_client, customer_sale_item, customer
    ):
        body = refund_body(customer_sale_item, method="account")

        first = authenticated_client.post(reverse("refunds:create"), body, format="json")
        second = authenticated_client.post(reverse("refunds:create"), body, format="json")

        assert first.status_code == status.HTTP_201_CREATED
        assert second.status_code == status.HTTP_409_CONFLICT
        assert second.data["errorCode"] == "ALREADY_REFUNDED"
        assert Customer.objects.get(pk=customer.pk).account_balance == Decimal("250.00")
        assert CustomerCreditTransaction.objects.filter(customer=customer).count() == 1

        stats = authenticated_client.get(reverse("refunds:stats"), {"period": "today"})
        assert stats.data["data"]["totalRefunds"] == 1
        assert stats.data["data"]["byMethod"] == {"account": 1}
