"""
Serializers for the refund API.

Payloads are camelCase to match the POS client.

Provides:
- RefundCreateSerializer: Validate a refund request body
- RefundResultSerializer: Shape of every refund/resume response (schema only)
- RefundHistoryQuerySerializer / RefundStatsQuerySerializer /
  RefundAnalyticsQuerySerializer: Query params
- RefundSerializer: Read-only refund for history listings
- RefundDetailSerializer: One refund with customer, sale and product details
- RefundStatsSerializer / RefundAnalyticsSerializer: Aggregated refund figures
"""

from __future__ import annotations

from rest_framework import serializers

from refunds.models import Refund, RefundItem
from refunds.services.queries import (
    ANALYTICS_PERIODS,
    DEFAULT_HISTORY_LIMIT,
    MAX_HISTORY_LIMIT,
    STATS_PERIODS,
)
from refunds.services.types import RefundRequest
from refunds.state_machines import RefundMethod


class RefundCreateSerializer(serializers.Serializer):
    """
    Request body for POST /api/v1/refunds/.

    Only shape is checked here; business rules (bounds, idempotency,
    customer requirements) are enforced by RefundOrchestrator.

    Usage:
        serializer = RefundCreateSerializer(data=request.data)
        if serializer.is_valid():
            result = RefundOrchestrator.process_refund(serializer.to_request())
    """

    itemId = serializers.CharField(help_text="Sale item to refund")
    refundAmount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount to refund, at most the item total",
    )
    reason = serializers.CharField(
        required=False, allow_blank=True, default="", max_length=255
    )
    refundMethod = serializers.ChoiceField(choices=RefundMethod.choices)
    customerId = serializers.CharField(
        required=False,
        allow_null=True,
        allow_blank=True,
        default=None,
        help_text="Customer to credit; defaults to the sale's customer",
    )
    processedBy = serializers.CharField(
        max_length=150, help_text="Operator processing the refund"
    )
    branchId = serializers.CharField(help_text="Branch processing the refund")

    def to_request(self) -> RefundRequest:
        data = self.validated_data
        return RefundRequest(
            item_id=data["itemId"],
            refund_amount=data["refundAmount"],
            reason=data.get("reason") or "",
            refund_method=data["refundMethod"],
            processed_by=data["processedBy"],
            branch_id=data["branchId"],
            customer_id=data.get("customerId") or None,
        )


class RefundResultSerializer(serializers.Serializer):
    """Response body of refund and resume calls (documentation only)."""

    success = serializers.BooleanField()
    refundId = serializers.UUIDField(required=False)
    refundNumber = serializers.CharField(required=False)
    error = serializers.CharField(required=False)
    message = serializers.CharField(required=False)
    errorCode = serializers.CharField(required=False)
    executionPath = serializers.CharField(required=False)
    failedStep = serializers.CharField(required=False)
    lastCompletedStep = serializers.CharField(required=False)
    correlationId = serializers.CharField(required=False)


class RefundHistoryQuerySerializer(serializers.Serializer):
    branchId = serializers.UUIDField(required=False)
    limit = serializers.IntegerField(
        required=False,
        min_value=1,
        max_value=MAX_HISTORY_LIMIT,
        default=DEFAULT_HISTORY_LIMIT,
    )
    offset = serializers.IntegerField(required=False, min_value=0, default=0)


class RefundStatsQuerySerializer(serializers.Serializer):
    branchId = serializers.UUIDField(required=False)
    period = serializers.ChoiceField(
        choices=STATS_PERIODS,
        required=False,
        default="today",
    )


class RefundAnalyticsQuerySerializer(serializers.Serializer):
    branchId = serializers.UUIDField(required=False)
    period = serializers.ChoiceField(
        choices=ANALYTICS_PERIODS,
        required=False,
        default="week",
    )


class RefundItemSerializer(serializers.ModelSerializer):
    originalSaleItemId = serializers.UUIDField(source="original_sale_item_id")
    productId = serializers.UUIDField(source="product_id")
    variantId = serializers.UUIDField(source="variant_id", allow_null=True)
    unitPrice = serializers.DecimalField(
        source="unit_price", max_digits=12, decimal_places=2
    )
    refundAmount = serializers.DecimalField(
        source="refund_amount", max_digits=12, decimal_places=2
    )

    class Meta:
        model = RefundItem
        fields = [
            "id",
            "originalSaleItemId",
            "productId",
            "variantId",
            "quantity",
            "unitPrice",
            "refundAmount",
            "reason",
        ]
        read_only_fields = fields


class RefundSerializer(serializers.ModelSerializer):
    """Read-only refund for history listings."""

    refundNumber = serializers.CharField(source="refund_number")
    originalSaleId = serializers.UUIDField(source="original_sale_id")
    customerId = serializers.UUIDField(source="customer_id", allow_null=True)
    customerName = serializers.CharField(source="customer.name", default=None)
    branchId = serializers.UUIDField(source="branch_id")
    refundMethod = serializers.CharField(source="method")
    processedBy = serializers.CharField(source="processed_by")
    processedAt = serializers.DateTimeField(source="processed_at")
    completedAt = serializers.DateTimeField(source="completed_at", allow_null=True)
    executionPath = serializers.CharField(source="execution_path")
    lastCompletedStep = serializers.CharField(source="last_completed_step")
    items = RefundItemSerializer(many=True)

    class Meta:
        model = Refund
        fields = [
            "id",
            "refundNumber",
            "originalSaleId",
            "customerId",
            "customerName",
            "branchId",
            "amount",
            "refundMethod",
            "reason",
            "status",
            "processedBy",
            "processedAt",
            "completedAt",
            "executionPath",
            "lastCompletedStep",
            "items",
        ]
        read_only_fields = fields


class RefundStatsSerializer(serializers.Serializer):
    period = serializers.CharField()
    totalRefunds = serializers.IntegerField(source="total_refunds")
    totalAmount = serializers.DecimalField(
        source="total_amount", max_digits=14, decimal_places=2
    )
    pendingRefunds = serializers.IntegerField(source="pending_refunds")
    byMethod = serializers.DictField(source="by_method", child=serializers.IntegerField())
    byStatus = serializers.DictField(source="by_status", child=serializers.IntegerField())


class RefundDetailItemSerializer(RefundItemSerializer):
    productName = serializers.CharField(source="product.name")
    variantName = serializers.CharField(source="variant.name", default=None)
    sku = serializers.SerializerMethodField()

    class Meta(RefundItemSerializer.Meta):
        fields = RefundItemSerializer.Meta.fields + ["productName", "variantName", "sku"]
        read_only_fields = fields

    def get_sku(self, obj) -> str:
        if obj.variant_id is not None:
            return obj.variant.sku
        return obj.product.sku


class RefundCustomerSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    name = serializers.CharField()
    email = serializers.EmailField()
    phone = serializers.CharField()
    accountBalance = serializers.DecimalField(
        source="account_balance", max_digits=12, decimal_places=2
    )


class RefundDetailSerializer(RefundSerializer):
    """
    Refund detail for the back-office refund screen.

    Adds the customer with their current account balance, the original
    sale number, the branch name and product names for each item.
    """

    customer = RefundCustomerSerializer(allow_null=True)
    saleNumber = serializers.CharField(source="original_sale.sale_number")
    branchName = serializers.CharField(source="branch.name")
    failedStep = serializers.CharField(source="failed_step")
    failureReason = serializers.CharField(source="failure_reason")
    items = RefundDetailItemSerializer(many=True)

    class Meta(RefundSerializer.Meta):
        fields = RefundSerializer.Meta.fields + [
            "customer",
            "saleNumber",
            "branchName",
            "failedStep",
            "failureReason",
        ]
        read_only_fields = fields


class DailyRefundsSerializer(serializers.Serializer):
    date = serializers.DateField()
    count = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)


class MethodBreakdownSerializer(serializers.Serializer):
    method = serializers.CharField()
    count = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)


class StatusBreakdownSerializer(serializers.Serializer):
    status = serializers.CharField()
    count = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)


class ReasonBreakdownSerializer(serializers.Serializer):
    reason = serializers.CharField()
    count = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)


class RefundAnalyticsSerializer(serializers.Serializer):
    period = serializers.CharField()
    dailyRefunds = DailyRefundsSerializer(source="daily", many=True)
    methodBreakdown = MethodBreakdownSerializer(source="by_method", many=True)
    statusBreakdown = StatusBreakdownSerializer(source="by_status", many=True)
    topReasons = ReasonBreakdownSerializer(source="top_reasons", many=True)
