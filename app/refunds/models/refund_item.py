"""
RefundItem model: the line-level detail of a refund.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel, UUIDPrimaryKeyMixin


class RefundItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    The refunded line of a Refund.

    ``original_sale_item`` is one-to-one: the database rejects a second
    RefundItem for the same sale item, which backs the idempotency guard
    at the storage layer.
    """

    refund = models.ForeignKey(
        "refunds.Refund",
        on_delete=models.PROTECT,
        related_name="items",
    )
    original_sale_item = models.OneToOneField(
        "pos.SaleItem",
        on_delete=models.PROTECT,
        related_name="refund_item",
    )
    product = models.ForeignKey(
        "pos.Product",
        on_delete=models.PROTECT,
        related_name="refund_items",
    )
    variant = models.ForeignKey(
        "pos.ProductVariant",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="refund_items",
    )
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"RefundItem({self.refund_id}, qty={self.quantity}, {self.refund_amount})"
