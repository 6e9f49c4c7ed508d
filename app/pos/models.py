"""
Point-of-sale models consumed by the refund saga.

Models:
    Branch: A retail location
    Customer: A customer with a standing account balance
    Product: Catalogue item with a global stock counter
    ProductVariant: Optional variant of a product with its own stock counter
    BranchStock: Per-branch stock counter for a (product, variant) pair
    Sale: A completed sale at a branch
    SaleItem: A sold line item, the unit a refund reverses

Stock and balance columns are only ever changed with atomic
``F()`` expressions by the refund services, never read-modify-write.

Usage:
    from pos.models import SaleItem

    item = SaleItem.objects.select_related("sale__customer").get(pk=item_id)
    if item.refunded:
        ...
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.models import BaseModel, UUIDPrimaryKeyMixin


class Branch(UUIDPrimaryKeyMixin, BaseModel):
    """A retail location where sales and refunds are processed."""

    name = models.CharField(max_length=120)
    code = models.CharField(
        max_length=20,
        unique=True,
        help_text="Short branch code printed on receipts",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "Branches"

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class Customer(UUIDPrimaryKeyMixin, BaseModel):
    """
    A customer that can be credited on refund.

    Fields:
        account_balance: Standing credit on the customer's account. Refunds
            paid out with the ``account`` method increase it.
    """

    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=40, blank=True)
    account_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Current account balance",
    )

    def __str__(self) -> str:
        return self.name


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """Catalogue item with a global stock counter."""

    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=64, unique=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    stock_quantity = models.IntegerField(
        default=0,
        help_text="Units on hand across all branches",
    )

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} [{self.sku}]"


class ProductVariant(UUIDPrimaryKeyMixin, BaseModel):
    """A size/colour/etc. variant of a product with its own stock counter."""

    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name="variants",
    )
    name = models.CharField(max_length=120)
    sku = models.CharField(max_length=64, unique=True)
    stock_quantity = models.IntegerField(default=0)

    class Meta:
        ordering = ["product", "name"]

    def __str__(self) -> str:
        return f"{self.product.name} / {self.name}"


class BranchStock(UUIDPrimaryKeyMixin, BaseModel):
    """
    Stock counter for a product (and optional variant) at one branch.

    Not every deployment tracks stock per branch, so the absence of a row
    is a normal condition.
    """

    branch = models.ForeignKey(
        Branch,
        on_delete=models.CASCADE,
        related_name="stock_levels",
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name="branch_stock",
    )
    variant = models.ForeignKey(
        ProductVariant,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="branch_stock",
    )
    stock_quantity = models.IntegerField(default=0)

    class Meta:
        verbose_name_plural = "Branch stock"
        constraints = [
            models.UniqueConstraint(
                fields=["branch", "product", "variant"],
                name="unique_branch_stock_per_sku",
            ),
        ]

    def __str__(self) -> str:
        return f"BranchStock({self.branch_id}, {self.product_id}, {self.stock_quantity})"


class Sale(UUIDPrimaryKeyMixin, BaseModel):
    """A completed sale. Customer is optional for walk-in sales."""

    sale_number = models.CharField(max_length=40, unique=True)
    branch = models.ForeignKey(
        Branch,
        on_delete=models.PROTECT,
        related_name="sales",
    )
    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="sales",
    )
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    processed_by = models.CharField(max_length=150)

    def __str__(self) -> str:
        return self.sale_number


class SaleItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    A sold line item.

    ``refunded`` flips from False to True at most once, through a
    conditional update issued by the refund services. ``refund_amount``
    and ``refund_date`` are written in the same statement.
    """

    sale = models.ForeignKey(
        Sale,
        on_delete=models.CASCADE,
        related_name="items",
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="sale_items",
    )
    variant = models.ForeignKey(
        ProductVariant,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="sale_items",
    )
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)

    refunded = models.BooleanField(default=False, db_index=True)
    refund_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
    )
    refund_date = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"SaleItem({self.id}, qty={self.quantity}, refunded={self.refunded})"
