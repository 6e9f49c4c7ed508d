"""
Factory Boy factories for point-of-sale test data.

Usage:
    from pos.tests.factories import SaleItemFactory, CustomerFactory

    # Two units at 100.00 on a walk-in sale
    item = SaleItemFactory()

    # Sold to a known customer
    customer = CustomerFactory(account_balance=Decimal("50.00"))
    item = SaleItemFactory(sale__customer=customer)

    # Variant item
    item = SaleItemFactory(with_variant=True)
"""

from decimal import Decimal

import factory

from pos.models import (
    Branch,
    BranchStock,
    Customer,
    Product,
    ProductVariant,
    Sale,
    SaleItem,
)


class BranchFactory(factory.django.DjangoModelFactory):
    """Factory for Branch instances."""

    class Meta:
        model = Branch
        skip_postgeneration_save = True

    name = factory.Sequence(lambda n: f"Branch {n}")
    code = factory.Sequence(lambda n: f"BR{n:03d}")


class CustomerFactory(factory.django.DjangoModelFactory):
    """Factory for Customer instances with a zero balance."""

    class Meta:
        model = Customer
        skip_postgeneration_save = True

    name = factory.Sequence(lambda n: f"Customer {n}")
    email = factory.Sequence(lambda n: f"customer{n}@example.com")
    account_balance = Decimal("0.00")


class ProductFactory(factory.django.DjangoModelFactory):
    """Factory for Product instances with 10 units on hand."""

    class Meta:
        model = Product
        skip_postgeneration_save = True

    name = factory.Sequence(lambda n: f"Product {n}")
    sku = factory.Sequence(lambda n: f"SKU-{n:05d}")
    price = Decimal("100.00")
    stock_quantity = 10


class ProductVariantFactory(factory.django.DjangoModelFactory):
    """Factory for ProductVariant instances."""

    class Meta:
        model = ProductVariant
        skip_postgeneration_save = True

    product = factory.SubFactory(ProductFactory)
    name = factory.Sequence(lambda n: f"Variant {n}")
    sku = factory.Sequence(lambda n: f"VAR-{n:05d}")
    stock_quantity = 5


class BranchStockFactory(factory.django.DjangoModelFactory):
    """Factory for BranchStock rows."""

    class Meta:
        model = BranchStock
        skip_postgeneration_save = True

    branch = factory.SubFactory(BranchFactory)
    product = factory.SubFactory(ProductFactory)
    variant = None
    stock_quantity = 4


class SaleFactory(factory.django.DjangoModelFactory):
    """Factory for a walk-in Sale (no customer)."""

    class Meta:
        model = Sale
        skip_postgeneration_save = True

    sale_number = factory.Sequence(lambda n: f"SALE-{n:06d}")
    branch = factory.SubFactory(BranchFactory)
    customer = None
    total_amount = Decimal("200.00")
    processed_by = "cashier-1"


class SaleItemFactory(factory.django.DjangoModelFactory):
    """
    Factory for SaleItem instances.

    Default: quantity 2 at 100.00, total 200.00, not refunded.
    Pass ``with_variant=True`` to attach a variant of the item's product.
    """

    class Meta:
        model = SaleItem
        skip_postgeneration_save = True

    class Params:
        with_variant = factory.Trait(
            variant=factory.SubFactory(
                ProductVariantFactory,
                product=factory.SelfAttribute("..product"),
            ),
        )

    sale = factory.SubFactory(SaleFactory)
    product = factory.SubFactory(ProductFactory)
    variant = None
    quantity = 2
    unit_price = Decimal("100.00")
    total_price = factory.LazyAttribute(lambda o: o.unit_price * o.quantity)
    refunded = False
