"""
Inventory restocking for refunded items.

Each level a sale deducted from is incremented with a single
``UPDATE ... SET stock_quantity = stock_quantity + n``, so concurrent
refunds and sales never lose an update.

Levels:
    product  - always present; a missing row is an error
    variant  - only when the item has a variant; a missing row is logged
    branch   - only when a BranchStock row exists for the refund's branch
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db.models import F

from pos.models import BranchStock, Product, ProductVariant

from refunds.exceptions import InventoryRecordNotFound

if TYPE_CHECKING:
    import uuid

logger = logging.getLogger(__name__)


@dataclass
class RestockOutcome:
    """Which stock levels a restock actually incremented."""

    product: bool = False
    variant: bool = False
    branch: bool = False


class InventoryAdjuster:
    """
    Atomic stock increments for product, variant and branch stock.

    All methods are static - no instance state is maintained.
    """

    @staticmethod
    def increment_product(product_id: uuid.UUID, quantity: int) -> None:
        """
        Raises:
            InventoryRecordNotFound: If the product row does not exist
        """
        updated = Product.objects.filter(pk=product_id).update(
            stock_quantity=F("stock_quantity") + quantity
        )
        if not updated:
            raise InventoryRecordNotFound(
                "Product not found while restocking",
                details={"product_id": str(product_id)},
            )
        logger.info(
            "Product restocked",
            extra={"product_id": str(product_id), "quantity": quantity},
        )

    @staticmethod
    def increment_variant(variant_id: uuid.UUID, quantity: int) -> bool:
        """Returns False when the variant row is missing."""
        updated = ProductVariant.objects.filter(pk=variant_id).update(
            stock_quantity=F("stock_quantity") + quantity
        )
        if not updated:
            logger.warning(
                "Variant not found while restocking, skipping",
                extra={"variant_id": str(variant_id)},
            )
            return False
        logger.info(
            "Variant restocked",
            extra={"variant_id": str(variant_id), "quantity": quantity},
        )
        return True

    @staticmethod
    def increment_branch_stock(
        branch_id: uuid.UUID,
        product_id: uuid.UUID,
        variant_id: uuid.UUID | None,
        quantity: int,
    ) -> bool:
        """Returns False when the branch does not track this product."""
        rows = BranchStock.objects.filter(branch_id=branch_id, product_id=product_id)
        if variant_id is None:
            rows = rows.filter(variant__isnull=True)
        else:
            rows = rows.filter(variant_id=variant_id)

        updated = rows.update(stock_quantity=F("stock_quantity") + quantity)
        if updated:
            logger.info(
                "Branch stock restocked",
                extra={
                    "branch_id": str(branch_id),
                    "product_id": str(product_id),
                    "quantity": quantity,
                },
            )
        return bool(updated)

    @classmethod
    def restock(
        cls,
        product_id: uuid.UUID,
        variant_id: uuid.UUID | None,
        branch_id: uuid.UUID,
        quantity: int,
    ) -> RestockOutcome:
        """Increment every level the item was deducted from."""
        outcome = RestockOutcome()
        cls.increment_product(product_id, quantity)
        outcome.product = True
        if variant_id is not None:
            outcome.variant = cls.increment_variant(variant_id, quantity)
        outcome.branch = cls.increment_branch_stock(
            branch_id, product_id, variant_id, quantity
        )
        return outcome


__all__ = [
    "InventoryAdjuster",
    "RestockOutcome",
]
