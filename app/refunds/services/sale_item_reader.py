"""
Read access to the sale item being refunded.

Loads the item together with everything the saga needs (sale, sale
customer, product, variant) in one query.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pos.models import Customer, SaleItem

from refunds.exceptions import RefundValidationError, SaleItemNotFoundError

if TYPE_CHECKING:
    import uuid


def get_sale_item(item_id: uuid.UUID | str, for_update: bool = False) -> SaleItem:
    """
    Fetch a sale item with its sale and customer.

    Args:
        item_id: Sale item primary key
        for_update: Lock the row (only meaningful inside a transaction)

    Raises:
        SaleItemNotFoundError: If no such item exists
    """
    queryset = SaleItem.objects.select_related(
        "sale", "sale__customer", "sale__branch", "product", "variant"
    )
    if for_update:
        queryset = queryset.select_for_update(of=("self",))
    try:
        return queryset.get(pk=item_id)
    except SaleItem.DoesNotExist:
        raise SaleItemNotFoundError(
            "Sale item not found",
            details={"item_id": str(item_id)},
        )


def resolve_customer(
    sale_item: SaleItem,
    customer_id: uuid.UUID | str | None,
) -> Customer | None:
    """
    Pick the customer a refund is associated with.

    An explicit ``customer_id`` wins; otherwise the sale's customer is used.

    Raises:
        RefundValidationError: If ``customer_id`` does not exist
    """
    if customer_id:
        customer = Customer.objects.filter(pk=customer_id).first()
        if customer is None:
            raise RefundValidationError(
                "Customer not found",
                details={"customer_id": str(customer_id)},
            )
        return customer
    return sale_item.sale.customer


__all__ = [
    "get_sale_item",
    "resolve_customer",
]
