"""
Idempotency and bound checks run before any refund write.

These checks are the first line of defence only. The storage layer is
the real serialization point:

    - SaleItem is marked with a conditional update (refunded=False -> True)
    - RefundItem.original_sale_item is unique

Usage:
    from refunds.services.guard import check_preconditions

    customer = check_preconditions(sale_item, request)
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from pos.models import Branch

from refunds.exceptions import AlreadyRefundedError, RefundValidationError
from refunds.models import Refund
from refunds.services.sale_item_reader import resolve_customer
from refunds.state_machines import RefundMethod, RefundStatus

if TYPE_CHECKING:
    import uuid

    from pos.models import Customer, SaleItem

    from refunds.services.types import RefundRequest

logger = logging.getLogger(__name__)

OPEN_STATUSES = (RefundStatus.PROCESSING, RefundStatus.PARTIALLY_FAILED)

# Refund.amount is DECIMAL(12, 2)
CENTS = Decimal("0.01")
MAX_AMOUNT = Decimal("10000000000")


def ensure_not_refunded(
    sale_item: SaleItem,
    allow_refund_id: uuid.UUID | None = None,
) -> None:
    """
    Reject a sale item that is refunded or has another refund attempt.

    Args:
        sale_item: Item about to be refunded
        allow_refund_id: Refund being resumed; its own attempt is not a conflict

    Raises:
        AlreadyRefundedError: ALREADY_REFUNDED or REFUND_PENDING_RESUME
    """
    details = {"item_id": str(sale_item.id)}
    if sale_item.refunded:
        raise AlreadyRefundedError("This item has already been refunded", details=details)

    attempts = Refund.objects.filter(sale_item_id=sale_item.id)
    if allow_refund_id is not None:
        attempts = attempts.exclude(pk=allow_refund_id)

    if attempts.filter(status=RefundStatus.COMPLETED).exists():
        raise AlreadyRefundedError("This item has already been refunded", details=details)

    pending = attempts.filter(status__in=OPEN_STATUSES).first()
    if pending is not None:
        raise AlreadyRefundedError(
            "A refund for this item is already in progress and must be resumed",
            error_code="REFUND_PENDING_RESUME",
            details={**details, "refund_id": str(pending.id)},
        )


def ensure_within_bound(sale_item: SaleItem, amount: Decimal) -> None:
    """
    Reject an amount above the item's total price.

    Raises:
        RefundValidationError: If amount > total_price
    """
    if amount > sale_item.total_price:
        raise RefundValidationError(
            "Refund amount cannot exceed the item total",
            details={
                "item_id": str(sale_item.id),
                "amount": str(amount),
                "total_price": str(sale_item.total_price),
            },
        )


def parse_amount(value) -> Decimal:
    """
    Coerce a request amount into a positive Decimal that fits the refund
    amount column.

    Raises:
        RefundValidationError: If value is not a positive number, is too
            large or has more than two decimal places
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise RefundValidationError(
            "Refund amount must be a number",
            details={"refund_amount": str(value)},
        )
    if not amount.is_finite() or amount <= 0:
        raise RefundValidationError(
            "Refund amount must be greater than zero",
            details={"refund_amount": str(value)},
        )
    if amount >= MAX_AMOUNT:
        raise RefundValidationError(
            "Refund amount is too large",
            details={"refund_amount": str(value)},
        )
    if amount != amount.quantize(CENTS):
        raise RefundValidationError(
            "Refund amount cannot have more than 2 decimal places",
            details={"refund_amount": str(value)},
        )
    return amount


def check_preconditions(
    sale_item: SaleItem,
    request: RefundRequest,
    allow_refund_id: uuid.UUID | None = None,
) -> Customer | None:
    """
    Run every check a refund must pass before its first write.

    Returns:
        The customer the refund is associated with (may be None)

    Raises:
        AlreadyRefundedError: Item refunded or refund attempt open
        RefundValidationError: Bound, branch, method or customer errors
    """
    ensure_not_refunded(sale_item, allow_refund_id=allow_refund_id)
    ensure_within_bound(sale_item, parse_amount(request.refund_amount))

    if not Branch.objects.filter(pk=request.branch_id).exists():
        raise RefundValidationError(
            "Branch not found",
            details={"branch_id": str(request.branch_id)},
        )

    customer = resolve_customer(sale_item, request.customer_id)
    if request.refund_method == RefundMethod.ACCOUNT and customer is None:
        raise RefundValidationError(
            "Account refunds require a customer",
            details={"item_id": str(sale_item.id)},
        )
    return customer


__all__ = [
    "check_preconditions",
    "ensure_not_refunded",
    "ensure_within_bound",
    "parse_amount",
]
