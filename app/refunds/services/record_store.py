"""
Persistence of Refund and RefundItem records.

Refund numbers look like ``REF-1718000000000-7QK2M``: the creation time in
epoch milliseconds plus five random uppercase alphanumerics. A clash on
the unique column regenerates the number, up to MAX_NUMBER_ATTEMPTS.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.utils.crypto import get_random_string

from refunds.exceptions import RefundNotFoundError
from refunds.models import Refund, RefundItem

if TYPE_CHECKING:
    import uuid
    from typing import Any

logger = logging.getLogger(__name__)

REFUND_NUMBER_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
MAX_NUMBER_ATTEMPTS = 3


def generate_refund_number() -> str:
    """Return a new ``REF-<epoch ms>-<suffix>`` refund number."""
    suffix = get_random_string(5, allowed_chars=REFUND_NUMBER_ALPHABET)
    return f"REF-{int(time.time() * 1000)}-{suffix}"


def create_refund(fields: dict[str, Any]) -> Refund:
    """
    Insert a Refund.

    If ``refund_number`` is absent one is generated. Only a generated
    number is retried on a unique clash; a caller-supplied number that
    clashes raises IntegrityError.
    """
    fields = dict(fields)
    supplied = "refund_number" in fields

    for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
        if not supplied:
            fields["refund_number"] = generate_refund_number()
        try:
            with transaction.atomic():
                return Refund.objects.create(**fields)
        except IntegrityError:
            if supplied or attempt == MAX_NUMBER_ATTEMPTS:
                raise
            if not Refund.objects.filter(refund_number=fields["refund_number"]).exists():
                # The clash was on another constraint
                raise
            logger.warning(
                "Refund number collision, regenerating",
                extra={"refund_number": fields["refund_number"], "attempt": attempt},
            )
    raise AssertionError("unreachable")


def create_refund_item(fields: dict[str, Any]) -> RefundItem:
    """Insert a RefundItem. Raises IntegrityError if the sale item already has one."""
    return RefundItem.objects.create(**fields)


def get_refund(refund_id: uuid.UUID | str) -> Refund:
    """
    Fetch a refund by id.

    Raises:
        RefundNotFoundError: If no such refund exists
    """
    try:
        return Refund.objects.get(pk=refund_id)
    except Refund.DoesNotExist:
        raise RefundNotFoundError(
            "Refund not found",
            details={"refund_id": str(refund_id)},
        )


__all__ = [
    "MAX_NUMBER_ATTEMPTS",
    "create_refund",
    "create_refund_item",
    "generate_refund_number",
    "get_refund",
]
