"""
Small identifier utilities shared by the refunds services.

Usage:
    from core.helpers import generate_token, validate_uuid

    correlation_id = generate_token(8)
    if not validate_uuid(item_id):
        ...
"""

from __future__ import annotations

import secrets
import uuid


def generate_token(length: int = 32) -> str:
    """Random hex string of ``2 * length`` characters from ``secrets``."""
    return secrets.token_hex(length)


def validate_uuid(value) -> bool:
    """
    True when ``value`` is a UUID or parses as one.

    Request payloads carry ids as strings; checking them up front turns a
    malformed id into a validation error instead of a database error.

    Example:
        validate_uuid("550e8400-e29b-41d4-a716-446655440000")  # True
        validate_uuid("item-42")  # False
    """
    if isinstance(value, uuid.UUID):
        return True
    try:
        uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return False
    return True


__all__ = [
    "generate_token",
    "validate_uuid",
]
