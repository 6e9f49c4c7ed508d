"""
Application error hierarchy.

    BaseApplicationError
    ├── ValidationError   rejected input, nothing written
    ├── NotFoundError     a referenced row does not exist
    └── ConflictError     the row exists but its state forbids the operation

Domain apps subclass these and set ``default_error_code``; the code is what
API clients branch on, the message is what operators read.

Usage:
    from core.exceptions import NotFoundError

    raise NotFoundError(
        "Sale item not found",
        error_code="SALE_ITEM_NOT_FOUND",
        details={"item_id": str(item_id)},
    )

DRF still owns request-level errors (authentication, malformed JSON).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Error carrying a machine-readable code and structured details.

    Attributes:
        message: Operator-facing description
        error_code: Stable code for clients (e.g. ALREADY_REFUNDED)
        details: Identifiers and field errors for logs and responses
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationError(BaseApplicationError):
    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """Maps to HTTP 409 at the API layer."""

    default_error_code: str = "CONFLICT"
