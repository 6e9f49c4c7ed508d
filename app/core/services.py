"""
Service layer building blocks.

    ServiceResult: success/failure wrapper returned by query-style services
    BaseService: per-class logger and required-field validation

Views translate HTTP, models hold data, services decide. Expected
outcomes (bad input, unknown period) come back as a failed ServiceResult;
database outages and bugs propagate as exceptions.

Usage:
    from core.services import BaseService, ServiceResult

    class BranchStockService(BaseService):
        @classmethod
        def on_hand(cls, branch_id) -> ServiceResult[int]:
            invalid = cls.validate_required(branch_id=branch_id)
            if invalid is not None:
                return invalid
            total = BranchStock.objects.filter(branch_id=branch_id).aggregate(
                total=Sum("stock_quantity")
            )["total"]
            cls.get_logger().info("Stock counted", extra={"branch_id": str(branch_id)})
            return ServiceResult.success(total or 0)

    result = BranchStockService.on_hand(branch_id)
    if not result:
        return Response({"error": result.error}, status=400)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: Whether the call succeeded
        data: Payload on success
        error: Human-readable message on failure
        error_code: Machine-readable code on failure
        errors: Field-level messages for validation failures
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code, errors=errors)

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for stateless services.

    Services expose classmethods only; anything a call needs is passed in.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named ``<module>.<ServiceClass>`` so one saga can be filtered."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def validate_required(cls, **fields) -> ServiceResult | None:
        """
        Fail on any field that is None or blank.

        Returns:
            A VALIDATION_ERROR result listing every missing field, or None.
            The failure is falsy like every failed ServiceResult, so callers
            compare against None.

        Example:
            invalid = cls.validate_required(item_id=item_id, branch_id=branch_id)
            if invalid is not None:
                raise RefundValidationError(invalid.error, details={"errors": invalid.errors})
        """
        missing = {
            name: ["This field is required."]
            for name, value in fields.items()
            if value is None or (isinstance(value, str) and not value.strip())
        }
        if not missing:
            return None
        return ServiceResult.failure(
            "Required fields missing: " + ", ".join(sorted(missing)),
            error_code="VALIDATION_ERROR",
            errors=missing,
        )


__all__ = [
    "BaseService",
    "ServiceResult",
]
