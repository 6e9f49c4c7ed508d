"""
Refund-specific exceptions.

Exception Hierarchy:
    BaseApplicationError (core)
    ├── ValidationError (core)
    │   └── RefundValidationError - Request or business rule rejected, no writes
    ├── NotFoundError (core)
    │   ├── SaleItemNotFoundError - Referenced sale item does not exist, no writes
    │   ├── RefundNotFoundError - Refund lookup failed (resume, reconciliation)
    │   └── InventoryRecordNotFound - Product row missing while restocking
    ├── ConflictError (core)
    │   ├── AlreadyRefundedError - Idempotency guard rejection, no writes
    │   ├── InvalidRefundStateError - Refund is not in a resumable state
    │   └── LockAcquisitionError - Per-item distributed lock is held elsewhere
    └── RefundError - Base for failures of the refund machinery itself
        ├── AtomicProcedureError - Preferred atomic path failed or is unavailable
        └── SagaStepError - A manual saga step failed after earlier steps committed

Propagation policy:
    - Validation / not-found / already-refunded: recovered locally by the
      orchestrator, returned as a failed RefundResult with no side effects.
    - AtomicProcedureError: recovered locally by falling back to the manual
      saga when the atomic transaction is known not to have committed.
    - SagaStepError: not recoverable locally; reported with the failing and
      last completed step so the refund can be resumed.

Usage:
    from refunds.exceptions import AlreadyRefundedError

    if sale_item.refunded:
        raise AlreadyRefundedError(
            "This item has already been refunded",
            details={"item_id": str(sale_item.id)},
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    import uuid
    from typing import Any


# =============================================================================
# Rejections (no writes performed)
# =============================================================================


class RefundValidationError(ValidationError):
    """
    Raised when a refund request is rejected before any write.

    Covers missing fields, non-positive amounts, unknown refund methods,
    amounts above the item total and account refunds without a customer.
    """

    default_error_code: str = "VALIDATION_ERROR"


class SaleItemNotFoundError(NotFoundError):
    """Raised when the sale item to refund does not exist."""

    default_error_code: str = "SALE_ITEM_NOT_FOUND"


class RefundNotFoundError(NotFoundError):
    """Raised when a refund referenced by id does not exist."""

    default_error_code: str = "REFUND_NOT_FOUND"


class InventoryRecordNotFound(NotFoundError):
    """
    Raised when the product row to restock is missing.

    Variant and branch-stock rows are optional, so only the product
    level raises this.
    """

    default_error_code: str = "INVENTORY_RECORD_NOT_FOUND"


class AlreadyRefundedError(ConflictError):
    """
    Raised by the idempotency guard.

    Error codes:
        ALREADY_REFUNDED: The item is already refunded (or lost the race)
        REFUND_PENDING_RESUME: An earlier attempt for the item is still open
            and must be resumed rather than started again
    """

    default_error_code: str = "ALREADY_REFUNDED"


class InvalidRefundStateError(ConflictError):
    """Raised when a refund cannot perform the requested transition."""

    default_error_code: str = "INVALID_REFUND_STATE"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Note:
        This exception inherits from ConflictError (HTTP 409) because
        it represents a resource contention conflict.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


# =============================================================================
# Machinery failures
# =============================================================================


class RefundError(BaseApplicationError):
    """Base exception for failures inside the refund machinery."""

    default_error_code: str = "REFUND_ERROR"


class AtomicProcedureError(RefundError):
    """
    Raised when the atomic refund procedure could not complete.

    Attributes:
        unavailable: The procedure is disabled or unsupported on this
            deployment; nothing was attempted.
        outcome_known: False when the failure happened while committing,
            so the transaction may or may not have been applied.

    Example:
        except AtomicProcedureError as e:
            if e.rolled_back:
                fall_back_to_saga()
            else:
                look_up_committed_refund()
    """

    default_error_code: str = "ATOMIC_PROCEDURE_FAILED"

    def __init__(
        self,
        message: str,
        unavailable: bool = False,
        outcome_known: bool = True,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.unavailable = unavailable
        self.outcome_known = outcome_known
        super().__init__(message, error_code=error_code, details=details)

    @property
    def rolled_back(self) -> bool:
        """True when it is certain nothing was committed."""
        return self.unavailable or self.outcome_known


class SagaStepError(RefundError):
    """
    Raised when a manual saga step fails.

    Steps that committed before the failure are not rolled back; the
    refund's cursor records the last one so the saga can be resumed.

    Attributes:
        step: The step that failed
        refund_id: The refund created by this attempt (None if the failure
            happened before the refund record existed)
        last_completed_step: The last step whose writes committed
    """

    default_error_code: str = "REFUND_PARTIALLY_FAILED"

    def __init__(
        self,
        message: str,
        step: str,
        refund_id: uuid.UUID | None = None,
        last_completed_step: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.step = step
        self.refund_id = refund_id
        self.last_completed_step = last_completed_step

        full_details = {
            "step": step,
            "refund_id": str(refund_id) if refund_id else None,
            "last_completed_step": last_completed_step,
        }
        if details:
            full_details.update(details)

        super().__init__(message, error_code=error_code, details=full_details)


__all__ = [
    "AlreadyRefundedError",
    "AtomicProcedureError",
    "InvalidRefundStateError",
    "InventoryRecordNotFound",
    "LockAcquisitionError",
    "RefundError",
    "RefundNotFoundError",
    "RefundValidationError",
    "SagaStepError",
    "SaleItemNotFoundError",
]
