"""
Refund orchestrator - the entry point for refunding a sold line item.

The orchestrator validates the request, serialises attempts per sale item
with a distributed lock, then tries the execution paths in order:

    1. AtomicRefundProcedure (one transaction)
    2. ManualRefundSaga (step-by-step, resumable)

Fallback rules:
    - Domain rejections (not found, already refunded, validation) are
      returned as-is from whichever path raised them. No fallback.
    - Atomic procedure unavailable or confirmed rolled back: fall back.
    - Atomic commit outcome unknown: look up the pre-generated refund
      number. Found means success; absent means fall back; a failed lookup
      returns REFUND_OUTCOME_UNKNOWN without falling back.

The paths never run concurrently and are never retried automatically
within one call. Every call returns a RefundResult; only unexpected
programming errors propagate.

Usage:
    from refunds.services import RefundOrchestrator, RefundRequest

    result = RefundOrchestrator.process_refund(
        RefundRequest(
            item_id=item.id,
            refund_amount=Decimal("200.00"),
            reason="Damaged",
            refund_method="account",
            processed_by="cashier-7",
            branch_id=branch.id,
        )
    )

    if result.success:
        print(result.refund_number, result.path)
    else:
        print(result.error_code, result.error)

    # Operator resume after a partial failure
    RefundOrchestrator.resume_refund(refund_id)
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from django.db import DatabaseError

from core.exceptions import BaseApplicationError
from core.helpers import generate_token, validate_uuid
from core.logging import correlation_context
from core.services import BaseService

from refunds.exceptions import (
    AtomicProcedureError,
    LockAcquisitionError,
    RefundValidationError,
    SagaStepError,
)
from refunds.locks import DistributedLock, refund_item_lock_key
from refunds.models import Refund
from refunds.services.atomic_procedure import AtomicRefundProcedure
from refunds.services.guard import parse_amount
from refunds.services.manual_saga import ManualRefundSaga
from refunds.services.record_store import generate_refund_number, get_refund
from refunds.services.types import RefundResult
from refunds.state_machines import (
    ExecutionPath,
    RefundAttemptState,
    RefundMethod,
    SagaStep,
)

if TYPE_CHECKING:
    import uuid

    from refunds.services.types import RefundRequest


IN_PROGRESS_MESSAGE = "A refund for this item is already being processed"
NOT_RECORDED_MESSAGE = "The refund could not be recorded. No changes were made."
OUTCOME_UNKNOWN_MESSAGE = (
    "The refund outcome could not be confirmed. Please check the refund "
    "history before trying again."
)

# Free-text request fields stored on Refund as-is
TEXT_FIELDS = ("reason", "processed_by")


class RefundOrchestrator(BaseService):
    """
    Coordinates refund validation, locking and execution paths.

    The atomic procedure is injectable via set_atomic_procedure() so a
    deployment (or a test) can swap in another implementation.
    """

    _atomic_procedure = AtomicRefundProcedure

    @classmethod
    def set_atomic_procedure(cls, procedure) -> None:
        """Replace the atomic procedure (for testing or alternative backends)."""
        cls._atomic_procedure = procedure

    @classmethod
    def get_atomic_procedure(cls):
        return cls._atomic_procedure

    # ==========================================================================
    # Public API
    # ==========================================================================

    @classmethod
    def process_refund(cls, request: RefundRequest) -> RefundResult:
        """
        Refund one sold line item.

        Returns:
            RefundResult describing the outcome (never raises for expected
            failures)
        """
        correlation_id = generate_token(8)
        with correlation_context(correlation_id):
            return cls._process(request, correlation_id)

    @classmethod
    def resume_refund(cls, refund_id: uuid.UUID | str) -> RefundResult:
        """
        Resume a PARTIALLY_FAILED refund through the manual saga.

        Runs under the same per-item lock as process_refund.
        """
        correlation_id = generate_token(8)
        with correlation_context(correlation_id):
            if not validate_uuid(refund_id):
                return RefundResult.failed(
                    "Invalid refund id",
                    "VALIDATION_ERROR",
                    correlation_id=correlation_id,
                )
            try:
                refund = get_refund(refund_id)
                with DistributedLock(refund_item_lock_key(refund.sale_item_id)) as lock:
                    refund = ManualRefundSaga.resume(refund.id, lock=lock)
            except LockAcquisitionError:
                return RefundResult.failed(
                    IN_PROGRESS_MESSAGE,
                    "REFUND_IN_PROGRESS",
                    correlation_id=correlation_id,
                )
            except SagaStepError as exc:
                return cls._partially_failed(exc, correlation_id)
            except BaseApplicationError as exc:
                return cls._rejected(exc, correlation_id, path=ExecutionPath.MANUAL)

            cls.get_logger().info(
                "Refund resumed to completion",
                extra={"refund_id": str(refund.id)},
            )
            return RefundResult.completed(
                refund.id,
                refund.refund_number,
                ExecutionPath.MANUAL,
                correlation_id=correlation_id,
            )

    # ==========================================================================
    # Internals
    # ==========================================================================

    @classmethod
    def _process(cls, request: RefundRequest, correlation_id: str) -> RefundResult:
        logger = cls.get_logger()
        logger.info(
            "Refund received",
            extra={
                "item_id": str(request.item_id),
                "refund_method": request.refund_method,
                "branch_id": str(request.branch_id),
            },
        )

        try:
            request = cls._validate(request)
        except RefundValidationError as exc:
            logger.info(
                "Refund request rejected",
                extra={"item_id": str(request.item_id), "error_code": exc.error_code},
            )
            return RefundResult.failed(
                exc.message,
                exc.error_code,
                errors=exc.details.get("errors"),
                correlation_id=correlation_id,
            )

        try:
            with DistributedLock(refund_item_lock_key(request.item_id)) as lock:
                return cls._run_paths(request, correlation_id, lock)
        except LockAcquisitionError:
            logger.warning(
                "Refund already in progress for item",
                extra={"item_id": str(request.item_id)},
            )
            return RefundResult.failed(
                IN_PROGRESS_MESSAGE,
                "REFUND_IN_PROGRESS",
                attempt_state=RefundAttemptState.VALIDATED,
                correlation_id=correlation_id,
            )

    @classmethod
    def _validate(cls, request: RefundRequest) -> RefundRequest:
        """
        Presence and format checks. No database access.

        Raises:
            RefundValidationError: With field errors in details["errors"]
        """
        invalid = cls.validate_required(
            item_id=request.item_id,
            refund_method=request.refund_method,
            processed_by=request.processed_by,
            branch_id=request.branch_id,
        )
        if invalid is not None:
            raise RefundValidationError(invalid.error, details={"errors": invalid.errors})

        too_long = {}
        for field_name in TEXT_FIELDS:
            limit = Refund._meta.get_field(field_name).max_length
            if len(getattr(request, field_name) or "") > limit:
                too_long[field_name] = [
                    f"Ensure this field has no more than {limit} characters."
                ]
        if too_long:
            raise RefundValidationError(
                "Fields too long: " + ", ".join(sorted(too_long)),
                details={"errors": too_long},
            )

        amount = parse_amount(request.refund_amount)

        for field_name in ("item_id", "branch_id", "customer_id"):
            value = getattr(request, field_name)
            if value and not validate_uuid(value):
                raise RefundValidationError(
                    f"Invalid {field_name.replace('_', ' ')}",
                    details={"errors": {field_name: ["Must be a valid UUID."]}},
                )

        if request.refund_method not in RefundMethod.values:
            raise RefundValidationError(
                "Invalid refund method",
                details={
                    "errors": {
                        "refund_method": [
                            f"Must be one of: {', '.join(RefundMethod.values)}."
                        ]
                    }
                },
            )

        return replace(request, refund_amount=amount)

    @classmethod
    def _run_paths(
        cls,
        request: RefundRequest,
        correlation_id: str,
        lock: DistributedLock | None = None,
    ) -> RefundResult:
        logger = cls.get_logger()
        refund_number = generate_refund_number()
        procedure = cls.get_atomic_procedure()

        try:
            refund = procedure.execute(request, refund_number)
        except AtomicProcedureError as exc:
            if not exc.rolled_back:
                try:
                    refund = Refund.objects.filter(refund_number=refund_number).first()
                except DatabaseError:
                    logger.error(
                        "Could not confirm atomic refund outcome",
                        extra={"refund_number": refund_number},
                        exc_info=True,
                    )
                    return RefundResult.failed(
                        OUTCOME_UNKNOWN_MESSAGE,
                        "REFUND_OUTCOME_UNKNOWN",
                        attempt_state=RefundAttemptState.ATOMIC_FAILED,
                        path=ExecutionPath.ATOMIC,
                        refund_number=refund_number,
                        correlation_id=correlation_id,
                    )
                if refund is not None:
                    logger.info(
                        "Atomic refund committed despite commit error",
                        extra={"refund_id": str(refund.id)},
                    )
                    return RefundResult.completed(
                        refund.id,
                        refund.refund_number,
                        ExecutionPath.ATOMIC,
                        correlation_id=correlation_id,
                    )

            logger.warning(
                "Atomic refund procedure did not apply, using manual saga",
                extra={
                    "item_id": str(request.item_id),
                    "unavailable": exc.unavailable,
                },
            )
        except BaseApplicationError as exc:
            return cls._rejected(exc, correlation_id, path=ExecutionPath.ATOMIC)
        else:
            return RefundResult.completed(
                refund.id,
                refund.refund_number,
                ExecutionPath.ATOMIC,
                correlation_id=correlation_id,
            )

        try:
            refund = ManualRefundSaga.execute(request, lock=lock)
        except SagaStepError as exc:
            if exc.refund_id is None:
                return cls._not_recorded(exc, correlation_id)
            return cls._partially_failed(exc, correlation_id)
        except BaseApplicationError as exc:
            return cls._rejected(exc, correlation_id, path=ExecutionPath.MANUAL)

        logger.info(
            "Refund completed via manual saga",
            extra={"refund_id": str(refund.id), "refund_number": refund.refund_number},
        )
        return RefundResult.completed(
            refund.id,
            refund.refund_number,
            ExecutionPath.MANUAL,
            correlation_id=correlation_id,
        )

    @classmethod
    def _rejected(
        cls,
        exc: BaseApplicationError,
        correlation_id: str,
        path: str | None = None,
    ) -> RefundResult:
        cls.get_logger().info(
            "Refund rejected",
            extra={"error_code": exc.error_code, "path": path},
        )
        return RefundResult.failed(
            exc.message,
            exc.error_code,
            path=path,
            correlation_id=correlation_id,
        )

    @classmethod
    def _not_recorded(cls, exc: SagaStepError, correlation_id: str) -> RefundResult:
        """The saga stopped before the refund row existed; nothing to resume."""
        cls.get_logger().error(
            "Refund record could not be created",
            extra={"failed_step": exc.step},
        )
        return RefundResult.failed(
            NOT_RECORDED_MESSAGE,
            "REFUND_FAILED",
            path=ExecutionPath.MANUAL,
            failed_step=exc.step,
            correlation_id=correlation_id,
        )

    @classmethod
    def _partially_failed(cls, exc: SagaStepError, correlation_id: str) -> RefundResult:
        label = SagaStep(exc.step).label
        refund_number = None
        if exc.refund_id is not None:
            refund_number = (
                Refund.objects.filter(pk=exc.refund_id)
                .values_list("refund_number", flat=True)
                .first()
            )
        cls.get_logger().error(
            "Refund partially failed",
            extra={
                "refund_id": str(exc.refund_id) if exc.refund_id else None,
                "failed_step": exc.step,
                "last_completed_step": exc.last_completed_step,
            },
        )
        return RefundResult.failed(
            f"Refund partially failed at step: {label}. Please contact support.",
            exc.error_code,
            attempt_state=RefundAttemptState.PARTIALLY_FAILED,
            refund_id=exc.refund_id,
            refund_number=refund_number,
            path=ExecutionPath.MANUAL,
            failed_step=exc.step,
            last_completed_step=exc.last_completed_step,
            correlation_id=correlation_id,
        )


__all__ = [
    "RefundOrchestrator",
]
