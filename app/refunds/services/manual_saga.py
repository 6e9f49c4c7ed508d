"""
Manual refund saga - the fallback execution path.

Used when the atomic procedure is unavailable or rolled back. The refund
is applied as a sequence of small transactions; each write step commits
together with the Refund's ``last_completed_step`` cursor:

    1. fetch_item          Load the sale item, its sale and customer
    2. guard               Idempotency, bound and customer checks
    3. create_refund       Refund record in PROCESSING
    4. create_refund_item  RefundItem (unique per sale item)
    5. restock_product     Product stock + quantity
    6. restock_variant     Variant stock + quantity (if the item has one)
    7. restock_branch      BranchStock + quantity (if the branch tracks it)
    8. credit_account      Ledger credit (account refunds only)
    9. mark_refunded       Conditional mark of the item, Refund -> COMPLETED

A failing step stops the saga. Committed steps stay committed; the Refund
moves to PARTIALLY_FAILED with the failing step recorded, and a
SagaStepError is raised. ``resume(refund_id)`` continues after the cursor,
so no stock increment is applied twice. The ledger credit is protected a
second time by its idempotency key.

Usage:
    from refunds.services.manual_saga import ManualRefundSaga

    try:
        refund = ManualRefundSaga.execute(request)
    except SagaStepError as e:
        ManualRefundSaga.resume(e.refund_id)  # once the cause is fixed
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.logging import get_correlation_id
from core.services import BaseService

from pos.models import SaleItem

from refunds.exceptions import (
    AlreadyRefundedError,
    InvalidRefundStateError,
    SagaStepError,
)
from refunds.ledger.services import CustomerCreditLedger
from refunds.models import Refund
from refunds.services.guard import check_preconditions, ensure_not_refunded
from refunds.services.inventory import InventoryAdjuster
from refunds.services.record_store import (
    create_refund,
    create_refund_item,
    get_refund,
)
from refunds.services.sale_item_reader import get_sale_item
from refunds.state_machines import ExecutionPath, RefundMethod, RefundStatus, SagaStep

if TYPE_CHECKING:
    import uuid

    from pos.models import Customer

    from refunds.locks import DistributedLock
    from refunds.services.types import RefundRequest


# Steps executed before the Refund row exists; never replayed on resume.
PRE_RECORD_STEPS = (SagaStep.FETCH_ITEM, SagaStep.GUARD, SagaStep.CREATE_REFUND)


@dataclass
class SagaContext:
    """State carried from one saga step to the next."""

    refund: Refund
    sale_item: SaleItem
    customer: Customer | None
    last_completed_step: str
    lock: DistributedLock | None = None


class ManualRefundSaga(BaseService):
    """
    Step-by-step refund with a persisted cursor.

    All methods are class methods - no instance state is maintained.
    """

    @classmethod
    def execute(
        cls, request: RefundRequest, lock: DistributedLock | None = None
    ) -> Refund:
        """
        Run all nine steps for a new refund.

        ``lock`` is the item lock the caller holds; its TTL is restarted
        after every step so a slow saga keeps it.

        Returns:
            The completed Refund

        Raises:
            SaleItemNotFoundError, AlreadyRefundedError, RefundValidationError:
                Rejected before any write (or the attempt was voided)
            SagaStepError: A step failed after the refund record existed
        """
        logger = cls.get_logger()

        sale_item = get_sale_item(request.item_id)
        logger.info("Saga step completed", extra={"step": SagaStep.FETCH_ITEM})

        customer = check_preconditions(sale_item, request)
        logger.info("Saga step completed", extra={"step": SagaStep.GUARD})

        try:
            refund = create_refund(
                {
                    "original_sale_id": sale_item.sale_id,
                    "sale_item": sale_item,
                    "customer": customer,
                    "branch_id": request.branch_id,
                    "amount": request.refund_amount,
                    "method": request.refund_method,
                    "reason": request.reason or "",
                    "processed_by": request.processed_by,
                    "status": RefundStatus.PROCESSING,
                    "execution_path": ExecutionPath.MANUAL,
                    "last_completed_step": SagaStep.CREATE_REFUND,
                    "metadata": {"correlation_id": get_correlation_id()},
                }
            )
        except Exception as exc:
            logger.error(
                "Saga step failed",
                extra={"step": SagaStep.CREATE_REFUND, "item_id": str(sale_item.id)},
                exc_info=True,
            )
            raise SagaStepError(
                "Failed to create refund record",
                step=SagaStep.CREATE_REFUND,
                last_completed_step=SagaStep.GUARD,
            ) from exc

        logger.info(
            "Saga step completed",
            extra={
                "step": SagaStep.CREATE_REFUND,
                "refund_id": str(refund.id),
                "refund_number": refund.refund_number,
            },
        )

        context = SagaContext(
            refund=refund,
            sale_item=sale_item,
            customer=customer,
            last_completed_step=SagaStep.CREATE_REFUND,
            lock=lock,
        )
        return cls._run_steps(context, SagaStep.after(SagaStep.CREATE_REFUND))

    @classmethod
    def resume(
        cls, refund_id: uuid.UUID | str, lock: DistributedLock | None = None
    ) -> Refund:
        """
        Continue a PARTIALLY_FAILED refund after its last completed step.

        The sale item is re-read and re-guarded first; the refund's own
        attempt does not count as a conflict.

        Raises:
            RefundNotFoundError: Unknown refund
            InvalidRefundStateError: Refund is not PARTIALLY_FAILED
            AlreadyRefundedError: The item was refunded by another attempt
            SagaStepError: A step failed again
        """
        refund = get_refund(refund_id)
        if not refund.is_resumable:
            raise InvalidRefundStateError(
                f"Refund cannot be resumed from status '{refund.status}'",
                details={"refund_id": str(refund.id), "status": refund.status},
            )

        sale_item = get_sale_item(refund.sale_item_id)
        ensure_not_refunded(sale_item, allow_refund_id=refund.id)

        with transaction.atomic():
            refund = Refund.objects.select_for_update().get(pk=refund.pk)
            if not refund.is_resumable:
                raise InvalidRefundStateError(
                    f"Refund cannot be resumed from status '{refund.status}'",
                    details={"refund_id": str(refund.id), "status": refund.status},
                )
            refund.resume()
            refund.save()

        cursor = refund.last_completed_step or SagaStep.CREATE_REFUND
        remaining = [
            step for step in SagaStep.after(cursor) if step not in PRE_RECORD_STEPS
        ]

        cls.get_logger().info(
            "Resuming refund saga",
            extra={
                "refund_id": str(refund.id),
                "last_completed_step": cursor,
                "remaining_steps": [str(step) for step in remaining],
            },
        )

        context = SagaContext(
            refund=refund,
            sale_item=sale_item,
            customer=refund.customer,
            last_completed_step=cursor,
            lock=lock,
        )
        return cls._run_steps(context, remaining)

    # ==========================================================================
    # Step execution
    # ==========================================================================

    @classmethod
    def _run_steps(cls, context: SagaContext, steps: list[SagaStep]) -> Refund:
        logger = cls.get_logger()
        refund_id = context.refund.id

        for step in steps:
            handler = getattr(cls, f"_step_{step.value}")
            try:
                with transaction.atomic():
                    handler(context)
                    if step != SagaStep.MARK_REFUNDED:
                        Refund.objects.filter(pk=refund_id).update(
                            last_completed_step=step,
                            updated_at=timezone.now(),
                        )
            except AlreadyRefundedError as exc:
                if step == SagaStep.CREATE_REFUND_ITEM:
                    # Lost the race before any stock or ledger effect
                    cls._void(refund_id, "Sale item already has a refund item")
                    raise
                cls._fail(context, step, exc.message, exc)
            except Exception as exc:
                cls._fail(context, step, str(exc) or exc.__class__.__name__, exc)

            context.last_completed_step = step
            logger.info(
                "Saga step completed",
                extra={"step": step, "refund_id": str(refund_id)},
            )
            if context.lock is not None:
                context.lock.extend()

        return context.refund

    @staticmethod
    def _step_create_refund_item(context: SagaContext) -> None:
        sale_item = context.sale_item
        try:
            with transaction.atomic():
                create_refund_item(
                    {
                        "refund": context.refund,
                        "original_sale_item": sale_item,
                        "product_id": sale_item.product_id,
                        "variant_id": sale_item.variant_id,
                        "quantity": sale_item.quantity,
                        "unit_price": sale_item.unit_price,
                        "refund_amount": context.refund.amount,
                        "reason": context.refund.reason,
                    }
                )
        except IntegrityError:
            raise AlreadyRefundedError(
                "This item has already been refunded",
                details={"item_id": str(sale_item.id)},
            )

    @staticmethod
    def _step_restock_product(context: SagaContext) -> None:
        InventoryAdjuster.increment_product(
            context.sale_item.product_id, context.sale_item.quantity
        )

    @staticmethod
    def _step_restock_variant(context: SagaContext) -> None:
        if context.sale_item.variant_id is not None:
            InventoryAdjuster.increment_variant(
                context.sale_item.variant_id, context.sale_item.quantity
            )

    @staticmethod
    def _step_restock_branch(context: SagaContext) -> None:
        InventoryAdjuster.increment_branch_stock(
            context.refund.branch_id,
            context.sale_item.product_id,
            context.sale_item.variant_id,
            context.sale_item.quantity,
        )

    @staticmethod
    def _step_credit_account(context: SagaContext) -> None:
        if context.refund.method != RefundMethod.ACCOUNT:
            return
        CustomerCreditLedger.credit(
            customer_id=context.customer.id,
            amount=context.refund.amount,
            refund_id=context.refund.id,
        )

    @staticmethod
    def _step_mark_refunded(context: SagaContext) -> None:
        now = timezone.now()
        marked = SaleItem.objects.filter(
            pk=context.sale_item.pk, refunded=False
        ).update(
            refunded=True,
            refund_amount=context.refund.amount,
            refund_date=now,
            updated_at=now,
        )
        if not marked:
            raise AlreadyRefundedError(
                "This item has already been refunded",
                details={"item_id": str(context.sale_item.id)},
            )

        refund = Refund.objects.select_for_update().get(pk=context.refund.pk)
        refund.complete()
        refund.save()
        context.refund = refund

    # ==========================================================================
    # Failure handling
    # ==========================================================================

    @classmethod
    def _fail(
        cls,
        context: SagaContext,
        step: SagaStep,
        reason: str,
        exc: Exception | None = None,
    ) -> None:
        """Record the failure on the refund and raise SagaStepError."""
        refund_id = context.refund.id
        cls.get_logger().error(
            "Saga step failed",
            extra={
                "step": step,
                "refund_id": str(refund_id),
                "last_completed_step": context.last_completed_step,
            },
            exc_info=exc is not None,
        )
        cls._mark_partially_failed(refund_id, step, reason)
        raise SagaStepError(
            f"Refund step '{step.label}' failed",
            step=step,
            refund_id=refund_id,
            last_completed_step=context.last_completed_step,
        ) from exc

    @classmethod
    def _mark_partially_failed(cls, refund_id: uuid.UUID, step: str, reason: str) -> None:
        """
        Move the refund to PARTIALLY_FAILED.

        Best-effort: if this write fails too, the refund stays PROCESSING
        and is picked up by reconciliation as stuck.
        """
        try:
            with transaction.atomic():
                refund = Refund.objects.select_for_update().get(pk=refund_id)
                if refund.status == RefundStatus.PROCESSING:
                    refund.mark_partially_failed(step=step, reason=reason)
                    refund.save()
        except Exception:
            cls.get_logger().exception(
                "Failed to mark refund as partially failed",
                extra={"refund_id": str(refund_id), "step": step},
            )

    @classmethod
    def _void(cls, refund_id: uuid.UUID, reason: str) -> None:
        """Void an attempt that lost the race for its sale item (best-effort)."""
        try:
            with transaction.atomic():
                refund = Refund.objects.select_for_update().get(pk=refund_id)
                if refund.status == RefundStatus.PROCESSING:
                    refund.void(reason=reason)
                    refund.save()
        except Exception:
            cls.get_logger().exception(
                "Failed to void refund",
                extra={"refund_id": str(refund_id)},
            )


__all__ = [
    "ManualRefundSaga",
    "SagaContext",
]
