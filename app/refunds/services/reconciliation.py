"""
Reconciliation service for refunds left in an inconsistent state.

The manual saga commits step by step, so a crash or outage can leave a
refund half-applied. This service is the safety net that finds those
refunds and either finishes them or flags them for an operator.

Detection Categories:
    1. Partially failed: refunds in PARTIALLY_FAILED
    2. Stuck: refunds in PROCESSING longer than the stuck threshold
       (the worker died before it could record a failure)
    3. Refunded without refund: sale items marked refunded with no
       completed refund
    4. Completed without item: completed refunds missing their RefundItem
    5. Duplicate refunds: more than one completed refund for a sale item

Healing Strategy:
    - Auto-heal 1 and 2 by resuming the saga after the recorded cursor
    - Flag 3, 4 and 5 for manual review (they need a human decision)
    - Per-item distributed locks prevent racing a live refund attempt
    - Double-check pattern: re-read the refund status after locking

Usage:
    from refunds.services.reconciliation import RefundReconciliationService

    result = RefundReconciliationService.run_reconciliation(
        stuck_threshold_minutes=15,
    )
    if result.success:
        report = result.data
        print(f"Found {report.discrepancies_found} discrepancies")
        print(f"Auto-healed: {report.auto_healed}")
        print(f"Flagged for review: {report.flagged_for_review}")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Exists, OuterRef
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from pos.models import SaleItem

from refunds.exceptions import LockAcquisitionError
from refunds.locks import DistributedLock, refund_item_lock_key
from refunds.models import Refund, RefundItem
from refunds.services.manual_saga import ManualRefundSaga
from refunds.state_machines import RefundStatus, SagaStep

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_RECORDS = 500

# Lock configuration
RECONCILIATION_RUN_LOCK_TTL = 3600  # 1 hour
RECONCILIATION_RUN_LOCK_TIMEOUT = 5.0
HEAL_LOCK_TTL = 60
HEAL_LOCK_TIMEOUT = 5.0

STUCK_FAILURE_REASON = "Refund stuck in processing; recovered by reconciliation"


# =============================================================================
# Data Types
# =============================================================================


class DiscrepancyType(str, Enum):
    """Types of discrepancies that can be detected."""

    PARTIALLY_FAILED = "partially_failed"
    STUCK_IN_PROCESSING = "stuck_in_processing"
    REFUNDED_WITHOUT_REFUND = "refunded_without_refund"
    COMPLETED_WITHOUT_ITEM = "completed_without_item"
    DUPLICATE_REFUNDS = "duplicate_refunds"


class Resolution(str, Enum):
    """What the reconciliation run did about a discrepancy."""

    AUTO_HEALED = "auto_healed"
    FLAGGED = "flagged"
    FAILED = "failed"
    SKIPPED = "skipped"


AUTO_HEALABLE = (DiscrepancyType.PARTIALLY_FAILED, DiscrepancyType.STUCK_IN_PROCESSING)


@dataclass
class Discrepancy:
    """A detected inconsistency."""

    discrepancy_type: DiscrepancyType
    entity_type: str  # "refund" or "sale_item"
    entity_id: uuid.UUID
    details: dict[str, Any] = field(default_factory=dict)
    detected_at: datetime = field(default_factory=timezone.now)


@dataclass
class HealingResult:
    """Result of handling one discrepancy."""

    discrepancy: Discrepancy
    resolution: Resolution
    action_taken: str | None = None
    error: str | None = None


@dataclass
class ReconciliationReport:
    """Summary of a reconciliation run."""

    run_id: uuid.UUID
    started_at: datetime
    completed_at: datetime | None = None
    discrepancies_found: int = 0
    auto_healed: int = 0
    flagged_for_review: int = 0
    failed_to_heal: int = 0
    results: list[HealingResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "discrepancies_found": self.discrepancies_found,
            "auto_healed": self.auto_healed,
            "flagged_for_review": self.flagged_for_review,
            "failed_to_heal": self.failed_to_heal,
        }


# =============================================================================
# Reconciliation Service
# =============================================================================


class RefundReconciliationService(BaseService):
    """
    Service for detecting and healing inconsistent refunds.

    Concurrency Safety:
        - Global run lock prevents concurrent reconciliation runs
        - Per-item locks prevent healing while a refund attempt is live
        - Refund status is re-checked after the item lock is held
    """

    # =========================================================================
    # Public API
    # =========================================================================

    @classmethod
    def run_reconciliation(
        cls,
        stuck_threshold_minutes: int | None = None,
        max_records: int = DEFAULT_MAX_RECORDS,
    ) -> ServiceResult[ReconciliationReport]:
        """
        Run a full reconciliation pass.

        Args:
            stuck_threshold_minutes: PROCESSING refunds untouched for longer
                are considered stuck (default: REFUND_STUCK_THRESHOLD_MINUTES)
            max_records: Maximum records to check per category

        Returns:
            ServiceResult containing the ReconciliationReport, or a
            RECONCILIATION_IN_PROGRESS failure if another run holds the lock
        """
        if stuck_threshold_minutes is None:
            stuck_threshold_minutes = settings.REFUND_STUCK_THRESHOLD_MINUTES

        cls.get_logger().info(
            "Starting refund reconciliation run",
            extra={
                "stuck_threshold_minutes": stuck_threshold_minutes,
                "max_records": max_records,
            },
        )

        lock_key = "refunds:reconciliation:run"
        lock = DistributedLock(
            lock_key,
            ttl=RECONCILIATION_RUN_LOCK_TTL,
            timeout=RECONCILIATION_RUN_LOCK_TIMEOUT,
        )
        try:
            lock.acquire()
        except LockAcquisitionError:
            cls.get_logger().warning(
                "Another refund reconciliation run is in progress",
                extra={"lock_key": lock_key},
            )
            return ServiceResult.failure(
                "Another reconciliation run is in progress",
                "RECONCILIATION_IN_PROGRESS",
            )

        try:
            report = cls._run_with_lock(lock, stuck_threshold_minutes, max_records)
        finally:
            lock.release()

        cls.get_logger().info("Refund reconciliation run finished", extra=report.to_dict())
        return ServiceResult.success(report)

    @classmethod
    def detect_discrepancies(
        cls,
        stuck_threshold_minutes: int,
        max_records: int = DEFAULT_MAX_RECORDS,
    ) -> list[Discrepancy]:
        """Find every inconsistency without changing anything."""
        discrepancies: list[Discrepancy] = []

        for refund in Refund.objects.filter(
            status=RefundStatus.PARTIALLY_FAILED
        ).order_by("updated_at")[:max_records]:
            discrepancies.append(
                Discrepancy(
                    discrepancy_type=DiscrepancyType.PARTIALLY_FAILED,
                    entity_type="refund",
                    entity_id=refund.id,
                    details={
                        "failed_step": refund.failed_step,
                        "last_completed_step": refund.last_completed_step,
                    },
                )
            )

        stuck_before = timezone.now() - timedelta(minutes=stuck_threshold_minutes)
        for refund in Refund.objects.filter(
            status=RefundStatus.PROCESSING,
            updated_at__lt=stuck_before,
        ).order_by("updated_at")[:max_records]:
            discrepancies.append(
                Discrepancy(
                    discrepancy_type=DiscrepancyType.STUCK_IN_PROCESSING,
                    entity_type="refund",
                    entity_id=refund.id,
                    details={
                        "last_completed_step": refund.last_completed_step,
                        "updated_at": refund.updated_at.isoformat(),
                    },
                )
            )

        completed_refund = Refund.objects.filter(
            sale_item_id=OuterRef("pk"),
            status=RefundStatus.COMPLETED,
        )
        for item_id in (
            SaleItem.objects.filter(refunded=True)
            .exclude(Exists(completed_refund))
            .values_list("pk", flat=True)[:max_records]
        ):
            discrepancies.append(
                Discrepancy(
                    discrepancy_type=DiscrepancyType.REFUNDED_WITHOUT_REFUND,
                    entity_type="sale_item",
                    entity_id=item_id,
                )
            )

        refund_item = RefundItem.objects.filter(refund_id=OuterRef("pk"))
        for refund_id in (
            Refund.objects.filter(status=RefundStatus.COMPLETED)
            .exclude(Exists(refund_item))
            .values_list("pk", flat=True)[:max_records]
        ):
            discrepancies.append(
                Discrepancy(
                    discrepancy_type=DiscrepancyType.COMPLETED_WITHOUT_ITEM,
                    entity_type="refund",
                    entity_id=refund_id,
                )
            )

        for row in (
            Refund.objects.filter(status=RefundStatus.COMPLETED)
            .order_by()
            .values("sale_item_id")
            .annotate(completed=Count("id"))
            .filter(completed__gt=1)[:max_records]
        ):
            discrepancies.append(
                Discrepancy(
                    discrepancy_type=DiscrepancyType.DUPLICATE_REFUNDS,
                    entity_type="sale_item",
                    entity_id=row["sale_item_id"],
                    details={"completed_refunds": row["completed"]},
                )
            )

        return discrepancies

    @classmethod
    def reconcile_refund(cls, refund_id: uuid.UUID) -> ServiceResult[HealingResult | None]:
        """
        Reconcile a single refund on demand.

        Returns:
            ServiceResult containing the HealingResult, or None if the
            refund is consistent
        """
        try:
            refund = Refund.objects.get(pk=refund_id)
        except Refund.DoesNotExist:
            return ServiceResult.failure(
                f"Refund {refund_id} not found",
                error_code="REFUND_NOT_FOUND",
            )

        if refund.status == RefundStatus.PARTIALLY_FAILED:
            discrepancy_type = DiscrepancyType.PARTIALLY_FAILED
        elif refund.status == RefundStatus.PROCESSING:
            discrepancy_type = DiscrepancyType.STUCK_IN_PROCESSING
        else:
            return ServiceResult.success(None)

        discrepancy = Discrepancy(
            discrepancy_type=discrepancy_type,
            entity_type="refund",
            entity_id=refund.id,
        )
        return ServiceResult.success(cls._heal(discrepancy))

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _run_with_lock(
        cls,
        lock: DistributedLock,
        stuck_threshold_minutes: int,
        max_records: int,
    ) -> ReconciliationReport:
        report = ReconciliationReport(run_id=uuid.uuid4(), started_at=timezone.now())
        discrepancies = cls.detect_discrepancies(stuck_threshold_minutes, max_records)
        report.discrepancies_found = len(discrepancies)

        for discrepancy in discrepancies:
            # Keep the run lock alive across slow heals
            lock.extend()
            if discrepancy.discrepancy_type in AUTO_HEALABLE:
                result = cls._heal(discrepancy)
            else:
                cls.get_logger().warning(
                    "Refund discrepancy flagged for review",
                    extra={
                        "discrepancy_type": discrepancy.discrepancy_type.value,
                        "entity_id": str(discrepancy.entity_id),
                    },
                )
                result = HealingResult(
                    discrepancy=discrepancy,
                    resolution=Resolution.FLAGGED,
                )

            report.results.append(result)
            if result.resolution == Resolution.AUTO_HEALED:
                report.auto_healed += 1
            elif result.resolution == Resolution.FLAGGED:
                report.flagged_for_review += 1
            elif result.resolution == Resolution.FAILED:
                report.failed_to_heal += 1

        report.completed_at = timezone.now()
        return report

    @classmethod
    def _heal(cls, discrepancy: Discrepancy) -> HealingResult:
        """Finish a half-applied refund under its item lock."""
        refund = Refund.objects.filter(pk=discrepancy.entity_id).first()
        if refund is None:
            return HealingResult(discrepancy, Resolution.SKIPPED, error="Refund vanished")

        try:
            with DistributedLock(
                refund_item_lock_key(refund.sale_item_id),
                ttl=HEAL_LOCK_TTL,
                timeout=HEAL_LOCK_TIMEOUT,
            ) as lock:
                if discrepancy.discrepancy_type == DiscrepancyType.STUCK_IN_PROCESSING:
                    if not cls._mark_stuck_refund(refund.id):
                        return HealingResult(
                            discrepancy,
                            Resolution.SKIPPED,
                            action_taken="Refund is no longer processing",
                        )
                refund = ManualRefundSaga.resume(refund.id, lock=lock)
        except LockAcquisitionError:
            return HealingResult(
                discrepancy,
                Resolution.SKIPPED,
                action_taken="Refund attempt in progress",
            )
        except BaseApplicationError as exc:
            cls.get_logger().error(
                "Failed to heal refund",
                extra={
                    "refund_id": str(discrepancy.entity_id),
                    "error_code": exc.error_code,
                },
            )
            return HealingResult(discrepancy, Resolution.FAILED, error=exc.message)

        cls.get_logger().info(
            "Refund healed by reconciliation",
            extra={"refund_id": str(refund.id)},
        )
        return HealingResult(
            discrepancy,
            Resolution.AUTO_HEALED,
            action_taken=f"Resumed saga to {refund.status}",
        )

    @classmethod
    def _mark_stuck_refund(cls, refund_id: uuid.UUID) -> bool:
        """Move a stuck PROCESSING refund to PARTIALLY_FAILED so it can resume."""
        with transaction.atomic():
            refund = Refund.objects.select_for_update().get(pk=refund_id)
            if refund.status != RefundStatus.PROCESSING:
                return False
            remaining = SagaStep.after(refund.last_completed_step)
            next_step = remaining[0] if remaining else SagaStep.MARK_REFUNDED
            refund.mark_partially_failed(step=next_step, reason=STUCK_FAILURE_REASON)
            refund.save()
        return True


__all__ = [
    "Discrepancy",
    "DiscrepancyType",
    "HealingResult",
    "ReconciliationReport",
    "RefundReconciliationService",
    "Resolution",
]
