"""
Celery tasks for refund recovery.

This module provides periodic tasks for:
- Resuming partially failed refunds
- Running a full reconciliation pass

Usage:
    from refunds.tasks import reconcile_refunds

    # Typically via celery-beat (see CELERY_BEAT_SCHEDULE)
    reconcile_refunds.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from refunds.models import Refund
from refunds.services.orchestrator import RefundOrchestrator
from refunds.services.reconciliation import RefundReconciliationService
from refunds.state_machines import RefundStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_RESUMES_PER_RUN = 100


# =============================================================================
# Recovery Tasks
# =============================================================================


@shared_task(acks_late=True)
def resume_partially_failed_refunds(limit: int = MAX_RESUMES_PER_RUN) -> dict:
    """
    Resume refunds left in PARTIALLY_FAILED, oldest first.

    Returns:
        Dict with counts of checked, resumed and still failing refunds
    """
    refund_ids = list(
        Refund.objects.filter(status=RefundStatus.PARTIALLY_FAILED)
        .order_by("updated_at")
        .values_list("id", flat=True)[:limit]
    )

    resumed = 0
    failed = 0
    for refund_id in refund_ids:
        result = RefundOrchestrator.resume_refund(refund_id)
        if result.success:
            resumed += 1
        else:
            failed += 1
            logger.warning(
                "Refund resume did not complete",
                extra={"refund_id": str(refund_id), "error_code": result.error_code},
            )

    logger.info(
        "Partially failed refunds processed",
        extra={"checked": len(refund_ids), "resumed": resumed, "failed": failed},
    )
    return {"checked": len(refund_ids), "resumed": resumed, "failed": failed}


@shared_task(acks_late=True)
def reconcile_refunds(stuck_threshold_minutes: int | None = None) -> dict:
    """
    Run a full refund reconciliation pass.

    Returns:
        Dict with the run summary, or the error when another run holds the lock
    """
    result = RefundReconciliationService.run_reconciliation(
        stuck_threshold_minutes=stuck_threshold_minutes,
    )
    if not result.success:
        return {"status": "skipped", "error_code": result.error_code}
    return {"status": "completed", **result.data.to_dict()}
