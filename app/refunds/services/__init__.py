"""
Refund services.

This module provides:
- RefundOrchestrator: Entry point for processing and resuming refunds
- AtomicRefundProcedure: Single-transaction execution path
- ManualRefundSaga: Step-by-step fallback path with a resumable cursor
- InventoryAdjuster: Atomic stock increments
- RefundQueryService: Refund history and statistics
- RefundReconciliationService: Detects and heals half-applied refunds

Usage:
    from refunds.services import RefundOrchestrator, RefundRequest

    result = RefundOrchestrator.process_refund(
        RefundRequest(
            item_id=item.id,
            refund_amount=Decimal("200.00"),
            reason="Damaged",
            refund_method="cash",
            processed_by="cashier-7",
            branch_id=branch.id,
        )
    )

    # Back-office queries
    from refunds.services import RefundQueryService

    result = RefundQueryService.get_refund_stats(branch.id, period="week")

    # Run reconciliation
    from refunds.services import RefundReconciliationService

    result = RefundReconciliationService.run_reconciliation()
"""

from refunds.services.atomic_procedure import AtomicRefundProcedure
from refunds.services.inventory import InventoryAdjuster, RestockOutcome
from refunds.services.manual_saga import ManualRefundSaga
from refunds.services.orchestrator import RefundOrchestrator
from refunds.services.queries import RefundQueryService, RefundStats
from refunds.services.reconciliation import (
    Discrepancy,
    DiscrepancyType,
    HealingResult,
    ReconciliationReport,
    RefundReconciliationService,
    Resolution,
)
from refunds.services.types import RefundRequest, RefundResult

__all__ = [
    # Orchestration
    "RefundOrchestrator",
    "RefundRequest",
    "RefundResult",
    # Execution paths
    "AtomicRefundProcedure",
    "ManualRefundSaga",
    "InventoryAdjuster",
    "RestockOutcome",
    # Queries
    "RefundQueryService",
    "RefundStats",
    # Reconciliation
    "Discrepancy",
    "DiscrepancyType",
    "HealingResult",
    "ReconciliationReport",
    "RefundReconciliationService",
    "Resolution",
]
