"""
Refund model for reversing a sold line item.

A Refund is created once per refund attempt. The atomic path creates it
already COMPLETED inside a single transaction; the manual saga creates it
PROCESSING and advances ``last_completed_step`` as each step commits.

Usage:
    from refunds.models import Refund
    from refunds.state_machines import RefundStatus

    refund = Refund.objects.get(refund_number="REF-1718000000000-7QK2M")

    # State transitions using django-fsm
    refund.mark_partially_failed(step="restock_product", reason="...")
    refund.save()

    refund.resume()  # partially_failed -> processing
    refund.save()

Note:
    ``status`` is a protected FSMField: reload a refund with
    ``Refund.objects.get()`` rather than ``refresh_from_db()``.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel, UUIDPrimaryKeyMixin

from refunds.state_machines import (
    ExecutionPath,
    RefundMethod,
    RefundStatus,
    SagaStep,
)


class Refund(UUIDPrimaryKeyMixin, BaseModel):
    """
    Represents the reversal of a sold line item.

    State Flow:
        PROCESSING -> COMPLETED
        PROCESSING -> PARTIALLY_FAILED -> PROCESSING (resume)
        PROCESSING -> VOIDED

    Fields:
        refund_number: Human-facing unique number (REF-<epoch ms>-<suffix>)
        original_sale: Sale the refunded item belongs to
        sale_item: Line item this attempt reverses
        customer: Customer credited or associated with the refund
        amount: Refunded amount, never above the item's total price
        method: cash / card / account / store_credit
        status: Current FSM state
        processed_by: Identity of the operator processing the refund
        branch: Branch where the refund was processed
        processed_at: When the refund was started
        completed_at: When the refund reached COMPLETED
        execution_path: atomic or manual
        last_completed_step: Saga cursor, the last step whose writes committed
        failed_step: Step that failed on the last attempt
        failure_reason: Internal failure detail for operators
        metadata: Flexible JSON storage (correlation id, resume count)
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    refund_number = models.CharField(
        max_length=40,
        unique=True,
        help_text="Unique refund number shown on receipts",
    )

    original_sale = models.ForeignKey(
        "pos.Sale",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Sale the refunded item belongs to",
    )

    sale_item = models.ForeignKey(
        "pos.SaleItem",
        on_delete=models.PROTECT,
        related_name="refund_attempts",
        help_text="Line item this refund reverses",
    )

    customer = models.ForeignKey(
        "pos.Customer",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="refunds",
        help_text="Customer associated with (and possibly credited by) the refund",
    )

    branch = models.ForeignKey(
        "pos.Branch",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Branch where the refund was processed",
    )

    # ==========================================================================
    # Refund Details
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Refunded amount",
    )

    method = models.CharField(
        max_length=20,
        choices=RefundMethod.choices,
        help_text="How the money is returned",
    )

    reason = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Reason for the refund",
    )

    processed_by = models.CharField(
        max_length=150,
        help_text="Identity of the operator who processed the refund",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.PROCESSING,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the refund (managed by FSM)",
    )

    execution_path = models.CharField(
        max_length=10,
        choices=ExecutionPath.choices,
        help_text="Strategy that produced this refund",
    )

    last_completed_step = models.CharField(
        max_length=32,
        choices=SagaStep.choices,
        blank=True,
        default="",
        help_text="Last saga step whose writes committed",
    )

    failed_step = models.CharField(
        max_length=32,
        choices=SagaStep.choices,
        blank=True,
        default="",
        help_text="Step that failed on the last attempt",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    processed_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="When the refund was processed",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the refund completed",
    )

    # ==========================================================================
    # Metadata & Error Info
    # ==========================================================================

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Internal failure detail for operators",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata for extensibility",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-processed_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["branch", "processed_at"], name="refund_branch_processed_idx"),
            models.Index(fields=["status", "updated_at"], name="refund_status_updated_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.refund_number}, {self.status}, {self.amount})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundStatus.PROCESSING,
        target=RefundStatus.COMPLETED,
    )
    def complete(self):
        """
        Mark the refund as completed.

        Transition: PROCESSING -> COMPLETED

        Called in the same transaction that marks the sale item refunded.
        """
        self.completed_at = timezone.now()
        self.last_completed_step = SagaStep.MARK_REFUNDED
        self.failed_step = ""

    @transition(
        field=status,
        source=RefundStatus.PROCESSING,
        target=RefundStatus.PARTIALLY_FAILED,
    )
    def mark_partially_failed(self, step: str, reason: str | None = None):
        """
        Record a saga step failure.

        Transition: PROCESSING -> PARTIALLY_FAILED

        Args:
            step: The saga step that failed
            reason: Internal failure detail (never shown to the customer)
        """
        self.failed_step = step
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=RefundStatus.PARTIALLY_FAILED,
        target=RefundStatus.PROCESSING,
    )
    def resume(self):
        """
        Re-enter the saga after a partial failure.

        Transition: PARTIALLY_FAILED -> PROCESSING
        """
        self.metadata = {
            **(self.metadata or {}),
            "resume_count": (self.metadata or {}).get("resume_count", 0) + 1,
        }

    @transition(
        field=status,
        source=RefundStatus.PROCESSING,
        target=RefundStatus.VOIDED,
    )
    def void(self, reason: str | None = None):
        """
        Void an attempt that lost the race for its sale item.

        Transition: PROCESSING -> VOIDED

        Only valid before any stock or ledger effect has been applied.
        """
        if reason:
            self.failure_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        """Check if refund is complete."""
        return self.status == RefundStatus.COMPLETED

    @property
    def is_resumable(self) -> bool:
        """Check if the saga can be resumed for this refund."""
        return self.status == RefundStatus.PARTIALLY_FAILED
