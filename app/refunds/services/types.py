"""
Request and result types shared by the refund services.

RefundRequest is what a caller hands to the orchestrator; RefundResult is
the normalized outcome every path (atomic, manual, rejection) returns.

Usage:
    from refunds.services.types import RefundRequest

    request = RefundRequest(
        item_id=item.id,
        refund_amount=Decimal("200.00"),
        reason="Damaged",
        refund_method="cash",
        processed_by="cashier-7",
        branch_id=branch.id,
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from refunds.state_machines import RefundAttemptState

if TYPE_CHECKING:
    import uuid
    from typing import Any


@dataclass
class RefundRequest:
    """
    Parameters for refunding one sold line item.

    Attributes:
        item_id: Sale item to refund
        refund_amount: Amount to refund, 0 < amount <= item total
        reason: Free-text reason recorded on the refund
        refund_method: cash / card / account / store_credit
        processed_by: Operator identity
        branch_id: Branch processing the refund
        customer_id: Customer to credit; defaults to the sale's customer
    """

    item_id: uuid.UUID | str
    refund_amount: Decimal
    reason: str
    refund_method: str
    processed_by: str
    branch_id: uuid.UUID | str
    customer_id: uuid.UUID | str | None = None


@dataclass
class RefundResult:
    """
    Normalized outcome of a refund attempt.

    ``message`` is always safe to show an operator; storage errors are
    logged, never echoed here.
    """

    success: bool
    refund_id: uuid.UUID | None = None
    refund_number: str | None = None
    error: str | None = None
    message: str | None = None
    error_code: str | None = None
    path: str | None = None
    attempt_state: str = RefundAttemptState.RECEIVED
    failed_step: str | None = None
    last_completed_step: str | None = None
    correlation_id: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def completed(
        cls,
        refund_id: uuid.UUID,
        refund_number: str,
        path: str,
        correlation_id: str | None = None,
    ) -> RefundResult:
        return cls(
            success=True,
            refund_id=refund_id,
            refund_number=refund_number,
            message="Refund processed successfully",
            path=path,
            attempt_state=RefundAttemptState.COMPLETED,
            correlation_id=correlation_id,
        )

    @classmethod
    def failed(
        cls,
        error: str,
        error_code: str,
        attempt_state: str = RefundAttemptState.REJECTED,
        **kwargs: Any,
    ) -> RefundResult:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            attempt_state=attempt_state,
            **kwargs,
        )

    def to_response(self) -> dict[str, Any]:
        """Convert to the camelCase API payload."""
        response: dict[str, Any] = {"success": self.success}
        optional = {
            "refundId": str(self.refund_id) if self.refund_id else None,
            "refundNumber": self.refund_number,
            "error": self.error,
            "message": self.message,
            "errorCode": self.error_code,
            "executionPath": self.path,
            "failedStep": self.failed_step,
            "lastCompletedStep": self.last_completed_step,
            "correlationId": self.correlation_id,
            "errors": self.errors,
        }
        response.update({k: v for k, v in optional.items() if v})
        return response

    def __bool__(self) -> bool:
        return self.success


__all__ = [
    "RefundRequest",
    "RefundResult",
]
