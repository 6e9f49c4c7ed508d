"""
Atomic refund procedure - the preferred execution path.

Every write of a refund happens inside one database transaction:

    1. Lock the sale item and re-run the preconditions
    2. Create the Refund (already COMPLETED) and its RefundItem
    3. Restock product, variant and branch stock
    4. Credit the customer's account for ``account`` refunds
    5. Mark the sale item refunded with a conditional update

Either all of it commits or none of it does. Failures are reported with
an explicit outcome so the orchestrator knows whether falling back to the
manual saga is safe:

    - Domain errors (not found, already refunded, validation) propagate
      unchanged; the transaction rolled back and nothing should be retried.
    - Failures inside the block become AtomicProcedureError with
      outcome_known=True (rolled back).
    - Failures while committing become AtomicProcedureError with
      outcome_known=False; the refund may or may not exist.

Usage:
    from refunds.services.atomic_procedure import AtomicRefundProcedure

    if AtomicRefundProcedure.is_available():
        refund = AtomicRefundProcedure.execute(request, refund_number)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, connection, transaction
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.logging import get_correlation_id

from pos.models import SaleItem

from refunds.exceptions import AlreadyRefundedError, AtomicProcedureError
from refunds.ledger.services import CustomerCreditLedger
from refunds.models import Refund, RefundItem
from refunds.services.guard import check_preconditions, parse_amount
from refunds.services.inventory import InventoryAdjuster
from refunds.services.sale_item_reader import get_sale_item
from refunds.state_machines import ExecutionPath, RefundMethod, RefundStatus, SagaStep

if TYPE_CHECKING:
    from refunds.services.types import RefundRequest

logger = logging.getLogger(__name__)


class AtomicRefundProcedure:
    """
    Single-transaction refund.

    All methods are class methods so the orchestrator can swap the
    procedure for another implementation in tests or deployments.
    """

    @classmethod
    def is_available(cls) -> bool:
        """True when enabled in settings and the database supports transactions."""
        if not getattr(settings, "REFUND_ATOMIC_PROCEDURE_ENABLED", True):
            return False
        return bool(connection.features.supports_transactions)

    @classmethod
    def execute(cls, request: RefundRequest, refund_number: str) -> Refund:
        """
        Run the whole refund in one transaction.

        Args:
            request: Validated refund request
            refund_number: Pre-generated number, used to look up the
                refund if the commit outcome is unknown

        Returns:
            The committed Refund

        Raises:
            AtomicProcedureError: Unavailable, rolled back or outcome unknown
            BaseApplicationError: Domain rejections, after rollback
        """
        if not cls.is_available():
            raise AtomicProcedureError(
                "Atomic refund procedure is not available",
                unavailable=True,
            )

        body_finished = False
        try:
            with transaction.atomic():
                refund = cls._apply(request, refund_number)
                body_finished = True
        except BaseApplicationError:
            raise
        except Exception as exc:
            outcome_known = not body_finished
            logger.error(
                "Atomic refund procedure failed",
                extra={
                    "item_id": str(request.item_id),
                    "refund_number": refund_number,
                    "outcome_known": outcome_known,
                },
                exc_info=True,
            )
            raise AtomicProcedureError(
                "Atomic refund procedure failed",
                outcome_known=outcome_known,
                details={"refund_number": refund_number},
            ) from exc

        logger.info(
            "Refund completed via atomic procedure",
            extra={"refund_id": str(refund.id), "refund_number": refund_number},
        )
        return refund

    @classmethod
    def _apply(cls, request: RefundRequest, refund_number: str) -> Refund:
        sale_item = get_sale_item(request.item_id, for_update=True)
        customer = check_preconditions(sale_item, request)
        amount = parse_amount(request.refund_amount)
        now = timezone.now()

        refund = Refund.objects.create(
            refund_number=refund_number,
            original_sale_id=sale_item.sale_id,
            sale_item=sale_item,
            customer=customer,
            branch_id=request.branch_id,
            amount=amount,
            method=request.refund_method,
            reason=request.reason or "",
            processed_by=request.processed_by,
            status=RefundStatus.COMPLETED,
            execution_path=ExecutionPath.ATOMIC,
            last_completed_step=SagaStep.MARK_REFUNDED,
            processed_at=now,
            completed_at=now,
            metadata={"correlation_id": get_correlation_id()},
        )

        try:
            with transaction.atomic():
                RefundItem.objects.create(
                    refund=refund,
                    original_sale_item=sale_item,
                    product_id=sale_item.product_id,
                    variant_id=sale_item.variant_id,
                    quantity=sale_item.quantity,
                    unit_price=sale_item.unit_price,
                    refund_amount=amount,
                    reason=request.reason or "",
                )
        except IntegrityError:
            raise AlreadyRefundedError(
                "This item has already been refunded",
                details={"item_id": str(sale_item.id)},
            )

        InventoryAdjuster.restock(
            product_id=sale_item.product_id,
            variant_id=sale_item.variant_id,
            branch_id=request.branch_id,
            quantity=sale_item.quantity,
        )

        if request.refund_method == RefundMethod.ACCOUNT:
            CustomerCreditLedger.credit(
                customer_id=customer.id,
                amount=amount,
                refund_id=refund.id,
            )

        marked = SaleItem.objects.filter(pk=sale_item.pk, refunded=False).update(
            refunded=True,
            refund_amount=amount,
            refund_date=now,
            updated_at=now,
        )
        if not marked:
            raise AlreadyRefundedError(
                "This item has already been refunded",
                details={"item_id": str(sale_item.id)},
            )
        return refund


__all__ = [
    "AtomicRefundProcedure",
]
