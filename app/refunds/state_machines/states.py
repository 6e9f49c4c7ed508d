"""
State enums for refund models and refund attempts.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Refund status (persisted, django-fsm):
    processing → completed
    processing → partially_failed → processing (resume)
    processing → voided

Refund attempt (reported on every RefundResult, not persisted):
    received → validated → atomic_attempt → completed
    received → validated → atomic_attempt → atomic_failed → manual_saga → completed
    received → validated → atomic_attempt → atomic_failed → manual_saga → partially_failed
    received/validated/... → rejected
"""

from django.db import models


class RefundStatus(models.TextChoices):
    """
    Status of a persisted Refund record.

    Terminal states: COMPLETED, VOIDED
    PARTIALLY_FAILED is terminal for the attempt that produced it but can
    be resumed by an operator or the reconciliation job.

    State Flow:
        PROCESSING → COMPLETED
        PROCESSING → PARTIALLY_FAILED → PROCESSING
        PROCESSING → VOIDED (lost the item race before any side effect)
    """

    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    PARTIALLY_FAILED = "partially_failed", "Partially Failed"
    VOIDED = "voided", "Voided"


class RefundAttemptState(models.TextChoices):
    """
    Lifecycle of a single processRefund call.

    VALIDATED and ATOMIC_FAILED are the only non-terminal states that
    never commit anything.
    """

    RECEIVED = "received", "Received"
    VALIDATED = "validated", "Validated"
    ATOMIC_ATTEMPT = "atomic_attempt", "Atomic Attempt"
    ATOMIC_FAILED = "atomic_failed", "Atomic Failed"
    MANUAL_SAGA = "manual_saga", "Manual Saga"
    COMPLETED = "completed", "Completed"
    PARTIALLY_FAILED = "partially_failed", "Partially Failed"
    REJECTED = "rejected", "Rejected"


class RefundMethod(models.TextChoices):
    """How the refunded money is returned to the customer."""

    CASH = "cash", "Cash"
    CARD = "card", "Card"
    ACCOUNT = "account", "Account Credit"
    STORE_CREDIT = "store_credit", "Store Credit"


class ExecutionPath(models.TextChoices):
    """Which strategy produced a Refund."""

    ATOMIC = "atomic", "Atomic Procedure"
    MANUAL = "manual", "Manual Saga"


class SagaStep(models.TextChoices):
    """
    Ordered steps of the manual refund saga.

    The enum order is the execution order; ``SagaStep.after(step)``
    returns the steps still to run once ``step`` has committed.
    """

    FETCH_ITEM = "fetch_item", "Fetch sale item"
    GUARD = "guard", "Check refund eligibility"
    CREATE_REFUND = "create_refund", "Create refund record"
    CREATE_REFUND_ITEM = "create_refund_item", "Create refund item"
    RESTOCK_PRODUCT = "restock_product", "Restock product"
    RESTOCK_VARIANT = "restock_variant", "Restock variant"
    RESTOCK_BRANCH = "restock_branch", "Restock branch stock"
    CREDIT_ACCOUNT = "credit_account", "Credit customer account"
    MARK_REFUNDED = "mark_refunded", "Mark sale item refunded"

    @classmethod
    def ordered(cls) -> list["SagaStep"]:
        return list(cls)

    @classmethod
    def after(cls, step: str | None) -> list["SagaStep"]:
        """Return the steps that follow ``step`` (all steps when None)."""
        steps = cls.ordered()
        if not step:
            return steps
        return steps[steps.index(cls(step)) + 1 :]


class CreditReason(models.TextChoices):
    """Why a customer account was credited."""

    REFUND = "refund", "Refund"
