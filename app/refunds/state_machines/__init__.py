"""
State machine enums for refund models.

This module defines the state enums used by refund models with django-fsm.
"""

from refunds.state_machines.states import (
    CreditReason,
    ExecutionPath,
    RefundAttemptState,
    RefundMethod,
    RefundStatus,
    SagaStep,
)

__all__ = [
    "CreditReason",
    "ExecutionPath",
    "RefundAttemptState",
    "RefundMethod",
    "RefundStatus",
    "SagaStep",
]
