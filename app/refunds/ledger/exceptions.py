"""
Ledger-specific exceptions for customer account credits.

Exception Hierarchy:
    LedgerError (base)
    ├── CustomerAccountNotFound - Customer to credit does not exist
    └── InvalidCreditAmount - Credit amount is not positive

Usage:
    from refunds.ledger.exceptions import CustomerAccountNotFound

    raise CustomerAccountNotFound(
        f"Customer {customer_id} not found",
        details={"customer_id": str(customer_id)},
    )
"""

from __future__ import annotations

from core.exceptions import BaseApplicationError


class LedgerError(BaseApplicationError):
    """
    Base exception for all ledger operations.

    Inherits from BaseApplicationError for consistent API error responses.
    """

    default_error_code: str = "LEDGER_ERROR"


class CustomerAccountNotFound(LedgerError):
    """Raised when the customer account to credit cannot be found."""

    default_error_code: str = "CUSTOMER_ACCOUNT_NOT_FOUND"


class InvalidCreditAmount(LedgerError):
    """Raised when a credit of zero or a negative amount is requested."""

    default_error_code: str = "INVALID_CREDIT_AMOUNT"
