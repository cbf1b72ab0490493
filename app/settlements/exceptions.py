"""
Settlement-specific exceptions.

This module provides the exception hierarchy for the settlement engine,
inheriting from the core exception base classes for API consistency.

Exception Hierarchy:
    SettlementError (base)
    ├── InvalidExpense - Malformed expense rejected at ingestion
    │   ├── MissingExpenseId
    │   ├── MissingPayer
    │   ├── EmptyParticipantSet
    │   ├── DuplicateParticipant
    │   ├── DuplicateExpense
    │   ├── InvalidAmount
    │   ├── InvalidShareWeight
    │   └── MismatchedShareWeights
    ├── UnknownCurrency - Currency code not in the currency table
    ├── RateUnavailable - No usable exchange rate for (currency, date)
    ├── LedgerInconsistent - Balances do not sum to zero (internal defect)
    ├── TripNotFound - Input provider does not know the trip
    ├── PlanNotFound - No plan computed for the trip yet
    ├── ConfirmationError - State machine violations
    │   ├── UnknownParticipant
    │   ├── NotFullyConfirmed
    │   ├── StalePlanVersion
    │   ├── SettlementCompleted
    │   └── SettlementNotOpen
    └── LockAcquisitionError - Recompute lock held elsewhere

Kinds:
    Input errors and rate errors are expected, user-recoverable conditions;
    the service layer turns them into failed ServiceResults. The same holds
    for ConfirmationError. LedgerInconsistent is never converted: it halts
    settlement for the trip pending investigation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


class SettlementError(BaseApplicationError):
    """Base exception for all settlement engine errors."""

    default_error_code: str = "SETTLEMENT_ERROR"


# =============================================================================
# Input Errors
# =============================================================================


class InvalidExpense(SettlementError, ValidationError):
    """
    Raised when an expense record is malformed.

    Every instance identifies the offending record through
    ``details["expense_id"]`` so the caller can point the user at it.

    Example:
        raise EmptyParticipantSet(expense_id="exp_12")
    """

    default_error_code: str = "INVALID_EXPENSE"
    default_message: str = "Expense record is invalid"

    def __init__(
        self,
        expense_id: str | None,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.expense_id = expense_id
        full_details: dict[str, Any] = {"expense_id": expense_id}
        if details:
            full_details.update(details)
        super().__init__(
            message=message or f"{self.default_message} (expense {expense_id})",
            error_code=error_code,
            details=full_details,
        )


class MissingExpenseId(InvalidExpense):
    """Raised when a record arrives without an expense id."""

    default_error_code: str = "MISSING_EXPENSE_ID"
    default_message: str = "Expense record has no id"


class MissingPayer(InvalidExpense):
    """Raised when an expense names no payer."""

    default_error_code: str = "MISSING_PAYER"
    default_message: str = "Expense has no payer"


class EmptyParticipantSet(InvalidExpense):
    """Raised when an expense lists no participants to split among."""

    default_error_code: str = "EMPTY_PARTICIPANT_SET"
    default_message: str = "Expense has an empty participant set"


class DuplicateParticipant(InvalidExpense):
    """Raised when the same participant appears twice in one expense."""

    default_error_code: str = "DUPLICATE_PARTICIPANT"
    default_message: str = "Expense lists a participant more than once"


class DuplicateExpense(InvalidExpense):
    """Raised when two records with the same id are fed into one ledger."""

    default_error_code: str = "DUPLICATE_EXPENSE"
    default_message: str = "Expense id appears more than once"


class InvalidAmount(InvalidExpense):
    """Raised for negative, zero, non-numeric or non-finite amounts."""

    default_error_code: str = "INVALID_AMOUNT"
    default_message: str = "Expense amount must be a positive number"


class InvalidShareWeight(InvalidExpense):
    """Raised when a share weight is not a positive finite number."""

    default_error_code: str = "INVALID_SHARE_WEIGHT"
    default_message: str = "Share weights must be positive numbers"


class MismatchedShareWeights(InvalidExpense):
    """Raised when the share weight keys differ from the participant ids."""

    default_error_code: str = "MISMATCHED_SHARE_WEIGHTS"
    default_message: str = "Share weight keys must equal the participant ids"


# =============================================================================
# Data Unavailability Errors
# =============================================================================


class UnknownCurrency(SettlementError, ValidationError):
    """
    Raised when a currency code is not in the currency table.

    Example:
        raise UnknownCurrency("XYZ")
    """

    default_error_code: str = "UNKNOWN_CURRENCY"

    def __init__(self, currency: str, details: dict[str, Any] | None = None):
        self.currency = currency
        full_details: dict[str, Any] = {"currency": currency}
        if details:
            full_details.update(details)
        super().__init__(
            message=f"Unknown currency code {currency!r}",
            details=full_details,
        )


class RateUnavailable(SettlementError):
    """
    Raised when the rate source has no usable rate for a currency and date.

    The engine fails closed: a trip's whole ledger build fails rather than
    being computed with an assumed rate.

    Example:
        raise RateUnavailable("JPY", as_of=date(2024, 5, 1))
    """

    default_error_code: str = "RATE_UNAVAILABLE"

    def __init__(
        self,
        currency: str,
        as_of: Any,
        reason: str = "no rate published",
        details: dict[str, Any] | None = None,
    ):
        self.currency = currency
        self.as_of = as_of
        full_details: dict[str, Any] = {
            "currency": currency,
            "as_of": str(as_of),
            "reason": reason,
        }
        if details:
            full_details.update(details)
        super().__init__(
            message=f"No exchange rate for {currency} as of {as_of}: {reason}",
            details=full_details,
        )


# =============================================================================
# Invariant Violations
# =============================================================================


class LedgerInconsistent(SettlementError):
    """
    Raised when balances fail the conservation check.

    This indicates a defect in ledger construction, not a user error. The
    ledger dump travels in ``details["ledger"]`` for diagnosis.
    """

    default_error_code: str = "LEDGER_INCONSISTENT"


# =============================================================================
# State Machine Violations
# =============================================================================


class TripNotFound(SettlementError, NotFoundError):
    """Raised when the settlement input provider has no such trip."""

    default_error_code: str = "TRIP_NOT_FOUND"


class PlanNotFound(SettlementError, NotFoundError):
    """Raised when a trip has no settlement plan (or not that version)."""

    default_error_code: str = "PLAN_NOT_FOUND"


class ConfirmationError(SettlementError, ConflictError):
    """Base class for confirmation protocol violations (HTTP 409)."""

    default_error_code: str = "CONFIRMATION_ERROR"


class UnknownParticipant(ConfirmationError):
    """Raised when confirming for someone no leg of the plan references."""

    default_error_code: str = "UNKNOWN_PARTICIPANT"


class NotFullyConfirmed(ConfirmationError):
    """Raised when finalizing before every participant confirmed."""

    default_error_code: str = "NOT_FULLY_CONFIRMED"


class StalePlanVersion(ConfirmationError):
    """Raised when acting on a plan version that is invalidated or superseded."""

    default_error_code: str = "STALE_PLAN_VERSION"


class SettlementCompleted(ConfirmationError):
    """Raised when recomputing a trip whose settlement is already completed."""

    default_error_code: str = "SETTLEMENT_COMPLETED"


class SettlementNotOpen(ConfirmationError):
    """Raised when settling a trip_end trip before the trip has ended."""

    default_error_code: str = "SETTLEMENT_NOT_OPEN"


# =============================================================================
# Concurrency Control
# =============================================================================


class LockAcquisitionError(SettlementError, ConflictError):
    """
    Raised when the per-trip recompute lock cannot be acquired.

    Another worker is recomputing the same trip; the caller may retry.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


__all__ = [
    "SettlementError",
    # Input
    "InvalidExpense",
    "MissingExpenseId",
    "MissingPayer",
    "EmptyParticipantSet",
    "DuplicateParticipant",
    "DuplicateExpense",
    "InvalidAmount",
    "InvalidShareWeight",
    "MismatchedShareWeights",
    # Data unavailability
    "UnknownCurrency",
    "RateUnavailable",
    # Invariants
    "LedgerInconsistent",
    # State machine
    "TripNotFound",
    "PlanNotFound",
    "ConfirmationError",
    "UnknownParticipant",
    "NotFullyConfirmed",
    "StalePlanVersion",
    "SettlementCompleted",
    "SettlementNotOpen",
    # Concurrency
    "LockAcquisitionError",
]
