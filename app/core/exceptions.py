"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error responses across the application
- Machine-readable error codes for client handling
- Detailed error information for debugging

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures
    ├── NotFoundError - Resource not found
    └── ConflictError - State conflicts (stale versions, concurrent modifications)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    # Raise with message only
    raise ValidationError("Expense amount must be positive")

    # Raise with error code and details for client handling
    raise ValidationError(
        "Expense exp_42 has no participants",
        error_code="EMPTY_PARTICIPANT_SET",
        details={"expense_id": "exp_42"},
    )

    # Convert to dict for API response
    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=400)

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Provides a consistent interface for error handling across the application.
    All custom exceptions should inherit from this class.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (offending record, versions, etc.)

    Example:
        try:
            ledger = build_ledger(expenses, rates, "USD")
        except BaseApplicationError as e:
            logger.warning(f"Ledger build rejected: {e.error_code}")
            return ServiceResult.failure(e.message, e.error_code)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "No exchange rate for JPY on 2024-05-01",
                "error_code": "RATE_UNAVAILABLE",
                "details": {"currency": "JPY", "as_of": "2024-05-01"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for:
    - Malformed records arriving from another subsystem
    - Business rule violations (non-positive amounts, empty splits)
    - Field-level validation errors

    Example:
        raise ValidationError(
            "Share weights do not match participants",
            error_code="MISMATCHED_SHARE_WEIGHTS",
            details={"expense_id": "exp_7", "missing": ["bob"]},
        )

    Note:
        For DRF serializer validation, use DRF's built-in validation.
        Use this for service-layer validation logic.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        plan = SettlementPlan.objects.filter(trip_id=trip_id).first()
        if not plan:
            raise NotFoundError(
                f"No settlement plan for trip {trip_id}",
                error_code="PLAN_NOT_FOUND",
                details={"trip_id": trip_id},
            )
    """

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when operation conflicts with current resource state.

    Use for:
    - Concurrent modification conflicts
    - Invalid state transitions
    - Operations against a stale version of a resource

    Example:
        if plan.version != requested_version:
            raise ConflictError(
                "Plan version 2 is no longer current",
                error_code="STALE_PLAN_VERSION",
                details={"requested": 2, "current": 3},
            )

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"
