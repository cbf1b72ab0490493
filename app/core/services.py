"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Pattern Comparison:
    - ServiceResult: Use for expected failures (bad input, missing rates,
      state machine violations). The caller decides what to show the user.
    - Exceptions: Use for unexpected failures (broken invariants, database
      errors, bugs).

Usage:
    from core.services import BaseService, ServiceResult

    class ConfirmationCoordinator(BaseService):
        @classmethod
        def confirm(cls, trip_id: str, participant_id: str) -> ServiceResult[Status]:
            with cls.atomic():
                plan = SettlementPlan.objects.select_for_update().get(...)
                if participant_id not in plan.participant_ids:
                    return ServiceResult.failure(
                        "Participant is not part of this plan",
                        error_code="UNKNOWN_PARTICIPANT",
                    )
                ...
            cls.get_logger().info("Confirmation recorded")
            return ServiceResult.success(status)

    # In view
    result = ConfirmationCoordinator.confirm(trip_id, participant_id)
    if result.success:
        return Response(ConfirmationStatusSerializer(result.data).data)
    return Response(result.to_response(), status=409)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

    from core.exceptions import BaseApplicationError

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Provides consistent success/failure handling without exceptions.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors or error context for failures

    Usage:
        # Success case
        return ServiceResult.success(plan)

        # Failure case
        return ServiceResult.failure("Plan not fully confirmed", "NOT_FULLY_CONFIRMED")

        # Check result
        result = SettlementService.compute_plan(context, expenses, rates)
        if result.success:
            plan = result.data
        else:
            print(f"Error: {result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Args:
            data: The result data

        Returns:
            ServiceResult with success=True and data set
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors or extra context

        Returns:
            ServiceResult with success=False and error details
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(cls, exc: BaseApplicationError) -> ServiceResult[T]:
        """
        Create a failed result from an application exception.

        The exception's details are carried over as ``errors`` so the
        caller can identify the offending record.

        Example:
            try:
                ledger = build_ledger(expenses, rates, "EUR")
            except InvalidExpense as e:
                return ServiceResult.from_exception(e)
        """
        errors = None
        if exc.details:
            errors = {
                key: [str(item) for item in value]
                if isinstance(value, (list, tuple))
                else [str(value)]
                for key, value in exc.details.items()
            }
        return cls(
            success=False,
            error=exc.message,
            error_code=exc.error_code,
            errors=errors,
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to API response format.

        Returns:
            Dict with success status and data or error details
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def map(self, func: Callable[[T], Any]) -> ServiceResult:
        """
        Transform the data if successful.

        Example:
            result = ConfirmationCoordinator.get_status(trip_id)
            payload = result.map(lambda s: ConfirmationStatusSerializer(s).data)
        """
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self  # type: ignore

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management

    Design Notes:
        - Use @staticmethod or @classmethod (no instance state)
        - Use ServiceResult for expected failures
        - Raise exceptions for unexpected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic() that makes
        transaction boundaries explicit in service code.

        Example:
            with cls.atomic():
                plan = SettlementPlan.objects.select_for_update().get(pk=plan_id)
                plan.invalidate(reason="expense:exp_9")
                plan.save()
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: BaseApplicationError,
        context: str = "",
        log_level: int = logging.WARNING,
    ) -> ServiceResult:
        """
        Convert an expected application exception to ServiceResult with logging.

        Args:
            exc: The caught exception
            context: Additional context for logging
            log_level: Logging level (default WARNING)

        Returns:
            ServiceResult with error details
        """
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(
            log_level,
            message,
            extra={"error_code": exc.error_code, "details": exc.details},
        )
        return ServiceResult.from_exception(exc)
