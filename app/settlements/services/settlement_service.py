"""
Settlement plan computation service.

Runs the pure pipeline over a trip's expenses and stores the result as a
new plan version, handing it to the ConfirmationCoordinator.

The service implements:
1. Settlement gating (trip_end trips only settle once the trip is over)
2. Expense coercion and validation, with the offending record identified
3. Idempotent recomputation: an unchanged ledger digest keeps the current
   version and its confirmations
4. Versioning under a per-trip Redis lock plus a DB transaction
5. Triggering from the configured SETTLEMENT_INPUT_PROVIDER (see providers.py)

Usage:
    from settlements.services import SettlementService
    from settlements.types import TripSettlementContext

    context = TripSettlementContext(
        trip_id="trip_1",
        base_currency="USD",
        participant_ids=("A", "B", "C"),
        end_date=date(2024, 5, 10),
    )
    result = SettlementService.compute_plan(context, expenses, rate_lookup)

    if result.success:
        print(result.data.summary)
    else:
        print(f"{result.error_code}: {result.error}")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from typing import TYPE_CHECKING, Any

from django.utils import timezone

from core.services import BaseService, ServiceResult

from settlements.engine import compute_settlement
from settlements.exceptions import (
    InvalidExpense,
    LedgerInconsistent,
    LockAcquisitionError,
    PlanNotFound,
    RateUnavailable,
    SettlementCompleted,
    SettlementError,
    SettlementNotOpen,
    TripNotFound,
    UnknownCurrency,
    UnknownParticipant,
)
from settlements.locks import DistributedLock, trip_lock_key
from settlements.models import SettlementPlan
from settlements.providers import get_input_provider
from settlements.services.coordinator import ConfirmationCoordinator
from settlements.state_machines import ConfirmationState
from settlements.types import ExpenseRecord, coerce_expense

if TYPE_CHECKING:
    from settlements.types import (
        RateLookup,
        SettlementComputation,
        TripSettlementContext,
    )


class SettlementService(BaseService):
    """
    Service computing and versioning settlement plans.

    Input errors and missing rates come back as failed ServiceResults. A
    LedgerInconsistent error is logged at CRITICAL with the ledger dump and
    re-raised: settlement for the trip stops until someone investigates.
    """

    @classmethod
    def compute_plan(
        cls,
        context: TripSettlementContext,
        expenses: Iterable[ExpenseRecord | Mapping[str, Any]],
        rate_lookup: RateLookup,
        today: date | None = None,
    ) -> ServiceResult[SettlementPlan]:
        """
        Compute the trip's settlement plan and make it current.

        Args:
            context: Trip facts (base currency, members, end date, trigger)
            expenses: Every expense of the trip, as records or mappings
            rate_lookup: Source of rates into the base currency
            today: Date used for settlement gating; local date when omitted

        Returns:
            ServiceResult with the current SettlementPlan, either the reused
            one (same ledger digest) or a new version.
            Error codes: SETTLEMENT_NOT_OPEN, SETTLEMENT_COMPLETED,
            RATE_UNAVAILABLE, UNKNOWN_CURRENCY, LOCK_ACQUISITION_FAILED and
            the input error codes (EMPTY_PARTICIPANT_SET, INVALID_AMOUNT...)

        Raises:
            LedgerInconsistent: Internal defect in ledger construction
        """
        log_extra = {"trip_id": context.trip_id, "base_currency": context.base_currency}
        cls.get_logger().info("Computing settlement plan", extra=log_extra)

        today = today or timezone.localdate()
        if not context.is_settlement_open(today):
            return cls.handle_exception(
                SettlementNotOpen(
                    f"Settlement for trip {context.trip_id} opens on {context.end_date}",
                    details={
                        "trip_id": context.trip_id,
                        "end_date": str(context.end_date),
                        "settlement_trigger": str(context.settlement_trigger),
                    },
                ),
                log_level=logging.INFO,
            )

        try:
            records = cls._coerce_expenses(context, expenses)
            computation = compute_settlement(
                records,
                rate_lookup,
                context.base_currency,
                context.participant_ids,
            )
        except (InvalidExpense, UnknownCurrency, RateUnavailable) as e:
            return cls.handle_exception(e, context="Settlement input rejected")
        except LedgerInconsistent as e:
            cls.get_logger().critical(
                f"Ledger inconsistent for trip {context.trip_id}: {e.message}",
                extra={**log_extra, "ledger": e.details.get("ledger")},
            )
            raise

        try:
            with DistributedLock(trip_lock_key(context.trip_id)):
                return cls._store(context.trip_id, computation)
        except LockAcquisitionError as e:
            return cls.handle_exception(e, context="Settlement recompute busy")
        except SettlementError as e:
            return cls.handle_exception(e, context="Settlement plan not stored")

    @classmethod
    def trigger(
        cls,
        trip_id: str,
        participant_id: str | None = None,
        today: date | None = None,
    ) -> ServiceResult[SettlementPlan]:
        """
        Compute the trip's plan from the configured input provider.

        Args:
            trip_id: Trip to settle
            participant_id: Member asking for the settlement; when given it
                must be one of the trip's participants
            today: Date used for settlement gating

        Returns:
            Same as compute_plan.
            Extra error codes: TRIP_NOT_FOUND, UNKNOWN_PARTICIPANT
        """
        provider = get_input_provider()
        context = provider.get_context(str(trip_id))
        if context is None:
            return cls.handle_exception(
                TripNotFound(
                    f"Trip {trip_id} is not known to the settlement input provider",
                    details={"trip_id": str(trip_id)},
                ),
                log_level=logging.DEBUG,
            )

        if participant_id is not None and str(participant_id) not in context.participant_ids:
            return cls.handle_exception(
                UnknownParticipant(
                    f"Participant {participant_id} is not a member of trip {trip_id}",
                    details={"trip_id": str(trip_id), "participant_id": str(participant_id)},
                ),
                log_level=logging.INFO,
            )

        return cls.compute_plan(
            context,
            provider.get_expenses(context.trip_id),
            provider.get_rate_lookup(context.trip_id),
            today=today,
        )

    @classmethod
    def get_plan(
        cls,
        trip_id: str,
        version: int | None = None,
    ) -> ServiceResult[SettlementPlan]:
        """
        Fetch the trip's current plan, or a specific version.

        Error codes: PLAN_NOT_FOUND
        """
        queryset = SettlementPlan.objects.for_trip(trip_id)
        if version is None:
            plan = queryset.order_by("-version").first()
        else:
            plan = queryset.filter(version=version).first()

        if plan is None:
            return cls.handle_exception(
                PlanNotFound(
                    f"No settlement plan for trip {trip_id}"
                    + (f" at version {version}" if version is not None else ""),
                    details={"trip_id": str(trip_id), "version": version},
                ),
                log_level=logging.DEBUG,
            )
        return ServiceResult.success(plan)

    # ==========================================================================
    # Internals
    # ==========================================================================

    @classmethod
    def _coerce_expenses(
        cls,
        context: TripSettlementContext,
        expenses: Iterable[ExpenseRecord | Mapping[str, Any]],
    ) -> list[ExpenseRecord]:
        records = []
        for item in expenses:
            record = coerce_expense(item, context.participant_ids)
            if record.trip_id and record.trip_id != context.trip_id:
                raise InvalidExpense(
                    record.id,
                    message=f"Expense {record.id} belongs to trip {record.trip_id}",
                    error_code="EXPENSE_TRIP_MISMATCH",
                    details={"trip_id": record.trip_id},
                )
            records.append(record)
        return records

    @classmethod
    def _store(cls, trip_id: str, computation: SettlementComputation) -> ServiceResult[SettlementPlan]:
        """Reuse or replace the current plan. Caller holds the trip lock."""
        with cls.atomic():
            current = (
                SettlementPlan.objects.select_for_update()
                .for_trip(trip_id)
                .order_by("-version")
                .first()
            )

            if current is not None:
                if current.state == ConfirmationState.COMPLETED:
                    raise SettlementCompleted(
                        f"Settlement for trip {trip_id} was completed at "
                        f"v{current.version}",
                        details={"trip_id": str(trip_id), "plan_version": current.version},
                    )

                if current.is_open and current.ledger_digest == computation.digest:
                    cls.get_logger().info(
                        "Ledger unchanged, keeping current settlement plan",
                        extra={"trip_id": current.trip_id, "plan_version": current.version},
                    )
                    return ServiceResult.success(current)

                ConfirmationCoordinator.retire(current, reason="recomputed")

            version = current.version + 1 if current is not None else 1
            plan = ConfirmationCoordinator.open_plan(trip_id, version, computation)
        return ServiceResult.success(plan)
