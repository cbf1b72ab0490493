"""
Confirmation coordinator for settlement plans.

Tracks each participant's agreement to the trip's current plan version and
moves the plan through its state machine:

    computed -> partially_confirmed -> fully_confirmed -> completed
    (any open state) -> invalidated

Every operation locks the trip's current plan row, so confirm, finalize
and invalidate for one trip are totally ordered. A finalize racing an
invalidate either completes first (and the plan is frozen) or sees the
invalidation and fails with STALE_PLAN_VERSION.

Usage:
    from settlements.services import ConfirmationCoordinator

    result = ConfirmationCoordinator.confirm(trip_id, participant_id="bob")
    if result.success:
        status = result.data
        print(f"{status.confirmed_count}/{status.total} confirmed")
    else:
        print(f"{result.error_code}: {result.error}")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult

from settlements.exceptions import (
    NotFullyConfirmed,
    PlanNotFound,
    SettlementError,
    StalePlanVersion,
    UnknownParticipant,
)
from settlements.locks import lock_current_plan
from settlements.models import ConfirmationRecord, SettlementPlan
from settlements.state_machines import ConfirmationState
from settlements.types import ConfirmationStatus, ParticipantConfirmation

if TYPE_CHECKING:
    from settlements.types import SettlementComputation


class ConfirmationCoordinator(BaseService):
    """
    Service for the multi-party confirmation protocol.

    Confirmations are bound to one plan version. Invalidating a version
    deletes its confirmation records; a recomputed version starts with a
    fresh, unconfirmed set.
    """

    # ==========================================================================
    # Plan lifecycle (called by SettlementService inside its transaction)
    # ==========================================================================

    @classmethod
    def open_plan(
        cls,
        trip_id: str,
        version: int,
        computation: SettlementComputation,
    ) -> SettlementPlan:
        """
        Persist a freshly computed plan with one unconfirmed record per
        referenced participant.

        A plan without legs references nobody, so unanimity holds
        vacuously and it starts out fully confirmed.
        """
        plan = SettlementPlan(
            trip_id=str(trip_id),
            version=version,
            base_currency=computation.base_currency,
            ledger_digest=computation.digest,
            transactions=[leg.to_dict() for leg in computation.transactions],
            calculation_data=computation.calculation_data(),
            summary=computation.summary,
        )
        if not plan.participant_ids:
            plan.mark_fully_confirmed()
        plan.save()

        ConfirmationRecord.objects.bulk_create(
            [
                ConfirmationRecord(plan=plan, participant_id=participant_id)
                for participant_id in plan.participant_ids
            ]
        )

        cls.get_logger().info(
            "Settlement plan opened",
            extra={
                "trip_id": plan.trip_id,
                "plan_version": plan.version,
                "legs": len(computation.transactions),
                "state": plan.state,
            },
        )
        return plan

    @classmethod
    def retire(cls, plan: SettlementPlan, reason: str) -> bool:
        """
        Invalidate an open plan and discard its confirmations.

        The caller must hold the plan's row lock. Completed and already
        invalidated plans are left alone.

        Returns:
            True if the plan was invalidated by this call
        """
        if not plan.is_open:
            return False

        plan.invalidate(reason=reason)
        plan.save()
        discarded, _ = plan.confirmations.all().delete()

        cls.get_logger().info(
            "Settlement plan invalidated",
            extra={
                "trip_id": plan.trip_id,
                "plan_version": plan.version,
                "reason": reason,
                "discarded_confirmations": discarded,
            },
        )
        return True

    # ==========================================================================
    # Protocol operations
    # ==========================================================================

    @classmethod
    def confirm(
        cls,
        trip_id: str,
        participant_id: str,
        plan_version: int | None = None,
    ) -> ServiceResult[ConfirmationStatus]:
        """
        Record a participant's agreement to the current plan.

        Confirming twice is a no-op. Only the participant's own record is
        written; the aggregate state is re-evaluated under the plan lock.

        Args:
            trip_id: Trip being settled
            participant_id: Participant confirming
            plan_version: Version the participant looked at; when given it
                must still be the current one

        Returns:
            ServiceResult with the ConfirmationStatus after the confirmation.
            Error codes: PLAN_NOT_FOUND, STALE_PLAN_VERSION,
            UNKNOWN_PARTICIPANT
        """
        participant_id = str(participant_id)
        try:
            with cls.atomic():
                plan = lock_current_plan(trip_id)
                cls._check_version(plan, plan_version)

                record = plan.confirmations.filter(participant_id=participant_id).first()
                if record is None:
                    raise UnknownParticipant(
                        f"Participant {participant_id} is not part of plan "
                        f"v{plan.version} for trip {plan.trip_id}",
                        details={
                            "trip_id": plan.trip_id,
                            "plan_version": plan.version,
                            "participant_id": participant_id,
                        },
                    )

                if record.mark_confirmed():
                    record.save(update_fields=["confirmed", "confirmed_at", "updated_at"])
                    cls._advance(plan)
                    cls.get_logger().info(
                        "Participant confirmed settlement plan",
                        extra={
                            "trip_id": plan.trip_id,
                            "plan_version": plan.version,
                            "participant_id": participant_id,
                            "state": plan.state,
                        },
                    )

                return ServiceResult.success(cls.build_status(plan))
        except SettlementError as e:
            return cls.handle_exception(e, context="Confirmation rejected")

    @classmethod
    def finalize(
        cls,
        trip_id: str,
        plan_version: int,
        participant_id: str | None = None,
    ) -> ServiceResult[SettlementPlan]:
        """
        Complete a fully confirmed plan and freeze it.

        Finalizing an already completed version succeeds again.

        Args:
            trip_id: Trip being settled
            plan_version: Version being finalized; must be the current one
            participant_id: Caller finalizing the plan; when given it must
                be one of the plan's members

        Returns:
            ServiceResult with the completed SettlementPlan.
            Error codes: PLAN_NOT_FOUND, STALE_PLAN_VERSION,
            UNKNOWN_PARTICIPANT, NOT_FULLY_CONFIRMED
        """
        try:
            with cls.atomic():
                plan = lock_current_plan(trip_id)
                cls._check_version(plan, plan_version)

                if participant_id is not None and str(participant_id) not in plan.member_ids:
                    raise UnknownParticipant(
                        f"Participant {participant_id} is not part of plan "
                        f"v{plan.version} for trip {plan.trip_id}",
                        details={
                            "trip_id": plan.trip_id,
                            "plan_version": plan.version,
                            "participant_id": str(participant_id),
                        },
                    )

                if plan.state == ConfirmationState.COMPLETED:
                    return ServiceResult.success(plan)

                if plan.state != ConfirmationState.FULLY_CONFIRMED:
                    status = cls.build_status(plan)
                    raise NotFullyConfirmed(
                        f"Plan v{plan.version} has {status.confirmed_count} of "
                        f"{status.total} confirmations",
                        details={
                            "trip_id": plan.trip_id,
                            "plan_version": plan.version,
                            "pending": [
                                p.participant_id
                                for p in status.participants
                                if not p.confirmed
                            ],
                        },
                    )

                plan.complete()
                plan.save()

            cls.get_logger().info(
                "Settlement plan completed",
                extra={"trip_id": plan.trip_id, "plan_version": plan.version},
            )
            return ServiceResult.success(plan)
        except SettlementError as e:
            return cls.handle_exception(e, context="Finalize rejected")

    @classmethod
    def invalidate(cls, trip_id: str, event: str = "") -> ServiceResult[SettlementPlan | None]:
        """
        Invalidate the trip's current plan after its expenses changed.

        Always succeeds. A trip without a plan, or whose plan is already
        invalidated or completed, is left as it is.

        Args:
            trip_id: Trip whose expenses changed
            event: Short description of the change, e.g. "expense:exp_9"

        Returns:
            ServiceResult with the current plan (None if the trip has none)
        """
        with cls.atomic():
            plan = (
                SettlementPlan.objects.select_for_update()
                .for_trip(trip_id)
                .order_by("-version")
                .first()
            )
            if plan is None:
                return ServiceResult.success(None)

            if plan.state == ConfirmationState.COMPLETED:
                cls.get_logger().info(
                    "Ignoring change to a completed settlement",
                    extra={
                        "trip_id": plan.trip_id,
                        "plan_version": plan.version,
                        "reason": event,
                    },
                )
                return ServiceResult.success(plan)

            cls.retire(plan, reason=event or "expense changed")
        return ServiceResult.success(plan)

    @classmethod
    def get_status(cls, trip_id: str) -> ServiceResult[ConfirmationStatus]:
        """
        Snapshot of the current plan's confirmations, for polling clients.

        Error codes: PLAN_NOT_FOUND
        """
        plan = SettlementPlan.objects.current(trip_id)
        if plan is None:
            return cls.handle_exception(
                PlanNotFound(
                    f"No settlement plan for trip {trip_id}",
                    details={"trip_id": str(trip_id)},
                ),
                log_level=logging.DEBUG,
            )
        return ServiceResult.success(cls.build_status(plan))

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @classmethod
    def build_status(cls, plan: SettlementPlan) -> ConfirmationStatus:
        records = {r.participant_id: r for r in plan.confirmations.all()}
        participants = []
        for participant_id in plan.participant_ids:
            record = records.get(participant_id)
            participants.append(
                ParticipantConfirmation(
                    participant_id=participant_id,
                    confirmed=bool(record and record.confirmed),
                    confirmed_at=record.confirmed_at if record else None,
                )
            )
        return ConfirmationStatus(
            trip_id=plan.trip_id,
            plan_version=plan.version,
            state=plan.state,
            participants=tuple(participants),
        )

    @classmethod
    def _check_version(cls, plan: SettlementPlan, plan_version: int | None) -> None:
        if plan_version is not None and int(plan_version) != plan.version:
            raise StalePlanVersion(
                f"Plan v{plan_version} is not the current plan for trip "
                f"{plan.trip_id} (current is v{plan.version})",
                details={
                    "trip_id": plan.trip_id,
                    "requested_version": plan_version,
                    "current_version": plan.version,
                },
            )
        if plan.state == ConfirmationState.INVALIDATED:
            raise StalePlanVersion(
                f"Plan v{plan.version} for trip {plan.trip_id} was invalidated "
                f"and must be recomputed",
                details={
                    "trip_id": plan.trip_id,
                    "requested_version": plan_version,
                    "current_version": plan.version,
                    "reason": plan.invalidation_reason,
                },
            )

    @classmethod
    def _advance(cls, plan: SettlementPlan) -> None:
        """Move the aggregate state forward after a confirmation."""
        if plan.state not in (
            ConfirmationState.COMPUTED,
            ConfirmationState.PARTIALLY_CONFIRMED,
        ):
            return
        if not plan.confirmations.filter(confirmed=False).exists():
            plan.mark_fully_confirmed()
            plan.save()
        elif plan.state == ConfirmationState.COMPUTED:
            plan.record_confirmation()
            plan.save()
