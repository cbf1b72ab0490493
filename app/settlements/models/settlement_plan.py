"""
SettlementPlan model: one computed plan version for a trip.

A trip accumulates plan versions 1, 2, 3...; only the highest version is
current. Each version carries its transactions, the digest of the ledger
it was computed from, and its confirmation state.

Usage:
    from settlements.models import SettlementPlan
    from settlements.state_machines import ConfirmationState

    plan = SettlementPlan.objects.current(trip_id)

    # State transitions using django-fsm
    plan.record_confirmation()  # computed -> partially_confirmed
    plan.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from settlements.state_machines import ConfirmationState
from settlements.types import SettlementTransaction


class SettlementPlanQuerySet(models.QuerySet):
    def for_trip(self, trip_id: str) -> SettlementPlanQuerySet:
        return self.filter(trip_id=str(trip_id))

    def current(self, trip_id: str) -> SettlementPlan | None:
        """Highest version for the trip, or None."""
        return self.for_trip(trip_id).order_by("-version").first()


class SettlementPlan(UUIDPrimaryKeyMixin, BaseModel):
    """
    A versioned settlement plan and its aggregate confirmation state.

    State Flow:
        COMPUTED -> PARTIALLY_CONFIRMED -> FULLY_CONFIRMED -> COMPLETED
        COMPUTED -> FULLY_CONFIRMED (last missing confirmation arrives first)

    Invalidation Flow:
        COMPUTED / PARTIALLY_CONFIRMED / FULLY_CONFIRMED -> INVALIDATED

    Fields:
        trip_id: Trip identifier owned by the trip subsystem
        version: 1-based plan version within the trip
        base_currency: Currency of every amount in the plan
        ledger_digest: SHA-256 of the ledger snapshot the plan came from
        state: Current FSM state
        transactions: Ordered legs, amounts as decimal strings
        calculation_data: Net balances and totals behind the plan
        summary: Plain-text rendering of the plan
        *_at timestamps: Track state transition times

    Note:
        A COMPLETED plan is frozen. Rows are never edited outside the
        transitions below.
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    trip_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Trip this plan settles",
    )

    version = models.PositiveIntegerField(
        help_text="Plan version within the trip, starting at 1",
    )

    # ==========================================================================
    # Plan Content
    # ==========================================================================

    base_currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 code every amount is expressed in",
    )

    ledger_digest = models.CharField(
        max_length=64,
        help_text="SHA-256 of the ledger the plan was computed from",
    )

    transactions = models.JSONField(
        default=list,
        blank=True,
        help_text="Ordered settlement legs (from, to, amount)",
    )

    calculation_data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Net balances, total expenses and participant count",
    )

    summary = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable plan summary",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    state = FSMField(
        default=ConfirmationState.COMPUTED,
        choices=ConfirmationState.choices,
        db_index=True,
        protected=True,
        help_text="Aggregate confirmation state (managed by FSM)",
    )

    fully_confirmed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the last participant confirmed",
    )
    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the plan was finalized",
    )
    invalidated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a new expense superseded this version",
    )
    invalidation_reason = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Event that invalidated this version",
    )

    objects = SettlementPlanQuerySet.as_manager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["trip_id", "-version"]
        verbose_name = "Settlement Plan"
        verbose_name_plural = "Settlement Plans"
        indexes = [
            models.Index(fields=["trip_id", "state"], name="settlements_trip_id_0f6c2e_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["trip_id", "version"],
                name="settlement_plan_unique_trip_version",
            ),
            models.CheckConstraint(
                condition=models.Q(version__gte=1),
                name="settlement_plan_version_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"SettlementPlan({self.trip_id} v{self.version}, {self.state})"

    @property
    def legs(self) -> list[SettlementTransaction]:
        return [SettlementTransaction.from_dict(item) for item in self.transactions]

    @property
    def participant_ids(self) -> list[str]:
        """Participants referenced by any leg, sorted."""
        ids: set[str] = set()
        for item in self.transactions:
            ids.add(str(item["from_participant_id"]))
            ids.add(str(item["to_participant_id"]))
        return sorted(ids)

    @property
    def member_ids(self) -> list[str]:
        """
        Everyone the plan was computed for: leg participants plus anyone
        with a (possibly zero) net balance.
        """
        balances = (self.calculation_data or {}).get("net_balances", {})
        return sorted(set(self.participant_ids) | {str(pid) for pid in balances})

    @property
    def total_transferred(self) -> Decimal:
        return sum((leg.amount for leg in self.legs), Decimal(0))

    @property
    def is_open(self) -> bool:
        return self.state in ConfirmationState.open_states()

    @property
    def is_terminal(self) -> bool:
        return self.state in (ConfirmationState.COMPLETED, ConfirmationState.INVALIDATED)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=state,
        source=[ConfirmationState.COMPUTED, ConfirmationState.PARTIALLY_CONFIRMED],
        target=ConfirmationState.PARTIALLY_CONFIRMED,
    )
    def record_confirmation(self):
        """
        Note that some, but not all, participants have confirmed.

        Transition: COMPUTED/PARTIALLY_CONFIRMED -> PARTIALLY_CONFIRMED
        """
        pass

    @transition(
        field=state,
        source=[ConfirmationState.COMPUTED, ConfirmationState.PARTIALLY_CONFIRMED],
        target=ConfirmationState.FULLY_CONFIRMED,
    )
    def mark_fully_confirmed(self):
        """
        Every referenced participant has confirmed.

        Transition: COMPUTED/PARTIALLY_CONFIRMED -> FULLY_CONFIRMED
        Also taken at creation for a plan with no legs.
        """
        self.fully_confirmed_at = timezone.now()

    @transition(
        field=state,
        source=ConfirmationState.FULLY_CONFIRMED,
        target=ConfirmationState.COMPLETED,
    )
    def complete(self):
        """
        Finalize the plan.

        Transition: FULLY_CONFIRMED -> COMPLETED
        The plan is frozen from here on.
        """
        self.completed_at = timezone.now()

    @transition(
        field=state,
        source=[
            ConfirmationState.COMPUTED,
            ConfirmationState.PARTIALLY_CONFIRMED,
            ConfirmationState.FULLY_CONFIRMED,
        ],
        target=ConfirmationState.INVALIDATED,
    )
    def invalidate(self, reason: str = ""):
        """
        Supersede this version after the trip's expenses changed.

        Transition: COMPUTED/PARTIALLY_CONFIRMED/FULLY_CONFIRMED -> INVALIDATED
        """
        self.invalidated_at = timezone.now()
        self.invalidation_reason = reason[:255]
