"""
State enums for settlement models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

SettlementPlan States:
    computed → partially_confirmed → fully_confirmed → completed
    computed → fully_confirmed (single referenced participant, or empty plan)
    computed/partially_confirmed/fully_confirmed → invalidated
"""

from django.db import models


class ConfirmationState(models.TextChoices):
    """
    Aggregate confirmation state of one settlement plan version.

    Terminal states: COMPLETED, INVALIDATED
    A COMPLETED plan is frozen; new expenses never reopen it.
    An INVALIDATED plan is superseded by a newer version.

    State Flow:
        COMPUTED → PARTIALLY_CONFIRMED → FULLY_CONFIRMED → COMPLETED

    Invalidation Flow:
        COMPUTED / PARTIALLY_CONFIRMED / FULLY_CONFIRMED → INVALIDATED
    """

    COMPUTED = "computed", "Computed"
    PARTIALLY_CONFIRMED = "partially_confirmed", "Partially Confirmed"
    FULLY_CONFIRMED = "fully_confirmed", "Fully Confirmed"
    COMPLETED = "completed", "Completed"
    INVALIDATED = "invalidated", "Invalidated"

    @classmethod
    def open_states(cls) -> list[str]:
        """States in which a plan still accepts confirmations."""
        return [cls.COMPUTED, cls.PARTIALLY_CONFIRMED, cls.FULLY_CONFIRMED]


class SettlementTrigger(models.TextChoices):
    """
    When a trip's settlement may be computed.

    TRIP_END: only once the trip's end date has been reached
    MANUAL: whenever the group asks for it (interim settlements)
    """

    TRIP_END = "trip_end", "After Trip End"
    MANUAL = "manual", "Manual"
