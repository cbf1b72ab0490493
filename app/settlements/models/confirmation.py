"""
ConfirmationRecord model: one participant's agreement to one plan version.

Records are created unconfirmed alongside their plan and deleted when the
plan is invalidated. They are never carried over to a newer version.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class ConfirmationRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    A participant's confirmation of a specific settlement plan version.

    Fields:
        plan: The plan version being confirmed
        participant_id: Participant referenced by at least one leg
        confirmed: Whether the participant has agreed
        confirmed_at: When they agreed
    """

    plan = models.ForeignKey(
        "settlements.SettlementPlan",
        on_delete=models.CASCADE,
        related_name="confirmations",
        help_text="Plan version this confirmation belongs to",
    )

    participant_id = models.CharField(
        max_length=64,
        help_text="Participant who confirms",
    )

    confirmed = models.BooleanField(
        default=False,
        help_text="Whether the participant agreed to the plan",
    )

    confirmed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the participant confirmed",
    )

    class Meta:
        ordering = ["participant_id"]
        verbose_name = "Confirmation Record"
        verbose_name_plural = "Confirmation Records"
        constraints = [
            models.UniqueConstraint(
                fields=["plan", "participant_id"],
                name="confirmation_unique_plan_participant",
            ),
        ]

    def __str__(self) -> str:
        status = "confirmed" if self.confirmed else "pending"
        return f"ConfirmationRecord({self.participant_id}, {status})"

    def mark_confirmed(self) -> bool:
        """
        Set confirmed, keeping the first timestamp.

        Returns:
            True if the record changed, False if it was already confirmed
        """
        if self.confirmed:
            return False
        self.confirmed = True
        self.confirmed_at = timezone.now()
        return True
