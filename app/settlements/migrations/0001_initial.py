# Generated manually for the settlement engine

"""
Initial schema for settlement plans and confirmations.

This migration:
1. Creates SettlementPlan with its FSM state and (trip_id, version) uniqueness
2. Creates ConfirmationRecord, unique per (plan, participant_id)
"""

import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="SettlementPlan",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "trip_id",
                    models.CharField(
                        db_index=True,
                        help_text="Trip this plan settles",
                        max_length=64,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        help_text="Plan version within the trip, starting at 1",
                    ),
                ),
                (
                    "base_currency",
                    models.CharField(
                        help_text="ISO 4217 code every amount is expressed in",
                        max_length=3,
                    ),
                ),
                (
                    "ledger_digest",
                    models.CharField(
                        help_text="SHA-256 of the ledger the plan was computed from",
                        max_length=64,
                    ),
                ),
                (
                    "transactions",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Ordered settlement legs (from, to, amount)",
                    ),
                ),
                (
                    "calculation_data",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Net balances, total expenses and participant count",
                    ),
                ),
                (
                    "summary",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Human-readable plan summary",
                    ),
                ),
                (
                    "state",
                    django_fsm.FSMField(
                        choices=[
                            ("computed", "Computed"),
                            ("partially_confirmed", "Partially Confirmed"),
                            ("fully_confirmed", "Fully Confirmed"),
                            ("completed", "Completed"),
                            ("invalidated", "Invalidated"),
                        ],
                        db_index=True,
                        default="computed",
                        help_text="Aggregate confirmation state (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "fully_confirmed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the last participant confirmed",
                        null=True,
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the plan was finalized",
                        null=True,
                    ),
                ),
                (
                    "invalidated_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When a new expense superseded this version",
                        null=True,
                    ),
                ),
                (
                    "invalidation_reason",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Event that invalidated this version",
                        max_length=255,
                    ),
                ),
            ],
            options={
                "verbose_name": "Settlement Plan",
                "verbose_name_plural": "Settlement Plans",
                "ordering": ["trip_id", "-version"],
                "indexes": [
                    models.Index(
                        fields=["trip_id", "state"],
                        name="settlements_trip_id_0f6c2e_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("trip_id", "version"),
                        name="settlement_plan_unique_trip_version",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("version__gte", 1)),
                        name="settlement_plan_version_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ConfirmationRecord",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "participant_id",
                    models.CharField(
                        help_text="Participant who confirms",
                        max_length=64,
                    ),
                ),
                (
                    "confirmed",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the participant agreed to the plan",
                    ),
                ),
                (
                    "confirmed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the participant confirmed",
                        null=True,
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        help_text="Plan version this confirmation belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="confirmations",
                        to="settlements.settlementplan",
                    ),
                ),
            ],
            options={
                "verbose_name": "Confirmation Record",
                "verbose_name_plural": "Confirmation Records",
                "ordering": ["participant_id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("plan", "participant_id"),
                        name="confirmation_unique_plan_participant",
                    ),
                ],
            },
        ),
    ]
