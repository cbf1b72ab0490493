"""
Serializers for settlement plans and confirmation status.

Provides:
- SettlementTransactionSerializer: One leg of a plan
- SettlementPlanSerializer: Read-only plan with its legs and calculation data
- ParticipantConfirmationSerializer: One participant's confirmation
- ConfirmationStatusSerializer: Polling snapshot of a plan's confirmations
- ConfirmRequestSerializer: Body of POST confirm/
- FinalizeRequestSerializer: Body of POST finalize/

Amounts are rendered as decimal strings, never floats.
"""

from __future__ import annotations

from django.conf import settings
from rest_framework import serializers

from settlements.models import SettlementPlan


class SettlementTransactionSerializer(serializers.Serializer):
    from_participant_id = serializers.CharField()
    to_participant_id = serializers.CharField()
    # Decimal string at the plan currency's own precision
    amount = serializers.CharField()


class SettlementPlanSerializer(serializers.ModelSerializer):
    """Read-only serializer for SettlementPlan API responses."""

    transactions = SettlementTransactionSerializer(many=True, read_only=True)
    participant_ids = serializers.ListField(child=serializers.CharField(), read_only=True)

    class Meta:
        model = SettlementPlan
        fields = [
            "id",
            "trip_id",
            "version",
            "base_currency",
            "ledger_digest",
            "state",
            "transactions",
            "participant_ids",
            "calculation_data",
            "summary",
            "created_at",
            "fully_confirmed_at",
            "completed_at",
            "invalidated_at",
            "invalidation_reason",
        ]
        read_only_fields = fields


class ParticipantConfirmationSerializer(serializers.Serializer):
    participant_id = serializers.CharField()
    confirmed = serializers.BooleanField()
    confirmed_at = serializers.DateTimeField(allow_null=True)


class ConfirmationStatusSerializer(serializers.Serializer):
    """
    Polling snapshot of a plan's confirmations.

    ``poll_interval_seconds`` tells clients how often to refresh.
    """

    trip_id = serializers.CharField()
    plan_version = serializers.IntegerField()
    state = serializers.CharField()
    participants = ParticipantConfirmationSerializer(many=True)
    confirmed_count = serializers.IntegerField()
    total = serializers.IntegerField()
    is_fully_confirmed = serializers.BooleanField()
    poll_interval_seconds = serializers.SerializerMethodField()

    def get_poll_interval_seconds(self, obj) -> int:
        return settings.SETTLEMENT_POLL_INTERVAL_SECONDS


class ConfirmRequestSerializer(serializers.Serializer):
    plan_version = serializers.IntegerField(
        required=False,
        min_value=1,
        help_text="Plan version the participant reviewed; rejected if no longer current",
    )


class FinalizeRequestSerializer(serializers.Serializer):
    plan_version = serializers.IntegerField(
        min_value=1,
        help_text="Plan version to finalize",
    )
