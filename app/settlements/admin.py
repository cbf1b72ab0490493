"""
Settlement admin configuration.

Plans and confirmations are read-only here: every change must go through
the services so the state machine and locks are respected.
"""

from django.contrib import admin

from settlements.models import ConfirmationRecord, SettlementPlan


class ConfirmationRecordInline(admin.TabularInline):
    model = ConfirmationRecord
    extra = 0
    can_delete = False
    fields = ["participant_id", "confirmed", "confirmed_at"]
    readonly_fields = fields


@admin.register(SettlementPlan)
class SettlementPlanAdmin(admin.ModelAdmin):
    """
    Admin configuration for SettlementPlan.

    Provides visibility into plan versions and their confirmation state.
    """

    list_display = [
        "trip_id",
        "version",
        "state",
        "base_currency",
        "created_at",
        "completed_at",
    ]
    list_filter = ["state", "base_currency"]
    search_fields = ["trip_id", "ledger_digest"]
    readonly_fields = [
        "id",
        "trip_id",
        "version",
        "base_currency",
        "ledger_digest",
        "state",
        "transactions",
        "calculation_data",
        "summary",
        "fully_confirmed_at",
        "completed_at",
        "invalidated_at",
        "invalidation_reason",
        "created_at",
        "updated_at",
    ]
    ordering = ["trip_id", "-version"]
    inlines = [ConfirmationRecordInline]

    def has_add_permission(self, request):
        return False


@admin.register(ConfirmationRecord)
class ConfirmationRecordAdmin(admin.ModelAdmin):
    list_display = ["participant_id", "plan", "confirmed", "confirmed_at"]
    list_filter = ["confirmed"]
    search_fields = ["participant_id", "plan__trip_id"]
    readonly_fields = ["id", "plan", "participant_id", "confirmed", "confirmed_at", "created_at"]

    def has_add_permission(self, request):
        return False
