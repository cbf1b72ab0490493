"""
URL configuration for the settlements app.

Routes:
    - GET  trips/<trip_id>/plan/     - Current or versioned plan
    - GET  trips/<trip_id>/status/   - Confirmation status (polled)
    - POST trips/<trip_id>/confirm/  - Confirm as the current user
    - POST trips/<trip_id>/finalize/ - Finalize a fully confirmed plan
    - POST trips/<trip_id>/trigger/  - Compute the plan from the input provider

All routes are prefixed with /api/v1/settlements/ when included in the main URLconf.
"""

from django.urls import path

from settlements.views import (
    ConfirmationStatusView,
    ConfirmPlanView,
    FinalizePlanView,
    SettlementPlanView,
    TriggerSettlementView,
)

app_name = "settlements"

urlpatterns = [
    path("trips/<str:trip_id>/plan/", SettlementPlanView.as_view(), name="plan"),
    path("trips/<str:trip_id>/status/", ConfirmationStatusView.as_view(), name="status"),
    path("trips/<str:trip_id>/confirm/", ConfirmPlanView.as_view(), name="confirm"),
    path("trips/<str:trip_id>/finalize/", FinalizePlanView.as_view(), name="finalize"),
    path("trips/<str:trip_id>/trigger/", TriggerSettlementView.as_view(), name="trigger"),
]
