"""
Tests for settlement API endpoints.

The authenticated user's primary key is the participant id, so plans here
are built with legs between user pks.
"""

from datetime import date
from decimal import Decimal

import pytest
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from settlements.models import SettlementPlan
from settlements.providers import InMemoryInputProvider
from settlements.state_machines import ConfirmationState
from settlements.tests.factories import ExpenseRecordFactory, SettlementPlanFactory, UserFactory
from settlements.types import TripSettlementContext


@pytest.fixture
def payer(db):
    return UserFactory()


@pytest.fixture
def debtor(db):
    return UserFactory()


@pytest.fixture
def plan(payer, debtor):
    return SettlementPlanFactory(
        trip_id="trip-1",
        transactions=[
            {
                "from_participant_id": str(debtor.pk),
                "to_participant_id": str(payer.pk),
                "amount": "25.00",
            }
        ],
        calculation_data={
            "net_balances": {str(payer.pk): "25.00", str(debtor.pk): "-25.00"},
        },
    )


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


class TestAuthentication:
    def test_anonymous_rejected(self, plan):
        response = APIClient().get(reverse("settlements:plan", args=["trip-1"]))

        assert response.status_code in (
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN,
        )


class TestSettlementPlanView:
    def test_current_plan(self, plan, payer, debtor):
        response = client_for(payer).get(reverse("settlements:plan", args=["trip-1"]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["version"] == 1
        assert response.data["state"] == ConfirmationState.COMPUTED
        assert response.data["transactions"][0]["amount"] == "25.00"
        assert response.data["participant_ids"] == sorted([str(payer.pk), str(debtor.pk)])

    def test_specific_version(self, plan, payer):
        SettlementPlanFactory(trip_id="trip-1", version=2)

        response = client_for(payer).get(
            reverse("settlements:plan", args=["trip-1"]), {"version": 1}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["version"] == 1

    def test_bad_version(self, plan, payer):
        response = client_for(payer).get(
            reverse("settlements:plan", args=["trip-1"]), {"version": "latest"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_no_plan(self, payer):
        response = client_for(payer).get(reverse("settlements:plan", args=["trip-404"]))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "PLAN_NOT_FOUND"


class TestConfirmationStatusView:
    def test_status(self, plan, payer, settings):
        settings.SETTLEMENT_POLL_INTERVAL_SECONDS = 3

        response = client_for(payer).get(reverse("settlements:status", args=["trip-1"]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["plan_version"] == 1
        assert response.data["confirmed_count"] == 0
        assert response.data["total"] == 2
        assert response.data["is_fully_confirmed"] is False
        assert response.data["poll_interval_seconds"] == 3


class TestConfirmPlanView:
    def test_confirm_as_current_user(self, plan, payer):
        response = client_for(payer).post(
            reverse("settlements:confirm", args=["trip-1"]), {"plan_version": 1}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["state"] == ConfirmationState.PARTIALLY_CONFIRMED
        confirmed = [p for p in response.data["participants"] if p["confirmed"]]
        assert [p["participant_id"] for p in confirmed] == [str(payer.pk)]

    def test_both_confirm(self, plan, payer, debtor):
        url = reverse("settlements:confirm", args=["trip-1"])
        client_for(payer).post(url, {}, format="json")
        response = client_for(debtor).post(url, {}, format="json")

        assert response.data["is_fully_confirmed"] is True

    def test_outsider_rejected(self, plan):
        outsider = UserFactory()

        response = client_for(outsider).post(
            reverse("settlements:confirm", args=["trip-1"]), {}, format="json"
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "UNKNOWN_PARTICIPANT"

    def test_stale_version(self, plan, payer):
        response = client_for(payer).post(
            reverse("settlements:confirm", args=["trip-1"]), {"plan_version": 4}, format="json"
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "STALE_PLAN_VERSION"

    def test_invalid_body(self, plan, payer):
        response = client_for(payer).post(
            reverse("settlements:confirm", args=["trip-1"]), {"plan_version": 0}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestFinalizePlanView:
    def test_finalize_fully_confirmed(self, plan, payer, debtor):
        url = reverse("settlements:confirm", args=["trip-1"])
        client_for(payer).post(url, {}, format="json")
        client_for(debtor).post(url, {}, format="json")

        response = client_for(payer).post(
            reverse("settlements:finalize", args=["trip-1"]), {"plan_version": 1}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["state"] == ConfirmationState.COMPLETED
        assert SettlementPlan.objects.get(pk=plan.pk).completed_at is not None

    def test_not_fully_confirmed(self, plan, payer):
        response = client_for(payer).post(
            reverse("settlements:finalize", args=["trip-1"]), {"plan_version": 1}, format="json"
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "NOT_FULLY_CONFIRMED"

    def test_outsider_cannot_finalize(self, plan, payer, debtor):
        url = reverse("settlements:confirm", args=["trip-1"])
        client_for(payer).post(url, {}, format="json")
        client_for(debtor).post(url, {}, format="json")
        outsider = UserFactory()

        response = client_for(outsider).post(
            reverse("settlements:finalize", args=["trip-1"]), {"plan_version": 1}, format="json"
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "UNKNOWN_PARTICIPANT"
        assert SettlementPlan.objects.get(pk=plan.pk).state == ConfirmationState.FULLY_CONFIRMED

    def test_version_required(self, plan, payer):
        response = client_for(payer).post(
            reverse("settlements:finalize", args=["trip-1"]), {}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.fixture
def registered_trip(payer, debtor, rates):
    """Register trip-9 with the in-memory provider: payer covers a 50.00 hotel."""

    def register(end_date=date(2024, 5, 10), expenses=None):
        members = (str(payer.pk), str(debtor.pk))
        context = TripSettlementContext(
            trip_id="trip-9",
            base_currency="USD",
            participant_ids=members,
            end_date=end_date,
        )
        if expenses is None:
            expenses = [
                ExpenseRecordFactory(
                    id="hotel", trip_id="trip-9", payer_id=members[0],
                    amount=Decimal("50.00"), participant_ids=members,
                )
            ]
        InMemoryInputProvider.register(context, expenses, rates)
        return context

    yield register
    InMemoryInputProvider.clear()


def trigger(user, trip_id="trip-9"):
    return client_for(user).post(reverse("settlements:trigger", args=[trip_id]), format="json")


class TestTriggerSettlementView:
    def test_computes_plan(self, registered_trip, payer, debtor):
        registered_trip()

        response = trigger(debtor)

        assert response.status_code == status.HTTP_200_OK
        assert response.data["version"] == 1
        assert response.data["state"] == ConfirmationState.COMPUTED
        assert response.data["transactions"] == [
            {
                "from_participant_id": str(debtor.pk),
                "to_participant_id": str(payer.pk),
                "amount": "25.00",
            }
        ]

    def test_unchanged_expenses_keep_version(self, registered_trip, payer):
        registered_trip()

        trigger(payer)
        response = trigger(payer)

        assert response.data["version"] == 1
        assert SettlementPlan.objects.filter(trip_id="trip-9").count() == 1

    def test_unknown_trip(self, registered_trip, payer):
        registered_trip()

        response = trigger(payer, trip_id="trip-404")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "TRIP_NOT_FOUND"

    def test_outsider_rejected(self, registered_trip):
        registered_trip()

        response = trigger(UserFactory())

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "UNKNOWN_PARTICIPANT"
        assert SettlementPlan.objects.count() == 0

    def test_trip_not_over(self, registered_trip, payer):
        registered_trip(end_date=date(2099, 1, 1))

        response = trigger(payer)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "SETTLEMENT_NOT_OPEN"

    def test_rate_unavailable(self, registered_trip, payer, debtor):
        registered_trip(
            expenses=[
                ExpenseRecordFactory(
                    id="pub", trip_id="trip-9", payer_id=str(payer.pk), currency="GBP",
                    participant_ids=(str(payer.pk), str(debtor.pk)),
                )
            ]
        )

        response = trigger(payer)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.data["error_code"] == "RATE_UNAVAILABLE"

    def test_malformed_expense(self, registered_trip, payer):
        registered_trip(
            expenses=[
                {"id": "e1", "trip_id": "trip-9", "amount": "10", "currency": "USD",
                 "spent_on": "2024-05-01"}
            ]
        )

        response = trigger(payer)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "MISSING_PAYER"
