"""
Pytest fixtures for settlement tests.

Plans are created in a given state through their transitions, never by
assigning ``state`` (the FSM field is protected). Anything that computes a
plan goes through the Redis recompute lock, so ``mock_redis_lock`` is
applied to every test in this package.

Usage:
    def test_confirm(fully_confirmed_plan):
        fully_confirmed_plan.complete()
        fully_confirmed_plan.save()
        assert fully_confirmed_plan.state == ConfirmationState.COMPLETED
"""

from datetime import date
from decimal import Decimal

import pytest

from settlements.money import StaticRateTable
from settlements.state_machines import SettlementTrigger
from settlements.tests.factories import (
    ExpenseRecordFactory,
    SettlementPlanFactory,
    UserFactory,
)
from settlements.types import TripSettlementContext


# =============================================================================
# Redis
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis_lock(mocker):
    """Mock Redis for the distributed recompute lock."""
    mock_redis = mocker.MagicMock()
    mock_redis.set.return_value = True
    mock_redis.eval.return_value = 1

    mocker.patch(
        "settlements.locks.get_redis_connection",
        return_value=mock_redis,
    )
    return mock_redis


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test user."""
    return UserFactory()


# =============================================================================
# Pipeline inputs
# =============================================================================


@pytest.fixture
def rates():
    """EUR and JPY rates into USD, published on May 1st and May 3rd 2024."""
    return StaticRateTable(
        {
            "EUR": {date(2024, 5, 1): "1.08", date(2024, 5, 3): "1.07"},
            "JPY": {date(2024, 5, 1): "0.0064"},
        }
    )


@pytest.fixture
def trip_context():
    """Trip with three members that ended on May 10th 2024."""
    return TripSettlementContext(
        trip_id="trip-1",
        base_currency="USD",
        participant_ids=("A", "B", "C"),
        end_date=date(2024, 5, 10),
        settlement_trigger=SettlementTrigger.TRIP_END,
    )


@pytest.fixture
def trip_expenses():
    """
    A pays 90 for everyone, C pays 30 for everyone.

    Balances: A +50, B -40, C -10.
    """
    return [
        ExpenseRecordFactory(
            id="exp-1", payer_id="A", amount=Decimal("90.00"), spent_on=date(2024, 5, 1)
        ),
        ExpenseRecordFactory(
            id="exp-2", payer_id="C", amount=Decimal("30.00"), spent_on=date(2024, 5, 2)
        ),
    ]


# =============================================================================
# Plan state fixtures
# =============================================================================


@pytest.fixture
def computed_plan(db):
    """Plan v1 for trip-1 with legs C -> A and B -> A, nobody confirmed."""
    return SettlementPlanFactory(trip_id="trip-1")


@pytest.fixture
def partially_confirmed_plan(db):
    plan = SettlementPlanFactory(trip_id="trip-1", confirmed=["A"])
    plan.record_confirmation()
    plan.save()
    return plan


@pytest.fixture
def fully_confirmed_plan(db):
    plan = SettlementPlanFactory(trip_id="trip-1", confirmed=["A", "B", "C"])
    plan.mark_fully_confirmed()
    plan.save()
    return plan


@pytest.fixture
def completed_plan(fully_confirmed_plan):
    fully_confirmed_plan.complete()
    fully_confirmed_plan.save()
    return fully_confirmed_plan


@pytest.fixture
def invalidated_plan(db):
    plan = SettlementPlanFactory(trip_id="trip-1", with_confirmations=False)
    plan.invalidate(reason="expense:exp-9")
    plan.save()
    return plan
