"""
Ordering of finalize and invalidate on one plan version.

Both operations lock the trip's current plan row, so whichever takes the
lock first wins and the other sees its result. The threaded tests need a
database with row locks (PostgreSQL); SQLite ignores SELECT ... FOR UPDATE.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connection

from settlements.locks import lock_current_plan
from settlements.models import SettlementPlan
from settlements.services import ConfirmationCoordinator
from settlements.state_machines import ConfirmationState
from settlements.tests.factories import SettlementPlanFactory

requires_row_locks = pytest.mark.skipif(
    not connection.features.has_select_for_update,
    reason="database does not support SELECT ... FOR UPDATE",
)

HOLD_SECONDS = 0.3


@pytest.fixture
def ready_plan(transactional_db):
    plan = SettlementPlanFactory(trip_id="trip-1", confirmed=["A", "B", "C"])
    plan.mark_fully_confirmed()
    plan.save()
    return plan


def in_own_connection(func):
    def run():
        connection.close()  # Force new connection for thread
        try:
            return func()
        finally:
            connection.close()

    return run


def finalize():
    return ConfirmationCoordinator.finalize("trip-1", plan_version=1)


def invalidate():
    return ConfirmationCoordinator.invalidate("trip-1", event="expense:exp-9")


@requires_row_locks
@pytest.mark.django_db(transaction=True)
class TestFinalizeAgainstInvalidate:
    def test_finalize_waiting_on_invalidate_is_stale(self, ready_plan, mocker):
        """
        An expense recorded while finalize is in flight wins if it locked first.

        Why it matters: a plan must never complete on stale expenses.
        """
        locked = threading.Event()
        original_retire = ConfirmationCoordinator.retire

        def slow_retire(plan, reason):
            locked.set()
            time.sleep(HOLD_SECONDS)
            return original_retire(plan, reason=reason)

        mocker.patch.object(ConfirmationCoordinator, "retire", side_effect=slow_retire)

        with ThreadPoolExecutor(max_workers=2) as executor:
            invalidated = executor.submit(in_own_connection(invalidate))
            assert locked.wait(timeout=5)
            finalized = executor.submit(in_own_connection(finalize))

            assert invalidated.result(timeout=10).success is True
            assert finalized.result(timeout=10).error_code == "STALE_PLAN_VERSION"

        plan = SettlementPlan.objects.get(pk=ready_plan.pk)
        assert plan.state == ConfirmationState.INVALIDATED
        assert plan.completed_at is None

    def test_invalidate_waiting_on_finalize_leaves_plan_completed(self, ready_plan, mocker):
        """
        A finalize that locked first completes; the later change is ignored.

        Why it matters: completed settlements are frozen.
        """
        locked = threading.Event()
        original_complete = SettlementPlan.complete

        def slow_complete(plan):
            locked.set()
            time.sleep(HOLD_SECONDS)
            return original_complete(plan)

        mocker.patch.object(SettlementPlan, "complete", autospec=True, side_effect=slow_complete)

        with ThreadPoolExecutor(max_workers=2) as executor:
            finalized = executor.submit(in_own_connection(finalize))
            assert locked.wait(timeout=5)
            invalidated = executor.submit(in_own_connection(invalidate))

            assert finalized.result(timeout=10).success is True
            assert invalidated.result(timeout=10).data.state == ConfirmationState.COMPLETED

        assert SettlementPlan.objects.get(pk=ready_plan.pk).state == ConfirmationState.COMPLETED


@pytest.mark.django_db(transaction=True)
class TestPlanRowLock:
    @pytest.mark.parametrize(
        "operation",
        [finalize, lambda: ConfirmationCoordinator.confirm("trip-1", participant_id="A")],
        ids=["finalize", "confirm"],
    )
    def test_plan_is_locked_inside_the_transaction(self, ready_plan, mocker, operation):
        in_transaction = []

        def recording_lock(trip_id):
            in_transaction.append(connection.in_atomic_block)
            return lock_current_plan(trip_id)

        mocker.patch(
            "settlements.services.coordinator.lock_current_plan", side_effect=recording_lock
        )

        operation()

        assert in_transaction == [True]
