"""
Django signals for the settlements app.

This module defines:
- expense_recorded: sent by the expense subsystem whenever an expense of a
  trip is created, replaced or deleted
- invalidate_plan_on_expense: receiver that invalidates the trip's current
  settlement plan

Related files:
    - services/coordinator.py: ConfirmationCoordinator.invalidate
    - apps.py: connect_signals() in ready()

Usage:
    from settlements.signals import expense_recorded

    expense_recorded.send(sender=Expense, trip_id=trip.id, expense_id=expense.id)
"""

from __future__ import annotations

import logging

from django.dispatch import Signal

logger = logging.getLogger(__name__)

# Provides: trip_id, expense_id
expense_recorded = Signal()


def connect_signals():
    """
    Connect all signal handlers.

    Called from SettlementsConfig.ready().
    """
    expense_recorded.connect(
        invalidate_plan_on_expense,
        dispatch_uid="settlements_invalidate_plan_on_expense",
    )
    logger.debug("Settlement signals connected")


def invalidate_plan_on_expense(sender, trip_id, expense_id=None, **kwargs) -> None:
    """
    Invalidate the trip's current plan when its expenses change.

    Runs synchronously in the sender's transaction so the invalidation is
    ordered against in-flight confirmations by the plan row lock.

    Args:
        sender: Whatever sent the signal (usually the expense model)
        trip_id: Trip whose expenses changed
        expense_id: Expense that was created, replaced or deleted
        **kwargs: Additional signal arguments
    """
    from settlements.services import ConfirmationCoordinator

    event = f"expense:{expense_id}" if expense_id is not None else "expense changed"
    result = ConfirmationCoordinator.invalidate(str(trip_id), event=event)
    plan = result.data
    if plan is not None:
        logger.debug(
            f"Expense {expense_id} processed for trip {trip_id}, plan v{plan.version} is {plan.state}"
        )
