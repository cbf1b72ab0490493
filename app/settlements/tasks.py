"""
Celery tasks for settlement maintenance.

This module provides async tasks for:
- Invalidating a trip's plan from a process that cannot send the signal
- Periodic purge of old invalidated plan versions

Usage:
    from settlements.tasks import invalidate_trip_plan

    # From the expense subsystem, after committing an expense change
    invalidate_trip_plan.delay(str(trip_id), str(expense_id))

    # Purge history (typically via celery-beat)
    from settlements.tasks import purge_invalidated_plans
    purge_invalidated_plans.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import F, OuterRef, Subquery
from django.utils import timezone

from settlements.models import SettlementPlan
from settlements.state_machines import ConfirmationState

logger = logging.getLogger(__name__)


@shared_task(
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=60,
    retry_kwargs={"max_retries": 5},
    acks_late=True,
)
def invalidate_trip_plan(trip_id: str, expense_id: str | None = None) -> dict:
    """
    Invalidate the trip's current plan after an expense change.

    Args:
        trip_id: Trip whose expenses changed
        expense_id: Expense that changed, recorded as the reason

    Returns:
        Dict with the plan version and its resulting state (or None)
    """
    from settlements.services import ConfirmationCoordinator

    event = f"expense:{expense_id}" if expense_id else "expense changed"
    result = ConfirmationCoordinator.invalidate(trip_id, event=event)
    plan = result.data
    return {
        "trip_id": trip_id,
        "plan_version": plan.version if plan else None,
        "state": plan.state if plan else None,
    }


@shared_task
def purge_invalidated_plans(days: int | None = None) -> dict:
    """
    Periodic task to delete old invalidated plan versions.

    The latest version of each trip is kept even when invalidated, so a
    trip never loses its last known plan.

    Args:
        days: Retention in days; SETTLEMENT_INVALIDATED_RETENTION_DAYS when omitted

    Returns:
        Dict with count of plans deleted
    """
    if days is None:
        days = settings.SETTLEMENT_INVALIDATED_RETENTION_DAYS
    cutoff = timezone.now() - timedelta(days=days)

    latest_version = (
        SettlementPlan.objects.filter(trip_id=OuterRef("trip_id"))
        .order_by("-version")
        .values("version")[:1]
    )
    stale_ids = list(
        SettlementPlan.objects.filter(
            state=ConfirmationState.INVALIDATED,
            invalidated_at__lt=cutoff,
        )
        .annotate(latest_version=Subquery(latest_version))
        .exclude(version=F("latest_version"))
        .values_list("id", flat=True)
    )

    deleted_count = 0
    if stale_ids:
        deleted_count = SettlementPlan.objects.filter(id__in=stale_ids).delete()[1].get(
            SettlementPlan._meta.label, 0
        )
        logger.info(
            f"Deleted {deleted_count} invalidated settlement plans",
            extra={"deleted_count": deleted_count, "cutoff_date": cutoff.isoformat()},
        )

    return {"deleted_count": deleted_count}
