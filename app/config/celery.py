"""
Celery configuration for the settlement service.

Celery runs the settlement maintenance tasks:
- Invalidating a trip's plan from processes that cannot send the Django signal
- Daily purge of old invalidated plan versions (CELERY_BEAT_SCHEDULE)

Redis is both the message broker and result backend. Tasks are
auto-discovered from every installed app's tasks.py.

Usage:
    from settlements.tasks import invalidate_trip_plan

    invalidate_trip_plan.delay(str(trip_id), str(expense_id))

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
