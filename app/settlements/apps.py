"""Django app configuration for the settlement engine."""

from django.apps import AppConfig


class SettlementsConfig(AppConfig):
    """Configuration for the settlements application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "settlements"
    verbose_name = "Settlements"

    def ready(self) -> None:
        """Connect signal handlers when app is ready."""
        from settlements.signals import connect_signals

        connect_signals()
