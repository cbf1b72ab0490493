"""
Settlement input providers.

The settlement engine does not own trips, expenses or exchange rates. A
provider supplies them for one trip so a settlement can be started over
HTTP. The class named by ``settings.SETTLEMENT_INPUT_PROVIDER`` is loaded
and instantiated per request.

Usage:
    from settlements.providers import get_input_provider

    provider = get_input_provider()
    context = provider.get_context("trip_1")
    if context is not None:
        expenses = provider.get_expenses("trip_1")
        rates = provider.get_rate_lookup("trip_1")

Writing a provider:
    class TripAppProvider:
        def get_context(self, trip_id): ...
        def get_expenses(self, trip_id): ...
        def get_rate_lookup(self, trip_id): ...

    # settings.py
    SETTLEMENT_INPUT_PROVIDER = "trips.settlement.TripAppProvider"
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from settlements.types import ExpenseRecord, RateLookup, TripSettlementContext


@runtime_checkable
class SettlementInputProvider(Protocol):
    """
    Source of everything compute_plan needs for one trip.

    ``get_context`` returns None when the trip is unknown; the other two
    methods are only called for known trips.
    """

    def get_context(self, trip_id: str) -> TripSettlementContext | None: ...

    def get_expenses(self, trip_id: str) -> Iterable[ExpenseRecord | Mapping[str, Any]]: ...

    def get_rate_lookup(self, trip_id: str) -> RateLookup: ...


class InMemoryInputProvider:
    """
    Provider backed by a process-wide registry.

    For local development and tests; production settings point
    SETTLEMENT_INPUT_PROVIDER at an adapter over the real trip data.

    Example:
        InMemoryInputProvider.register(context, expenses, StaticRateTable(...))
    """

    _trips: dict[str, tuple[TripSettlementContext, list, RateLookup]] = {}

    @classmethod
    def register(
        cls,
        context: TripSettlementContext,
        expenses: Iterable[ExpenseRecord | Mapping[str, Any]],
        rate_lookup: RateLookup,
    ) -> None:
        cls._trips[context.trip_id] = (context, list(expenses), rate_lookup)

    @classmethod
    def clear(cls) -> None:
        cls._trips.clear()

    def get_context(self, trip_id: str) -> TripSettlementContext | None:
        entry = self._trips.get(str(trip_id))
        return entry[0] if entry else None

    def get_expenses(self, trip_id: str) -> list[ExpenseRecord | Mapping[str, Any]]:
        return list(self._trips[str(trip_id)][1])

    def get_rate_lookup(self, trip_id: str) -> RateLookup:
        return self._trips[str(trip_id)][2]


def get_input_provider() -> SettlementInputProvider:
    """
    Instantiate the configured provider.

    Raises:
        ImproperlyConfigured: The setting does not name an importable
            provider class
    """
    path = settings.SETTLEMENT_INPUT_PROVIDER
    try:
        provider_class = import_string(path)
    except ImportError as e:
        raise ImproperlyConfigured(
            f"SETTLEMENT_INPUT_PROVIDER {path!r} could not be imported: {e}"
        ) from e

    provider = provider_class()
    if not isinstance(provider, SettlementInputProvider):
        raise ImproperlyConfigured(
            f"SETTLEMENT_INPUT_PROVIDER {path!r} is not a settlement input provider"
        )
    return provider
