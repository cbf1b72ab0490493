"""
Currency normalization.

Converts an expense amount into the trip's base currency and rounds
amounts to a currency's minor unit. All arithmetic is Decimal; rounding
happens only in ``quantize``, using banker's rounding (ROUND_HALF_EVEN).

Usage:
    from settlements.money import StaticRateTable, to_base, quantize

    rates = StaticRateTable({"JPY": {date(2024, 5, 1): Decimal("0.0064")}})
    converted = to_base(Decimal("5000"), "JPY", date(2024, 5, 2), rates, "USD")
    quantize(converted, "USD")  # Decimal("32.00")
"""

from __future__ import annotations

import bisect
import logging
from collections.abc import Mapping
from datetime import date
from decimal import ROUND_HALF_EVEN, Decimal

from settlements.exceptions import InvalidAmount, RateUnavailable, UnknownCurrency
from settlements.types import RateLookup, to_decimal

logger = logging.getLogger(__name__)

# ISO 4217 minor units. Anything not listed here is rejected.
CURRENCY_MINOR_UNITS: dict[str, int] = {
    "KRW": 0,
    "JPY": 0,
    "VND": 0,
    "USD": 2,
    "EUR": 2,
    "CNY": 2,
    "AUD": 2,
    "GBP": 2,
    "CAD": 2,
    "CHF": 2,
    "HKD": 2,
    "NZD": 2,
    "SGD": 2,
    "THB": 2,
    "TWD": 2,
    "PHP": 2,
    "MYR": 2,
    "IDR": 2,
    "INR": 2,
    "MXN": 2,
}


def normalize_currency(currency: str) -> str:
    """Upper-case a currency code and check it is known."""
    code = str(currency or "").strip().upper()
    if code not in CURRENCY_MINOR_UNITS:
        raise UnknownCurrency(code or str(currency))
    return code


def minor_units(currency: str) -> int:
    return CURRENCY_MINOR_UNITS[normalize_currency(currency)]


def minor_unit(currency: str) -> Decimal:
    """Smallest transactable amount, e.g. Decimal("0.01") for USD, 1 for KRW."""
    return Decimal(1).scaleb(-minor_units(currency))


def quantize(amount: Decimal, currency: str, rounding: str = ROUND_HALF_EVEN) -> Decimal:
    """Round ``amount`` to the currency's minor units, half-even by default."""
    return amount.quantize(minor_unit(currency), rounding=rounding)


def resolve_rate(
    currency: str,
    as_of: date,
    rate_lookup: RateLookup,
    base_currency: str,
) -> Decimal:
    """
    Rate from ``currency`` to ``base_currency`` on ``as_of``.

    The base currency is always exactly 1 and never hits the lookup.

    Raises:
        UnknownCurrency: Either code is not in the currency table
        RateUnavailable: Lookup returned nothing, or a non-positive or
            non-finite rate
    """
    currency = normalize_currency(currency)
    base_currency = normalize_currency(base_currency)
    if currency == base_currency:
        return Decimal(1)

    raw = rate_lookup.get_rate(currency, as_of)
    if raw is None:
        raise RateUnavailable(currency, as_of)
    rate = to_decimal(raw)
    if rate is None or not rate.is_finite():
        raise RateUnavailable(currency, as_of, reason=f"rate {raw!r} is not finite")
    if rate <= 0:
        raise RateUnavailable(currency, as_of, reason=f"rate {raw!r} is not positive")
    return rate


def to_base(
    amount: Decimal,
    currency: str,
    as_of: date,
    rate_lookup: RateLookup,
    base_currency: str,
    expense_id: str | None = None,
) -> Decimal:
    """
    Convert ``amount`` in ``currency`` into ``base_currency`` at full precision.

    The result is not rounded; callers quantize at the point where an
    amount becomes a booked value.

    Raises:
        InvalidAmount: ``amount`` is negative or not a finite number
        UnknownCurrency: Currency code is not recognized
        RateUnavailable: No usable rate for (currency, as_of)
    """
    value = to_decimal(amount)
    if value is None or not value.is_finite() or value < 0:
        raise InvalidAmount(expense_id, details={"amount": str(amount)})
    rate = resolve_rate(currency, as_of, rate_lookup, base_currency)
    return value * rate


class StaticRateTable:
    """
    In-memory rate source keyed by currency and publication date.

    ``get_rate`` returns the rate in effect on a date: the latest one
    published on or before it. Dates before the first published rate have
    no rate. Rates are never interpolated or invented.

    Example:
        table = StaticRateTable({
            "EUR": {date(2024, 5, 1): "1.08", date(2024, 5, 3): "1.07"},
        })
        table.get_rate("EUR", date(2024, 5, 2))  # Decimal("1.08")
    """

    def __init__(self, rates: Mapping[str, Mapping[date, Decimal | str]] | None = None):
        self._dates: dict[str, list[date]] = {}
        self._rates: dict[str, dict[date, Decimal]] = {}
        for currency, by_date in (rates or {}).items():
            for as_of, rate in by_date.items():
                self.add(currency, as_of, rate)

    def add(self, currency: str, as_of: date, rate: Decimal | str) -> None:
        code = str(currency).strip().upper()
        value = to_decimal(rate)
        if value is None:
            raise ValueError(f"Rate for {code} on {as_of} is not a number: {rate!r}")
        dates = self._dates.setdefault(code, [])
        if as_of not in self._rates.setdefault(code, {}):
            bisect.insort(dates, as_of)
        self._rates[code][as_of] = value

    def get_rate(self, currency: str, as_of: date) -> Decimal | None:
        code = str(currency).strip().upper()
        dates = self._dates.get(code)
        if not dates:
            return None
        index = bisect.bisect_right(dates, as_of)
        if index == 0:
            logger.debug(
                "No %s rate published on or before %s", code, as_of,
                extra={"currency": code, "as_of": str(as_of)},
            )
            return None
        return self._rates[code][dates[index - 1]]

    def latest(self, currency: str) -> tuple[date, Decimal] | None:
        """Most recent (date, rate) for a currency."""
        code = str(currency).strip().upper()
        dates = self._dates.get(code)
        if not dates:
            return None
        return dates[-1], self._rates[code][dates[-1]]
