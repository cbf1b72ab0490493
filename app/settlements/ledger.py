"""
Ledger construction.

Turns a trip's expense records into per-participant paid and consumed
totals in the base currency. Pure: no database access, no clock.

Split rule:
    Each converted total is quantized once, then split by weight. Every
    share is rounded down to the minor unit and the residual goes to the
    first listed participant. The residual is never negative, so no share
    drops below zero, and the shares of one expense always add up to
    exactly the booked total.

    10.00 USD over A, B, C  ->  A 3.34, B 3.33, C 3.33
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterable
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING

from settlements.exceptions import DuplicateExpense
from settlements.money import normalize_currency, quantize, resolve_rate
from settlements.types import ExpenseLine, ExpenseRecord, Ledger, ParticipantTotals

if TYPE_CHECKING:
    from settlements.types import RateLookup

logger = logging.getLogger(__name__)


def split_amount(
    total: Decimal,
    weights: list[tuple[str, Decimal]],
    currency: str,
) -> list[tuple[str, Decimal]]:
    """
    Split a quantized ``total`` by weight, residual to the first entry.

    Shares are rounded down, so the residual is zero or positive.
    Returns shares in the order of ``weights``.
    """
    weight_sum = sum((w for _, w in weights), Decimal(0))
    shares = [
        (pid, quantize(total * weight / weight_sum, currency, ROUND_DOWN))
        for pid, weight in weights
    ]
    residual = total - sum((s for _, s in shares), Decimal(0))
    if residual:
        first_id, first_share = shares[0]
        shares[0] = (first_id, first_share + residual)
    return shares


def _book_expense(
    expense: ExpenseRecord,
    rate_lookup: RateLookup,
    base_currency: str,
) -> ExpenseLine:
    rate = resolve_rate(expense.currency, expense.spent_on, rate_lookup, base_currency)
    base_amount = quantize(expense.amount * rate, base_currency)
    shares = split_amount(base_amount, expense.weights(), base_currency)
    return ExpenseLine(
        expense_id=expense.id,
        payer_id=expense.payer_id,
        original_amount=expense.amount,
        original_currency=expense.currency,
        rate=rate,
        base_amount=base_amount,
        shares=tuple(shares),
    )


def ledger_digest(
    base_currency: str,
    participant_ids: Iterable[str],
    lines: Iterable[ExpenseLine],
) -> str:
    """SHA-256 over a canonical JSON rendering of the booked lines."""
    payload = {
        "base_currency": base_currency,
        "participants": sorted(participant_ids),
        "lines": [
            [
                line.expense_id,
                line.payer_id,
                str(line.original_amount),
                line.original_currency,
                str(line.rate),
                str(line.base_amount),
                [[pid, str(share)] for pid, share in line.shares],
            ]
            for line in lines
        ],
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def build_ledger(
    expenses: Iterable[ExpenseRecord],
    rate_lookup: RateLookup,
    base_currency: str,
    participant_ids: Iterable[str] = (),
) -> Ledger:
    """
    Build the trip ledger.

    Args:
        expenses: Validated expense records for one trip
        rate_lookup: Source of rates into ``base_currency``
        base_currency: Trip's settlement currency
        participant_ids: Trip members to include even without expenses

    Returns:
        Immutable Ledger with one ParticipantTotals per participant

    Raises:
        UnknownCurrency: An expense (or the base) uses an unknown code
        RateUnavailable: Any expense lacks a usable rate; no partial ledger
        DuplicateExpense: Two records share an id
    """
    base_currency = normalize_currency(base_currency)
    ordered = sorted(expenses, key=lambda e: (e.spent_on, e.id))

    seen: set[str] = set()
    for expense in ordered:
        if expense.id in seen:
            raise DuplicateExpense(expense.id)
        seen.add(expense.id)

    lines = tuple(_book_expense(e, rate_lookup, base_currency) for e in ordered)

    paid: dict[str, Decimal] = {str(p): Decimal(0) for p in participant_ids}
    consumed: dict[str, Decimal] = dict(paid)
    for line in lines:
        paid[line.payer_id] = paid.get(line.payer_id, Decimal(0)) + line.base_amount
        consumed.setdefault(line.payer_id, Decimal(0))
        for pid, share in line.shares:
            consumed[pid] = consumed.get(pid, Decimal(0)) + share
            paid.setdefault(pid, Decimal(0))

    totals = {
        pid: ParticipantTotals(paid=paid[pid], consumed=consumed[pid])
        for pid in sorted(paid)
    }
    digest = ledger_digest(base_currency, totals, lines)

    logger.debug(
        f"Built ledger with {len(lines)} expenses for {len(totals)} participants",
        extra={"base_currency": base_currency, "ledger_digest": digest},
    )
    return Ledger(base_currency=base_currency, totals=totals, lines=lines, digest=digest)
