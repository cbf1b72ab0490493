"""
Pure settlement pipeline.

Chains ledger -> balances -> planner and renders a short plain-text
summary. Identical inputs give an identical SettlementComputation,
byte for byte, which is what lets the service skip recomputation when
the ledger digest has not changed.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from settlements.balances import compute_balances
from settlements.ledger import build_ledger
from settlements.planner import plan
from settlements.types import SettlementComputation

if TYPE_CHECKING:
    from settlements.types import (
        ExpenseRecord,
        Ledger,
        ParticipantBalance,
        RateLookup,
        SettlementTransaction,
    )


def summarize(
    ledger: Ledger,
    balances: Sequence[ParticipantBalance],
    transactions: Sequence[SettlementTransaction],
) -> str:
    """
    One line for the totals, one per payment.

    Example:
        Total 120.00 USD across 2 expenses, 3 participants.
        C pays A 45.00 USD
        B pays A 15.00 USD
    """
    currency = ledger.base_currency
    lines = [
        f"Total {ledger.total_expenses} {currency} across "
        f"{len(ledger.lines)} expenses, {len(balances)} participants."
    ]
    if not transactions:
        lines.append("Everyone is settled up.")
    for leg in transactions:
        lines.append(
            f"{leg.from_participant_id} pays {leg.to_participant_id} {leg.amount} {currency}"
        )
    return "\n".join(lines)


def compute_settlement(
    expenses: Iterable[ExpenseRecord],
    rate_lookup: RateLookup,
    base_currency: str,
    participant_ids: Iterable[str] = (),
) -> SettlementComputation:
    """
    Run the full pipeline for one trip.

    Raises whatever the stages raise: input errors, UnknownCurrency,
    RateUnavailable, or LedgerInconsistent.
    """
    ledger = build_ledger(expenses, rate_lookup, base_currency, participant_ids)
    balances = compute_balances(ledger)
    transactions = plan(balances, ledger.base_currency)
    summary = summarize(ledger, balances, transactions)
    return SettlementComputation(
        ledger=ledger,
        balances=tuple(balances),
        transactions=tuple(transactions),
        summary=summary,
    )
