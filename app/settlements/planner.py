"""
Settlement planning.

Greedy largest-first matching: the largest remaining creditor is paid by
the largest remaining debtor, the smaller side is cleared, and the other
goes back on its heap with what is left. Each round clears at least one
party, so a trip with n non-zero balances gets at most n - 1 legs, in
O(n log n).

This does not always find the minimum number of payments (that problem is
NP-hard, it reduces to subset sum). In practice it is within a small
factor of optimal, and it is deterministic and easy to audit by hand.

Ordering:
    Heaps are keyed by (-remaining, participant_id): larger amounts first,
    ties broken by ascending participant id. Identical balances always
    produce an identical transaction list.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable
from decimal import Decimal

from settlements.money import minor_unit, normalize_currency, quantize
from settlements.types import ParticipantBalance, SettlementTransaction


def plan(
    balances: Iterable[ParticipantBalance],
    base_currency: str,
) -> list[SettlementTransaction]:
    """
    Compute the payments that bring every balance to zero.

    Participants with a zero balance never appear. Amounts under one minor
    unit are dropped, so no leg is ever smaller than one cent (or one won).

    Example:
        plan([A +60, B -15, C -45], "USD")
        # [C -> A 45.00, B -> A 15.00]
    """
    base_currency = normalize_currency(base_currency)
    unit = minor_unit(base_currency)

    creditors: list[tuple[Decimal, str]] = []
    debtors: list[tuple[Decimal, str]] = []
    for entry in balances:
        amount = quantize(entry.balance, base_currency)
        if amount >= unit:
            creditors.append((-amount, entry.participant_id))
        elif amount <= -unit:
            debtors.append((amount, entry.participant_id))
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    transactions: list[SettlementTransaction] = []
    while creditors and debtors:
        neg_credit, creditor_id = heapq.heappop(creditors)
        neg_debt, debtor_id = heapq.heappop(debtors)
        credit, debt = -neg_credit, -neg_debt

        amount = min(credit, debt)
        transactions.append(
            SettlementTransaction(
                from_participant_id=debtor_id,
                to_participant_id=creditor_id,
                amount=amount,
            )
        )

        if credit - amount >= unit:
            heapq.heappush(creditors, (-(credit - amount), creditor_id))
        if debt - amount >= unit:
            heapq.heappush(debtors, (-(debt - amount), debtor_id))

    return transactions


def apply_plan(
    balances: Iterable[ParticipantBalance],
    transactions: Iterable[SettlementTransaction],
) -> dict[str, Decimal]:
    """Balances left over after every leg is paid; all near zero for a sound plan."""
    remaining = {b.participant_id: b.balance for b in balances}
    for leg in transactions:
        remaining[leg.from_participant_id] += leg.amount
        remaining[leg.to_participant_id] -= leg.amount
    return remaining


def referenced_participants(transactions: Iterable[SettlementTransaction]) -> list[str]:
    """Participant ids appearing in any leg, sorted."""
    ids: set[str] = set()
    for leg in transactions:
        ids.add(leg.from_participant_id)
        ids.add(leg.to_participant_id)
    return sorted(ids)
