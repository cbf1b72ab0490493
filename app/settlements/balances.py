"""
Net balance calculation with the conservation check.

A balance is ``paid - consumed``: positive means the participant is owed
money, negative means they owe. Across a trip the balances must sum to
zero within ``conservation_epsilon``; anything else is a ledger defect.
"""

from __future__ import annotations

import math
from decimal import Decimal

from settlements.exceptions import LedgerInconsistent
from settlements.money import minor_unit
from settlements.types import Ledger, ParticipantBalance


def conservation_epsilon(participant_count: int, currency: str) -> Decimal:
    """One minor unit per started block of 100 participants."""
    blocks = max(1, math.ceil(participant_count / 100))
    return minor_unit(currency) * blocks


def compute_balances(ledger: Ledger) -> list[ParticipantBalance]:
    """
    Reduce a ledger to one signed balance per participant, sorted by id.

    Raises:
        LedgerInconsistent: Balances do not sum to zero within epsilon.
            Carries the ledger dump in ``details["ledger"]``.
    """
    balances = [
        ParticipantBalance(participant_id=pid, balance=totals.paid - totals.consumed)
        for pid, totals in sorted(ledger.totals.items())
    ]

    total = sum((b.balance for b in balances), Decimal(0))
    epsilon = conservation_epsilon(len(balances), ledger.base_currency)
    if abs(total) > epsilon:
        raise LedgerInconsistent(
            f"Balances sum to {total} {ledger.base_currency}, tolerance is {epsilon}",
            details={
                "sum": str(total),
                "epsilon": str(epsilon),
                "ledger": ledger.dump(),
            },
        )
    return balances
