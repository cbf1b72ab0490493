"""
Conservation and plan correctness over generated trips.

Each seed builds a different mix of USD, EUR and JPY expenses with equal
and weighted splits, then runs the whole pipeline on it.
"""

import random
from datetime import date
from decimal import Decimal

import pytest

from settlements.balances import conservation_epsilon
from settlements.engine import compute_settlement
from settlements.planner import apply_plan
from settlements.tests.factories import ExpenseRecordFactory

PEOPLE = ["A", "B", "C", "D", "E", "F"]
SPENT_ON = [date(2024, 5, 1), date(2024, 5, 2), date(2024, 5, 3)]


def generate_expenses(rng, count):
    expenses = []
    for index in range(count):
        participants = rng.sample(PEOPLE, rng.randint(1, len(PEOPLE)))
        currency = rng.choice(["USD", "EUR", "JPY"])
        if currency == "JPY":
            amount = Decimal(rng.randint(1, 200_000))
        else:
            amount = Decimal(rng.randint(1, 500_000)) / 100

        weights = None
        if rng.random() < 0.5:
            weights = {
                pid: Decimal(rng.randint(1, 9)) / rng.choice([1, 2, 4]) for pid in participants
            }

        expenses.append(
            ExpenseRecordFactory(
                id=f"exp-{index}",
                payer_id=rng.choice(PEOPLE),
                amount=amount,
                currency=currency,
                participant_ids=tuple(participants),
                share_weights=weights,
                spent_on=rng.choice(SPENT_ON),
            )
        )
    return expenses


@pytest.mark.parametrize("seed", range(30))
def test_generated_trip_balances_and_settles(seed, rates):
    rng = random.Random(seed)
    expenses = generate_expenses(rng, rng.randint(1, 25))

    result = compute_settlement(expenses, rates, "USD", PEOPLE)

    total = sum((b.balance for b in result.balances), Decimal(0))
    assert abs(total) <= conservation_epsilon(len(result.balances), "USD")

    for line in result.ledger.lines:
        assert all(share >= 0 for _, share in line.shares)
        assert sum(share for _, share in line.shares) == line.base_amount

    remaining = apply_plan(result.balances, result.transactions)
    assert all(amount == 0 for amount in remaining.values())

    owing = [b for b in result.balances if b.balance != 0]
    assert len(result.transactions) <= max(len(owing) - 1, 0)
    assert all(leg.amount > 0 for leg in result.transactions)
