"""
Tests for the pure settlement pipeline.
"""

from datetime import date
from decimal import Decimal

import pytest

from settlements.engine import compute_settlement
from settlements.exceptions import RateUnavailable
from settlements.tests.factories import ExpenseRecordFactory


class TestComputeSettlement:
    def test_full_pipeline(self, trip_expenses, rates):
        result = compute_settlement(trip_expenses, rates, "USD", ["A", "B", "C"])

        assert [t.to_dict() for t in result.transactions] == [
            {"from_participant_id": "B", "to_participant_id": "A", "amount": "40.00"},
            {"from_participant_id": "C", "to_participant_id": "A", "amount": "10.00"},
        ]
        assert result.summary == (
            "Total 120.00 USD across 2 expenses, 3 participants.\n"
            "B pays A 40.00 USD\n"
            "C pays A 10.00 USD"
        )

    def test_calculation_data(self, trip_expenses, rates):
        data = compute_settlement(trip_expenses, rates, "USD").calculation_data()

        assert data == {
            "net_balances": {"A": "50.00", "B": "-40.00", "C": "-10.00"},
            "total_expenses_base": "120.00",
            "participant_count": 3,
            "expense_count": 2,
        }

    def test_identical_inputs_identical_output(self, trip_expenses, rates):
        first = compute_settlement(trip_expenses, rates, "USD")
        second = compute_settlement(list(trip_expenses), rates, "USD")

        assert first == second

    def test_no_expenses_everyone_settled(self, rates):
        result = compute_settlement([], rates, "USD", ["A", "B"])

        assert result.transactions == ()
        assert result.summary.endswith("Everyone is settled up.")

    def test_mixed_currencies(self, rates):
        expenses = [
            ExpenseRecordFactory(
                id="hotel",
                payer_id="A",
                amount=Decimal("5000"),
                currency="JPY",
                participant_ids=("A", "B"),
                spent_on=date(2024, 5, 1),
            ),
            ExpenseRecordFactory(
                id="dinner",
                payer_id="B",
                amount=Decimal("10.00"),
                currency="EUR",
                participant_ids=("A", "B"),
                spent_on=date(2024, 5, 3),
            ),
        ]

        result = compute_settlement(expenses, rates, "USD")

        # hotel 32.00 USD, dinner 10.70 USD; A owes half of dinner, B half of hotel
        assert [(t.from_participant_id, t.to_participant_id, t.amount) for t in result.transactions] == [
            ("B", "A", Decimal("10.65")),
        ]

    def test_rate_failure_propagates(self, rates):
        with pytest.raises(RateUnavailable):
            compute_settlement([ExpenseRecordFactory(currency="GBP")], rates, "USD")


def test_two_expense_trip(rates):
    """A pays 90 for everyone, B pays 30 for B and C."""
    expenses = [
        ExpenseRecordFactory(id="e1", payer_id="A", amount=Decimal("90"), participant_ids=("A", "B", "C")),
        ExpenseRecordFactory(id="e2", payer_id="B", amount=Decimal("30"), participant_ids=("B", "C")),
    ]

    result = compute_settlement(expenses, rates, "USD")

    assert {b.participant_id: b.balance for b in result.balances} == {
        "A": Decimal("60"),
        "B": Decimal("-15"),
        "C": Decimal("-45"),
    }
    assert [(t.from_participant_id, t.to_participant_id, t.amount) for t in result.transactions] == [
        ("C", "A", Decimal("45.00")),
        ("B", "A", Decimal("15.00")),
    ]
