"""
Tests for net balances and the conservation check.
"""

from decimal import Decimal

import pytest

from settlements.balances import compute_balances, conservation_epsilon
from settlements.exceptions import LedgerInconsistent
from settlements.ledger import build_ledger
from settlements.types import Ledger, ParticipantTotals


class TestConservationEpsilon:
    def test_one_minor_unit_per_hundred_participants(self):
        assert conservation_epsilon(3, "USD") == Decimal("0.01")
        assert conservation_epsilon(100, "USD") == Decimal("0.01")
        assert conservation_epsilon(101, "USD") == Decimal("0.02")
        assert conservation_epsilon(5, "KRW") == Decimal("1")


class TestComputeBalances:
    def test_balances_are_paid_minus_consumed(self, trip_expenses, rates):
        balances = compute_balances(build_ledger(trip_expenses, rates, "USD"))

        assert [(b.participant_id, b.balance) for b in balances] == [
            ("A", Decimal("50.00")),
            ("B", Decimal("-40.00")),
            ("C", Decimal("-10.00")),
        ]
        assert sum(b.balance for b in balances) == 0

    def test_inconsistent_ledger_raises_with_dump(self):
        ledger = Ledger(
            base_currency="USD",
            totals={
                "A": ParticipantTotals(paid=Decimal("10.00"), consumed=Decimal("5.00")),
                "B": ParticipantTotals(paid=Decimal("0"), consumed=Decimal("4.00")),
            },
            lines=(),
            digest="0" * 64,
        )

        with pytest.raises(LedgerInconsistent) as exc_info:
            compute_balances(ledger)

        assert exc_info.value.error_code == "LEDGER_INCONSISTENT"
        assert exc_info.value.details["sum"] == "1.00"
        assert exc_info.value.details["ledger"]["totals"]["A"]["paid"] == "10.00"
