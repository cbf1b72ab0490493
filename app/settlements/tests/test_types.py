"""
Tests for expense record validation and coercion.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from settlements.exceptions import (
    DuplicateParticipant,
    EmptyParticipantSet,
    InvalidAmount,
    InvalidExpense,
    InvalidShareWeight,
    MismatchedShareWeights,
    MissingExpenseId,
    MissingPayer,
)
from settlements.state_machines import SettlementTrigger
from settlements.tests.factories import ExpenseRecordFactory
from settlements.types import TripSettlementContext, coerce_expense, to_decimal


class TestToDecimal:
    def test_float_keeps_short_representation(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_bool_is_not_a_number(self):
        assert to_decimal(True) is None

    def test_garbage_is_none(self):
        assert to_decimal("ten") is None
        assert to_decimal(None) is None


class TestExpenseRecord:
    def test_normalizes_fields(self):
        record = ExpenseRecordFactory(
            id=7, currency="eur", amount="12.50", spent_on=datetime(2024, 5, 1, 18, 30)
        )

        assert record.id == "7"
        assert record.currency == "EUR"
        assert record.amount == Decimal("12.50")
        assert record.spent_on == date(2024, 5, 1)

    @pytest.mark.parametrize("amount", [0, "-5", "NaN", "Infinity", None])
    def test_rejects_non_positive_amount(self, amount):
        with pytest.raises(InvalidAmount) as exc_info:
            ExpenseRecordFactory(id="e1", amount=amount)

        assert exc_info.value.error_code == "INVALID_AMOUNT"
        assert exc_info.value.details["expense_id"] == "e1"

    @pytest.mark.parametrize("payer_id", ["", "   ", None])
    def test_rejects_missing_payer(self, payer_id):
        with pytest.raises(MissingPayer) as exc_info:
            ExpenseRecordFactory(id="e1", payer_id=payer_id)

        assert exc_info.value.error_code == "MISSING_PAYER"
        assert exc_info.value.details["expense_id"] == "e1"

    def test_rejects_missing_id(self):
        with pytest.raises(MissingExpenseId) as exc_info:
            ExpenseRecordFactory(id=" ")

        assert exc_info.value.error_code == "MISSING_EXPENSE_ID"

    def test_rejects_empty_participants(self):
        with pytest.raises(EmptyParticipantSet) as exc_info:
            ExpenseRecordFactory(id="e1", participant_ids=())

        assert exc_info.value.details["expense_id"] == "e1"

    def test_rejects_duplicate_participants(self):
        with pytest.raises(DuplicateParticipant) as exc_info:
            ExpenseRecordFactory(participant_ids=("A", "B", "A"))

        assert exc_info.value.details["participants"] == ["A"]

    def test_rejects_missing_date(self):
        with pytest.raises(InvalidExpense) as exc_info:
            ExpenseRecordFactory(spent_on="2024-05-01")

        assert exc_info.value.error_code == "INVALID_EXPENSE_DATE"

    def test_rejects_non_positive_weight(self):
        with pytest.raises(InvalidShareWeight):
            ExpenseRecordFactory(
                participant_ids=("A", "B"), share_weights={"A": 1, "B": 0}
            )

    def test_rejects_weights_for_other_participants(self):
        with pytest.raises(MismatchedShareWeights) as exc_info:
            ExpenseRecordFactory(
                participant_ids=("A", "B"), share_weights={"A": 1, "C": 1}
            )

        assert exc_info.value.details["missing"] == ["B"]
        assert exc_info.value.details["unexpected"] == ["C"]

    def test_weights_follow_listed_order(self):
        record = ExpenseRecordFactory(
            participant_ids=("B", "A"), share_weights={"A": "1", "B": "2"}
        )

        assert record.weights() == [("B", Decimal("2")), ("A", Decimal("1"))]

    def test_equal_split_weights(self):
        record = ExpenseRecordFactory(participant_ids=("A", "B"))

        assert record.weights() == [("A", Decimal(1)), ("B", Decimal(1))]


class TestCoerceExpense:
    def payload(self, **overrides):
        data = {
            "id": "e1",
            "trip_id": "trip-1",
            "payer_id": "A",
            "amount": "90",
            "currency": "usd",
            "spent_on": "2024-05-01",
        }
        data.update(overrides)
        return data

    def test_missing_participants_default_to_trip_members(self):
        record = coerce_expense(self.payload(), trip_participant_ids=["A", "B", "C"])

        assert record.participant_ids == ("A", "B", "C")
        assert record.spent_on == date(2024, 5, 1)
        assert record.currency == "USD"

    def test_null_participants_without_trip_members_raises(self):
        with pytest.raises(EmptyParticipantSet):
            coerce_expense(self.payload(participant_ids=None))

    def test_explicit_empty_participants_raises(self):
        with pytest.raises(EmptyParticipantSet):
            coerce_expense(self.payload(participant_ids=[]), trip_participant_ids=["A"])

    def test_invalid_date_string_raises(self):
        with pytest.raises(InvalidExpense) as exc_info:
            coerce_expense(self.payload(spent_on="yesterday"), trip_participant_ids=["A"])

        assert exc_info.value.error_code == "INVALID_EXPENSE_DATE"

    def test_missing_payer_raises(self):
        data = self.payload()
        del data["payer_id"]

        with pytest.raises(MissingPayer) as exc_info:
            coerce_expense(data, trip_participant_ids=["A", "B"])

        assert exc_info.value.details["expense_id"] == "e1"

    def test_null_payer_is_not_the_string_none(self):
        with pytest.raises(MissingPayer):
            coerce_expense(self.payload(payer_id=None), trip_participant_ids=["A", "B"])

    def test_missing_id_raises(self):
        data = self.payload()
        del data["id"]

        with pytest.raises(MissingExpenseId):
            coerce_expense(data, trip_participant_ids=["A", "B"])

    def test_record_passes_through(self):
        record = ExpenseRecordFactory()

        assert coerce_expense(record) is record


class TestTripSettlementContext:
    def test_trip_end_opens_on_end_date(self):
        context = TripSettlementContext(
            trip_id="t1", base_currency="usd", end_date=date(2024, 5, 10)
        )

        assert context.base_currency == "USD"
        assert context.is_settlement_open(date(2024, 5, 9)) is False
        assert context.is_settlement_open(date(2024, 5, 10)) is True

    def test_trip_end_without_end_date_is_open(self):
        context = TripSettlementContext(trip_id="t1", base_currency="USD")

        assert context.is_settlement_open(date(2024, 1, 1)) is True

    def test_manual_is_always_open(self):
        context = TripSettlementContext(
            trip_id="t1",
            base_currency="USD",
            end_date=date(2099, 1, 1),
            settlement_trigger=SettlementTrigger.MANUAL,
        )

        assert context.is_settlement_open(date(2024, 5, 1)) is True
