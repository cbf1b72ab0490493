"""
Value types shared by the settlement pipeline.

Everything here is an immutable dataclass. The pure pipeline
(money -> ledger -> balances -> planner) passes these around; only the
service layer turns them into Django models.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Protocol, runtime_checkable

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
from settlements.state_machines import ConfirmationState, SettlementTrigger

if TYPE_CHECKING:
    from typing import Any


def to_decimal(value: Any) -> Decimal | None:
    """
    Convert a number or numeric string to Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1") rather than its
    binary expansion. Returns None when the value is not numeric.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None


def _clean_id(value: Any) -> str:
    """Identifier as a stripped string; None becomes the empty string."""
    return "" if value is None else str(value).strip()


@runtime_checkable
class RateLookup(Protocol):
    """
    Source of exchange rates into the trip's base currency.

    ``get_rate`` returns how many base units one unit of ``currency`` was
    worth on ``as_of``, or None when no rate is known.
    """

    def get_rate(self, currency: str, as_of: date) -> Decimal | None: ...


@dataclass(frozen=True)
class ExpenseRecord:
    """
    One expense as recorded by a trip participant.

    Attributes:
        id: Unique expense identifier
        trip_id: Trip the expense belongs to
        payer_id: Participant who paid
        amount: Amount in ``currency``, strictly positive
        currency: ISO 4217 code, stored upper-case
        participant_ids: Ordered, unique participants sharing the cost
        share_weights: Optional weights keyed by participant id; equal split
            when omitted
        spent_on: Date the expense occurred, used for rate lookup
        description: Free text shown in summaries
    """

    id: str
    trip_id: str
    payer_id: str
    amount: Decimal
    currency: str
    participant_ids: tuple[str, ...]
    spent_on: date
    share_weights: Mapping[str, Decimal] | None = None
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _clean_id(self.id))
        object.__setattr__(self, "trip_id", str(self.trip_id))
        object.__setattr__(self, "payer_id", _clean_id(self.payer_id))
        if not self.id:
            raise MissingExpenseId(self.id)
        if not self.payer_id:
            raise MissingPayer(self.id)
        object.__setattr__(self, "currency", str(self.currency).strip().upper())

        amount = to_decimal(self.amount)
        if amount is None or not amount.is_finite() or amount <= 0:
            raise InvalidAmount(self.id, details={"amount": str(self.amount)})
        object.__setattr__(self, "amount", amount)

        participants = tuple(str(p) for p in self.participant_ids)
        if not participants:
            raise EmptyParticipantSet(self.id)
        if len(set(participants)) != len(participants):
            duplicates = sorted({p for p in participants if participants.count(p) > 1})
            raise DuplicateParticipant(self.id, details={"participants": duplicates})
        object.__setattr__(self, "participant_ids", participants)

        if isinstance(self.spent_on, datetime):
            object.__setattr__(self, "spent_on", self.spent_on.date())
        elif not isinstance(self.spent_on, date):
            raise InvalidExpense(
                self.id,
                message=f"Expense {self.id} has no valid date",
                error_code="INVALID_EXPENSE_DATE",
                details={"spent_on": str(self.spent_on)},
            )

        if self.share_weights is not None:
            weights: dict[str, Decimal] = {}
            for key, raw in self.share_weights.items():
                weight = to_decimal(raw)
                if weight is None or not weight.is_finite() or weight <= 0:
                    raise InvalidShareWeight(
                        self.id, details={"participant_id": str(key), "weight": str(raw)}
                    )
                weights[str(key)] = weight
            if set(weights) != set(participants):
                raise MismatchedShareWeights(
                    self.id,
                    details={
                        "missing": sorted(set(participants) - set(weights)),
                        "unexpected": sorted(set(weights) - set(participants)),
                    },
                )
            object.__setattr__(self, "share_weights", weights)

    def weights(self) -> list[tuple[str, Decimal]]:
        """Participant weights in listed order (1 each for an equal split)."""
        if self.share_weights is None:
            return [(p, Decimal(1)) for p in self.participant_ids]
        return [(p, self.share_weights[p]) for p in self.participant_ids]


def coerce_expense(
    data: ExpenseRecord | Mapping[str, Any],
    trip_participant_ids: Iterable[str] = (),
) -> ExpenseRecord:
    """
    Build an ExpenseRecord from a mapping sent by the expense subsystem.

    A missing or null participant list means "everyone on the trip"; an
    explicit empty list is rejected.

    Example:
        coerce_expense(
            {"id": "e1", "trip_id": "t1", "payer_id": "A", "amount": "90",
             "currency": "USD", "spent_on": "2024-05-01"},
            trip_participant_ids=["A", "B", "C"],
        )
    """
    if isinstance(data, ExpenseRecord):
        return data

    expense_id = _clean_id(data.get("id"))
    participants = data.get("participant_ids")
    if participants is None:
        participants = tuple(trip_participant_ids)
        if not participants:
            raise EmptyParticipantSet(expense_id)

    spent_on = data.get("spent_on")
    if isinstance(spent_on, str):
        try:
            spent_on = date.fromisoformat(spent_on[:10])
        except ValueError as e:
            raise InvalidExpense(
                expense_id,
                message=f"Expense {expense_id} has an invalid date {spent_on!r}",
                error_code="INVALID_EXPENSE_DATE",
            ) from e

    return ExpenseRecord(
        id=expense_id,
        trip_id=_clean_id(data.get("trip_id")),
        payer_id=_clean_id(data.get("payer_id")),
        amount=data.get("amount"),
        currency=data.get("currency", ""),
        participant_ids=tuple(participants),
        spent_on=spent_on,
        share_weights=data.get("share_weights"),
        description=data.get("description") or "",
    )


@dataclass(frozen=True)
class ExpenseLine:
    """An expense after conversion: what the ledger actually booked."""

    expense_id: str
    payer_id: str
    original_amount: Decimal
    original_currency: str
    rate: Decimal
    base_amount: Decimal
    shares: tuple[tuple[str, Decimal], ...]


@dataclass(frozen=True)
class ParticipantTotals:
    paid: Decimal = Decimal(0)
    consumed: Decimal = Decimal(0)


@dataclass(frozen=True)
class Ledger:
    """
    Normalized per-trip ledger in a single base currency.

    ``digest`` fingerprints the booked lines, so two ledgers built from the
    same expenses at the same rates compare equal by digest.
    """

    base_currency: str
    totals: Mapping[str, ParticipantTotals]
    lines: tuple[ExpenseLine, ...]
    digest: str

    @property
    def participant_ids(self) -> list[str]:
        return sorted(self.totals)

    @property
    def total_expenses(self) -> Decimal:
        return sum((line.base_amount for line in self.lines), Decimal(0))

    def dump(self) -> dict[str, Any]:
        """JSON-safe dump for diagnostics."""
        return {
            "base_currency": self.base_currency,
            "digest": self.digest,
            "totals": {
                pid: {"paid": str(t.paid), "consumed": str(t.consumed)}
                for pid, t in sorted(self.totals.items())
            },
            "lines": [
                {
                    "expense_id": line.expense_id,
                    "payer_id": line.payer_id,
                    "amount": str(line.original_amount),
                    "currency": line.original_currency,
                    "rate": str(line.rate),
                    "base_amount": str(line.base_amount),
                    "shares": {pid: str(s) for pid, s in line.shares},
                }
                for line in self.lines
            ],
        }


@dataclass(frozen=True)
class ParticipantBalance:
    """Net position: positive is owed money, negative owes money."""

    participant_id: str
    balance: Decimal


@dataclass(frozen=True)
class SettlementTransaction:
    from_participant_id: str
    to_participant_id: str
    amount: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "from_participant_id": self.from_participant_id,
            "to_participant_id": self.to_participant_id,
            "amount": str(self.amount),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SettlementTransaction:
        return cls(
            from_participant_id=str(data["from_participant_id"]),
            to_participant_id=str(data["to_participant_id"]),
            amount=Decimal(str(data["amount"])),
        )


@dataclass(frozen=True)
class SettlementComputation:
    """Result of one pure pipeline run over a trip's expenses."""

    ledger: Ledger
    balances: tuple[ParticipantBalance, ...]
    transactions: tuple[SettlementTransaction, ...]
    summary: str

    @property
    def digest(self) -> str:
        return self.ledger.digest

    @property
    def base_currency(self) -> str:
        return self.ledger.base_currency

    @property
    def total_expenses(self) -> Decimal:
        return self.ledger.total_expenses

    def calculation_data(self) -> dict[str, Any]:
        return {
            "net_balances": {b.participant_id: str(b.balance) for b in self.balances},
            "total_expenses_base": str(self.total_expenses),
            "participant_count": len(self.balances),
            "expense_count": len(self.ledger.lines),
        }


@dataclass(frozen=True)
class ParticipantConfirmation:
    participant_id: str
    confirmed: bool
    confirmed_at: datetime | None = None


@dataclass(frozen=True)
class ConfirmationStatus:
    """Snapshot of a plan's confirmation progress, suitable for polling."""

    trip_id: str
    plan_version: int
    state: str
    participants: tuple[ParticipantConfirmation, ...] = field(default_factory=tuple)

    @property
    def confirmed_count(self) -> int:
        return sum(1 for p in self.participants if p.confirmed)

    @property
    def total(self) -> int:
        return len(self.participants)

    @property
    def is_fully_confirmed(self) -> bool:
        return self.state in (
            ConfirmationState.FULLY_CONFIRMED,
            ConfirmationState.COMPLETED,
        )


@dataclass(frozen=True)
class TripSettlementContext:
    """
    What the trip subsystem tells the engine about a trip.

    Attributes:
        trip_id: Trip identifier
        base_currency: Currency every balance is expressed in
        participant_ids: Trip members, including ones with no expenses
        end_date: Last day of the trip, if known
        settlement_trigger: "trip_end" (settle after end_date) or "manual"
    """

    trip_id: str
    base_currency: str
    participant_ids: tuple[str, ...] = ()
    end_date: date | None = None
    settlement_trigger: str = SettlementTrigger.TRIP_END

    def __post_init__(self) -> None:
        object.__setattr__(self, "trip_id", str(self.trip_id))
        object.__setattr__(self, "base_currency", self.base_currency.strip().upper())
        object.__setattr__(
            self, "participant_ids", tuple(str(p) for p in self.participant_ids)
        )

    def is_settlement_open(self, today: date) -> bool:
        if self.settlement_trigger == SettlementTrigger.MANUAL:
            return True
        return self.end_date is None or today >= self.end_date
