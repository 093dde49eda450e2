"""Plain records shared by the scheduling core.

Dates are ``datetime.date`` and money is ``Decimal``. Each record converts to
and from the flat dictionaries kept in the ledger file, with ISO date strings
and decimal strings for amounts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

INFLOW = "inflow"
OUTFLOW = "outflow"
DIRECTIONS = (INFLOW, OUTFLOW)

MONTHLY = "monthly"
YEARLY = "yearly"
FREQUENCIES = (MONTHLY, YEARLY)

WORK_ITEM_STATUSES = ("draft", "confirmed", "completed")
WORK_ITEM_COLORS = ("blue", "orange", "green", "purple", "gray")


def parse_date(value: date | str) -> date:
    """Parse a ``date`` object or an ISO ``YYYY-MM-DD`` string."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value, "%Y-%m-%d").date()


def _optional_date(value: date | str | None) -> Optional[date]:
    if value is None or value == "":
        return None
    return parse_date(value)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def to_decimal(value: Any) -> Decimal:
    """Return ``value`` as a ``Decimal`` without float artefacts."""

    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass
class WorkItem:
    """A project bar on the calendar."""

    id: str
    title: str
    start_date: date
    end_date: date  # inclusive
    color: str = "blue"
    status: str = "draft"
    important: bool = False

    def __post_init__(self) -> None:
        self.start_date = parse_date(self.start_date)
        self.end_date = parse_date(self.end_date)
        if self.start_date > self.end_date:
            raise ValueError(
                f"Work item {self.id} ends {self.end_date} before it starts {self.start_date}"
            )
        if self.status not in WORK_ITEM_STATUSES:
            raise ValueError(f"Unknown work item status: {self.status}")

    @property
    def span_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "color": self.color,
            "status": self.status,
            "important": self.important,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkItem":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            start_date=parse_date(data["start_date"]),
            end_date=parse_date(data["end_date"]),
            color=data.get("color", "blue"),
            status=data.get("status", "draft"),
            important=bool(data.get("important", False)),
        )


@dataclass
class Counterparty:
    """A client or vendor and the billing cycle they pay on."""

    id: str
    name: str
    closing_day: int
    payment_month_offset: int
    payment_day: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "closing_day": self.closing_day,
            "payment_month_offset": self.payment_month_offset,
            "payment_day": self.payment_day,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Counterparty":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            closing_day=data["closing_day"],
            payment_month_offset=data["payment_month_offset"],
            payment_day=data["payment_day"],
        )


@dataclass
class RecurringRule:
    id: Optional[str]
    title: str
    base_amount: Decimal
    direction: str  # 'inflow' | 'outflow'
    frequency: str  # 'monthly' | 'yearly'
    day_of_period: int  # 1-31, 31 = last day of period
    start_date: date
    month_of_year: Optional[int] = None  # 1-12, yearly only
    end_date: Optional[date] = None
    counterparty_id: Optional[str] = None
    memo: Optional[str] = None
    is_active: bool = True

    def __post_init__(self) -> None:
        self.base_amount = to_decimal(self.base_amount)
        self.start_date = parse_date(self.start_date)
        self.end_date = _optional_date(self.end_date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "base_amount": str(self.base_amount),
            "direction": self.direction,
            "counterparty_id": self.counterparty_id,
            "memo": self.memo,
            "frequency": self.frequency,
            "day_of_period": self.day_of_period,
            "month_of_year": self.month_of_year,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecurringRule":
        return cls(
            id=data.get("id"),
            title=data.get("title", ""),
            base_amount=data["base_amount"],
            direction=data["direction"],
            frequency=data["frequency"],
            day_of_period=int(data["day_of_period"]),
            start_date=data["start_date"],
            month_of_year=data.get("month_of_year"),
            end_date=data.get("end_date"),
            counterparty_id=data.get("counterparty_id"),
            memo=data.get("memo"),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass
class FinancialEvent:
    """A dated cash movement, either one-off or an instance of a rule."""

    id: Optional[str]
    direction: str
    amount: Decimal
    accrual_date: date
    due_date: Optional[date] = None
    settled: bool = False
    recurring_rule_id: Optional[str] = None
    instance_date: Optional[date] = None
    detached: bool = False
    work_item_id: Optional[str] = None
    counterparty_id: Optional[str] = None
    memo: Optional[str] = None

    def __post_init__(self) -> None:
        self.amount = to_decimal(self.amount)
        self.accrual_date = parse_date(self.accrual_date)
        self.due_date = _optional_date(self.due_date)
        self.instance_date = _optional_date(self.instance_date)
        if self.recurring_rule_id is not None and self.instance_date is None:
            raise ValueError(
                f"Event {self.id} belongs to rule {self.recurring_rule_id} but has no instance date"
            )

    @property
    def display_date(self) -> date:
        """Date the cash moves: the due date, falling back to accrual."""
        return self.due_date or self.accrual_date

    @property
    def series_key(self) -> Tuple[Optional[str], Optional[date]]:
        return (self.recurring_rule_id, self.instance_date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "direction": self.direction,
            "amount": str(self.amount),
            "accrual_date": _iso(self.accrual_date),
            "due_date": _iso(self.due_date),
            "settled": self.settled,
            "recurring_rule_id": self.recurring_rule_id,
            "instance_date": _iso(self.instance_date),
            "detached": self.detached,
            "work_item_id": self.work_item_id,
            "counterparty_id": self.counterparty_id,
            "memo": self.memo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FinancialEvent":
        return cls(
            id=data.get("id"),
            direction=data["direction"],
            amount=data["amount"],
            accrual_date=data["accrual_date"],
            due_date=data.get("due_date"),
            settled=bool(data.get("settled", False)),
            recurring_rule_id=data.get("recurring_rule_id"),
            instance_date=data.get("instance_date"),
            detached=bool(data.get("detached", False)),
            work_item_id=data.get("work_item_id"),
            counterparty_id=data.get("counterparty_id"),
            memo=data.get("memo"),
        )


@dataclass
class CalendarDay:
    date: date
    day_key: str
    in_period: bool
    is_today: bool


@dataclass
class RenderableSlot:
    """One work item's bar segment on one day."""

    item: WorkItem
    row_index: int
    is_range_start: bool
    is_range_end: bool
    is_overflow: bool = False

    @property
    def is_middle(self) -> bool:
        return not self.is_range_start and not self.is_range_end


@dataclass
class DaySummary:
    inflow: Decimal = Decimal("0")
    outflow: Decimal = Decimal("0")
    events: List[FinancialEvent] = field(default_factory=list)
    overflow_count: int = 0

    @property
    def net(self) -> Decimal:
        return self.inflow - self.outflow
