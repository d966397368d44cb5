"""Typed records for the tracker and their normalization from raw store data.

The store has no schema enforcement, so every ``from_record`` accepts
whatever a document holds and produces an already-defaulted record. The
rest of the package assumes valid shapes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from .formatting import as_number, month_key, to_timestamp


class ExpenseKind(str, Enum):
    SPENDING = "spending"
    BILL = "bill"


class BillSchedule(str, Enum):
    SINGLE = "single"
    RECURRING = "recurring"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _amount(value: Any) -> float:
    number = as_number(value)
    return number if number is not None else 0.0


def _non_negative(value: Any) -> float:
    return max(0.0, _amount(value))


def _record_id(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def parse_date(value: Any) -> Optional[date]:
    ts = to_timestamp(value)
    if ts is None:
        return None
    return _local_naive(ts).date()


def parse_datetime(value: Any) -> Optional[datetime]:
    ts = to_timestamp(value)
    if ts is None:
        return None
    return _local_naive(ts)


def _local_naive(ts) -> datetime:
    moment = ts.to_pydatetime()
    if moment.tzinfo is not None:
        moment = moment.astimezone().replace(tzinfo=None)
    return moment


def _iso(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment is not None else None


def normalize_kind(value: Any) -> ExpenseKind:
    if isinstance(value, ExpenseKind):
        return value
    if value == ExpenseKind.BILL.value:
        return ExpenseKind.BILL
    return ExpenseKind.SPENDING


def normalize_schedule(kind: ExpenseKind, value: Any) -> BillSchedule:
    if kind is not ExpenseKind.BILL:
        return BillSchedule.SINGLE
    if isinstance(value, BillSchedule):
        return value
    if value == BillSchedule.RECURRING.value:
        return BillSchedule.RECURRING
    return BillSchedule.SINGLE


@dataclass(frozen=True)
class Expense:
    note: str
    amount: float
    date: Optional[date]
    category: str
    kind: ExpenseKind = ExpenseKind.SPENDING
    bill_schedule: BillSchedule = BillSchedule.SINGLE
    id: Optional[str] = None
    recurring_bill_id: Optional[str] = None
    # provisional identity until the store assigns ``id``
    local_id: str = field(default_factory=lambda: uuid4().hex, compare=False)

    @property
    def key(self) -> str:
        return self.id or self.local_id

    @property
    def is_bill(self) -> bool:
        return self.kind is ExpenseKind.BILL

    @property
    def is_recurring_bill(self) -> bool:
        return self.kind is ExpenseKind.BILL and self.bill_schedule is BillSchedule.RECURRING

    @property
    def is_pending(self) -> bool:
        """True for expenses saved locally but never written to the store."""
        return self.id is None

    @property
    def month_key(self) -> str:
        return month_key(self.date) if self.date is not None else ""

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Expense":
        note = record.get('note')
        if note is None:
            note = record.get('notes')
        kind = normalize_kind(record.get('type'))
        schedule = normalize_schedule(kind, record.get('billSchedule'))
        record_id = _record_id(record.get('id'))
        values = dict(
            note=_text(note),
            amount=_non_negative(record.get('amount')),
            date=parse_date(record.get('date')),
            category=_text(record.get('category')),
            kind=kind,
            bill_schedule=schedule,
            id=record_id,
            recurring_bill_id=_record_id(record.get('recurringBillId')),
        )
        if record_id:
            values['local_id'] = record_id
        return cls(**values)

    def to_record(self, include_id: bool = False) -> Dict[str, Any]:
        """Serialize with the store's field names."""
        record: Dict[str, Any] = {
            'note': self.note,
            'amount': self.amount,
            'date': self.date.isoformat() if self.date else "",
            'category': self.category,
            'type': self.kind.value,
            'billSchedule': self.bill_schedule.value,
        }
        if self.recurring_bill_id:
            record['recurringBillId'] = self.recurring_bill_id
        if include_id and self.id:
            record['id'] = self.id
        return record


@dataclass(frozen=True)
class RecurringBill:
    amount: float
    label: str = "Bill"
    expense_id: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "RecurringBill":
        label = record.get('name') or record.get('label') or record.get('note') or "Bill"
        return cls(
            amount=_non_negative(record.get('amount')),
            label=_text(label),
            expense_id=_record_id(record.get('expenseId')),
            id=_record_id(record.get('id')),
        )

    @classmethod
    def mirror_of(cls, expense: Expense) -> "RecurringBill":
        return cls(amount=expense.amount, label=expense.note, expense_id=expense.id)

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            'amount': self.amount,
            'note': self.label,
            'name': self.label,
        }
        if self.expense_id:
            record['expenseId'] = self.expense_id
        return record


def _break_minutes(record: Mapping[str, Any]) -> float:
    direct = as_number(record.get('breakMinutes'))
    if direct is not None:
        return max(0.0, direct)
    breaks = record.get('breaks')
    if not isinstance(breaks, list):
        return 0.0
    total_ms = 0.0
    for entry in breaks:
        if not isinstance(entry, Mapping):
            continue
        start_ms = as_number(entry.get('startMs')) or 0.0
        end_ms = as_number(entry.get('endMs')) or 0.0
        total_ms += end_ms - start_ms
    return max(0.0, total_ms / 60000)


@dataclass(frozen=True)
class WorkSession:
    start_time: Optional[datetime]
    end_time: Optional[datetime] = None
    total_minutes: Optional[float] = None
    break_minutes: float = 0.0
    hourly_rate: Optional[float] = None
    earning: Optional[float] = None
    id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.start_time is not None and self.end_time is None

    @property
    def sort_key(self) -> Optional[datetime]:
        return self.start_time or self.end_time

    @property
    def worked_hours(self) -> float:
        return (self.total_minutes or 0.0) / 60

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "WorkSession":
        return cls(
            start_time=parse_datetime(record.get('startTime')),
            end_time=parse_datetime(record.get('endTime')),
            total_minutes=as_number(record.get('totalMinutes')),
            break_minutes=_break_minutes(record),
            hourly_rate=as_number(record.get('hourlyRate')),
            earning=as_number(record.get('earning')),
            id=_record_id(record.get('id')),
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {'startTime': _iso(self.start_time)}
        if self.end_time is not None:
            record['endTime'] = _iso(self.end_time)
        if self.total_minutes is not None:
            record['totalMinutes'] = self.total_minutes
            record['breakMinutes'] = self.break_minutes
        if self.hourly_rate is not None:
            record['hourlyRate'] = self.hourly_rate
        if self.earning is not None:
            record['earning'] = self.earning
        return record


@dataclass(frozen=True)
class UserSettings:
    hourly_rate: float = 0.0
    savings_percent: float = 0.0

    @classmethod
    def from_record(cls, record: Optional[Mapping[str, Any]]) -> "UserSettings":
        if not record:
            return cls()
        rate = as_number(record.get('hourlyRate'))
        if rate is None or rate < 0:
            rate = 0.0
        percent = as_number(record.get('savingsPercent'))
        if percent is None or percent < 0 or percent > 100:
            percent = 0.0
        return cls(hourly_rate=rate, savings_percent=percent)

    def to_record(self) -> Dict[str, Any]:
        return {'hourlyRate': self.hourly_rate, 'savingsPercent': self.savings_percent}


@dataclass(frozen=True)
class SavingGoal:
    label: str
    target: float
    current: float

    @property
    def progress(self) -> float:
        if self.target > 0:
            return min(100.0, self.current / self.target * 100)
        return 0.0

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "SavingGoal":
        def first(*names: str) -> Any:
            for name in names:
                if record.get(name) is not None:
                    return record.get(name)
            return None

        label = first('name', 'label', 'title', 'note') or "Goal"
        return cls(
            label=_text(label),
            target=_amount(first('target', 'targetAmount', 'goalAmount')),
            current=_amount(first('current', 'currentAmount', 'saved')),
        )
