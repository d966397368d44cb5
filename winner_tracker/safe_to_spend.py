"""Safe-to-spend derivation.

Turns the ledger and session aggregates into the day's guidance figures::

    daily_bills       = monthly bill expenses / 30 + recurring bills / 30
    suggested_savings = today's earnings x savings percent
    safe_to_spend     = today's earnings - daily_bills - suggested_savings

Bills are spread over a flat 30-day month whatever the calendar says.
Everything here is pure apart from :class:`SafeToSpendEngine`, which reads
the current aggregates off the ledger and tracker.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .formatting import as_number, current_month_key, round2
from .ledger import ExpenseLedger
from .state import AppState
from .work_sessions import PaceProjection, WorkSessionTracker

BILL_AMORTIZATION_DAYS = 30
LIGHT_SPEND_CEILING = 30
STRONG_EARNINGS_FLOOR = 50


class SpendBand(str, Enum):
    TIGHT = "tight"
    LIGHT = "light"
    GOOD = "good"

    @property
    def message(self) -> str:
        return _SPEND_MESSAGES[self]


class SavingsBand(str, Enum):
    NO_EARNINGS = "no_earnings"
    SMALL_WINS = "small_wins"
    GREAT_WORK = "great_work"

    @property
    def message(self) -> str:
        return _SAVINGS_MESSAGES[self]


_SPEND_MESSAGES = {
    SpendBand.TIGHT: "Today is tight — consider reducing spending or working more hours.",
    SpendBand.LIGHT: "You can spend a little today, but keep it light.",
    SpendBand.GOOD: "You're in a good position today — spend mindfully.",
}

_SAVINGS_MESSAGES = {
    SavingsBand.NO_EARNINGS: "Log your work hours to see saving suggestion.",
    SavingsBand.SMALL_WINS: "Small wins add up. Saving a little today keeps you consistent.",
    SavingsBand.GREAT_WORK: "Great work today — locking in saving now builds long term wealth.",
}


def _number(value: Any) -> float:
    number = as_number(value)
    return number if number is not None else 0.0


def daily_bills(monthly_direct_bill_total: Any, recurring_bills_total: Any) -> float:
    """Daily share of this month's bills.

    Example:
        >>> daily_bills(300, 0)
        10.0
    """
    return (
        _number(monthly_direct_bill_total) / BILL_AMORTIZATION_DAYS
        + _number(recurring_bills_total) / BILL_AMORTIZATION_DAYS
    )


def suggested_savings(today_earnings: Any, savings_percent: Any) -> float:
    return round2(_number(today_earnings) * (_number(savings_percent) / 100))


def safe_to_spend(today_earnings: Any, daily_bill_share: Any, savings: Any) -> float:
    return round2(_number(today_earnings) - _number(daily_bill_share) - _number(savings))


def spend_band(amount: Any) -> SpendBand:
    """Band a safe-to-spend figure: below 0, 0 to 30 inclusive, above 30."""
    value = _number(amount)
    if value < 0:
        return SpendBand.TIGHT
    if value <= LIGHT_SPEND_CEILING:
        return SpendBand.LIGHT
    return SpendBand.GOOD


def savings_band(today_earnings: Any) -> SavingsBand:
    value = _number(today_earnings)
    if value == 0:
        return SavingsBand.NO_EARNINGS
    if 0 < value < STRONG_EARNINGS_FLOOR:
        return SavingsBand.SMALL_WINS
    return SavingsBand.GREAT_WORK


@dataclass(frozen=True)
class DerivedValues:
    """Everything the dashboard shows, currency already rounded to 2 decimals."""

    today_earnings: float = 0.0
    week_earnings: float = 0.0
    suggested_savings: float = 0.0
    safe_to_spend: float = 0.0
    daily_bills: float = 0.0
    pace_projection: PaceProjection = field(default_factory=PaceProjection)
    monthly_total: float = 0.0
    category_totals: Dict[str, float] = field(default_factory=dict)
    biggest_category: str = "-"
    recurring_bills_total: float = 0.0
    monthly_overview: Dict[str, float] = field(default_factory=dict)
    average_daily_spend: float = 0.0
    total_income: float = 0.0
    total_expenses: float = 0.0
    net_balance: float = 0.0
    monthly_net: float = 0.0
    safe_to_spend_message: str = SpendBand.LIGHT.message
    savings_message: str = SavingsBand.NO_EARNINGS.message
    online: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SafeToSpendEngine:
    """Combines ledger and tracker aggregates into :class:`DerivedValues`."""

    def __init__(self, ledger: ExpenseLedger, tracker: WorkSessionTracker, state: AppState):
        self.ledger = ledger
        self.tracker = tracker
        self.state = state

    def snapshot(self, now: Optional[datetime] = None) -> DerivedValues:
        now = now or self.tracker.clock()
        month = current_month_key(now)
        earned_today = self.tracker.today_earnings(now)
        recurring_total = self.ledger.recurring_bills_total()
        bill_share = daily_bills(self.ledger.monthly_bill_total(month), recurring_total)
        savings = suggested_savings(earned_today, self.state.settings.savings_percent)
        spendable = safe_to_spend(earned_today, bill_share, savings)
        income = round2(self.state.total_income)
        spent_this_month = self.ledger.monthly_total(month)
        spent_all_time = self.ledger.total_expenses()
        return DerivedValues(
            today_earnings=earned_today,
            week_earnings=self.tracker.week_earnings(now),
            suggested_savings=savings,
            safe_to_spend=spendable,
            daily_bills=round2(bill_share),
            pace_projection=self.tracker.pace_projection(now),
            monthly_total=spent_this_month,
            category_totals=self.ledger.category_totals(month),
            biggest_category=self.ledger.biggest_category(month),
            recurring_bills_total=recurring_total,
            monthly_overview=self.ledger.monthly_overview(month),
            average_daily_spend=self.ledger.average_daily_spend(month),
            total_income=income,
            total_expenses=spent_all_time,
            net_balance=round2(income - spent_all_time),
            monthly_net=round2(income - spent_this_month),
            safe_to_spend_message=spend_band(spendable).message,
            savings_message=savings_band(earned_today).message,
            online=self.state.online,
        )
