"""Application state shared by the tracker components.

One :class:`AppState` is created by the controller and handed to each
component. The ledger owns ``expenses``/``recurring_bills``/
``repair_candidates``; the work-session tracker owns ``sessions`` and
``active_session``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Set

from .models import Expense, RecurringBill, SavingGoal, UserSettings, WorkSession


@dataclass
class ActiveSession:
    session_id: str
    started_at: datetime
    # display anchor; moved forward by resume() so the timer skips pauses
    anchor: datetime
    paused_at: Optional[datetime] = None

    @property
    def is_paused(self) -> bool:
        return self.paused_at is not None


@dataclass
class AppState:
    expenses: List[Expense] = field(default_factory=list)
    recurring_bills: List[RecurringBill] = field(default_factory=list)
    sessions: List[WorkSession] = field(default_factory=list)
    settings: UserSettings = field(default_factory=UserSettings)
    saving_goals: List[SavingGoal] = field(default_factory=list)
    total_income: float = 0.0
    active_session: Optional[ActiveSession] = None
    repair_candidates: Set[str] = field(default_factory=set)
    online: bool = True
    last_error: Optional[str] = None
