"""Work-session timer and earnings aggregation.

Sessions move ``Idle -> Running -> (Paused -> Running)* -> Idle``. Only
``start`` and ``stop`` touch the store; pausing is a display convenience
that freezes the on-screen timer. Worked time at stop is always the wall
time since the original start minus the break the user enters.

Earnings windows use each session's start time (or end time when the
start is missing) in local time. Weeks start on Monday.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional

from .errors import AlreadyRunning, InvalidSessionState, StorageError, StorageUnavailable, ValidationError
from .formatting import (
    as_number,
    format_break_label,
    format_duration_minutes,
    format_elapsed,
    format_session_date,
    round2,
    round_half_up,
    working_days_in_month,
)
from .models import WorkSession, parse_datetime
from .repository import RecordKind, RecordRepository
from .state import ActiveSession, AppState

logger = logging.getLogger(__name__)

WORKING_DAYS_PER_WEEK = 5

Clock = Callable[[], datetime]


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass(frozen=True)
class PaceProjection:
    day: float = 0.0
    week: float = 0.0
    month: float = 0.0


@dataclass(frozen=True)
class SessionRow:
    """One line of the session history table."""

    id: Optional[str]
    date_label: str
    duration_label: str
    break_label: str
    earning: Optional[float]
    active: bool


def _day_bounds(moment: datetime):
    start = datetime.combine(moment.date(), time.min)
    return start, start + timedelta(days=1)


def _week_bounds(moment: datetime):
    monday = moment.date() - timedelta(days=moment.weekday())
    start = datetime.combine(monday, time.min)
    return start, start + timedelta(days=7)


def _in_window(sessions: Iterable[WorkSession], start: datetime, end: datetime) -> List[WorkSession]:
    return [s for s in sessions if s.sort_key is not None and start <= s.sort_key < end]


def sum_earnings(sessions: Iterable[WorkSession]) -> float:
    return round2(sum(s.earning for s in sessions if s.earning is not None))


def worked_minutes(start: datetime, finish: datetime, break_minutes: float = 0.0) -> float:
    """Minutes between ``start`` and ``finish`` less the break, never negative."""
    elapsed = (finish - start).total_seconds() / 60
    return round2(max(0.0, elapsed - max(0.0, break_minutes)))


def session_earning(total_minutes: float, hourly_rate: float) -> float:
    return round2(total_minutes / 60 * hourly_rate)


class WorkSessionTracker:
    """Timer state machine plus the session history it persists.

    Args:
        repository: Store gateway.
        state: Shared state; ``sessions`` and ``active_session`` live here
            and the hourly rate is read from ``state.settings``.
        clock: Returns the current local time. Tests pass a fixed clock.
    """

    def __init__(self, repository: RecordRepository, state: AppState, clock: Clock = datetime.now):
        self.repository = repository
        self.state = state
        self.clock = clock

    @property
    def status(self) -> SessionStatus:
        active = self.state.active_session
        if active is None:
            return SessionStatus.IDLE
        return SessionStatus.PAUSED if active.is_paused else SessionStatus.RUNNING

    @property
    def hourly_rate(self) -> float:
        return self.state.settings.hourly_rate

    def find(self, session_id: Optional[str]) -> Optional[WorkSession]:
        for session in self.state.sessions:
            if session.id == session_id:
                return session
        return None

    def _swap(self, updated: WorkSession) -> None:
        self.state.sessions = [updated if s.id == updated.id else s for s in self.state.sessions]

    def _sort(self) -> None:
        self.state.sessions.sort(key=lambda s: s.sort_key or datetime.min, reverse=True)

    # -- loading --------------------------------------------------------------------

    async def load(self) -> List[WorkSession]:
        """Fetch all sessions, newest first. Keeps the current list on failure."""
        try:
            records = await self.repository.list_all(RecordKind.WORK_SESSION)
        except (StorageUnavailable, StorageError) as exc:
            logger.warning("Could not load work sessions: %s", exc)
            return self.state.sessions
        self.state.sessions = [WorkSession.from_record(record) for record in records]
        self._sort()
        logger.info("Loaded %d work sessions", len(self.state.sessions))
        return self.state.sessions

    async def initialize(self) -> Optional[ActiveSession]:
        """Load sessions and resume the most recent unterminated one, if any."""
        await self.load()
        if self.state.active_session is not None:
            return self.state.active_session
        for session in self.state.sessions:
            if session.is_active and session.id:
                self.state.active_session = ActiveSession(
                    session_id=session.id,
                    started_at=session.start_time,
                    anchor=session.start_time,
                )
                logger.info("Resumed active work session %s", session.id)
                break
        return self.state.active_session

    # -- timer ----------------------------------------------------------------------

    async def start(self) -> str:
        if self.state.active_session is not None:
            raise AlreadyRunning("A work session is already running")
        now = self.clock()
        session = WorkSession(start_time=now)
        session_id = await self.repository.create(RecordKind.WORK_SESSION, session.to_record())
        self.state.sessions.insert(0, replace(session, id=session_id))
        self.state.active_session = ActiveSession(session_id=session_id, started_at=now, anchor=now)
        logger.debug("Started work session %s", session_id)
        return session_id

    def pause(self) -> None:
        if self.status is not SessionStatus.RUNNING:
            raise InvalidSessionState(f"Cannot pause while {self.status.value}")
        self.state.active_session.paused_at = self.clock()

    def resume(self) -> None:
        if self.status is not SessionStatus.PAUSED:
            raise InvalidSessionState(f"Cannot resume while {self.status.value}")
        active = self.state.active_session
        active.anchor += self.clock() - active.paused_at
        active.paused_at = None

    def elapsed_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds shown on the timer; paused time is left out."""
        active = self.state.active_session
        if active is None:
            return 0.0
        reference = active.paused_at or now or self.clock()
        return max(0.0, (reference - active.anchor).total_seconds())

    def elapsed_display(self, now: Optional[datetime] = None) -> str:
        return format_elapsed(self.elapsed_seconds(now))

    async def stop(self, break_minutes: Any = 0, unit: str = "minutes") -> float:
        """Finish the active session and return its earning.

        Args:
            break_minutes: Break length to subtract; negative or invalid
                values count as no break.
            unit: ``"minutes"`` or ``"hours"``.

        Raises:
            InvalidSessionState: no session is active.
            StorageError / StorageUnavailable: the session stays active.
        """
        active = self.state.active_session
        if active is None:
            raise InvalidSessionState("No work session is running")
        if unit not in ("minutes", "hours"):
            raise ValidationError(f"Unknown break unit: {unit}", field='unit')
        break_value = max(0.0, as_number(break_minutes) or 0.0)
        if unit == "hours":
            break_value *= 60

        finished = active.paused_at or self.clock()
        total = worked_minutes(active.started_at, finished, break_value)
        rate = self.hourly_rate
        earning = session_earning(total, rate)
        current = self.find(active.session_id) or WorkSession(start_time=active.started_at, id=active.session_id)
        stopped = replace(
            current,
            end_time=finished,
            total_minutes=total,
            break_minutes=round2(break_value),
            hourly_rate=rate,
            earning=earning,
        )
        await self.repository.update(RecordKind.WORK_SESSION, active.session_id, stopped.to_record())

        if self.find(active.session_id) is None:
            self.state.sessions.insert(0, stopped)
        else:
            self._swap(stopped)
        self.state.active_session = None
        logger.debug("Stopped work session %s: %.2f min, earning %.2f", active.session_id, total, earning)
        return earning

    # -- history --------------------------------------------------------------------

    async def edit_session(
        self,
        session_id: str,
        start: Any,
        finish: Any,
        break_hours: Any = 0,
        break_minutes: Any = 0,
    ) -> WorkSession:
        """Rewrite a finished session's times and recompute its earning.

        Raises:
            ValidationError: missing times, or finish not after start.
        """
        started = parse_datetime(start)
        finished = parse_datetime(finish)
        if started is None or finished is None:
            raise ValidationError("Please enter both a start and finish time", field='start')
        if finished <= started:
            raise ValidationError("Finish time must be after start time", field='finish')
        break_total = max(0.0, (as_number(break_hours) or 0.0) * 60 + (as_number(break_minutes) or 0.0))
        total = worked_minutes(started, finished, break_total)
        rate = self.hourly_rate
        current = self.find(session_id) or WorkSession(start_time=started, id=session_id)
        edited = replace(
            current,
            start_time=started,
            end_time=finished,
            total_minutes=total,
            break_minutes=round2(break_total),
            hourly_rate=rate,
            earning=session_earning(total, rate),
        )
        await self.repository.update(RecordKind.WORK_SESSION, session_id, edited.to_record())
        if self.find(session_id) is None:
            self.state.sessions.append(edited)
        else:
            self._swap(edited)
        active = self.state.active_session
        if active is not None and active.session_id == session_id:
            self.state.active_session = None
        self._sort()
        return edited

    async def delete_session(self, session_id: str) -> bool:
        removed = await self.repository.delete(RecordKind.WORK_SESSION, session_id)
        self.state.sessions = [s for s in self.state.sessions if s.id != session_id]
        active = self.state.active_session
        if active is not None and active.session_id == session_id:
            self.state.active_session = None
        return removed

    # -- aggregates -----------------------------------------------------------------

    def today_earnings(self, now: Optional[datetime] = None) -> float:
        start, end = _day_bounds(now or self.clock())
        return sum_earnings(_in_window(self.state.sessions, start, end))

    def week_earnings(self, now: Optional[datetime] = None) -> float:
        start, end = _week_bounds(now or self.clock())
        return sum_earnings(_in_window(self.state.sessions, start, end))

    def today_hours(self, now: Optional[datetime] = None) -> float:
        start, end = _day_bounds(now or self.clock())
        return sum(s.worked_hours for s in _in_window(self.state.sessions, start, end))

    def pace_projection(self, now: Optional[datetime] = None) -> PaceProjection:
        """Extrapolate the average daily hours at today's effective rate.

        The average spreads every worked hour over the calendar days from
        the earliest session to today (or the latest session, if later).
        The effective rate is today's earnings per hour worked today, or
        the configured hourly rate when nothing was earned today.
        """
        now = now or self.clock()
        today_start, _ = _day_bounds(now)
        earned_today = self.today_earnings(now)
        hours_today = self.today_hours(now)
        if hours_today > 0 and earned_today > 0:
            effective_rate = earned_today / hours_today
        else:
            effective_rate = self.hourly_rate

        total_hours = sum(s.worked_hours for s in self.state.sessions)
        keys = [s.sort_key for s in self.state.sessions if s.sort_key is not None]
        range_start = min(keys) if keys else today_start
        latest = max(keys) if keys else today_start
        range_end = latest if latest > today_start else today_start
        span_days = (range_end - range_start).total_seconds() / 86400
        calendar_days = max(1, round_half_up(span_days) + 1)
        per_day = total_hours / calendar_days * effective_rate
        return PaceProjection(
            day=round2(per_day),
            week=round2(WORKING_DAYS_PER_WEEK * per_day),
            month=round2(working_days_in_month(now) * per_day),
        )

    def session_rows(self) -> List[SessionRow]:
        rows = []
        for session in self.state.sessions:
            rows.append(SessionRow(
                id=session.id,
                date_label=format_session_date(session.start_time or session.end_time),
                duration_label=format_duration_minutes(session.total_minutes),
                break_label=format_break_label(session.break_minutes),
                earning=session.earning,
                active=session.is_active,
            ))
        return rows
