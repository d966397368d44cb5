from datetime import datetime, timedelta

import pytest

from winner_tracker.errors import AlreadyRunning, InvalidSessionState, StorageError, ValidationError
from winner_tracker.models import UserSettings, WorkSession
from winner_tracker.repository import InMemoryRepository, RecordKind
from winner_tracker.state import AppState
from winner_tracker.work_sessions import SessionStatus, WorkSessionTracker


class FakeClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _tracker(start=datetime(2024, 1, 10, 9, 0), rate=15.0, repo=None):
    clock = FakeClock(start)
    state = AppState(settings=UserSettings(hourly_rate=rate))
    repo = repo or InMemoryRepository()
    return WorkSessionTracker(repo, state, clock), repo, clock


def _session(start, minutes, earning, end=None):
    record = {'startTime': start, 'totalMinutes': minutes, 'earning': earning}
    record['endTime'] = end or start
    return record


@pytest.mark.asyncio
async def test_two_hours_with_half_hour_break_at_fifteen_an_hour():
    tracker, repo, clock = _tracker()

    session_id = await tracker.start()
    clock.advance(hours=2)
    earning = await tracker.stop(30)

    record = repo.records(RecordKind.WORK_SESSION)[session_id]
    assert earning == 22.5
    assert record['totalMinutes'] == 90.0
    assert record['breakMinutes'] == 30.0
    assert record['hourlyRate'] == 15.0
    assert record['endTime'] == '2024-01-10T11:00:00'
    assert tracker.status is SessionStatus.IDLE


@pytest.mark.asyncio
async def test_start_twice_raises_already_running():
    tracker, _, _ = _tracker()
    await tracker.start()

    with pytest.raises(AlreadyRunning):
        await tracker.start()


@pytest.mark.asyncio
async def test_break_longer_than_session_never_goes_negative():
    tracker, _, clock = _tracker()
    await tracker.start()
    clock.advance(minutes=20)

    earning = await tracker.stop(1, unit="hours")

    assert earning == 0.0
    assert tracker.state.sessions[0].total_minutes == 0.0


@pytest.mark.asyncio
async def test_negative_break_counts_as_none():
    tracker, _, clock = _tracker()
    await tracker.start()
    clock.advance(minutes=60)

    assert await tracker.stop(-10) == 15.0


@pytest.mark.asyncio
async def test_pause_freezes_display_and_resume_shifts_anchor():
    tracker, _, clock = _tracker()
    await tracker.start()
    clock.advance(minutes=10)
    tracker.pause()
    clock.advance(minutes=5)

    assert tracker.elapsed_display() == "00:10:00"
    assert tracker.status is SessionStatus.PAUSED

    tracker.resume()
    clock.advance(minutes=1)
    assert tracker.elapsed_seconds() == 660

    # worked time is wall time since the original start, minus the break
    earning = await tracker.stop(0)
    assert tracker.state.sessions[0].total_minutes == 16.0
    assert earning == 4.0


@pytest.mark.asyncio
async def test_stop_while_paused_ends_at_the_pause_moment():
    tracker, repo, clock = _tracker()
    session_id = await tracker.start()
    clock.advance(hours=1)
    tracker.pause()
    clock.advance(hours=3)

    await tracker.stop()

    assert repo.records(RecordKind.WORK_SESSION)[session_id]['totalMinutes'] == 60.0


def test_invalid_transitions_raise():
    tracker, _, _ = _tracker()

    with pytest.raises(InvalidSessionState):
        tracker.pause()
    with pytest.raises(InvalidSessionState):
        tracker.resume()
    assert tracker.elapsed_display() == "00:00:00"


@pytest.mark.asyncio
async def test_stop_without_session_and_bad_unit():
    tracker, _, _ = _tracker()
    with pytest.raises(InvalidSessionState):
        await tracker.stop()

    await tracker.start()
    with pytest.raises(ValidationError):
        await tracker.stop(5, unit="days")


@pytest.mark.asyncio
async def test_failed_stop_keeps_session_active():
    tracker, repo, clock = _tracker()
    await tracker.start()
    clock.advance(hours=1)
    repo.fail_on('update', RecordKind.WORK_SESSION)

    with pytest.raises(StorageError):
        await tracker.stop()

    assert tracker.status is SessionStatus.RUNNING


@pytest.mark.asyncio
async def test_initialize_resumes_unterminated_session_without_duplicate():
    repo = InMemoryRepository(seed={RecordKind.WORK_SESSION: [
        {'id': 'old', 'startTime': '2024-01-09T08:00:00', 'endTime': '2024-01-09T12:00:00',
         'totalMinutes': 240, 'earning': 60},
        {'id': 'open', 'startTime': '2024-01-10T08:30:00'},
    ]})
    tracker, _, _ = _tracker(repo=repo)

    active = await tracker.initialize()
    await tracker.initialize()

    assert active.session_id == 'open'
    assert tracker.elapsed_display() == "00:30:00"
    assert len(repo.records(RecordKind.WORK_SESSION)) == 2
    assert [s.id for s in tracker.state.sessions if s.is_active] == ['open']
    with pytest.raises(AlreadyRunning):
        await tracker.start()


@pytest.mark.asyncio
async def test_edit_session_recomputes_with_current_rate():
    repo = InMemoryRepository(seed={RecordKind.WORK_SESSION: [
        {'id': 's1', 'startTime': '2024-01-08T09:00:00', 'endTime': '2024-01-08T10:00:00',
         'totalMinutes': 60, 'hourlyRate': 10, 'earning': 10},
    ]})
    tracker, _, _ = _tracker(repo=repo, rate=20)
    await tracker.load()

    edited = await tracker.edit_session('s1', '2024-01-08T09:00', '2024-01-08T12:00', break_hours=1, break_minutes=30)

    assert edited.total_minutes == 90.0
    assert edited.earning == 30.0
    assert repo.records(RecordKind.WORK_SESSION)['s1']['earning'] == 30.0

    with pytest.raises(ValidationError):
        await tracker.edit_session('s1', '2024-01-08T12:00', '2024-01-08T12:00')


@pytest.mark.asyncio
async def test_delete_session():
    tracker, repo, clock = _tracker()
    session_id = await tracker.start()
    clock.advance(minutes=30)
    await tracker.stop()

    assert await tracker.delete_session(session_id) is True
    assert tracker.state.sessions == []
    assert repo.records(RecordKind.WORK_SESSION) == {}


def test_today_and_week_earnings_use_local_windows():
    # Wednesday 10 January 2024; the ISO week began on Monday the 8th
    tracker, _, _ = _tracker(start=datetime(2024, 1, 10, 18, 0))
    records = [
        _session('2024-01-10T09:00:00', 120, 30.0),
        _session('2024-01-10T13:00:00', 60, 15.0),
        _session('2024-01-08T09:00:00', 60, 12.0),
        _session('2024-01-07T09:00:00', 60, 99.0),
        {'endTime': '2024-01-10T20:00:00', 'earning': 5.0},
    ]
    tracker.state.sessions = [WorkSession.from_record(record) for record in records]

    assert tracker.today_earnings() == 50.0
    assert tracker.week_earnings() == 62.0
    assert tracker.today_hours() == 3.0


def test_pace_projection_spreads_hours_over_calendar_days():
    tracker, _, _ = _tracker(start=datetime(2024, 1, 10, 18, 0), rate=10.0)
    tracker.state.sessions = [
        WorkSession.from_record(_session('2024-01-10T09:00:00', 120, 30.0)),
        WorkSession.from_record(_session('2024-01-08T09:00:00', 240, 40.0)),
    ]

    pace = tracker.pace_projection()

    # 6 hours over 3 calendar days at today's 15/h
    assert pace.day == 30.0
    assert pace.week == 150.0
    # January 2024 has 23 weekdays
    assert pace.month == 690.0


def test_pace_projection_uses_configured_rate_without_work_today():
    tracker, _, _ = _tracker(start=datetime(2024, 1, 10, 18, 0), rate=12.0)

    assert tracker.pace_projection().day == 0.0

    tracker.state.sessions = [WorkSession.from_record(_session('2024-01-09T09:00:00', 120, 20.0))]

    # 2 hours over 2 days at the configured 12/h
    assert tracker.pace_projection().day == 12.0


def test_session_rows_for_display():
    tracker, _, _ = _tracker()
    tracker.state.sessions = [
        WorkSession.from_record({'id': 's1', 'startTime': '2024-01-05T09:00:00', 'endTime': '2024-01-05T10:30:00',
                                 'totalMinutes': 90, 'breakMinutes': 25, 'earning': 22.5}),
    ]

    row = tracker.session_rows()[0]

    assert (row.date_label, row.duration_label, row.break_label, row.earning) == (
        "5 Jan 2024", "1h 30m", "25 min", 22.5,
    )
    assert row.active is False
