from datetime import datetime, timedelta

import pytest

from winner_tracker.controller import AppState, FinanceController
from winner_tracker.errors import StorageError
from winner_tracker.local_mirror import save_mirror
from winner_tracker.repository import InMemoryRepository, RecordKind
from winner_tracker.user_settings import SettingsService


class FakeClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _controller(repo=None, mirror_path=None, start=datetime(2024, 1, 10, 9, 0)):
    clock = FakeClock(start)
    controller = FinanceController(
        repository=repo or InMemoryRepository(),
        clock=clock,
        mirror_path=mirror_path,
        readiness_timeout=0.5,
        readiness_attempts=2,
    )
    return controller, clock


@pytest.mark.asyncio
async def test_work_day_flows_into_safe_to_spend():
    controller, clock = _controller()
    await controller.start()
    await controller.save_preferences(15, 10)

    await controller.tracker.start()
    clock.advance(hours=2)
    await controller.tracker.stop(30)
    await controller.ledger.add('Lunch', 50, '2024-01-10', 'Food')
    await controller.ledger.add('Dinner', 30, '2024-01-10', 'Food')
    await controller.ledger.add('Rent', 300, '2024-01-01', 'Housing', 'bill', 'single')

    values = await controller.refresh()

    assert values.today_earnings == 22.5
    assert values.suggested_savings == 2.25
    assert values.daily_bills == 10.0
    assert values.safe_to_spend == 10.25
    assert values.category_totals == {'Food': 80.0, 'Housing': 300.0}
    assert values.biggest_category == 'Housing'
    assert values.online is True


@pytest.mark.asyncio
async def test_restart_resumes_active_session_instead_of_duplicating():
    repo = InMemoryRepository()
    first, clock = _controller(repo)
    await first.start()
    session_id = await first.tracker.start()

    second, _ = _controller(repo, start=clock.now + timedelta(minutes=45))
    await second.start()

    assert second.state.active_session.session_id == session_id
    assert second.tracker.elapsed_display() == "00:45:00"
    assert len(repo.records(RecordKind.WORK_SESSION)) == 1


@pytest.mark.asyncio
async def test_unready_store_falls_back_to_mirror(tmp_path):
    mirror = tmp_path / "mirror.json"
    save_mirror([{'id': 'e1', 'note': 'Tea', 'amount': 2, 'date': '2024-01-10', 'category': 'Food'}], mirror)
    repo = InMemoryRepository()
    repo.available = False
    controller, _ = _controller(repo, mirror)

    values = await controller.start()

    assert controller.ready is False
    assert values.online is False
    assert values.monthly_total == 2.0
    assert ('list_all', RecordKind.WORK_SESSION) not in repo.calls


@pytest.mark.asyncio
async def test_unready_store_with_corrupt_mirror_starts_empty(tmp_path):
    mirror = tmp_path / "mirror.json"
    mirror.write_bytes(b'[{"note": "\xff\xfe"}]')
    repo = InMemoryRepository()
    repo.available = False
    controller, _ = _controller(repo, mirror)

    values = await controller.start()

    assert values.online is False
    assert values.monthly_total == 0.0
    assert controller.state.expenses == []
    assert not mirror.exists()


@pytest.mark.asyncio
async def test_reconnect_loads_once_store_is_back(tmp_path):
    repo = InMemoryRepository(seed={RecordKind.EXPENSE: [
        {'id': 'e1', 'note': 'Bus', 'amount': 4, 'date': '2024-01-10', 'category': 'Transport'},
    ]})
    repo.available = False
    controller, _ = _controller(repo, tmp_path / "mirror.json")
    await controller.start()
    assert controller.state.expenses == []

    repo.available = True
    values = await controller.reconnect()

    assert controller.ready is True
    assert values.online is True
    assert values.monthly_total == 4.0


@pytest.mark.asyncio
async def test_save_preferences_clamps_and_records_errors():
    controller, _ = _controller()
    await controller.start()

    settings = await controller.save_preferences(-3, 250)
    assert (settings.hourly_rate, settings.savings_percent) == (0.0, 100.0)

    settings = await controller.save_preferences(12, 'abc')
    assert (settings.hourly_rate, settings.savings_percent) == (12.0, 100.0)

    controller.repository.fail_on('upsert', RecordKind.USER_SETTINGS)
    with pytest.raises(StorageError):
        await controller.save_preferences(20, 5)
    assert controller.state.settings.hourly_rate == 12.0
    assert controller.state.last_error


@pytest.mark.asyncio
async def test_settings_load_reads_singleton_and_defaults():
    repo = InMemoryRepository(seed={RecordKind.USER_SETTINGS: [
        {'id': 'hourly', 'hourlyRate': 11.5, 'savingsPercent': 20},
    ]})
    state = AppState()

    settings = await SettingsService(repo, state).load()
    assert (settings.hourly_rate, settings.savings_percent) == (11.5, 20.0)

    empty_state = AppState()
    assert await SettingsService(InMemoryRepository(), empty_state).load() == empty_state.settings


@pytest.mark.asyncio
async def test_start_loads_saving_goals():
    repo = InMemoryRepository(seed={RecordKind.SAVING_GOAL: [{'name': 'Holiday', 'target': 400, 'current': 100}]})
    controller, _ = _controller(repo)

    await controller.start()

    assert [(g.label, g.progress) for g in controller.state.saving_goals] == [('Holiday', 25.0)]


@pytest.mark.asyncio
async def test_income_summary_and_net_balances():
    repo = InMemoryRepository(seed={RecordKind.INCOME: [{'salary': 1200}, {'amount': 300}]})
    controller, _ = _controller(repo)
    await controller.start()
    await controller.ledger.add('Lunch', 40, '2024-01-10', 'Food')
    await controller.ledger.add('Coat', 60, '2023-12-02', 'Shopping')
    await controller.ledger.add('Rent', 500, '2024-01-01', 'Housing', 'bill', 'recurring')

    values = await controller.refresh()

    assert values.total_income == 1500.0
    assert values.total_expenses == 100.0
    assert values.net_balance == 1400.0
    assert values.monthly_net == 1460.0
