import pytest

from winner_tracker.errors import StorageUnavailable
from winner_tracker.income import income_amount, load_total_income, sum_income
from winner_tracker.repository import InMemoryRepository, RecordKind


def test_income_amount_field_fallbacks():
    assert income_amount({'amount': 100, 'salary': 900}) == 100.0
    assert income_amount({'salary': '1200.50'}) == 1200.5
    assert income_amount({'value': 40}) == 40.0
    assert income_amount({'amount': 'junk', 'salary': 900}) == 0.0
    assert income_amount({'note': 'nothing'}) == 0.0


def test_sum_income_rounds_to_pennies():
    assert sum_income([{'amount': 0.1}, {'amount': 0.2}]) == 0.3
    assert sum_income([]) == 0.0


@pytest.mark.asyncio
async def test_load_total_income_skips_placeholders_and_survives_outages():
    repo = InMemoryRepository(seed={RecordKind.INCOME: [
        {'id': 'p', 'init': True, 'amount': 999},
        {'salary': 1500},
        {'value': 250},
    ]})

    assert await load_total_income(repo) == 1750.0

    repo.fail_on('list_all', RecordKind.INCOME, StorageUnavailable("offline"))
    assert await load_total_income(repo) == 0.0
