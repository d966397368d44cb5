import asyncio
import importlib.util
from pathlib import Path

from winner_tracker.db import SqliteRepository
from winner_tracker.repository import RecordKind

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "repair_links.py"


def _load_script():
    location = importlib.util.spec_from_file_location("repair_links", SCRIPT)
    module = importlib.util.module_from_spec(location)
    location.loader.exec_module(module)
    return module


def test_repair_script_links_unlinked_recurring_bill(tmp_path, capsys):
    db_path = tmp_path / "store.db"
    repo = SqliteRepository(db_path)
    expense_id = asyncio.run(repo.create(RecordKind.EXPENSE, {
        'note': 'Rent', 'amount': 500, 'date': '2024-01-01', 'category': 'Housing',
        'type': 'bill', 'billSchedule': 'recurring',
    }))
    script = _load_script()

    assert script.main(db_path) == 0
    assert "Linked:   1" in capsys.readouterr().out

    record = asyncio.run(repo.get(RecordKind.EXPENSE, expense_id))
    bills = asyncio.run(repo.list_all(RecordKind.RECURRING_BILL))
    assert [bill['id'] for bill in bills] == [record['recurringBillId']]

    assert script.main(db_path) == 0
    assert "linked correctly" in capsys.readouterr().out
