#!/usr/bin/env python3
"""Check recurring-bill links in the local store and repair them."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from winner_tracker.db import SqliteRepository
from winner_tracker.ledger import ExpenseLedger, RepairReport
from winner_tracker.state import AppState


async def repair(db_path: Optional[Path] = None) -> RepairReport:
    repository = SqliteRepository(db_path)
    repository.init_db()
    ledger = ExpenseLedger(repository, AppState())
    await ledger.load(repair=False)
    return await ledger.repair_invariants()


def main(db_path: Optional[Path] = None) -> int:
    report = asyncio.run(repair(db_path))
    if not report.changed and not report.failed:
        print("All recurring bills are linked correctly. 🎉")
        return 0
    print(f"Linked:   {len(report.linked)}")
    print(f"Relinked: {len(report.relinked)}")
    print(f"Unlinked: {len(report.unlinked)}")
    print(f"Removed stray recurring bills: {len(report.removed_bills)}")
    if report.failed:
        print(f"\nCould not repair {len(report.failed)} record(s):")
        for record_id in report.failed:
            print(f"  - {record_id}")
        return 1
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Repair recurring-bill links in the expense store.')
    parser.add_argument('--db', type=Path, default=None, help='SQLite store to repair (defaults to WINNER_DB_PATH)')
    parser.add_argument('--verbose', action='store_true', help='Log every store call')
    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    sys.exit(main(db_path=args.db))
