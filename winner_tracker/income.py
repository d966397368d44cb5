"""Income records (read-only).

Income documents come from older versions of the app and are not written
here. The amount lives under ``amount``, ``salary`` or ``value``; the
first of those that is present wins.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .errors import StorageError, StorageUnavailable
from .formatting import as_number, round2
from .repository import RecordKind, RecordRepository

logger = logging.getLogger(__name__)

AMOUNT_FIELDS = ('amount', 'salary', 'value')


def income_amount(record: Mapping[str, Any]) -> float:
    for name in AMOUNT_FIELDS:
        if record.get(name) is not None:
            number = as_number(record[name])
            return number if number is not None else 0.0
    return 0.0


def sum_income(records: Iterable[Mapping[str, Any]]) -> float:
    return round2(sum(income_amount(record) for record in records))


async def load_total_income(repository: RecordRepository) -> float:
    """Total of every income record, or 0 when the store fails."""
    try:
        records = await repository.list_all(RecordKind.INCOME)
    except (StorageUnavailable, StorageError) as exc:
        logger.warning("Could not load income: %s", exc)
        return 0.0
    return sum_income(records)
