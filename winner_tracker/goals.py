"""Saving goals (read-only)."""

from __future__ import annotations

import logging
from typing import List

from .errors import StorageError, StorageUnavailable
from .models import SavingGoal
from .repository import RecordKind, RecordRepository

logger = logging.getLogger(__name__)


async def load_saving_goals(repository: RecordRepository) -> List[SavingGoal]:
    """Return every saving goal, or an empty list when the store fails."""
    try:
        records = await repository.list_all(RecordKind.SAVING_GOAL)
    except (StorageUnavailable, StorageError) as exc:
        logger.warning("Could not load saving goals: %s", exc)
        return []
    return [SavingGoal.from_record(record) for record in records]
