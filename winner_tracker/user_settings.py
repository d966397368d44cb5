"""Hourly rate and savings preference, stored as one settings record."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .config import SETTINGS_RECORD_ID
from .errors import StorageError, StorageUnavailable
from .formatting import as_number
from .models import UserSettings
from .repository import RecordKind, RecordRepository
from .state import AppState

logger = logging.getLogger(__name__)


def clean_hourly_rate(value: Any) -> float:
    rate = as_number(value)
    if rate is None or rate < 0:
        return 0.0
    return rate


def clean_savings_percent(value: Any, current: float) -> float:
    """Clamp a savings percentage; unusable input keeps ``current``."""
    percent = as_number(value)
    if percent is None or percent < 0:
        return current
    return min(100.0, percent)


class SettingsService:
    def __init__(self, repository: RecordRepository, state: AppState, record_id: str = SETTINGS_RECORD_ID):
        self.repository = repository
        self.state = state
        self.record_id = record_id

    async def load(self) -> UserSettings:
        """Read the settings record; zero defaults when missing or unreadable."""
        try:
            record = await self.repository.get(RecordKind.USER_SETTINGS, self.record_id)
        except (StorageUnavailable, StorageError) as exc:
            logger.warning("Could not load user settings: %s", exc)
            return self.state.settings
        self.state.settings = UserSettings.from_record(record)
        return self.state.settings

    async def save(self, hourly_rate: Any, savings_percent: Optional[Any] = None) -> UserSettings:
        """Persist new preferences, then adopt them.

        Raises:
            StorageError / StorageUnavailable: the previous settings stay.
        """
        current = self.state.settings
        settings = UserSettings(
            hourly_rate=clean_hourly_rate(hourly_rate),
            savings_percent=clean_savings_percent(savings_percent, current.savings_percent),
        )
        await self.repository.upsert(RecordKind.USER_SETTINGS, self.record_id, settings.to_record())
        self.state.settings = settings
        logger.debug("Saved settings: rate %.2f, savings %.1f%%", settings.hourly_rate, settings.savings_percent)
        return settings
