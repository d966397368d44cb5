"""Composition root: wires the components around one :class:`AppState`.

The dashboard (or any other front end) talks to :class:`FinanceController`
only. It awaits store readiness once, loads everything, and afterwards
each ``refresh`` re-reads the store and returns fresh derived values.

Example::

    controller = FinanceController()
    values = asyncio.run(controller.start())
    print(values.safe_to_spend)
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .config import MIRROR_PATH, READINESS_ATTEMPTS, READINESS_TIMEOUT
from .errors import StorageError, StorageUnavailable
from .goals import load_saving_goals
from .income import load_total_income
from .ledger import ExpenseLedger
from .models import UserSettings
from .repository import RecordRepository, wait_until_ready
from .safe_to_spend import DerivedValues, SafeToSpendEngine
from .state import AppState
from .user_settings import SettingsService
from .work_sessions import Clock, WorkSessionTracker

logger = logging.getLogger(__name__)

__all__ = ['AppState', 'FinanceController']


class FinanceController:
    """Owns the application state and the components that share it.

    Args:
        repository: Store gateway; defaults to the SQLite document store.
        state: Pre-built state, mostly for tests.
        clock: Source of "now" for the timer and the derived values.
        mirror_path: Expense mirror file; ``None`` disables it.
        readiness_timeout: Seconds allowed per readiness attempt.
        readiness_attempts: Readiness attempts before going offline.
    """

    def __init__(
        self,
        repository: Optional[RecordRepository] = None,
        state: Optional[AppState] = None,
        clock: Clock = datetime.now,
        mirror_path: Optional[Path] = MIRROR_PATH,
        readiness_timeout: float = READINESS_TIMEOUT,
        readiness_attempts: int = READINESS_ATTEMPTS,
    ):
        if repository is None:
            from .db import SqliteRepository

            repository = SqliteRepository()
        self.repository = repository
        self.state = state or AppState()
        self.clock = clock
        self.readiness_timeout = readiness_timeout
        self.readiness_attempts = readiness_attempts
        self.settings = SettingsService(self.repository, self.state)
        self.ledger = ExpenseLedger(self.repository, self.state, mirror_path)
        self.tracker = WorkSessionTracker(self.repository, self.state, clock)
        self.engine = SafeToSpendEngine(self.ledger, self.tracker, self.state)
        self._ready: Optional[bool] = None

    @property
    def ready(self) -> bool:
        return bool(self._ready)

    async def start(self) -> DerivedValues:
        """Wait for the store once, then load every component.

        When the store never becomes ready the expenses come from the local
        mirror and nothing else is read.
        """
        if self._ready is None:
            self._ready = await wait_until_ready(
                self.repository, self.readiness_timeout, self.readiness_attempts
            )
        if not self._ready:
            self.ledger.use_local_copy()
            return self.snapshot()
        await self.settings.load()
        self.state.saving_goals = await load_saving_goals(self.repository)
        self.state.total_income = await load_total_income(self.repository)
        await self.ledger.load()
        await self.tracker.initialize()
        logger.info("Controller started (%s)", "online" if self.state.online else "offline")
        return self.snapshot()

    async def reconnect(self) -> DerivedValues:
        """Run the readiness check again and, if the store answers, reload."""
        self._ready = None
        return await self.start()

    async def refresh(self, now: Optional[datetime] = None) -> DerivedValues:
        if self._ready is None:
            return await self.start()
        if self._ready:
            await self.ledger.load()
            self.state.total_income = await load_total_income(self.repository)
            await self.tracker.load()
        return self.snapshot(now)

    def snapshot(self, now: Optional[datetime] = None) -> DerivedValues:
        return self.engine.snapshot(now or self.clock())

    async def save_preferences(self, hourly_rate: Any, savings_percent: Optional[Any] = None) -> UserSettings:
        try:
            settings = await self.settings.save(hourly_rate, savings_percent)
        except (StorageError, StorageUnavailable) as exc:
            self.state.last_error = str(exc)
            raise
        self.state.last_error = None
        return settings
