"""Record repository: the narrow async gateway between the core and the store.

The core never talks to a database client directly. Components receive a
:class:`RecordRepository` and exchange plain dict records with it; the
models module turns those into typed records.

:class:`InMemoryRepository` is the test double and the offline default.
The SQLite-backed document store lives in :mod:`winner_tracker.db`.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from .config import READINESS_ATTEMPTS, READINESS_TIMEOUT
from .errors import PERMISSION_HINT, RecordNotFound, StorageError, StorageUnavailable

logger = logging.getLogger(__name__)


class RecordKind(str, Enum):
    EXPENSE = "expenses"
    RECURRING_BILL = "recurring_bills"
    WORK_SESSION = "work_sessions"
    SAVING_GOAL = "saving_goals"
    USER_SETTINGS = "user_settings"
    INCOME = "income"


class _DeleteField:
    def __repr__(self) -> str:
        return "DELETE_FIELD"

    def __copy__(self) -> "_DeleteField":
        return self

    def __deepcopy__(self, memo) -> "_DeleteField":
        return self


# Passed as a value to ``update``/``upsert`` to remove that field.
DELETE_FIELD = _DeleteField()

Record = Dict[str, Any]


def is_placeholder(record: Record) -> bool:
    """Collections are seeded with ``{"init": True}`` documents; skip them."""
    return bool(record) and record.get('init') is True


def merge_fields(current: Record, fields: Record) -> Record:
    merged = dict(current)
    for name, value in fields.items():
        if value is DELETE_FIELD:
            merged.pop(name, None)
        else:
            merged[name] = value
    return merged


class RecordRepository(ABC):
    """Collection-scoped CRUD over the record kinds.

    Every operation may raise :class:`StorageUnavailable` when the store
    cannot be reached or :class:`StorageError` when it rejects the call.
    Nothing is transactional: multi-record changes are sequential calls.
    """

    @abstractmethod
    async def list_all(self, kind: RecordKind) -> List[Record]:
        """Return every record of ``kind`` (with its ``id``), placeholders excluded."""

    @abstractmethod
    async def get(self, kind: RecordKind, record_id: str) -> Optional[Record]:
        ...

    @abstractmethod
    async def create(self, kind: RecordKind, fields: Record) -> str:
        """Store a new record and return its store-assigned id."""

    @abstractmethod
    async def update(self, kind: RecordKind, record_id: str, fields: Record) -> None:
        """Merge ``fields`` into an existing record; raises :class:`RecordNotFound`."""

    @abstractmethod
    async def upsert(self, kind: RecordKind, record_id: str, fields: Record) -> None:
        """Merge ``fields`` into the record, creating it under ``record_id`` if missing."""

    @abstractmethod
    async def delete(self, kind: RecordKind, record_id: str) -> bool:
        """Remove a record. Returns False when there was nothing to remove."""

    async def delete_where(self, kind: RecordKind, field: str, value: Any) -> int:
        """Delete every record whose ``field`` equals ``value``; returns the count."""
        removed = 0
        for record in await self.list_all(kind):
            if record.get(field) == value and await self.delete(kind, record['id']):
                removed += 1
        return removed

    async def ping(self) -> None:
        """Raise if the store cannot serve a trivial read."""
        await self.list_all(RecordKind.EXPENSE)


class InMemoryRepository(RecordRepository):
    """Dict-backed repository with switchable availability and failure injection.

    ``fail_on(op, kind)`` makes every later call of that operation on that
    kind raise until :meth:`clear_failures`. ``available = False`` makes
    every call raise :class:`StorageUnavailable`.
    """

    def __init__(self, seed: Optional[Dict[RecordKind, List[Record]]] = None):
        self._collections: Dict[RecordKind, Dict[str, Record]] = {kind: {} for kind in RecordKind}
        self._failures: Dict[Tuple[str, RecordKind], Exception] = {}
        self.available = True
        self.calls: List[Tuple[str, RecordKind]] = []
        for kind, records in (seed or {}).items():
            for record in records:
                data = dict(record)
                record_id = data.pop('id', None) or uuid4().hex
                self._collections[kind][record_id] = data

    def fail_on(self, op: str, kind: RecordKind, error: Optional[Exception] = None) -> None:
        self._failures[(op, kind)] = error or StorageError(
            f"{op} on {kind.value} rejected: permission denied", hint=PERMISSION_HINT
        )

    def clear_failures(self) -> None:
        self._failures.clear()

    def records(self, kind: RecordKind) -> Dict[str, Record]:
        """Raw view of a collection, placeholders included (for assertions)."""
        return {record_id: dict(data) for record_id, data in self._collections[kind].items()}

    async def _enter(self, op: str, kind: RecordKind) -> None:
        await asyncio.sleep(0)  # cooperate like real I/O
        self.calls.append((op, kind))
        if not self.available:
            raise StorageUnavailable(f"{kind.value} store unreachable")
        failure = self._failures.get((op, kind))
        if failure is not None:
            raise failure

    async def list_all(self, kind: RecordKind) -> List[Record]:
        await self._enter('list_all', kind)
        return [
            {**copy.deepcopy(data), 'id': record_id}
            for record_id, data in self._collections[kind].items()
            if not is_placeholder(data)
        ]

    async def get(self, kind: RecordKind, record_id: str) -> Optional[Record]:
        await self._enter('get', kind)
        data = self._collections[kind].get(record_id)
        if data is None or is_placeholder(data):
            return None
        return {**copy.deepcopy(data), 'id': record_id}

    async def create(self, kind: RecordKind, fields: Record) -> str:
        await self._enter('create', kind)
        record_id = uuid4().hex
        self._collections[kind][record_id] = merge_fields({}, copy.deepcopy(fields))
        logger.debug("Created %s/%s", kind.value, record_id)
        return record_id

    async def update(self, kind: RecordKind, record_id: str, fields: Record) -> None:
        await self._enter('update', kind)
        current = self._collections[kind].get(record_id)
        if current is None:
            raise RecordNotFound(f"No {kind.value} record with id {record_id}")
        self._collections[kind][record_id] = merge_fields(current, copy.deepcopy(fields))

    async def upsert(self, kind: RecordKind, record_id: str, fields: Record) -> None:
        await self._enter('upsert', kind)
        current = self._collections[kind].get(record_id, {})
        self._collections[kind][record_id] = merge_fields(current, copy.deepcopy(fields))

    async def delete(self, kind: RecordKind, record_id: str) -> bool:
        await self._enter('delete', kind)
        return self._collections[kind].pop(record_id, None) is not None


async def wait_until_ready(
    repository: RecordRepository,
    timeout: float = READINESS_TIMEOUT,
    attempts: int = READINESS_ATTEMPTS,
) -> bool:
    """Bounded readiness check awaited once by the composition root.

    Each attempt is a ``ping`` capped at ``timeout`` seconds. Returns
    False after ``attempts`` failures, which callers treat as offline mode.
    """
    for attempt in range(1, max(1, attempts) + 1):
        try:
            await asyncio.wait_for(repository.ping(), timeout=timeout)
            logger.info("Store ready after %d attempt(s)", attempt)
            return True
        except asyncio.TimeoutError:
            logger.warning("Store readiness attempt %d timed out after %.1fs", attempt, timeout)
        except StorageError as exc:
            # the store answered; a permission problem will surface on writes
            logger.warning("Store readiness check rejected: %s", exc)
            return True
        except StorageUnavailable as exc:
            logger.warning("Store readiness attempt %d failed: %s", attempt, exc)
    logger.warning("Store not ready after %d attempt(s); continuing offline", attempts)
    return False
