"""SQLite-backed document store implementing :class:`RecordRepository`.

Records are schemaless JSON documents keyed by ``(kind, id)``, matching
the collection/document shape of a hosted document database. Blocking
sqlite calls run in a worker thread so the event loop never stalls.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Union
from uuid import uuid4

from .config import DB_PATH, USER_ID, ensure_data_directories
from .errors import PERMISSION_HINT, RecordNotFound, StorageError, StorageUnavailable
from .repository import Record, RecordKind, RecordRepository, is_placeholder, merge_fields

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS records (
    user_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    id TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT,
    updated_at TEXT,
    PRIMARY KEY (user_id, kind, id)
);

CREATE INDEX IF NOT EXISTS ix_records_kind ON records (user_id, kind);
"""


def _encode(record: Record) -> str:
    return json.dumps(record, default=str, sort_keys=True)


def _decode(raw: str) -> Record:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {}
    return data if isinstance(data, dict) else {}


def _translate(exc: sqlite3.Error) -> Exception:
    message = str(exc)
    if isinstance(exc, sqlite3.OperationalError) and (
        "unable to open" in message or "locked" in message or "disk I/O" in message
    ):
        return StorageUnavailable(message)
    if "readonly" in message or "read-only" in message:
        return StorageError(message, hint=PERMISSION_HINT)
    return StorageError(message)


class SqliteRepository(RecordRepository):
    """Document store on a single SQLite file, scoped to one user id."""

    def __init__(self, db_path: Union[str, Path, None] = None, user_id: str = USER_ID):
        self.db_path = Path(db_path) if db_path is not None else DB_PATH
        self.user_id = user_id

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        if self.db_path == DB_PATH:
            ensure_data_directories()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def ensure_base_collections(self) -> List[RecordKind]:
        """Seed an ``init`` placeholder into every empty collection."""
        seeded: List[RecordKind] = []
        now = datetime.now().isoformat()
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            for kind in RecordKind:
                row = conn.execute(
                    "SELECT 1 FROM records WHERE user_id = ? AND kind = ? LIMIT 1",
                    (self.user_id, kind.value),
                ).fetchone()
                if row is None:
                    conn.execute(
                        "INSERT INTO records (user_id, kind, id, data, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                        (self.user_id, kind.value, uuid4().hex, _encode({'init': True}), now, now),
                    )
                    seeded.append(kind)
            conn.commit()
        if seeded:
            logger.info("Seeded base collections: %s", ", ".join(k.value for k in seeded))
        return seeded

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise _translate(exc) from exc

    # -- blocking implementations -------------------------------------------------

    def _list_all(self, kind: RecordKind) -> List[Record]:
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            rows = conn.execute(
                "SELECT id, data FROM records WHERE user_id = ? AND kind = ? ORDER BY created_at, rowid",
                (self.user_id, kind.value),
            ).fetchall()
        records = []
        for record_id, raw in rows:
            data = _decode(raw)
            if is_placeholder(data):
                continue
            records.append({**data, 'id': record_id})
        return records

    def _get(self, kind: RecordKind, record_id: str) -> Optional[Record]:
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            row = conn.execute(
                "SELECT data FROM records WHERE user_id = ? AND kind = ? AND id = ?",
                (self.user_id, kind.value, record_id),
            ).fetchone()
        if row is None:
            return None
        data = _decode(row[0])
        if is_placeholder(data):
            return None
        return {**data, 'id': record_id}

    def _write(self, kind: RecordKind, record_id: str, fields: Record, must_exist: bool) -> None:
        now = datetime.now().isoformat()
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            row = conn.execute(
                "SELECT data FROM records WHERE user_id = ? AND kind = ? AND id = ?",
                (self.user_id, kind.value, record_id),
            ).fetchone()
            if row is None and must_exist:
                raise RecordNotFound(f"No {kind.value} record with id {record_id}")
            current = _decode(row[0]) if row is not None else {}
            merged = merge_fields(current, fields)
            if row is None:
                conn.execute(
                    "INSERT INTO records (user_id, kind, id, data, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                    (self.user_id, kind.value, record_id, _encode(merged), now, now),
                )
            else:
                conn.execute(
                    "UPDATE records SET data = ?, updated_at = ? WHERE user_id = ? AND kind = ? AND id = ?",
                    (_encode(merged), now, self.user_id, kind.value, record_id),
                )
            conn.commit()

    def _delete(self, kind: RecordKind, record_id: str) -> bool:
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            cursor = conn.execute(
                "DELETE FROM records WHERE user_id = ? AND kind = ? AND id = ?",
                (self.user_id, kind.value, record_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    # -- RecordRepository ---------------------------------------------------------

    async def list_all(self, kind: RecordKind) -> List[Record]:
        return await self._run(self._list_all, kind)

    async def get(self, kind: RecordKind, record_id: str) -> Optional[Record]:
        return await self._run(self._get, kind, record_id)

    async def create(self, kind: RecordKind, fields: Record) -> str:
        record_id = uuid4().hex
        await self._run(self._write, kind, record_id, fields, False)
        logger.debug("Created %s/%s", kind.value, record_id)
        return record_id

    async def update(self, kind: RecordKind, record_id: str, fields: Record) -> None:
        await self._run(self._write, kind, record_id, fields, True)

    async def upsert(self, kind: RecordKind, record_id: str, fields: Record) -> None:
        await self._run(self._write, kind, record_id, fields, False)

    async def delete(self, kind: RecordKind, record_id: str) -> bool:
        return await self._run(self._delete, kind, record_id)
