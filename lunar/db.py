"""DocumentStore — durable key-value persistence over aiosqlite.

People, memories and scheduled jobs are each stored as one JSON document
under a fixed key and are always read and written whole. A connection is
opened per call, matching the short-lived usage of the rest of the app.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import aiosqlite

from lunar.config import settings

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS documents (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""


class DocumentStore:
    """JSON documents keyed by name in a single SQLite table.

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._db_path

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True
        return db

    async def _read(self, db: aiosqlite.Connection, key: str, default: Any) -> Any:
        cursor = await db.execute("SELECT value FROM documents WHERE key = ?", (key,))
        row = await cursor.fetchone()
        if row is None:
            return default
        return json.loads(row[0])

    async def _write(self, db: aiosqlite.Connection, key: str, value: Any) -> None:
        await db.execute(
            "INSERT OR REPLACE INTO documents (key, value, updated_at) VALUES (?, ?, ?)",
            (key, json.dumps(value), datetime.now(UTC).isoformat()),
        )
        await db.commit()

    # -- API -------------------------------------------------------------------

    async def get(self, key: str, default: Any = None) -> Any:
        """Return the document stored under *key*, or *default*."""
        db = await self._connect()
        try:
            return await self._read(db, key, default)
        finally:
            await db.close()

    async def set(self, key: str, value: Any) -> None:
        """Replace the document stored under *key*."""
        async with self._write_lock:
            db = await self._connect()
            try:
                await self._write(db, key, value)
            finally:
                await db.close()

    async def update(
        self,
        key: str,
        mutate: Callable[[Any], Any],
        default: Any = None,
    ) -> Any:
        """Read, transform and write back a document as one step.

        *mutate* receives the current document (or *default*) and returns the
        new one. Concurrent updates through the same store are serialised.
        """
        async with self._write_lock:
            db = await self._connect()
            try:
                current = await self._read(db, key, default)
                updated = mutate(current)
                await self._write(db, key, updated)
                return updated
            finally:
                await db.close()

    async def delete(self, key: str) -> bool:
        """Remove a document. Returns True if one existed."""
        async with self._write_lock:
            db = await self._connect()
            try:
                cursor = await db.execute("DELETE FROM documents WHERE key = ?", (key,))
                await db.commit()
                return cursor.rowcount > 0
            finally:
                await db.close()
