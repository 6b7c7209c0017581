"""Chat history persistence on top of a SQLite key-value table."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Iterable

import aiosqlite

from .errors import HISTORY_UNAVAILABLE, HistoryError
from .logger import get_logger
from ..services.schemas import HistoryEntry, entries_from_payload, entries_to_payload

__all__ = ["KeyValueStore", "HistoryStore", "HISTORY_KEY"]

HISTORY_KEY = "cortex.chatHistory"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT DEFAULT (datetime('now'))
)
"""

log = get_logger("history")

_MISSING = object()


class KeyValueStore:
    """Global key-value state persisted as JSON values in SQLite."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    @asynccontextmanager
    async def _open(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open the database, enabling WAL and creating the table."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise HistoryError(HISTORY_UNAVAILABLE, f"cannot create {self.path.parent}: {exc}") from exc
        try:
            db = await aiosqlite.connect(self.path)
        except sqlite3.Error as exc:
            raise HistoryError(HISTORY_UNAVAILABLE, f"cannot open {self.path}: {exc}") from exc
        try:
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute(_SCHEMA)
            yield db
        except sqlite3.Error as exc:
            raise HistoryError(HISTORY_UNAVAILABLE, str(exc)) from exc
        finally:
            await db.close()

    async def get(self, key: str, default: Any = None) -> Any:
        async with self._open() as db:
            async with db.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except ValueError:
            log.warning("stored value for %s is not valid JSON, ignoring", key)
            return default

    async def update(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        async with self._open() as db:
            await db.execute(
                """
                INSERT INTO kv (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = datetime('now')
                """,
                (key, payload),
            )
            await db.commit()

    async def delete(self, key: str) -> None:
        async with self._open() as db:
            await db.execute("DELETE FROM kv WHERE key = ?", (key,))
            await db.commit()


class HistoryStore:
    """Save and restore the chat transcript as a whole.

    Operations are serialized in call order so that a save issued before
    a load is always visible to that load.
    """

    def __init__(self, kv: KeyValueStore, *, key: str = HISTORY_KEY) -> None:
        self.kv = kv
        self.key = key
        self._lock: asyncio.Lock | None = None

    @classmethod
    def at(cls, path: Path | str, *, key: str = HISTORY_KEY) -> "HistoryStore":
        return cls(KeyValueStore(path), key=key)

    def _guard(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def save(self, entries: Iterable[HistoryEntry]) -> None:
        """Replace the stored transcript with ``entries``."""
        payload = entries_to_payload(entries)
        async with self._guard():
            await self.kv.update(self.key, payload)
        log.info("saved %d history entries", len(payload))

    async def load(self) -> list[HistoryEntry]:
        """Return the last saved transcript, or an empty list."""
        async with self._guard():
            raw = await self.kv.get(self.key, _MISSING)
        if raw is _MISSING:
            return []
        if not isinstance(raw, list):
            log.warning("stored history is not a list, ignoring")
            return []
        entries = entries_from_payload(raw)
        if len(entries) != len(raw):
            log.warning("skipped %d malformed history entries", len(raw) - len(entries))
        return entries

    async def clear(self) -> None:
        async with self._guard():
            await self.kv.delete(self.key)
        log.info("history cleared")
