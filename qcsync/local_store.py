"""Durable key-value storage used for caches, configuration and history.

The store has no expiry semantics of its own; staleness is decided by the
cache layer from the timestamps it writes next to each payload.  Two
implementations share the same surface:

``SQLiteStore``
    A single ``kv_store`` table in a local SQLite file.  Every operation opens
    its own connection so the store can be shared between worker threads.

``MemoryStore``
    A dictionary guarded by a lock.  Used by the tests and by short-lived
    command line invocations that should not touch the user's cache.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

KV_TABLE_SQL = (
    "CREATE TABLE IF NOT EXISTS kv_store ("
    "key TEXT PRIMARY KEY, "
    "value TEXT NOT NULL, "
    "updated_at TEXT NOT NULL)"
)


def _utc_now_text() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class KeyValueStore:
    """String key-value storage with JSON convenience helpers."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable value stored under %s", key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False))

    def remove_many(self, keys: List[str]) -> None:
        for key in keys:
            self.remove(key)


class MemoryStore(KeyValueStore):
    """In-process store, discarded when the interpreter exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


class SQLiteStore(KeyValueStore):
    """Key-value store persisted to a SQLite database file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._schema_ready = False
        if self._path.parent and not self._path.parent.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self._path))
        conn.row_factory = sqlite3.Row
        try:
            if not self._schema_ready:
                with conn:
                    conn.execute(KV_TABLE_SQL)
                self._schema_ready = True
            yield conn
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        with self._lock, self._connection() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return None if row is None else row["value"]

    def set(self, key: str, value: str) -> None:
        with self._lock, self._connection() as conn:
            with conn:
                conn.execute(
                    "INSERT INTO kv_store(key, value, updated_at) VALUES(?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value, "
                    "updated_at=excluded.updated_at",
                    (key, value, _utc_now_text()),
                )

    def remove(self, key: str) -> None:
        with self._lock, self._connection() as conn:
            with conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self) -> List[str]:
        with self._lock, self._connection() as conn:
            rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [row["key"] for row in rows]


__all__ = ["KeyValueStore", "MemoryStore", "SQLiteStore"]
