"""Per-entity read-through cache stored in the local key-value store."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from qcsync.local_store import KeyValueStore
from qcsync.mappers import parse_timestamp
from qcsync.settings import LOGS_TTL_SECONDS, MASTER_TTL_SECONDS

logger = logging.getLogger(__name__)

CACHE_MASTER_KEY = "qc_cache_master"
CACHE_MASTER_TIME_KEY = "qc_cache_time"
CACHE_LOGS_KEY = "qc_cache_logs"
CACHE_LOGS_TIME_KEY = "qc_cache_logs_time"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CachedCollection:
    """A JSON list plus the instant it was fetched.

    ``lock`` must be held around any read-modify-write sequence; the
    individual methods take it themselves so simple reads need nothing.
    """

    def __init__(
        self,
        store: KeyValueStore,
        name: str,
        data_key: str,
        time_key: str,
        ttl_seconds: float,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.name = name
        self.data_key = data_key
        self.time_key = time_key
        self.ttl_seconds = ttl_seconds
        self.lock = threading.RLock()
        self._store = store
        self._clock = clock

    def load(self) -> Optional[List[Dict[str, Any]]]:
        """Return the cached payload, or ``None`` when nothing is cached."""

        with self.lock:
            payload = self._store.get_json(self.data_key)
        if not isinstance(payload, list):
            return None
        return [entry for entry in payload if isinstance(entry, dict)]

    def save(self, entries: List[Dict[str, Any]]) -> None:
        with self.lock:
            self._store.set_json(self.data_key, entries)
            self._store.set(self.time_key, self._clock().isoformat())
        logger.debug("Cached %d %s entries", len(entries), self.name)

    def fetched_at(self) -> Optional[datetime]:
        return parse_timestamp(self._store.get(self.time_key))

    def age(self) -> Optional[float]:
        """Seconds since the last fetch, ``None`` if never fetched."""

        fetched = self.fetched_at()
        if fetched is None:
            return None
        return (self._clock() - fetched).total_seconds()

    def is_fresh(self) -> bool:
        age = self.age()
        return age is not None and age < self.ttl_seconds

    def clear(self) -> None:
        with self.lock:
            self._store.remove_many([self.data_key, self.time_key])
        logger.debug("Cleared %s cache", self.name)

    def remove_where(self, predicate: Callable[[Dict[str, Any]], bool]) -> int:
        """Drop matching entries from the snapshot without touching its timestamp."""

        with self.lock:
            entries = self.load()
            if entries is None:
                return 0
            kept = [entry for entry in entries if not predicate(entry)]
            removed = len(entries) - len(kept)
            if removed:
                self._store.set_json(self.data_key, kept)
        return removed


class CacheManager:
    """Owns the master data and QC log collections."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        master_ttl: float = MASTER_TTL_SECONDS,
        logs_ttl: float = LOGS_TTL_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self.master = CachedCollection(
            store, "master data", CACHE_MASTER_KEY, CACHE_MASTER_TIME_KEY, master_ttl, clock=clock
        )
        self.logs = CachedCollection(
            store, "QC log", CACHE_LOGS_KEY, CACHE_LOGS_TIME_KEY, logs_ttl, clock=clock
        )

    def clear_all(self) -> None:
        self.master.clear()
        self.logs.clear()


__all__ = [
    "CACHE_MASTER_KEY",
    "CACHE_MASTER_TIME_KEY",
    "CACHE_LOGS_KEY",
    "CACHE_LOGS_TIME_KEY",
    "CachedCollection",
    "CacheManager",
    "utc_now",
]
