"""Bounded log of local edits, persisted next to the caches."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from qcsync.local_store import KeyValueStore

_LOGGER = logging.getLogger("qcsync.history")

HISTORY_KEY = "qc_edit_history"


class EditHistory:
    """Newest-first record of saves, deletes and submissions."""

    def __init__(self, store: KeyValueStore, *, limit: int = 200) -> None:
        self._store = store
        self._limit = max(1, limit)
        self._lock = threading.Lock()

    def record(
        self,
        action: str,
        key: str,
        *,
        details: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Persist an entry and return it."""

        timestamp = datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
        entry: Dict[str, Any] = {"action": action, "key": key, "timestamp": timestamp}
        if details:
            entry["details"] = dict(details)

        with self._lock:
            entries = self._load()
            entries.insert(0, entry)
            self._store.set_json(HISTORY_KEY, entries[: self._limit])
        _LOGGER.info("%s %s", action, key)
        return entry

    def recent(self, limit: int = 10) -> List[Dict[str, Any]]:
        with self._lock:
            return self._load()[:limit]

    def clear(self) -> None:
        with self._lock:
            self._store.remove(HISTORY_KEY)

    def _load(self) -> List[Dict[str, Any]]:
        entries = self._store.get_json(HISTORY_KEY, [])
        if not isinstance(entries, list):
            return []
        return [entry for entry in entries if isinstance(entry, dict)]


__all__ = ["EditHistory", "HISTORY_KEY"]
