"""Collapse identical concurrent API calls into a single network request."""
from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import Future
from typing import Any, Dict, Mapping, Optional

from qcsync.api_client import ApiClient

logger = logging.getLogger(__name__)


def request_key(action: str, method: str, body: Optional[Mapping[str, Any]] = None) -> str:
    """Return a deterministic key for ``(action, method, body)``."""

    canonical = json.dumps(body or {}, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return f"{action}|{method.upper()}|{canonical}"


class RequestCoalescer:
    """Share one in-flight call between every caller asking for the same thing.

    The first caller for a key performs the request on its own thread; later
    callers block on the same :class:`~concurrent.futures.Future`.  The key is
    dropped from the registry as soon as the call settles, so a request made
    after completion always reaches the network again.
    """

    def __init__(self, client: ApiClient) -> None:
        self._client = client
        self._lock = threading.Lock()
        self._pending: Dict[str, Future] = {}

    @property
    def client(self) -> ApiClient:
        return self._client

    def in_flight(self) -> int:
        with self._lock:
            return len(self._pending)

    def call(self, action: str, method: str = "GET", body: Optional[Mapping[str, Any]] = None) -> Any:
        key = request_key(action, method, body)
        with self._lock:
            pending = self._pending.get(key)
            if pending is None:
                future: Future = Future()
                self._pending[key] = future
        if pending is not None:
            logger.debug("Joining in-flight request %s", action)
            return pending.result()

        try:
            result = self._client.call(action, method, body)
        except BaseException as exc:
            self._release(key)
            future.set_exception(exc)
            raise
        self._release(key)
        future.set_result(result)
        return result

    def _release(self, key: str) -> None:
        with self._lock:
            self._pending.pop(key, None)


__all__ = ["RequestCoalescer", "request_key"]
