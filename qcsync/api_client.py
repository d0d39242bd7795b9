"""HTTP client for the spreadsheet web app.

The Apps Script endpoint is an unreliable partner: quota exhaustion and
execution timeouts come back as HTML pages with a 200 status, redirects
occasionally truncate the JSON body, and a deployment with the wrong access
setting answers with a Google sign-in page.  This module turns every response
into one of three outcomes:

``SUCCESS``
    Parsed JSON, returned to the caller.

``FATAL``
    Configuration, permission or backend logic errors.  Raised immediately,
    never retried.

``TRANSIENT``
    Everything else.  :meth:`ApiClient.call` waits a fixed delay and tries
    again, without limit, until the service recovers.  Callers that need a
    bounded wait use :meth:`ApiClient.probe` or :func:`call_with_timeout`.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import urlencode

import requests
from google.auth import exceptions as google_auth_exceptions

from qcsync.errors import (
    BackendLogicError,
    ConfigurationError,
    ScriptPermissionError,
    SyncError,
    TransientError,
)
from qcsync.settings import RetryPolicy

logger = logging.getLogger(__name__)

PERMISSION_MARKERS = ("google drive", "script.google.com", "accounts.google.com")
QUOTA_MARKERS = ("quota", "exceeded")
PERMISSION_HINT = "Script permission error: set 'Who has access' to 'Anyone' and redeploy."

_INVALID_URL_ERRORS = (
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidURL,
)

# google-auth raises these from AuthorizedSession token refreshes.
_NETWORK_ERRORS = (requests.RequestException, google_auth_exceptions.TransportError)
_REFRESH_ERRORS = (google_auth_exceptions.RefreshError,)
_SESSION_ERRORS = _NETWORK_ERRORS + _REFRESH_ERRORS


class Outcome(Enum):
    SUCCESS = "success"
    TRANSIENT = "transient"
    FATAL = "fatal"


@dataclass
class Classification:
    """Result of inspecting one HTTP exchange."""

    outcome: Outcome
    payload: Any = None
    error: Optional[SyncError] = None
    delay: float = 0.0
    reason: str = ""


def _snippet(text: str, limit: int = 80) -> str:
    flattened = " ".join(text.split())
    return flattened[:limit]


def classify_response(status_code: int, text: str, policy: Optional[RetryPolicy] = None) -> Classification:
    """Classify an HTTP status and body.  Checks run in a fixed order."""

    policy = policy or RetryPolicy()

    if status_code == 404:
        return Classification(
            Outcome.FATAL,
            error=ConfigurationError("Endpoint not found (HTTP 404). Check the web app URL."),
            reason="http 404",
        )
    if status_code in (401, 403):
        return Classification(
            Outcome.FATAL,
            error=ScriptPermissionError(f"{PERMISSION_HINT} (HTTP {status_code})"),
            reason=f"http {status_code}",
        )
    if not 200 <= status_code < 300:
        return Classification(Outcome.TRANSIENT, delay=policy.http_error_delay, reason=f"http {status_code}")

    body = (text or "").lstrip("\ufeff").strip()
    if body.startswith("<"):
        lowered = body.lower()
        quota = any(marker in lowered for marker in QUOTA_MARKERS)
        permission = any(marker in lowered for marker in PERMISSION_MARKERS)
        if permission and not quota:
            return Classification(
                Outcome.FATAL,
                error=ScriptPermissionError(PERMISSION_HINT),
                reason="html permission page",
            )
        return Classification(
            Outcome.TRANSIENT,
            delay=policy.html_error_delay,
            reason="html quota page" if quota else "html response",
        )

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return Classification(
            Outcome.TRANSIENT,
            delay=policy.parse_error_delay,
            reason=f"invalid json: {_snippet(body)!r}",
        )

    if isinstance(payload, dict) and payload.get("error"):
        return Classification(
            Outcome.FATAL,
            error=BackendLogicError(str(payload["error"])),
            reason="backend error",
        )
    return Classification(Outcome.SUCCESS, payload=payload)


def classify_exception(exc: Exception, policy: Optional[RetryPolicy] = None) -> Classification:
    """Classify a network-level failure raised before any response arrived."""

    policy = policy or RetryPolicy()
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, _REFRESH_ERRORS):
        return Classification(
            Outcome.FATAL,
            error=ScriptPermissionError(f"Service account token refresh failed: {message}"),
            reason="token refresh",
        )
    if isinstance(exc, google_auth_exceptions.TransportError):
        return Classification(
            Outcome.TRANSIENT,
            delay=policy.network_error_delay,
            reason="network error: token refresh transport",
        )
    if isinstance(exc, _INVALID_URL_ERRORS) or "not configured" in lowered:
        return Classification(
            Outcome.FATAL,
            error=ConfigurationError(f"Invalid endpoint URL: {message}"),
            reason="configuration",
        )
    if "permission" in lowered:
        return Classification(
            Outcome.FATAL,
            error=ScriptPermissionError(f"{PERMISSION_HINT} ({message})"),
            reason="permission",
        )
    return Classification(
        Outcome.TRANSIENT,
        delay=policy.network_error_delay,
        reason=f"network error: {exc.__class__.__name__}",
    )


def build_url(base_url: str, action: str, timestamp_ms: int) -> str:
    """Append the action and a cache-busting ``_t`` parameter to ``base_url``."""

    separator = "&" if "?" in base_url else "?"
    query = urlencode({"action": action, "_t": timestamp_ms})
    return f"{base_url}{separator}{query}"


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class ApiClient:
    """Calls the web app with an unbounded retry policy for transient faults."""

    def __init__(
        self,
        url_provider: Callable[[], str],
        *,
        session: Optional[requests.Session] = None,
        policy: Optional[RetryPolicy] = None,
        timeout: float = 30.0,
        probe_timeout: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
        clock_ms: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._url_provider = url_provider
        self._session = session or requests.Session()
        self._policy = policy or RetryPolicy()
        self._timeout = timeout
        self._probe_timeout = probe_timeout
        self._sleep = sleep
        self._clock_ms = clock_ms

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def call(self, action: str, method: str = "GET", body: Optional[Mapping[str, Any]] = None) -> Any:
        """Return the parsed JSON response for ``action``.

        Fatal conditions raise :class:`ConfigurationError`,
        :class:`ScriptPermissionError` or :class:`BackendLogicError`.
        Transient conditions are retried until they clear.
        """

        attempt = 0
        while True:
            attempt += 1
            classification = self._attempt(action, method, body, self._timeout)
            if classification.outcome is Outcome.SUCCESS:
                if attempt > 1:
                    logger.info("API %s succeeded after %d attempts", action, attempt)
                return classification.payload
            if classification.outcome is Outcome.FATAL:
                logger.error("API %s failed: %s", action, classification.error)
                raise classification.error or SyncError(classification.reason)
            logger.warning(
                "API %s attempt %d failed (%s). Retrying in %ss",
                action,
                attempt,
                classification.reason,
                classification.delay,
            )
            self._sleep(classification.delay)

    def probe(
        self,
        action: str = "testConnection",
        method: str = "GET",
        body: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Any:
        """Single attempt with a bounded timeout.  Transient faults raise."""

        classification = self._attempt(action, method, body, timeout or self._probe_timeout)
        if classification.outcome is Outcome.SUCCESS:
            return classification.payload
        if classification.outcome is Outcome.FATAL:
            raise classification.error or SyncError(classification.reason)
        raise TransientError(f"Service temporarily unavailable ({classification.reason})")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _base_url(self) -> str:
        url = (self._url_provider() or "").strip()
        if not url:
            raise ConfigurationError("Google Script URL not configured")
        return url

    def _attempt(
        self,
        action: str,
        method: str,
        body: Optional[Mapping[str, Any]],
        timeout: float,
    ) -> Classification:
        url = build_url(self._base_url(), action, self._clock_ms())
        method = method.upper()
        kwargs: Dict[str, Any] = {
            "headers": {"Content-Type": "text/plain;charset=utf-8"},
            "timeout": timeout,
            "allow_redirects": True,
        }
        if method == "POST":
            payload = dict(body or {})
            payload["action"] = action
            kwargs["data"] = json.dumps(payload, ensure_ascii=False).encode("utf-8")

        logger.debug("API %s %s", method, action)
        try:
            response = self._session.request(method, url, **kwargs)
        except _SESSION_ERRORS as exc:
            return classify_exception(exc, self._policy)
        return classify_response(response.status_code, response.text, self._policy)


def call_with_timeout(func: Callable[..., Any], timeout: float, *args: Any, **kwargs: Any) -> Any:
    """Run ``func`` on a daemon thread and wait at most ``timeout`` seconds.

    On timeout the worker is abandoned, not stopped: an unbounded retry loop
    keeps running in the background until it reaches a terminal state.
    """

    result: Future = Future()

    def _runner() -> None:
        try:
            result.set_result(func(*args, **kwargs))
        except Exception as exc:
            result.set_exception(exc)

    threading.Thread(target=_runner, name="qcsync-bounded-call", daemon=True).start()
    try:
        return result.result(timeout=timeout)
    except FutureTimeoutError as exc:
        raise TimeoutError(f"Operation did not finish within {timeout}s") from exc


__all__ = [
    "ApiClient",
    "Classification",
    "Outcome",
    "build_url",
    "call_with_timeout",
    "classify_exception",
    "classify_response",
]
