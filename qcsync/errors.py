"""Error types shared by the QC Sync client layers.

Only the fatal categories ever leave :meth:`qcsync.api_client.ApiClient.call`.
:class:`TransientError` is absorbed by the retry loop and only surfaces from
the single-attempt connectivity probe.
"""
from __future__ import annotations


class SyncError(Exception):
    """Base error raised when a sync operation cannot complete."""

    recoverable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(SyncError):
    """Raised when the endpoint URL is missing, malformed or not found."""


class ScriptPermissionError(SyncError):
    """Raised when the web app refuses access (401/403 or a sign-in page)."""


class BackendLogicError(SyncError):
    """Raised when the backend answers with ``{"error": message}``."""


class TransientError(SyncError):
    """Quota, timeout, outage or partial response. Safe to retry."""

    recoverable = True


class ValidationError(SyncError, ValueError):
    """Raised when a write payload fails local validation."""


__all__ = [
    "SyncError",
    "ConfigurationError",
    "ScriptPermissionError",
    "BackendLogicError",
    "TransientError",
    "ValidationError",
]
