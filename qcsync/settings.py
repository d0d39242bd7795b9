"""Application configuration helpers for QC Sync."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional

from qcsync import app_paths


logger = logging.getLogger(__name__)


DEFAULT_API_URL = os.getenv(
    "QCSYNC_API_URL",
    "https://script.google.com/macros/s/AKfycbwQnrHQ4FL6bWpABG-416FJeUVvCpEQtYQCB41CF8Avbk5hqxPB255EHBtuNg9W95kH6Q/exec",
)
DEFAULT_STORE_PATH = os.getenv("QCSYNC_STORE_PATH", str(app_paths.APP_DIR / "qcsync.db"))
DEFAULT_CREDENTIALS_PATH = os.getenv("QCSYNC_CREDENTIALS_PATH", "")
SYNC_SETTINGS_PATH = str(app_paths.APP_DIR / "sync_settings.json")

MASTER_TTL_SECONDS = 300
LOGS_TTL_SECONDS = 120


@dataclass
class RetryPolicy:
    """Fixed backoff delays, in seconds, per transient failure category."""

    http_error_delay: float = 2.0
    html_error_delay: float = 3.0
    parse_error_delay: float = 2.0
    network_error_delay: float = 3.0


@dataclass
class SyncSettings:
    store_path: str = DEFAULT_STORE_PATH
    credential_path: str = DEFAULT_CREDENTIALS_PATH
    request_timeout: float = 30.0
    probe_timeout: float = 10.0
    master_ttl_seconds: int = MASTER_TTL_SECONDS
    logs_ttl_seconds: int = LOGS_TTL_SECONDS
    http_error_delay: float = 2.0
    html_error_delay: float = 3.0
    parse_error_delay: float = 2.0
    network_error_delay: float = 3.0
    history_limit: int = 200

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            http_error_delay=self.http_error_delay,
            html_error_delay=self.html_error_delay,
            parse_error_delay=self.parse_error_delay,
            network_error_delay=self.network_error_delay,
        )

    def to_json(self) -> Dict[str, object]:
        return {
            "store_path": self.store_path,
            "credential_path": self.credential_path,
            "request_timeout": self.request_timeout,
            "probe_timeout": self.probe_timeout,
            "master_ttl_seconds": self.master_ttl_seconds,
            "logs_ttl_seconds": self.logs_ttl_seconds,
            "http_error_delay": self.http_error_delay,
            "html_error_delay": self.html_error_delay,
            "parse_error_delay": self.parse_error_delay,
            "network_error_delay": self.network_error_delay,
            "history_limit": self.history_limit,
        }


_DEFAULTS: Dict[str, object] = SyncSettings().to_json()

# (minimum, maximum) accepted for numeric settings; out of range values are clamped.
_BOUNDS: Dict[str, tuple] = {
    "request_timeout": (1.0, 300.0),
    "probe_timeout": (1.0, 60.0),
    "master_ttl_seconds": (0, 86400),
    "logs_ttl_seconds": (0, 86400),
    "http_error_delay": (0.0, 120.0),
    "html_error_delay": (0.0, 120.0),
    "parse_error_delay": (0.0, 120.0),
    "network_error_delay": (0.0, 120.0),
    "history_limit": (1, 5000),
}


def _clamp(key: str, value: object) -> object:
    default = _DEFAULTS[key]
    low, high = _BOUNDS[key]
    try:
        number = int(value) if isinstance(default, int) else float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid value for %s: %r", key, value)
        return default
    return max(low, min(high, number))


def _ensure_sync_settings(path: str) -> Dict[str, object]:
    if not os.path.exists(path):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(_DEFAULTS, handle, indent=2)
        return dict(_DEFAULTS)

    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError:
            logger.warning("Settings file %s is not valid JSON, using defaults", path)
            data = {}

    merged: Dict[str, object] = dict(_DEFAULTS)
    if not isinstance(data, dict):
        return merged
    for key, value in data.items():
        if key not in merged:
            continue
        if key in _BOUNDS:
            merged[key] = _clamp(key, value)
        elif isinstance(value, str):
            merged[key] = value
    return merged


def load_sync_settings(path: Optional[str] = None) -> SyncSettings:
    data = _ensure_sync_settings(path or SYNC_SETTINGS_PATH)
    return SyncSettings(
        store_path=str(data["store_path"]),
        credential_path=str(data["credential_path"]),
        request_timeout=float(data["request_timeout"]),  # type: ignore[arg-type]
        probe_timeout=float(data["probe_timeout"]),  # type: ignore[arg-type]
        master_ttl_seconds=int(data["master_ttl_seconds"]),  # type: ignore[arg-type]
        logs_ttl_seconds=int(data["logs_ttl_seconds"]),  # type: ignore[arg-type]
        http_error_delay=float(data["http_error_delay"]),  # type: ignore[arg-type]
        html_error_delay=float(data["html_error_delay"]),  # type: ignore[arg-type]
        parse_error_delay=float(data["parse_error_delay"]),  # type: ignore[arg-type]
        network_error_delay=float(data["network_error_delay"]),  # type: ignore[arg-type]
        history_limit=int(data["history_limit"]),  # type: ignore[arg-type]
    )


def save_sync_settings(settings: SyncSettings, path: Optional[str] = None) -> None:
    target = path or SYNC_SETTINGS_PATH
    directory = os.path.dirname(target)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(target, "w", encoding="utf-8") as handle:
        json.dump(settings.to_json(), handle, indent=2)


__all__ = [
    "DEFAULT_API_URL",
    "DEFAULT_STORE_PATH",
    "DEFAULT_CREDENTIALS_PATH",
    "MASTER_TTL_SECONDS",
    "LOGS_TTL_SECONDS",
    "RetryPolicy",
    "SyncSettings",
    "load_sync_settings",
    "save_sync_settings",
]
