from __future__ import annotations

import json
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from qcsync.settings import (
    LOGS_TTL_SECONDS,
    MASTER_TTL_SECONDS,
    SyncSettings,
    load_sync_settings,
    save_sync_settings,
)


def test_missing_file_is_created_with_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config" / "sync_settings.json"

    settings = load_sync_settings(str(path))

    assert path.exists()
    assert settings.master_ttl_seconds == MASTER_TTL_SECONDS == 300
    assert settings.logs_ttl_seconds == LOGS_TTL_SECONDS == 120
    assert settings.retry_policy().network_error_delay == 3.0


def test_values_are_clamped_and_unknown_keys_ignored(tmp_path: Path) -> None:
    path = tmp_path / "sync_settings.json"
    path.write_text(
        json.dumps(
            {
                "request_timeout": 9999,
                "http_error_delay": -5,
                "history_limit": "lots",
                "store_path": "/tmp/custom.db",
                "unknown": True,
            }
        ),
        encoding="utf-8",
    )

    settings = load_sync_settings(str(path))

    assert settings.request_timeout == 300.0
    assert settings.http_error_delay == 0.0
    assert settings.history_limit == 200
    assert settings.store_path == "/tmp/custom.db"


def test_invalid_json_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "sync_settings.json"
    path.write_text("{broken", encoding="utf-8")

    assert load_sync_settings(str(path)).probe_timeout == 10.0


def test_saved_settings_are_loaded_back(tmp_path: Path) -> None:
    path = str(tmp_path / "sync_settings.json")
    save_sync_settings(SyncSettings(master_ttl_seconds=60, credential_path="/keys/sa.json"), path)

    settings = load_sync_settings(path)

    assert settings.master_ttl_seconds == 60
    assert settings.credential_path == "/keys/sa.json"
