from __future__ import annotations

import csv
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from qcsync import cli
from qcsync.errors import ConfigurationError
from qcsync.local_store import MemoryStore
from qcsync.settings import SyncSettings
from qcsync.sync_service import SyncService


class _FakeClient:
    def __init__(self, responses: Optional[Dict[str, Any]] = None) -> None:
        self.responses = dict(responses or {})
        self.calls = []

    def call(self, action: str, method: str = "GET", body: Any = None) -> Any:
        self.calls.append((action, method, body))
        result = self.responses.get(action, {"status": "success"})
        if isinstance(result, Exception):
            raise result
        return result

    def probe(self, action: str = "testConnection", method: str = "GET", body: Any = None, *, timeout=None) -> Any:
        return self.call(action, method, body)


@pytest.fixture
def service(monkeypatch: pytest.MonkeyPatch) -> SyncService:
    client = _FakeClient(
        {
            "getProducts": [{"barcode": "B1", "productName": "Kettle", "unitPrice": 199, "stock": 2}],
            "getQCLogs": [
                {"id": "1", "barcode": "B9", "productName": "Fan", "sellingPrice": 0, "Comment": "Broken"},
            ],
        }
    )
    instance = SyncService(MemoryStore(), SyncSettings(), client=client)
    monkeypatch.setattr(cli, "_service", lambda: instance)
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    return instance


def test_fetch_products(service: SyncService, capsys: pytest.CaptureFixture) -> None:
    assert cli.main(["fetch", "products"]) == 0

    out = capsys.readouterr().out
    assert "B1\tKettle\t199.00\t2" in out
    assert "1 products" in out


def test_fetch_reports_errors(service: SyncService, capsys: pytest.CaptureFixture) -> None:
    service.client.responses["getQCLogs"] = ConfigurationError("Endpoint not found (HTTP 404)")

    assert cli.main(["fetch", "logs", "--force"]) == 1
    assert "Error: Endpoint not found" in capsys.readouterr().err


def test_stats(service: SyncService, capsys: pytest.CaptureFixture) -> None:
    assert cli.main(["stats"]) == 0

    out = capsys.readouterr().out
    assert "Total     : 2" in out
    assert "Damage    : 1" in out


def test_diagnostics_exit_code(service: SyncService, capsys: pytest.CaptureFixture) -> None:
    assert cli.main(["test"]) == 0
    service.client.responses["getQCLogs"] = {"nope": 1}

    assert cli.main(["test"]) == 1
    assert "QC logs     : FAILED" in capsys.readouterr().out


def test_set_url_and_history(service: SyncService, capsys: pytest.CaptureFixture) -> None:
    assert cli.main(["config", "set-url", " https://example.test/exec "]) == 0
    assert service.get_api_url() == "https://example.test/exec"

    service.delete_product("B1")
    assert cli.main(["history", "--limit", "1"]) == 0
    assert "deleteProduct" in capsys.readouterr().out


def test_clear_cache(service: SyncService) -> None:
    service.fetch_master_data()

    assert cli.main(["clear-cache"]) == 0
    assert service.cache.master.load() is None


def test_import_and_export_csv(service: SyncService, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    source = tmp_path / "products.csv"
    source.write_text("Barcode,Name,Price\nN1,Iron,250\n,Blank,1\n", encoding="utf-8")

    assert cli.main(["import", str(source)]) == 0
    assert "Imported 1 of 2 rows." in capsys.readouterr().out

    target = tmp_path / "logs.csv"
    assert cli.main(["export", "logs", str(target)]) == 0
    with open(target, "r", encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert rows[0]["RMS Return Item ID"] == "B9"
    assert rows[0]["Status"] == "Damage"


def test_import_missing_file(service: SyncService, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    assert cli.main(["import", str(tmp_path / "absent.csv")]) == 1
    assert "Failed to read CSV file" in capsys.readouterr().err


def test_invalid_credentials_file_reports_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    credentials = tmp_path / "service_account.json"
    credentials.write_text("{}", encoding="utf-8")
    settings = SyncSettings(store_path=str(tmp_path / "qcsync.db"), credential_path=str(credentials))
    monkeypatch.setattr(cli, "load_sync_settings", lambda: settings)
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)

    assert cli.main(["fetch", "products"]) == 1
    assert "Error: JSON missing fields" in capsys.readouterr().err
