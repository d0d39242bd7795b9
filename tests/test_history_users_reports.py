from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from qcsync import reports
from qcsync.history import EditHistory
from qcsync.local_store import MemoryStore
from qcsync.models import QCRecord, QCStatus, User
from qcsync.users import UserRepository


def _record(record_id: str, **overrides) -> QCRecord:
    values = {
        "id": record_id,
        "barcode": f"B{record_id}",
        "product_name": f"Item {record_id}",
        "selling_price": 100.0,
        "inspector_id": "user",
        "timestamp": "2024-05-01T08:00:00Z",
    }
    values.update(overrides)
    return QCRecord(**values)


def test_history_is_newest_first_and_bounded() -> None:
    history = EditHistory(MemoryStore(), limit=3)

    for index in range(5):
        history.record("saveProduct", f"B{index}")

    assert [entry["key"] for entry in history.recent(10)] == ["B4", "B3", "B2"]


def test_history_details_and_clear() -> None:
    store = MemoryStore()
    history = EditHistory(store)

    entry = history.record("deleteProduct", "B1", details={"removed_locally": 1})
    history.clear()

    assert entry["details"] == {"removed_locally": 1}
    assert entry["timestamp"].endswith("Z")
    assert history.recent() == []


def test_login_seeds_default_users() -> None:
    repo = UserRepository(MemoryStore())

    user = repo.login("admin")

    assert user is not None
    assert user.role == "admin"
    assert user.is_online
    assert {entry.username for entry in repo.get_users()} == {"admin", "user"}


def test_inactive_user_cannot_log_in() -> None:
    repo = UserRepository(MemoryStore())
    repo.save_user(User(id="5", username="temp", status="inactive"))

    assert repo.login("temp") is None
    assert repo.login("nobody") is None


def test_save_user_replaces_by_id_and_logout() -> None:
    repo = UserRepository(MemoryStore())
    repo.save_user(User(id="5", username="temp"))
    repo.save_user(User(id="5", username="temp", phone="0812345678"))
    repo.login("temp")

    repo.logout("temp")

    users = repo.get_users()
    assert len(users) == 1
    assert users[0].phone == "0812345678"
    assert users[0].is_online is False
    repo.delete_user("5")
    assert repo.get_users() == []


def test_summarize_counts_and_value() -> None:
    records = [
        _record("1"),
        _record("2", status=QCStatus.DAMAGE, reason="Dent", selling_price=0),
        _record("3", selling_price=50.5),
    ]

    summary = reports.summarize(records)

    assert (summary.total_qc, summary.pass_count, summary.damage_count) == (3, 2, 1)
    assert summary.total_value == pytest.approx(150.5)


def test_filter_records() -> None:
    records = [
        _record("1", product_name="Kettle"),
        _record("2", status=QCStatus.DAMAGE, reason="Dent", inspector_id="admin"),
        _record("3", timestamp="2024-06-02T10:00:00Z"),
    ]

    assert [r.id for r in reports.filter_records(records, search="kett")] == ["1"]
    assert [r.id for r in reports.filter_records(records, status="Damage")] == ["2"]
    assert [r.id for r in reports.filter_records(records, status="All", inspector="user")] == ["1", "3"]
    assert [r.id for r in reports.filter_records(records, reason="Dent")] == ["2"]
    assert [r.id for r in reports.filter_records(records, date_prefix="2024-06")] == ["3"]


def test_filter_options() -> None:
    records = [_record("1", reason="Scratch"), _record("2", inspector_id="admin", reason="Dent"), _record("3")]

    assert reports.inspectors(records) == ["user", "admin"]
    assert reports.reasons(records) == ["Dent", "Scratch"]
