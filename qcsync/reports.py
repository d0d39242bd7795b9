"""Summary figures and filters over QC records for dashboards and reports."""
from __future__ import annotations

from typing import Iterable, List, Optional, Union

from qcsync.models import QCRecord, QCStatus, StatSummary


def summarize(records: Iterable[QCRecord]) -> StatSummary:
    summary = StatSummary()
    for record in records:
        summary.total_qc += 1
        if record.status is QCStatus.DAMAGE:
            summary.damage_count += 1
        else:
            summary.pass_count += 1
        summary.total_value += record.selling_price or 0
    return summary


def filter_records(
    records: Iterable[QCRecord],
    *,
    search: str = "",
    status: Optional[Union[QCStatus, str]] = None,
    inspector: Optional[str] = None,
    reason: Optional[str] = None,
    date_prefix: str = "",
) -> List[QCRecord]:
    """Apply the report screen filters.  ``None`` or ``"All"`` disables a filter."""

    needle = search.strip().lower()
    wanted_status = None
    if status not in (None, "All"):
        wanted_status = QCStatus(status)

    result: List[QCRecord] = []
    for record in records:
        if needle and not (
            needle in record.product_name.lower()
            or needle in record.barcode.lower()
            or needle in record.inspector_id.lower()
        ):
            continue
        if wanted_status is not None and record.status is not wanted_status:
            continue
        if inspector not in (None, "All") and record.inspector_id != inspector:
            continue
        if reason not in (None, "All") and record.reason != reason:
            continue
        if date_prefix and not record.timestamp.startswith(date_prefix):
            continue
        result.append(record)
    return result


def inspectors(records: Iterable[QCRecord]) -> List[str]:
    seen: List[str] = []
    for record in records:
        if record.inspector_id not in seen:
            seen.append(record.inspector_id)
    return seen


def reasons(records: Iterable[QCRecord]) -> List[str]:
    return sorted({record.reason for record in records if record.reason.strip()})


__all__ = ["summarize", "filter_records", "inspectors", "reasons"]
