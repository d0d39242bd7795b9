"""Translate loosely-typed sheet rows into domain records and back.

Rows coming from the web app carry whatever headers the spreadsheet happens
to use.  Newer deployments send camelCase keys (``barcode``, ``costPrice``),
older sheets expose the human column titles (``RMS Return Item ID``,
``ต้นทุน``) and Excel imports add a few more spellings.  Every logical field
therefore lists its accepted keys in priority order and the first present
value wins.

All functions here are total: malformed input never raises, it degrades to
empty strings, zeros and empty lists.
"""
from __future__ import annotations

import json
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from qcsync.models import ProductMaster, QCRecord, QCStatus

logger = logging.getLogger(__name__)

BARCODE_KEYS = ("barcode", "RMS Return Item ID", "Barcode")
PRODUCT_NAME_KEYS = ("productName", "Product Name", "ProductName", "Name")
COST_PRICE_KEYS = ("costPrice", "ต้นทุน", "CostPrice", "Cost")
UNIT_PRICE_KEYS = ("unitPrice", "Product unit price", "UnitPrice", "Price")
STOCK_KEYS = ("stock", "Stock", "Qty")
LOT_NO_KEYS = ("lotNo", "Lot no.", "Lot", "LotNo")
PRODUCT_TYPE_KEYS = ("productType", "Type", "ProductType")
IMAGE_KEYS = ("image", "Image")

SELLING_PRICE_KEYS = ("sellingPrice", "ราคาขาย")
REASON_KEYS = ("reason", "Comment")
REMARK_KEYS = ("remark", "Remark")
IMAGE_URLS_KEYS = ("imageUrls", "Images")
TIMESTAMP_KEYS = ("timestamp", "Timestamp")
INSPECTOR_KEYS = ("inspectorId", "Inspector")

EMPTY_REASON_MARKER = "-"
MAX_IMAGES = 5

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def pick(row: Mapping[str, Any], *keys: str) -> Any:
    """Return the value of the first key in ``keys`` that is present in ``row``."""

    for key in keys:
        value = row.get(key)
        if _present(value):
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_number(value: Any) -> float:
    """Coerce ``value`` to ``float``; anything non-numeric becomes ``0``.

    Thousands separators are stripped so ``"1,250.50"`` parses as ``1250.5``.
    """

    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        if value is None:
            return 0.0
        text = str(value).replace(",", "").replace("\xa0", "").strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def parse_int(value: Any) -> int:
    return int(parse_number(value))


def parse_image_urls(value: Any) -> List[str]:
    """Normalise a JSON array string, a comma list or a sequence to ``List[str]``."""

    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if _present(item)]
    if not isinstance(value, str):
        return []
    text = value.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Unreadable image list %r", text[:80])
            return []
        if isinstance(decoded, list):
            return [str(item).strip() for item in decoded if _present(item)]
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


def _is_zero_price(selling_price: Any) -> bool:
    if isinstance(selling_price, bool) or not isinstance(selling_price, (int, float)):
        return False
    return float(selling_price) == 0


def infer_status(reason: Any, selling_price: Any = None) -> QCStatus:
    """Damage when a real reason is recorded or the item sold for nothing.

    ``selling_price`` is the raw ``sellingPrice`` value as received.  Only a
    numeric zero counts: a missing price, text such as ``"0"`` and the legacy
    ``ราคาขาย`` column never mark an item as damaged.
    """

    text = _text(reason)
    if text and text != EMPTY_REASON_MARKER:
        return QCStatus.DAMAGE
    if _is_zero_price(selling_price):
        return QCStatus.DAMAGE
    return QCStatus.PASS


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = _text(value)
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def timestamp_sort_key(record: QCRecord) -> datetime:
    return parse_timestamp(record.timestamp) or _EPOCH


def sort_newest_first(records: Iterable[QCRecord]) -> List[QCRecord]:
    return sorted(records, key=timestamp_sort_key, reverse=True)


def utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Sheet rows -> domain records
# ---------------------------------------------------------------------------
def product_from_row(row: Mapping[str, Any]) -> ProductMaster:
    return ProductMaster(
        barcode=_text(pick(row, *BARCODE_KEYS)),
        product_name=_text(pick(row, *PRODUCT_NAME_KEYS)),
        cost_price=parse_number(pick(row, *COST_PRICE_KEYS)),
        unit_price=parse_number(pick(row, *UNIT_PRICE_KEYS)),
        stock=parse_int(pick(row, *STOCK_KEYS)),
        lot_no=_text(pick(row, *LOT_NO_KEYS)),
        product_type=_text(pick(row, *PRODUCT_TYPE_KEYS)),
        image=_text(pick(row, *IMAGE_KEYS)),
    )


def qc_record_from_row(row: Mapping[str, Any]) -> QCRecord:
    reason = _text(pick(row, *REASON_KEYS))
    raw_price = pick(row, *SELLING_PRICE_KEYS)
    status_price = row.get("sellingPrice")
    record_id = _text(row.get("id")) or uuid.uuid4().hex
    return QCRecord(
        id=record_id,
        barcode=_text(pick(row, *BARCODE_KEYS)),
        product_name=_text(pick(row, *PRODUCT_NAME_KEYS)),
        cost_price=parse_number(pick(row, *COST_PRICE_KEYS)),
        selling_price=parse_number(raw_price),
        status=infer_status(reason, status_price),
        reason=reason,
        remark=_text(pick(row, *REMARK_KEYS)),
        image_urls=parse_image_urls(pick(row, *IMAGE_URLS_KEYS)),
        timestamp=_text(pick(row, *TIMESTAMP_KEYS)) or utc_now_iso(),
        inspector_id=_text(pick(row, *INSPECTOR_KEYS)),
        lot_no=_text(pick(row, *LOT_NO_KEYS)),
        product_type=_text(pick(row, *PRODUCT_TYPE_KEYS)),
        unit_price=parse_number(pick(row, *UNIT_PRICE_KEYS)),
    )


def _is_blank(barcode: str, product_name: str) -> bool:
    return not barcode and not product_name


def map_products(rows: Iterable[Any]) -> List[ProductMaster]:
    """Map backend rows, dropping blank spreadsheet lines."""

    products: List[ProductMaster] = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        product = product_from_row(row)
        if _is_blank(product.barcode, product.product_name):
            continue
        products.append(product)
    return products


def map_qc_records(rows: Iterable[Any]) -> List[QCRecord]:
    records: List[QCRecord] = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        record = qc_record_from_row(row)
        if _is_blank(record.barcode, record.product_name):
            continue
        records.append(record)
    return records


def map_import_rows(rows: Iterable[Mapping[str, Any]]) -> List[ProductMaster]:
    """Map spreadsheet import rows; both barcode and name are required."""

    return [
        product
        for product in (product_from_row(row) for row in rows if isinstance(row, Mapping))
        if product.barcode and product.product_name
    ]


# ---------------------------------------------------------------------------
# Domain records -> write payloads
# ---------------------------------------------------------------------------
def product_to_payload(product: ProductMaster) -> Dict[str, Any]:
    return {
        "barcode": product.barcode,
        "productName": product.product_name,
        "costPrice": product.cost_price,
        "unitPrice": product.unit_price,
        "stock": product.stock,
        "image": product.image,
        "lotNo": product.lot_no,
        "productType": product.product_type,
    }


def qc_record_to_payload(record: QCRecord, *, timestamp: Optional[str] = None) -> Dict[str, Any]:
    return {
        "lotNo": record.lot_no or "",
        "productType": record.product_type or "",
        "barcode": record.barcode,
        "productName": record.product_name,
        "unitPrice": record.unit_price or 0,
        "costPrice": record.cost_price,
        "sellingPrice": record.selling_price,
        "reason": record.reason,
        "remark": record.remark or "",
        "inspectorId": record.inspector_id,
        "timestamp": timestamp or record.timestamp or utc_now_iso(),
        "imageUrls": list(record.image_urls),
    }


# ---------------------------------------------------------------------------
# Export rows for external spreadsheet writers
# ---------------------------------------------------------------------------
QC_EXPORT_HEADERS: Sequence[str] = (
    "Lot no.",
    "Type",
    "RMS Return Item ID",
    "Product Name",
    "Product unit price",
    "ต้นทุน",
    "ราคาขาย",
    "Status",
    "Comment",
    "Remark",
    "Inspector",
    "Timestamp",
    "Images",
)

PRODUCT_EXPORT_HEADERS: Sequence[str] = (
    "RMS Return Item ID",
    "Product Name",
    "ต้นทุน",
    "Product unit price",
    "Stock",
    "Lot no.",
    "Type",
    "Image",
)


def export_qc_rows(records: Iterable[QCRecord]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for record in records:
        values = (
            record.lot_no,
            record.product_type,
            record.barcode,
            record.product_name,
            record.unit_price,
            record.cost_price,
            record.selling_price,
            record.status.value,
            record.reason,
            record.remark,
            record.inspector_id,
            record.timestamp,
            ", ".join(record.image_urls),
        )
        rows.append(dict(zip(QC_EXPORT_HEADERS, values)))
    return rows


def export_product_rows(products: Iterable[ProductMaster]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for product in products:
        values = (
            product.barcode,
            product.product_name,
            product.cost_price,
            product.unit_price,
            product.stock,
            product.lot_no,
            product.product_type,
            product.image,
        )
        rows.append(dict(zip(PRODUCT_EXPORT_HEADERS, values)))
    return rows


__all__ = [
    "MAX_IMAGES",
    "QC_EXPORT_HEADERS",
    "PRODUCT_EXPORT_HEADERS",
    "pick",
    "parse_number",
    "parse_int",
    "parse_image_urls",
    "parse_timestamp",
    "infer_status",
    "sort_newest_first",
    "utc_now_iso",
    "product_from_row",
    "qc_record_from_row",
    "map_products",
    "map_qc_records",
    "map_import_rows",
    "product_to_payload",
    "qc_record_to_payload",
    "export_qc_rows",
    "export_product_rows",
]
