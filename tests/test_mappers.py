from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from qcsync import mappers
from qcsync.models import ProductMaster, QCRecord, QCStatus


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1,250.50", 1250.5),
        ("abc", 0.0),
        (None, 0.0),
        ("", 0.0),
        (42, 42.0),
        ("  7 ", 7.0),
        ("nan", 0.0),
        (True, 0.0),
    ],
)
def test_parse_number(raw, expected) -> None:
    assert mappers.parse_number(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('["a.jpg", "b.jpg"]', ["a.jpg", "b.jpg"]),
        ("a.jpg, b.jpg", ["a.jpg", "b.jpg"]),
        (["a.jpg", "", None], ["a.jpg"]),
        ("[broken", []),
        ("", []),
        (None, []),
        (12, []),
    ],
)
def test_parse_image_urls(raw, expected) -> None:
    assert mappers.parse_image_urls(raw) == expected


@pytest.mark.parametrize(
    "reason, price, expected",
    [
        ("Scratched", 100, QCStatus.DAMAGE),
        ("", 100, QCStatus.PASS),
        ("-", 100, QCStatus.PASS),
        ("", 0, QCStatus.DAMAGE),
        ("", 0.0, QCStatus.DAMAGE),
        ("", "0", QCStatus.PASS),
        ("", "0.00", QCStatus.PASS),
        ("", False, QCStatus.PASS),
        ("", None, QCStatus.PASS),
        ("", "", QCStatus.PASS),
        ("-", "abc", QCStatus.PASS),
    ],
)
def test_infer_status(reason, price, expected) -> None:
    assert mappers.infer_status(reason, price) is expected


def test_product_from_camel_case_row() -> None:
    row = {
        "barcode": "B1",
        "productName": "Kettle",
        "costPrice": "120",
        "unitPrice": 199,
        "stock": "3",
        "lotNo": "L-7",
        "productType": "Home",
        "image": "k.jpg",
    }

    assert mappers.product_from_row(row) == ProductMaster(
        barcode="B1",
        product_name="Kettle",
        cost_price=120.0,
        unit_price=199.0,
        stock=3,
        lot_no="L-7",
        product_type="Home",
        image="k.jpg",
    )


def test_product_from_sheet_headers() -> None:
    row = {
        "RMS Return Item ID": 885012345678,
        "Product Name": "Toaster",
        "ต้นทุน": "1,000",
        "Product unit price": "1,490.00",
        "Lot no.": "L-1",
        "Type": "Kitchen",
    }

    product = mappers.product_from_row(row)

    assert product.barcode == "885012345678"
    assert product.cost_price == 1000.0
    assert product.unit_price == 1490.0
    assert product.stock == 0
    assert product.lot_no == "L-1"


def test_first_present_synonym_wins() -> None:
    row = {"barcode": "", "RMS Return Item ID": "R-1", "Barcode": "X-9"}

    assert mappers.pick(row, *mappers.BARCODE_KEYS) == "R-1"


def test_qc_record_from_sheet_row() -> None:
    row = {
        "id": "7",
        "RMS Return Item ID": "B1",
        "Product Name": "Kettle",
        "ราคาขาย": "0",
        "Comment": "",
        "Images": '["https://img/1.jpg"]',
        "Timestamp": "2024-05-01T08:00:00.000Z",
        "Inspector": "user",
    }

    record = mappers.qc_record_from_row(row)

    assert record.id == "7"
    assert record.selling_price == 0.0
    assert record.status is QCStatus.PASS
    assert record.image_urls == ["https://img/1.jpg"]
    assert record.inspector_id == "user"


def test_qc_record_without_id_or_timestamp_gets_defaults() -> None:
    record = mappers.qc_record_from_row({"barcode": "B1", "sellingPrice": 50})

    assert record.id
    assert record.timestamp.endswith("Z")
    assert record.status is QCStatus.PASS


def test_blank_rows_are_dropped() -> None:
    rows = [{"barcode": "B1", "productName": "A"}, {"stock": 4}, "garbage", {"productName": "Only name"}]

    products = mappers.map_products(rows)

    assert [product.product_name for product in products] == ["A", "Only name"]


def test_import_rows_require_barcode_and_name() -> None:
    rows = [
        {"Barcode": "B1", "Name": "Iron", "Price": "250", "Qty": "2"},
        {"Barcode": "B2"},
        {"Name": "Nameless"},
    ]

    products = mappers.map_import_rows(rows)

    assert len(products) == 1
    assert products[0].unit_price == 250.0
    assert products[0].stock == 2


def test_sort_newest_first_puts_unparseable_last() -> None:
    records = [
        QCRecord(id="a", barcode="A", product_name="a", timestamp="2024-01-01T00:00:00Z"),
        QCRecord(id="b", barcode="B", product_name="b", timestamp="not a date"),
        QCRecord(id="c", barcode="C", product_name="c", timestamp="2024-03-01T00:00:00Z"),
    ]

    assert [record.id for record in mappers.sort_newest_first(records)] == ["c", "a", "b"]


def test_qc_payload_omits_status_and_id() -> None:
    record = QCRecord(
        id="9",
        barcode="B1",
        product_name="Kettle",
        selling_price=0,
        status=QCStatus.DAMAGE,
        reason="Broken lid",
        image_urls=["1.jpg"],
    )

    payload = mappers.qc_record_to_payload(record, timestamp="2024-05-01T08:00:00.000Z")

    assert "status" not in payload
    assert "id" not in payload
    assert payload["timestamp"] == "2024-05-01T08:00:00.000Z"
    assert payload["imageUrls"] == ["1.jpg"]
    assert payload["remark"] == ""


def test_export_rows_use_sheet_headers() -> None:
    record = QCRecord(id="1", barcode="B1", product_name="Kettle", reason="Dent", status=QCStatus.DAMAGE, image_urls=["a", "b"])

    row = mappers.export_qc_rows([record])[0]

    assert list(row) == list(mappers.QC_EXPORT_HEADERS)
    assert row["Status"] == "Damage"
    assert row["Images"] == "a, b"
    assert mappers.export_product_rows([ProductMaster(barcode="B1", product_name="Kettle")])[0]["RMS Return Item ID"] == "B1"


def test_only_numeric_selling_price_zero_marks_damage() -> None:
    numeric = mappers.qc_record_from_row({"barcode": "B1", "sellingPrice": 0, "ราคาขาย": "150"})
    text = mappers.qc_record_from_row({"barcode": "B2", "sellingPrice": "0"})

    assert numeric.status is QCStatus.DAMAGE
    assert text.status is QCStatus.PASS
    assert text.selling_price == 0.0
