"""Command line front end for the QC Sync layer."""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from typing import List, Optional

from qcsync import reports
from qcsync.errors import SyncError
from qcsync.logging_config import configure_logging, get_log_path
from qcsync.mappers import export_product_rows, export_qc_rows
from qcsync.settings import SYNC_SETTINGS_PATH, load_sync_settings
from qcsync.sync_service import SyncService, build_service
from qcsync.version import __version__


def _service() -> SyncService:
    return build_service(load_sync_settings())


def _fail(exc: object) -> int:
    print(f"Error: {exc}", file=sys.stderr)
    return 1


def command_config_show(args: argparse.Namespace) -> int:
    settings = load_sync_settings()
    service = _service()
    print(f"API URL      : {service.get_api_url()}")
    print(f"Store        : {settings.store_path}")
    print(f"Credentials  : {settings.credential_path or '(none)'}")
    print(f"Settings file: {SYNC_SETTINGS_PATH}")
    print(f"Log file     : {get_log_path()}")
    return 0


def command_config_set_url(args: argparse.Namespace) -> int:
    service = _service()
    service.set_api_url(args.url)
    print(f"API URL set to: {service.get_api_url()}")
    return 0


def command_test(args: argparse.Namespace) -> int:
    service = _service()
    checks = (
        ("Connection", service.test_api_connection),
        ("Master data", service.test_master_data_access),
        ("QC logs", service.test_qc_log_access),
    )
    exit_code = 0
    for label, check in checks:
        report = check()
        if report.get("success"):
            print(f"{label:<12}: OK - {report.get('message', '')}")
        else:
            print(f"{label:<12}: FAILED - {report.get('error', '')}")
            exit_code = 1
    return exit_code


def command_fetch(args: argparse.Namespace) -> int:
    service = _service()
    if args.entity == "products":
        products = service.fetch_master_data(force_update=args.force)
        for product in products:
            print(f"{product.barcode}\t{product.product_name}\t{product.unit_price:.2f}\t{product.stock}")
        print(f"{len(products)} products")
    else:
        records = service.fetch_qc_logs(force_update=args.force)
        for record in records:
            print(f"{record.timestamp}\t{record.barcode}\t{record.status.value}\t{record.reason or '-'}")
        print(f"{len(records)} QC records")
    return 0


def command_stats(args: argparse.Namespace) -> int:
    service = _service()
    stats = service.fetch_cloud_stats()
    print(f"Total     : {stats['total']}")
    print(f"Checked   : {stats['checked']}")
    print(f"Remaining : {stats['remaining']}")
    try:
        summary = reports.summarize(service.fetch_qc_logs())
    except SyncError as exc:
        return _fail(exc)
    print(f"Pass      : {summary.pass_count}")
    print(f"Damage    : {summary.damage_count}")
    print(f"Value     : {summary.total_value:.2f}")
    return 0


def command_clear_cache(args: argparse.Namespace) -> int:
    _service().clear_cache()
    print("Local cache cleared.")
    return 0


def command_history(args: argparse.Namespace) -> int:
    entries = _service().history.recent(args.limit)
    if not entries:
        print("No local edits recorded.")
        return 0
    for entry in entries:
        print(f"{entry['timestamp']}  {entry['action']:<16} {entry['key']}")
    return 0


def command_import(args: argparse.Namespace) -> int:
    try:
        with open(args.path, "r", encoding="utf-8-sig", newline="") as csv_file:
            rows = list(csv.DictReader(csv_file))
    except (OSError, csv.Error) as exc:
        return _fail(f"Failed to read CSV file: {exc}")

    try:
        count = _service().import_products(rows)
    except SyncError as exc:
        return _fail(exc)
    print(f"Imported {count} of {len(rows)} rows.")
    return 0


def command_export(args: argparse.Namespace) -> int:
    service = _service()
    try:
        if args.entity == "products":
            rows = export_product_rows(service.fetch_master_data())
        else:
            rows = export_qc_rows(service.fetch_qc_logs())
    except SyncError as exc:
        return _fail(exc)

    if not rows:
        print("Nothing to export.")
        return 0
    try:
        with open(args.path, "w", encoding="utf-8", newline="") as csv_file:
            writer = csv.DictWriter(csv_file, fieldnames=list(rows[0]))
            writer.writeheader()
            writer.writerows(rows)
    except OSError as exc:
        return _fail(f"Failed to write CSV file: {exc}")
    print(f"Exported {len(rows)} rows to {args.path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="QC scanning sync tool")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output and mirror it to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    config_parser = subparsers.add_parser("config", help="Show or change the endpoint configuration")
    config_sub = config_parser.add_subparsers(dest="config_command", required=True)
    show_parser = config_sub.add_parser("show", help="Display the active configuration")
    show_parser.set_defaults(func=command_config_show)
    set_url_parser = config_sub.add_parser("set-url", help="Store a new web app URL")
    set_url_parser.add_argument("url", help="Deployed web app URL; empty restores the default")
    set_url_parser.set_defaults(func=command_config_set_url)

    test_parser = subparsers.add_parser("test", help="Run connection diagnostics")
    test_parser.set_defaults(func=command_test)

    fetch_parser = subparsers.add_parser("fetch", help="List products or QC records")
    fetch_parser.add_argument("entity", choices=("products", "logs"))
    fetch_parser.add_argument("--force", action="store_true", help="Refresh from the backend if the cache has expired")
    fetch_parser.set_defaults(func=command_fetch)

    stats_parser = subparsers.add_parser("stats", help="Show inspection progress")
    stats_parser.set_defaults(func=command_stats)

    clear_parser = subparsers.add_parser("clear-cache", help="Drop cached products and QC records")
    clear_parser.set_defaults(func=command_clear_cache)

    history_parser = subparsers.add_parser("history", help="Show recent local edits")
    history_parser.add_argument("--limit", type=int, default=10)
    history_parser.set_defaults(func=command_history)

    import_parser = subparsers.add_parser("import", help="Upload products from a CSV file")
    import_parser.add_argument("path")
    import_parser.set_defaults(func=command_import)

    export_parser = subparsers.add_parser("export", help="Write products or QC records to CSV")
    export_parser.add_argument("entity", choices=("products", "logs"))
    export_parser.add_argument("path")
    export_parser.set_defaults(func=command_export)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO, console=args.verbose)
    try:
        return args.func(args)
    except SyncError as exc:
        return _fail(exc)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
