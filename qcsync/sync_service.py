"""Business operations for synchronising QC data with the spreadsheet backend.

:class:`SyncService` is the only object the screens talk to.  It composes the
local store, the per-entity caches, the request coalescer and the API client
so callers get a plain request/response contract:

* reads are served from the cache while it is fresh and fall back to stale
  cache when the backend is unreachable;
* writes go straight to the backend, with the cache policy of each operation
  documented on the method;
* diagnostics never raise, they return ``{"success": ..., ...}`` reports.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from qcsync import mappers
from qcsync.api_client import ApiClient
from qcsync.cache import CachedCollection, CacheManager, utc_now
from qcsync.coalescer import RequestCoalescer
from qcsync.credentials import build_http_session
from qcsync.errors import SyncError, ValidationError
from qcsync.history import EditHistory
from qcsync.local_store import KeyValueStore, SQLiteStore
from qcsync.models import ProductMaster, QCRecord, QCStatus
from qcsync.settings import DEFAULT_API_URL, SyncSettings, load_sync_settings
from qcsync.users import UserRepository

logger = logging.getLogger(__name__)

API_URL_KEY = "qc_api_url"

ACTION_GET_PRODUCTS = "getProducts"
ACTION_GET_QC_LOGS = "getQCLogs"
ACTION_SAVE_QC = "saveQC"
ACTION_SAVE_PRODUCT = "saveProduct"
ACTION_REPLACE_PRODUCTS = "replaceProducts"
ACTION_DELETE_PRODUCT = "deleteProduct"
ACTION_TEST_CONNECTION = "testConnection"

Report = Dict[str, Any]


def extract_rows(payload: Any) -> Optional[List[Any]]:
    """Return the row list from a bare array or ``{"data": [...]}``."""

    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return payload["data"]
    return None


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def validate_product(product: ProductMaster) -> None:
    if not product.barcode.strip():
        raise ValidationError("Product barcode is required.")
    if product.cost_price < 0 or product.unit_price < 0:
        raise ValidationError(f"Prices must not be negative ({product.barcode}).")
    if product.stock < 0:
        raise ValidationError(f"Stock must not be negative ({product.barcode}).")


def validate_qc_record(record: QCRecord) -> None:
    if not record.barcode.strip():
        raise ValidationError("QC record barcode is required.")
    if record.selling_price < 0:
        raise ValidationError("Selling price must not be negative.")
    if record.status is QCStatus.DAMAGE:
        reason = record.reason.strip()
        if not reason or reason == mappers.EMPTY_REASON_MARKER:
            raise ValidationError("A reason is required for damaged items.")
    if len(record.image_urls) > mappers.MAX_IMAGES:
        raise ValidationError(f"At most {mappers.MAX_IMAGES} images can be attached.")


class SyncService:
    """Coordinate cached reads, writes and diagnostics against the web app."""

    def __init__(
        self,
        store: KeyValueStore,
        settings: Optional[SyncSettings] = None,
        *,
        client: Optional[ApiClient] = None,
        session: Any = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._settings = settings or SyncSettings()
        self._store = store
        self._clock = clock
        self._log_callback = log_callback
        if client is None:
            client = ApiClient(
                self.get_api_url,
                session=session or build_http_session(self._settings.credential_path),
                policy=self._settings.retry_policy(),
                timeout=self._settings.request_timeout,
                probe_timeout=self._settings.probe_timeout,
                sleep=sleep,
            )
        self.client = client
        self.coalescer = RequestCoalescer(client)
        self.cache = CacheManager(
            store,
            master_ttl=self._settings.master_ttl_seconds,
            logs_ttl=self._settings.logs_ttl_seconds,
            clock=clock,
        )
        self.history = EditHistory(store, limit=self._settings.history_limit)
        self.users = UserRepository(store)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def get_api_url(self) -> str:
        stored = self._store.get(API_URL_KEY)
        if stored:
            return stored
        return DEFAULT_API_URL

    def set_api_url(self, url: str) -> None:
        cleaned = (url or "").strip()
        if cleaned:
            self._store.set(API_URL_KEY, cleaned)
        else:
            self._store.remove(API_URL_KEY)
        self._log(f"Endpoint set to {self.get_api_url()}")

    def clear_cache(self) -> None:
        self.cache.clear_all()
        self._log("Local cache cleared")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def fetch_master_data(self, force_update: bool = False, skip_throttle: bool = False) -> List[ProductMaster]:
        """Return the product master list, from cache when allowed."""

        return self._fetch(
            self.cache.master,
            ACTION_GET_PRODUCTS,
            force_update,
            skip_throttle,
            from_rows=mappers.map_products,
            from_cache=ProductMaster.from_dict,
        )

    def fetch_qc_logs(self, force_update: bool = False, skip_throttle: bool = False) -> List[QCRecord]:
        """Return QC records, newest first."""

        return self._fetch(
            self.cache.logs,
            ACTION_GET_QC_LOGS,
            force_update,
            skip_throttle,
            from_rows=lambda rows: mappers.sort_newest_first(mappers.map_qc_records(rows)),
            from_cache=QCRecord.from_dict,
            order=mappers.sort_newest_first,
        )

    def _fetch(
        self,
        collection: CachedCollection,
        action: str,
        force_update: bool,
        skip_throttle: bool,
        *,
        from_rows: Callable[[Sequence[Any]], List[Any]],
        from_cache: Callable[[Mapping[str, Any]], Any],
        order: Optional[Callable[[Iterable[Any]], List[Any]]] = None,
    ) -> List[Any]:
        cached = collection.load()

        def _cached_records() -> List[Any]:
            records = [from_cache(entry) for entry in cached or []]
            return order(records) if order else records

        if cached is not None and not force_update:
            return _cached_records()

        if cached is not None and force_update and not skip_throttle and collection.is_fresh():
            logger.debug("Throttled refresh of %s; cache age %.1fs", collection.name, collection.age() or 0)
            return _cached_records()

        try:
            payload = self.coalescer.call(action, "GET")
        except SyncError as exc:
            if cached is not None:
                logger.warning("Fetching %s failed (%s); serving %d cached entries", collection.name, exc, len(cached))
                return _cached_records()
            raise

        rows = extract_rows(payload)
        if rows is None:
            logger.warning("Unexpected %s response of type %s", action, type(payload).__name__)
            return _cached_records() if cached is not None else []

        records = from_rows(rows)
        collection.save([record.to_dict() for record in records])
        self._log(f"Fetched {len(records)} {collection.name} entries")
        return records

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def save_product(self, product: ProductMaster) -> Any:
        """Upsert one product.

        The master cache is deliberately left alone so lists do not flicker
        during a multi-edit session; callers refresh explicitly.
        """

        validate_product(product)
        result = self.coalescer.call(ACTION_SAVE_PRODUCT, "POST", mappers.product_to_payload(product))
        self.history.record(ACTION_SAVE_PRODUCT, product.barcode)
        return result

    def bulk_save_products(self, products: Sequence[ProductMaster]) -> Any:
        """Replace the whole master set in one call.  Refresh afterwards."""

        unique: Dict[str, ProductMaster] = {}
        for product in products:
            validate_product(product)
            unique[product.barcode] = product
        payload = {"products": [mappers.product_to_payload(product) for product in unique.values()]}
        result = self.coalescer.call(ACTION_REPLACE_PRODUCTS, "POST", payload)
        self.history.record(ACTION_REPLACE_PRODUCTS, f"{len(unique)} products")
        self._log(f"Replaced master data with {len(unique)} products")
        return result

    def delete_product(self, barcode: str) -> Any:
        """Remove ``barcode`` from the cached snapshot, then from the backend.

        The local removal is not rolled back if the backend call fails.
        """

        key = (barcode or "").strip()
        if not key:
            raise ValidationError("Product barcode is required.")
        removed = self.cache.master.remove_where(lambda entry: entry.get("barcode") == key)
        self.history.record(ACTION_DELETE_PRODUCT, key, details={"removed_locally": removed})
        return self.coalescer.call(ACTION_DELETE_PRODUCT, "POST", {"barcode": key})

    def submit_qc_record(self, record: QCRecord) -> Any:
        """Append a QC record and invalidate the QC log cache."""

        validate_qc_record(record)
        payload = mappers.qc_record_to_payload(record, timestamp=_iso(self._clock()))
        result = self.coalescer.call(ACTION_SAVE_QC, "POST", payload)
        self.cache.logs.clear()
        self.history.record(ACTION_SAVE_QC, record.barcode, details={"status": record.status.value})
        return result

    def submit_qc_and_remove_product(self, record: QCRecord) -> Any:
        """Submit ``record`` and take its product out of the pending set."""

        result = self.submit_qc_record(record)
        self.delete_product(record.barcode)
        return result

    def setup_sheet(self) -> Any:
        """Post a throwaway record so the backend creates its header row."""

        record = QCRecord(
            id="",
            barcode="TEST_CONNECTION",
            product_name="Test Connection Record",
            selling_price=0,
            status=QCStatus.DAMAGE,
            reason="Test Connection",
            remark="Can be deleted",
            inspector_id="System",
            lot_no="SYSTEM_TEST",
            product_type="TEST",
        )
        return self.submit_qc_record(record)

    def import_products(self, rows: Iterable[Mapping[str, Any]]) -> int:
        """Save spreadsheet import rows one by one and return how many were sent."""

        products = mappers.map_import_rows(rows)
        for product in products:
            self.save_product(product)
        self.cache.master.clear()
        self._log(f"Imported {len(products)} products")
        return len(products)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------
    def fetch_cloud_stats(self) -> Dict[str, int]:
        """Products still pending, products already checked, and their sum."""

        try:
            remaining = len(self.fetch_master_data())
        except SyncError as exc:
            logger.warning("Master data unavailable for stats: %s", exc)
            remaining = 0
        try:
            checked = len(self.fetch_qc_logs())
        except SyncError as exc:
            logger.warning("QC logs unavailable for stats: %s", exc)
            checked = 0
        return {"remaining": remaining, "checked": checked, "total": remaining + checked}

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def test_api_connection(self) -> Report:
        if not self.get_api_url().strip():
            return {"success": False, "error": "URL is empty"}
        try:
            self.client.probe(ACTION_TEST_CONNECTION)
        except SyncError as exc:
            return {"success": False, "error": str(exc) or "Network error"}
        return {"success": True, "message": "Server is reachable"}

    def test_master_data_access(self) -> Report:
        return self._test_collection(ACTION_GET_PRODUCTS, "products")

    def test_qc_log_access(self) -> Report:
        return self._test_collection(ACTION_GET_QC_LOGS, "logs")

    def _test_collection(self, action: str, label: str) -> Report:
        try:
            payload = self.client.probe(action)
        except SyncError as exc:
            return {"success": False, "error": str(exc)}
        rows = extract_rows(payload)
        if rows is None:
            return {
                "success": False,
                "error": f"Invalid data: expected a list, got {type(payload).__name__}",
            }
        return {"success": True, "message": f"Found {len(rows)} {label}", "count": len(rows)}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _log(self, message: str) -> None:
        logger.info(message)
        if self._log_callback:
            self._log_callback(message)


def build_service(settings: Optional[SyncSettings] = None, **kwargs: Any) -> SyncService:
    """Construct a service backed by the on-disk store from ``settings``."""

    settings = settings or load_sync_settings()
    store = SQLiteStore(settings.store_path)
    return SyncService(store, settings, **kwargs)


__all__ = [
    "API_URL_KEY",
    "SyncService",
    "build_service",
    "extract_rows",
    "validate_product",
    "validate_qc_record",
]
