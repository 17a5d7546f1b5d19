"""REST backend over the field-sales API (/products, /markets, /vorverkauf)."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from src.common.config import ApiSettings
from src.common.http_client import HTTPClient
from src.common.models import (
    ExchangeReason,
    ExchangeRecord,
    ExchangeStatus,
    LineItem,
    Location,
    Product,
)

from .base import CatalogAccessor, ExchangeRecordStore, LocationDirectory
from .errors import PersistenceFailure, RecordNotFound
from .supabase_store import location_from_row

logger = logging.getLogger(__name__)

_PENDING = "pending"
_COMPLETED = "completed"


def product_from_api(data: dict) -> Product:
    """Map an API product (camelCase) to a Product."""
    return Product(
        id=str(data["id"]),
        name=data.get("name", ""),
        category=data.get("department", ""),
        subtype=data.get("productType") or "standard",
        price=float(data.get("price") or 0),
        weight=data.get("weight") or "",
        content=data.get("content"),
        pallet_size=data.get("palletSize"),
        sku=data.get("sku"),
    )


def _is_not_found(exc: requests.RequestException) -> bool:
    return (
        isinstance(exc, requests.HTTPError)
        and exc.response is not None
        and exc.response.status_code == 404
    )


class ApiBackend(CatalogAccessor, LocationDirectory, ExchangeRecordStore):
    """Catalog, locations and exchange records behind the REST backend.

    The server must store and return a `status` field ("pending" or
    "completed") on /vorverkauf entries, accept it on POST, and accept
    PATCH /vorverkauf/{id} with {"status": "completed"}. Entries without a
    status are read as completed: against a server that drops the field,
    deferred records are saved as completed, list_pending() is always empty
    and fulfill() always returns False.
    """

    def __init__(
        self,
        api_settings: Optional[ApiSettings] = None,
        http: Optional[HTTPClient] = None,
    ):
        self.http = http or HTTPClient(api_settings)
        self._catalog: dict[str, Product] | None = None

    def close(self) -> None:
        self.http.close()

    def _call(self, operation: str, method: str, path: str, **kwargs):
        try:
            return self.http.request(method, path, **kwargs)
        except requests.RequestException as e:
            raise PersistenceFailure(operation, str(e)) from e

    # --- Catalog ---

    def list_products(self) -> list[Product]:
        products = [product_from_api(p) for p in self._call("list_products", "GET", "/products") or []]
        self._catalog = {p.id: p for p in products}
        return products

    def _resolve_product(self, item: dict) -> Product:
        if self._catalog is None:
            self.list_products()
        product = self._catalog.get(str(item["productId"]))
        if product is None:
            logger.warning("Product %s not in catalog, using entry label", item["productId"])
            product = Product(
                id=str(item["productId"]),
                name=item.get("productName", "Unknown"),
                category="",
                price=0,
                weight=item.get("productSize") or "",
            )
        return product

    # --- Locations ---

    def list(self) -> list[Location]:
        return [location_from_row(m) for m in self._call("list_locations", "GET", "/markets") or []]

    def record_visit(self, location_id: str, operator_id: str) -> None:
        result = self._call(
            "record_visit",
            "POST",
            f"/markets/{location_id}/visit",
            json={"gl_id": operator_id},
            retry=True,
        ) or {}
        if result.get("incremented") is False:
            logger.info("Location %s already visited today, not incrementing", location_id)

    # --- Exchange records ---

    def create(self, record: ExchangeRecord) -> str:
        payload = {
            "gebietsleiter_id": record.operator_id,
            "market_id": record.location_id,
            "reason": record.reason.value,
            "notes": record.notes,
            "total_value": round(record.total_value, 2),
            "status": _PENDING if record.is_pending else _COMPLETED,
            "take_out_items": [
                {"product_id": i.product.id, "quantity": i.quantity} for i in record.removed
            ],
            "replace_items": [
                {"product_id": i.product.id, "quantity": i.quantity} for i in record.replacement
            ],
        }
        # No automatic retry: a repeated POST creates a second entry
        result = self._call("create", "POST", "/vorverkauf", json=payload) or {}
        if "id" not in result:
            raise PersistenceFailure("create", "response carried no entry id")
        logger.info(
            "Created exchange entry %s with %s items", result["id"], result.get("itemsCount", "?")
        )
        return str(result["id"])

    def _fetch_entry(self, record_id: str) -> dict:
        try:
            return self.http.get(f"/vorverkauf/{record_id}")
        except requests.RequestException as e:
            if _is_not_found(e):
                raise RecordNotFound(record_id) from e
            raise PersistenceFailure("get", str(e)) from e

    def get(self, record_id: str) -> ExchangeRecord:
        return self._entry_to_record(self._fetch_entry(record_id))

    def fulfill(self, record_id: str) -> bool:
        entry = self._fetch_entry(record_id)
        if entry.get("status", _COMPLETED) == _COMPLETED:
            logger.info("Exchange entry %s already fulfilled (no-op)", record_id)
            return False
        self._call(
            "fulfill", "PATCH", f"/vorverkauf/{record_id}", json={"status": _COMPLETED}, retry=True
        )
        logger.info("Exchange entry %s fulfilled", record_id)
        return True

    def list_pending(self, operator_id: str) -> list[ExchangeRecord]:
        entries = self._call(
            "list_pending", "GET", "/vorverkauf", params={"glId": operator_id, "status": _PENDING}
        ) or []
        # Older servers ignore the status filter
        return [
            self._entry_to_record(e) for e in entries if e.get("status") == _PENDING
        ]

    def _entry_to_record(self, entry: dict) -> ExchangeRecord:
        removed: list[LineItem] = []
        replacement: list[LineItem] = []
        for item in entry.get("items", []):
            line = LineItem(product=self._resolve_product(item), quantity=item.get("quantity") or 1)
            (replacement if item.get("itemType") == "replace" else removed).append(line)

        total = entry.get("totalValue")
        if total is None:
            total = sum(i.value for i in replacement)
        return ExchangeRecord(
            id=str(entry["id"]),
            location_id=str(entry["marketId"]),
            operator_id=str(entry["glId"]),
            removed=removed,
            replacement=replacement,
            total_value=float(total),
            status=ExchangeStatus.PENDING
            if entry.get("status") == _PENDING
            else ExchangeStatus.FULFILLED,
            reason=ExchangeReason.PRODUCT_EXCHANGE,
            notes=entry.get("notes"),
            created_at=entry["createdAt"],
        )
