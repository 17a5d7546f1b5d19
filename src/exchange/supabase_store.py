"""Supabase backend over the field-sales tables.

Tables:
- products            catalog (department -> category, product_type -> subtype)
- markets             locations (current_visits, last_visit_date)
- vorverkauf_entries  exchange records (status: pending | completed)
- vorverkauf_items    line items (item_type: take_out | replace)

Prerequisites:
    SUPABASE_URL and SUPABASE_SERVICE_KEY in .env
"""

from __future__ import annotations

import logging
import os
from datetime import date, datetime
from typing import Any, Optional

from src.common.config import get_supabase_credentials
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

logger = logging.getLogger(__name__)

ENTRIES_TABLE = "vorverkauf_entries"
ITEMS_TABLE = "vorverkauf_items"

# Remote status vocabulary differs from ExchangeStatus
_STATUS_TO_DB = {
    ExchangeStatus.PENDING: "pending",
    ExchangeStatus.FULFILLED: "completed",
}
_STATUS_FROM_DB = {v: k for k, v in _STATUS_TO_DB.items()}

# Columns that older deployments lack; inserts retry without them
_OPTIONAL_ENTRY_COLUMNS = ("total_value", "fulfilled_at")


def product_from_row(row: dict) -> Product:
    """Map a products row to a Product."""
    return Product(
        id=str(row["id"]),
        name=row.get("name", ""),
        category=row.get("department", ""),
        subtype=row.get("product_type") or "standard",
        price=float(row.get("price") or 0),
        weight=row.get("weight") or "",
        content=row.get("content"),
        pallet_size=row.get("pallet_size"),
        sku=row.get("sku"),
        article_number=row.get("artikel_nr"),
        is_active=row.get("is_active", True) is not False,
    )


def location_from_row(row: dict) -> Location:
    """Map a markets row to a Location."""
    return Location(
        id=str(row["id"]),
        name=row.get("name", ""),
        chain=row.get("chain") or "",
        address=row.get("address") or "",
        city=row.get("city") or "",
        postal_code=row.get("postal_code") or "",
        current_visits=row.get("current_visits") or 0,
        last_visit_date=row.get("last_visit_date"),
    )


class SupabaseBackend(CatalogAccessor, LocationDirectory, ExchangeRecordStore):
    """Catalog, locations and exchange records stored in Supabase."""

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        client: Any = None,
    ):
        self._url = supabase_url or os.getenv("SUPABASE_URL", "")
        self._key = supabase_key or os.getenv("SUPABASE_SERVICE_KEY", "")
        self._client = client  # Lazy init unless injected

    def _get_client(self):
        """Lazy-initialize Supabase client."""
        if self._client is not None:
            return self._client
        if not self._url or not self._key:
            self._url, self._key = get_supabase_credentials()
        from supabase import create_client

        self._client = create_client(self._url, self._key)
        logger.info("Connected to Supabase: %s", self._url)
        return self._client

    # --- Catalog ---

    def list_products(self) -> list[Product]:
        client = self._get_client()
        try:
            result = (
                client
                .table("products")
                .select("*")
                .order("name")
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure("list_products", str(e)) from e
        return [product_from_row(row) for row in result.data or []]

    def _products_by_id(self, ids: set[str]) -> dict[str, Product]:
        if not ids:
            return {}
        result = (
            self._get_client()
            .table("products")
            .select("*")
            .in_("id", sorted(ids))
            .execute()
        )
        return {str(row["id"]): product_from_row(row) for row in result.data or []}

    # --- Locations ---

    def list(self) -> list[Location]:
        client = self._get_client()
        try:
            result = client.table("markets").select("*").order("name").execute()
        except Exception as e:
            raise PersistenceFailure("list_locations", str(e)) from e
        return [location_from_row(row) for row in result.data or []]

    def record_visit(self, location_id: str, operator_id: str) -> None:
        """Increment current_visits, at most once per calendar day."""
        client = self._get_client()
        today = date.today().isoformat()
        try:
            result = (
                client.table("markets")
                .select("current_visits, last_visit_date")
                .eq("id", location_id)
                .execute()
            )
            if not result.data:
                raise PersistenceFailure("record_visit", f"unknown location '{location_id}'")
            market = result.data[0]
            if market.get("last_visit_date") == today:
                logger.info("Location %s already visited today, not incrementing", location_id)
                return
            (
                client.table("markets")
                .update({
                    "current_visits": (market.get("current_visits") or 0) + 1,
                    "last_visit_date": today,
                })
                .eq("id", location_id)
                .execute()
            )
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure("record_visit", str(e)) from e
        logger.info("Recorded visit for location %s by %s", location_id, operator_id)

    # --- Exchange records ---

    @staticmethod
    def _write_entry(write, data: dict):
        """Run write(data), retrying once without optional columns the table lacks."""
        try:
            return write(data)
        except Exception as e:
            error_msg = str(e)
            if "PGRST204" not in error_msg and "could not find" not in error_msg.lower():
                raise
            for column in _OPTIONAL_ENTRY_COLUMNS:
                if column in error_msg and column in data:
                    logger.warning(
                        "Column '%s' not found in %s, retrying without it",
                        column, ENTRIES_TABLE,
                    )
                    data.pop(column)
            return write(data)

    def _insert_entry(self, data: dict) -> dict:
        table = self._get_client().table(ENTRIES_TABLE)
        result = self._write_entry(lambda d: table.insert(d).execute(), data)
        return result.data[0]

    def _delete_entry(self, entry_id: str) -> None:
        try:
            self._get_client().table(ENTRIES_TABLE).delete().eq("id", entry_id).execute()
        except Exception as e:
            logger.error("Could not roll back entry %s without items: %s", entry_id, e)
        else:
            logger.warning("Rolled back entry %s after item insert failed", entry_id)

    def create(self, record: ExchangeRecord) -> str:
        entry = {
            "gebietsleiter_id": record.operator_id,
            "market_id": record.location_id,
            "reason": record.reason.value,
            "notes": record.notes,
            "status": _STATUS_TO_DB[record.status],
            "total_value": round(record.total_value, 2),
            "created_at": record.created_at.isoformat(),
        }
        if record.fulfilled_at:
            entry["fulfilled_at"] = record.fulfilled_at.isoformat()
        try:
            entry_id = str(self._insert_entry(entry)["id"])
        except Exception as e:
            raise PersistenceFailure("create", str(e)) from e

        items = [
            {
                "vorverkauf_entry_id": entry_id,
                "product_id": item.product.id,
                "quantity": item.quantity,
                "item_type": item_type,
            }
            for item_type, group in (("take_out", record.removed), ("replace", record.replacement))
            for item in group
        ]
        if items:
            try:
                self._get_client().table(ITEMS_TABLE).insert(items).execute()
            except Exception as e:
                # An entry left without items would be duplicated by a retry
                self._delete_entry(entry_id)
                raise PersistenceFailure("create", str(e)) from e
        logger.info("Created exchange entry %s (%s)", entry_id, record.status.value)
        return entry_id

    def _fetch_entry(self, record_id: str) -> dict:
        result = (
            self._get_client()
            .table(ENTRIES_TABLE)
            .select("*")
            .eq("id", record_id)
            .execute()
        )
        if not result.data:
            raise RecordNotFound(record_id)
        return result.data[0]

    def get(self, record_id: str) -> ExchangeRecord:
        try:
            entry = self._fetch_entry(record_id)
            return self._load_records([entry])[0]
        except RecordNotFound:
            raise
        except Exception as e:
            raise PersistenceFailure("get", str(e)) from e

    def fulfill(self, record_id: str) -> bool:
        try:
            entry = self._fetch_entry(record_id)
            if entry.get("status") == _STATUS_TO_DB[ExchangeStatus.FULFILLED]:
                logger.info("Exchange entry %s already fulfilled (no-op)", record_id)
                return False
            now = datetime.now().isoformat()
            table = self._get_client().table(ENTRIES_TABLE)
            self._write_entry(
                lambda d: (
                    table.update(d)
                    .eq("id", record_id)
                    .eq("status", _STATUS_TO_DB[ExchangeStatus.PENDING])
                    .execute()
                ),
                {
                    "status": _STATUS_TO_DB[ExchangeStatus.FULFILLED],
                    "fulfilled_at": now,
                    "updated_at": now,
                },
            )
        except RecordNotFound:
            raise
        except Exception as e:
            raise PersistenceFailure("fulfill", str(e)) from e
        logger.info("Exchange entry %s fulfilled", record_id)
        return True

    def list_pending(self, operator_id: str) -> list[ExchangeRecord]:
        try:
            result = (
                self._get_client()
                .table(ENTRIES_TABLE)
                .select("*")
                .eq("gebietsleiter_id", operator_id)
                .eq("status", _STATUS_TO_DB[ExchangeStatus.PENDING])
                .order("created_at", desc=True)
                .execute()
            )
            return self._load_records(result.data or [])
        except Exception as e:
            raise PersistenceFailure("list_pending", str(e)) from e

    def _load_records(self, entries: list[dict]) -> list[ExchangeRecord]:
        if not entries:
            return []
        entry_ids = [str(e["id"]) for e in entries]
        items_result = (
            self._get_client()
            .table(ITEMS_TABLE)
            .select("*")
            .in_("vorverkauf_entry_id", entry_ids)
            .execute()
        )
        item_rows = items_result.data or []
        products = self._products_by_id({str(r["product_id"]) for r in item_rows})

        records: list[ExchangeRecord] = []
        for entry in entries:
            removed: list[LineItem] = []
            replacement: list[LineItem] = []
            for row in item_rows:
                if str(row["vorverkauf_entry_id"]) != str(entry["id"]):
                    continue
                product = products.get(str(row["product_id"]))
                if product is None:
                    logger.warning("Entry %s references unknown product %s", entry["id"], row["product_id"])
                    continue
                item = LineItem(product=product, quantity=row.get("quantity") or 1)
                (removed if row.get("item_type") == "take_out" else replacement).append(item)

            total = entry.get("total_value")
            if total is None:
                total = sum(i.value for i in replacement)
            records.append(
                ExchangeRecord(
                    id=str(entry["id"]),
                    location_id=str(entry["market_id"]),
                    operator_id=str(entry["gebietsleiter_id"]),
                    removed=removed,
                    replacement=replacement,
                    total_value=float(total),
                    status=_STATUS_FROM_DB.get(entry.get("status"), ExchangeStatus.FULFILLED),
                    reason=ExchangeReason.PRODUCT_EXCHANGE,
                    notes=entry.get("notes"),
                    created_at=entry["created_at"],
                    fulfilled_at=entry.get("fulfilled_at"),
                )
            )
        return records
