"""SQLite backend: catalog, locations and exchange records in one local file.

Used offline and in tests. Implements all three collaborator contracts
over the schema in src.common.database.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import date, datetime
from pathlib import Path

from src.common.database import get_connection, init_db
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


class SQLiteBackend(CatalogAccessor, LocationDirectory, ExchangeRecordStore):
    """Local store implementing catalog, location and record contracts."""

    def __init__(self, db_path: str | Path | None = None) -> None:
        self.db_path = db_path
        init_db(db_path)

    def _connect(self) -> sqlite3.Connection:
        return get_connection(self.db_path)

    # --- Catalog ---

    def upsert_products(self, products: list[Product]) -> int:
        """Insert or update products; list order becomes catalog order."""
        conn = self._connect()
        try:
            offset = conn.execute("SELECT COALESCE(MAX(position), -1) + 1 FROM products").fetchone()[0]
            for i, p in enumerate(products):
                conn.execute(
                    """INSERT INTO products
                       (id, name, category, subtype, price, weight, content,
                        pallet_size, sku, article_number, is_active, position)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(id) DO UPDATE SET
                         name = excluded.name,
                         category = excluded.category,
                         subtype = excluded.subtype,
                         price = excluded.price,
                         weight = excluded.weight,
                         content = excluded.content,
                         pallet_size = excluded.pallet_size,
                         sku = excluded.sku,
                         article_number = excluded.article_number,
                         is_active = excluded.is_active""",
                    (
                        p.id, p.name, p.category, p.subtype, p.price, p.weight,
                        p.content, p.pallet_size, p.sku, p.article_number,
                        int(p.is_active), offset + i,
                    ),
                )
            conn.commit()
            return len(products)
        finally:
            conn.close()

    def load_catalog_json(self, path: str | Path) -> int:
        """Import products from a JSON file ({"products": [...]} or a list)."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        rows = data.get("products", []) if isinstance(data, dict) else data
        count = self.upsert_products([Product(**row) for row in rows])
        logger.info("Imported %d products from %s", count, path)
        return count

    def list_products(self) -> list[Product]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM products ORDER BY position").fetchall()
        finally:
            conn.close()
        return [_row_to_product(row) for row in rows]

    def _products_by_id(self, conn: sqlite3.Connection, ids: set[str]) -> dict[str, Product]:
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        rows = conn.execute(
            f"SELECT * FROM products WHERE id IN ({placeholders})", tuple(ids)
        ).fetchall()
        return {row["id"]: _row_to_product(row) for row in rows}

    # --- Locations ---

    def upsert_locations(self, locations: list[Location]) -> int:
        conn = self._connect()
        try:
            for loc in locations:
                conn.execute(
                    """INSERT INTO locations
                       (id, name, chain, address, city, postal_code,
                        current_visits, last_visit_date)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(id) DO UPDATE SET
                         name = excluded.name,
                         chain = excluded.chain,
                         address = excluded.address,
                         city = excluded.city,
                         postal_code = excluded.postal_code""",
                    (
                        loc.id, loc.name, loc.chain, loc.address, loc.city,
                        loc.postal_code, loc.current_visits,
                        loc.last_visit_date.isoformat() if loc.last_visit_date else None,
                    ),
                )
            conn.commit()
            return len(locations)
        finally:
            conn.close()

    def list(self) -> list[Location]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM locations ORDER BY name").fetchall()
        finally:
            conn.close()
        return [
            Location(
                id=row["id"],
                name=row["name"],
                chain=row["chain"] or "",
                address=row["address"] or "",
                city=row["city"] or "",
                postal_code=row["postal_code"] or "",
                current_visits=row["current_visits"],
                last_visit_date=row["last_visit_date"],
            )
            for row in rows
        ]

    def record_visit(self, location_id: str, operator_id: str) -> None:
        """Log the visit; current_visits counts at most once per calendar day."""
        now = datetime.now()
        today = date.today().isoformat()
        conn = self._connect()
        try:
            with conn:
                row = conn.execute(
                    "SELECT last_visit_date FROM locations WHERE id = ?", (location_id,)
                ).fetchone()
                if row is None:
                    raise PersistenceFailure("record_visit", f"unknown location '{location_id}'")
                if row["last_visit_date"] != today:
                    conn.execute(
                        """UPDATE locations
                           SET current_visits = current_visits + 1, last_visit_date = ?
                           WHERE id = ?""",
                        (today, location_id),
                    )
                else:
                    logger.info("Location %s already visited today, not incrementing", location_id)
                conn.execute(
                    "INSERT INTO location_visits (location_id, operator_id, visited_at) VALUES (?, ?, ?)",
                    (location_id, operator_id, now.isoformat()),
                )
        except sqlite3.Error as e:
            raise PersistenceFailure("record_visit", str(e)) from e
        finally:
            conn.close()

    # --- Exchange records ---

    def create(self, record: ExchangeRecord) -> str:
        record_id = record.id or str(uuid.uuid4())
        items = [(i, "take_out") for i in record.removed] + [
            (i, "replace") for i in record.replacement
        ]
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """INSERT INTO exchange_records
                       (id, location_id, operator_id, reason, notes, total_value,
                        status, created_at, fulfilled_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        record_id,
                        record.location_id,
                        record.operator_id,
                        record.reason.value,
                        record.notes,
                        record.total_value,
                        record.status.value,
                        record.created_at.isoformat(),
                        record.fulfilled_at.isoformat() if record.fulfilled_at else None,
                    ),
                )
                conn.executemany(
                    """INSERT INTO exchange_items
                       (record_id, product_id, quantity, item_type, product_name, category, unit_price)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    [
                        (record_id, i.product.id, i.quantity, t, i.product.name, i.product.category, i.product.price)
                        for i, t in items
                    ],
                )
        except sqlite3.Error as e:
            raise PersistenceFailure("create", str(e)) from e
        finally:
            conn.close()
        logger.info("Created exchange record %s (%s)", record_id, record.status.value)
        return record_id

    def get(self, record_id: str) -> ExchangeRecord:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM exchange_records WHERE id = ?", (record_id,)
            ).fetchone()
            if row is None:
                raise RecordNotFound(record_id)
            return self._load_record(conn, row)
        finally:
            conn.close()

    def fulfill(self, record_id: str) -> bool:
        conn = self._connect()
        try:
            with conn:
                row = conn.execute(
                    "SELECT status FROM exchange_records WHERE id = ?", (record_id,)
                ).fetchone()
                if row is None:
                    raise RecordNotFound(record_id)
                if row["status"] == ExchangeStatus.FULFILLED.value:
                    logger.info("Exchange record %s already fulfilled (no-op)", record_id)
                    return False
                conn.execute(
                    "UPDATE exchange_records SET status = ?, fulfilled_at = ? WHERE id = ? AND status = ?",
                    (
                        ExchangeStatus.FULFILLED.value,
                        datetime.now().isoformat(),
                        record_id,
                        ExchangeStatus.PENDING.value,
                    ),
                )
        except sqlite3.Error as e:
            raise PersistenceFailure("fulfill", str(e)) from e
        finally:
            conn.close()
        logger.info("Exchange record %s fulfilled", record_id)
        return True

    def list_pending(self, operator_id: str) -> list[ExchangeRecord]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """SELECT * FROM exchange_records
                   WHERE operator_id = ? AND status = ?
                   ORDER BY created_at DESC""",
                (operator_id, ExchangeStatus.PENDING.value),
            ).fetchall()
            return [self._load_record(conn, row) for row in rows]
        finally:
            conn.close()

    @staticmethod
    def _snapshot_product(item_row: sqlite3.Row) -> Product:
        """Product as stored on the item row, for ids no longer in the catalog."""
        return Product(
            id=item_row["product_id"],
            name=item_row["product_name"] or "Unknown",
            category=item_row["category"] or "",
            price=item_row["unit_price"] or 0,
        )

    def _load_record(self, conn: sqlite3.Connection, row: sqlite3.Row) -> ExchangeRecord:
        item_rows = conn.execute(
            "SELECT * FROM exchange_items WHERE record_id = ? ORDER BY id", (row["id"],)
        ).fetchall()
        products = self._products_by_id(conn, {r["product_id"] for r in item_rows})
        removed: list[LineItem] = []
        replacement: list[LineItem] = []
        for r in item_rows:
            product = products.get(r["product_id"]) or self._snapshot_product(r)
            item = LineItem(product=product, quantity=r["quantity"])
            (removed if r["item_type"] == "take_out" else replacement).append(item)
        return ExchangeRecord(
            id=row["id"],
            location_id=row["location_id"],
            operator_id=row["operator_id"],
            removed=removed,
            replacement=replacement,
            total_value=row["total_value"],
            status=ExchangeStatus(row["status"]),
            reason=ExchangeReason(row["reason"]),
            notes=row["notes"],
            created_at=row["created_at"],
            fulfilled_at=row["fulfilled_at"],
        )


def _row_to_product(row: sqlite3.Row) -> Product:
    return Product(
        id=row["id"],
        name=row["name"],
        category=row["category"],
        subtype=row["subtype"],
        price=row["price"],
        weight=row["weight"] or "",
        content=row["content"],
        pallet_size=row["pallet_size"],
        sku=row["sku"],
        article_number=row["article_number"],
        is_active=bool(row["is_active"]),
    )
