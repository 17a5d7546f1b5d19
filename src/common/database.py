"""SQLite database utilities for the local exchange store.

Provides connection management and table initialization. The schema
mirrors the remote tables (products, markets, vorverkauf entries/items)
closely enough that the SQLite backend can stand in for them offline.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from .config import settings

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    category TEXT NOT NULL,
    subtype TEXT NOT NULL DEFAULT 'standard',
    price REAL NOT NULL DEFAULT 0 CHECK (price >= 0),
    weight TEXT DEFAULT '',
    content TEXT,
    pallet_size INTEGER,
    sku TEXT,
    article_number TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    position INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS locations (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    chain TEXT DEFAULT '',
    address TEXT DEFAULT '',
    city TEXT DEFAULT '',
    postal_code TEXT DEFAULT '',
    current_visits INTEGER NOT NULL DEFAULT 0,
    last_visit_date TEXT
);

CREATE TABLE IF NOT EXISTS location_visits (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    location_id TEXT NOT NULL,
    operator_id TEXT NOT NULL,
    visited_at TEXT NOT NULL,
    FOREIGN KEY (location_id) REFERENCES locations(id)
);

CREATE TABLE IF NOT EXISTS exchange_records (
    id TEXT PRIMARY KEY,
    location_id TEXT NOT NULL,
    operator_id TEXT NOT NULL,
    reason TEXT NOT NULL DEFAULT 'Produkttausch',
    notes TEXT,
    total_value REAL NOT NULL DEFAULT 0,
    status TEXT NOT NULL CHECK (status IN ('pending', 'fulfilled')),
    created_at TEXT NOT NULL,
    fulfilled_at TEXT
);

CREATE TABLE IF NOT EXISTS exchange_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    record_id TEXT NOT NULL,
    product_id TEXT NOT NULL,
    quantity INTEGER NOT NULL CHECK (quantity > 0),
    item_type TEXT NOT NULL CHECK (item_type IN ('take_out', 'replace')),
    product_name TEXT,
    category TEXT,
    unit_price REAL,
    FOREIGN KEY (record_id) REFERENCES exchange_records(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_exchange_records_operator
    ON exchange_records(operator_id, status);
CREATE INDEX IF NOT EXISTS idx_exchange_items_record ON exchange_items(record_id);
CREATE INDEX IF NOT EXISTS idx_location_visits_location ON location_visits(location_id);
"""


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """Get a SQLite connection with row factory enabled."""
    path = Path(db_path) if db_path else settings.database.db_abs_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(db_path: str | Path | None = None) -> None:
    """Create all tables if they don't exist (idempotent)."""
    conn = get_connection(db_path)
    try:
        conn.executescript(_CREATE_TABLES_SQL)
        conn.commit()
        logger.info("Database schema initialized at %s", db_path or settings.database.db_abs_path)
    finally:
        conn.close()
