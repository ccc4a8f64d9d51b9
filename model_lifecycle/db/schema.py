"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Two databases use this module:

  Record store (read by the engine, written by the host application):
    1. sales                 — one row per sale; total_amount, customer_id
    2. inventory_movements   — stock in/out per product
    3. trust_metrics         — periodic tenant trust snapshots
    4. products              — catalog with base price and units sold

  Model store (owned by the engine):
    5. model_store           — keyed blobs: serialized models, metadata JSON,
                               scaling-param JSON

Every record table carries ``organization_id``; all engine reads filter on it.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_SALES = """
CREATE TABLE IF NOT EXISTS sales (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    organization_id TEXT    NOT NULL,
    customer_id     TEXT,
    total_amount    REAL    NOT NULL DEFAULT 0,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_sales_org_created
    ON sales (organization_id, created_at);
"""

_DDL_INVENTORY_MOVEMENTS = """
CREATE TABLE IF NOT EXISTS inventory_movements (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    organization_id TEXT    NOT NULL,
    product_id      TEXT    NOT NULL,
    quantity        REAL    NOT NULL DEFAULT 0,
    type            TEXT    NOT NULL DEFAULT 'out',
    date            TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_inventory_movements_org_product
    ON inventory_movements (organization_id, product_id, date);
"""

_DDL_TRUST_METRICS = """
CREATE TABLE IF NOT EXISTS trust_metrics (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    organization_id TEXT    NOT NULL,
    score           REAL,
    reliability     REAL,
    consistency     REAL,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_trust_metrics_org_created
    ON trust_metrics (organization_id, created_at);
"""

_DDL_PRODUCTS = """
CREATE TABLE IF NOT EXISTS products (
    id              TEXT    NOT NULL,
    organization_id TEXT    NOT NULL,
    name            TEXT    NOT NULL,
    base_price      REAL,
    category        TEXT,
    units_sold      REAL    NOT NULL DEFAULT 0,
    PRIMARY KEY (organization_id, id)
);
"""

_DDL_MODEL_STORE = """
CREATE TABLE IF NOT EXISTS model_store (
    store_key   TEXT    PRIMARY KEY,
    payload     BLOB    NOT NULL,
    updated_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

RECORD_TABLE_NAMES: list[str] = [
    "sales",
    "inventory_movements",
    "trust_metrics",
    "products",
]

STORE_TABLE_NAMES: list[str] = ["model_store"]

ALL_TABLE_NAMES: list[str] = RECORD_TABLE_NAMES + STORE_TABLE_NAMES

_RECORD_DDL: list[str] = [
    _DDL_SALES,
    _DDL_INVENTORY_MOVEMENTS,
    _DDL_TRUST_METRICS,
    _DDL_PRODUCTS,
]

_STORE_DDL: list[str] = [_DDL_MODEL_STORE]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create every table and index (record tables and model store).

    Idempotent — safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection``.
    """
    _apply(conn, _RECORD_DDL + _STORE_DDL)
    logger.info("Schema applied: %d tables created/verified.", len(ALL_TABLE_NAMES))


def apply_store_schema(conn: sqlite3.Connection) -> None:
    """Create only the ``model_store`` table (used by the keyed blob store)."""
    _apply(conn, _STORE_DDL)


def _apply(conn: sqlite3.Connection, blocks: list[str]) -> None:
    logger.debug("Applying schema to database...")
    for ddl in blocks:
        for statement in _split_ddl(ddl):
            conn.execute(statement)
    conn.commit()


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return list of table names present in the database.

    Args:
        conn: An open ``sqlite3.Connection``.

    Returns:
        List of table name strings (sorted alphabetically).
    """
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row[0] for row in rows]
