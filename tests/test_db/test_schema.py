"""Tests for db/schema.py — idempotent DDL for record tables and the model store."""

from __future__ import annotations

import sqlite3

from model_lifecycle.db.schema import (
    ALL_TABLE_NAMES,
    RECORD_TABLE_NAMES,
    apply_schema,
    apply_store_schema,
    get_existing_tables,
)


def test_apply_schema_creates_all_tables(in_memory_db):
    existing = set(get_existing_tables(in_memory_db))
    assert set(ALL_TABLE_NAMES) <= existing


def test_apply_schema_is_idempotent(in_memory_db):
    apply_schema(in_memory_db)
    apply_schema(in_memory_db)
    assert set(ALL_TABLE_NAMES) <= set(get_existing_tables(in_memory_db))


def test_store_schema_only_creates_model_store():
    conn = sqlite3.connect(":memory:")
    apply_store_schema(conn)
    existing = set(get_existing_tables(conn))
    assert "model_store" in existing
    assert not existing & set(RECORD_TABLE_NAMES)
    conn.close()


def test_every_record_table_is_tenant_scoped(in_memory_db):
    for table in RECORD_TABLE_NAMES:
        cols = {row[1] for row in in_memory_db.execute(f"PRAGMA table_info({table})")}
        assert "organization_id" in cols, table
