"""
Keyed blob store for trained models, metadata and scaling params.

``ModelStoreRepository`` holds the SQL against the ``model_store`` table for an
already-open connection. ``KeyedBlobStore`` owns the database path and opens a
fresh connection per operation, which makes it safe to call from executor
threads.

The store knows nothing about tenants: isolation comes from the keys, which
are always built by ``governance.registry`` from ``(tenant_id, model_type)``.
``set_many()`` writes all entries in a single transaction, which is how a
model and its paired metadata and scaling params are saved atomically.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from typing import Optional

from model_lifecycle.db.connection import get_connection
from model_lifecycle.db.repositories.base import BaseRepository, placeholders
from model_lifecycle.db.schema import apply_store_schema

logger = logging.getLogger(__name__)

_UPSERT_SQL = """
INSERT INTO model_store (store_key, payload, updated_at)
VALUES (?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
ON CONFLICT(store_key) DO UPDATE SET
    payload    = excluded.payload,
    updated_at = excluded.updated_at;
"""


class ModelStoreRepository(BaseRepository):
    """SQL access to ``model_store``."""

    def get(self, key: str) -> Optional[bytes]:
        row = self.fetchone(
            "SELECT payload FROM model_store WHERE store_key = ?;", (key,)
        )
        if row is None:
            return None
        payload = row["payload"]
        return bytes(payload) if payload is not None else None

    def get_many(self, keys: list[str]) -> dict[str, bytes]:
        """Return ``{key: payload}`` for the stored subset of ``keys``.

        One SELECT, so every payload comes from the same committed snapshot.
        """
        if not keys:
            return {}
        rows = self.fetchall(
            f"SELECT store_key, payload FROM model_store "
            f"WHERE store_key IN ({placeholders(len(keys))});",
            tuple(keys),
        )
        return {
            row["store_key"]: bytes(row["payload"])
            for row in rows
            if row["payload"] is not None
        }

    def upsert(self, key: str, payload: bytes) -> None:
        self.execute(_UPSERT_SQL, (key, sqlite3.Binary(payload)))

    def upsert_many(self, items: dict[str, bytes]) -> None:
        self.executemany(
            _UPSERT_SQL,
            [(key, sqlite3.Binary(payload)) for key, payload in items.items()],
        )

    def keys_with_prefix(self, prefix: str) -> list[str]:
        rows = self.fetchall(
            "SELECT store_key FROM model_store WHERE substr(store_key, 1, ?) = ? "
            "ORDER BY store_key;",
            (len(prefix), prefix),
        )
        return [row["store_key"] for row in rows]


class KeyedBlobStore:
    """Local keyed store: ``set(key, blob)``, ``get(key) -> blob | None``.

    Args:
        db_path:         SQLite file backing the store.
        wal_mode:        Enable WAL journal mode.
        busy_timeout_ms: SQLite busy timeout.
    """

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        if db_path == ":memory:":
            raise ValueError(
                "KeyedBlobStore opens one connection per operation; "
                "use a file path (e.g. a pytest tmp_path), not ':memory:'."
            )
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def _connect(self):
        return get_connection(
            self.db_path,
            wal_mode=self.wal_mode,
            busy_timeout_ms=self.busy_timeout_ms,
        )

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if not self._schema_ready:
                apply_store_schema(conn)
                self._schema_ready = True

    def get(self, key: str) -> Optional[bytes]:
        """Return the blob stored under ``key``, or ``None``."""
        with self._connect() as conn:
            self._ensure_schema(conn)
            return ModelStoreRepository(conn).get(key)

    def get_many(self, keys: list[str]) -> dict[str, bytes]:
        """Read several blobs in one transaction; missing keys are omitted."""
        with self._connect() as conn:
            self._ensure_schema(conn)
            return ModelStoreRepository(conn).get_many(keys)

    def set(self, key: str, blob: bytes) -> None:
        """Store ``blob`` under ``key``, replacing any previous value."""
        with self._connect() as conn:
            self._ensure_schema(conn)
            ModelStoreRepository(conn).upsert(key, blob)
        logger.debug("Stored %d bytes under key=%s", len(blob), key)

    def set_many(self, items: dict[str, bytes]) -> None:
        """Store several blobs in one transaction (all or nothing)."""
        with self._connect() as conn:
            self._ensure_schema(conn)
            ModelStoreRepository(conn).upsert_many(items)
        logger.debug("Stored %d entries atomically: %s", len(items), sorted(items))

    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with ``prefix``."""
        with self._connect() as conn:
            self._ensure_schema(conn)
            return ModelStoreRepository(conn).keys_with_prefix(prefix)
