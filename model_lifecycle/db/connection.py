"""
SQLite connections for the record store and the model store.

Both databases are opened one connection per operation. The data provider
and the blob store do their SQLite work in executor threads, and a
``sqlite3.Connection`` never crosses threads.

``open_db(settings)`` accepts any config section carrying ``db_path``,
``wal_mode`` and ``busy_timeout_ms`` (``DatabaseConfig``, ``CacheConfig``)::

    with open_db(config.cache) as conn:
        apply_store_schema(conn)

``get_connection`` is the same context manager with explicit arguments.
Either way the connection has foreign keys on, ``sqlite3.Row`` rows, and is
committed when the block exits cleanly or rolled back when it raises.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Protocol

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class ConnectionSettings(Protocol):
    db_path: str
    wal_mode: bool
    busy_timeout_ms: int


def _apply_pragmas(conn: sqlite3.Connection, wal_mode: bool, busy_timeout_ms: int) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
    if wal_mode:
        # In-memory databases answer "memory"; nothing to switch.
        conn.execute("PRAGMA journal_mode = WAL;")


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Iterator[sqlite3.Connection]:
    """Open ``db_path``, yield the connection, then commit or roll back.

    Parent directories of a file path are created on first use.

    Raises:
        sqlite3.OperationalError: The file cannot be opened, or stays locked
            past ``busy_timeout_ms``.
    """
    if db_path != MEMORY_PATH:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row
    try:
        _apply_pragmas(conn, wal_mode, busy_timeout_ms)
        yield conn
    except Exception:
        conn.rollback()
        raise
    else:
        conn.commit()
    finally:
        conn.close()


def open_db(settings: ConnectionSettings, db_path: Optional[str] = None):
    """``get_connection`` configured from a config section.

    Args:
        settings: ``DatabaseConfig`` or ``CacheConfig``.
        db_path:  Overrides ``settings.db_path`` (CLI ``--db-path`` flags).
    """
    return get_connection(
        db_path or settings.db_path,
        wal_mode=settings.wal_mode,
        busy_timeout_ms=settings.busy_timeout_ms,
    )
