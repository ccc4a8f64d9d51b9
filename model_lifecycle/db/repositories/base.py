"""
Shared SQL helpers for the record and model-store repositories.

A repository wraps a connection it does not own: ``DataProvider`` and
``KeyedBlobStore`` open one with ``open_db``/``get_connection``, build a
repository on it for a single operation, and let the context manager commit
or roll back. Repositories return pydantic records or raw bytes, never
``sqlite3.Row`` objects.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable, Optional, Sequence, Union

logger = logging.getLogger(__name__)

Params = Union[Sequence[Any], dict[str, Any]]


def placeholders(count: int) -> str:
    """``?, ?, ?`` for an ``IN (...)`` clause with ``count`` values."""
    if count < 1:
        raise ValueError("An IN clause needs at least one value.")
    return ", ".join("?" * count)


class BaseRepository:
    """Thin execution layer over one ``sqlite3.Connection``.

    Every statement is logged at DEBUG with its parameters.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        logger.debug("SQL: %s | params: %s", " ".join(sql.split()), params)
        return self.conn.execute(sql, params)

    def executemany(self, sql: str, rows: Iterable[Params]) -> sqlite3.Cursor:
        rows = list(rows)
        logger.debug("SQL x%d: %s", len(rows), " ".join(sql.split()))
        return self.conn.executemany(sql, rows)

    def fetchone(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()
