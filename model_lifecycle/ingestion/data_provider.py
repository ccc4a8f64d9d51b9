"""
Tenant-scoped async reads of business records.

Every method takes a ``tenant_id`` and resolves to ``RecordRepository.read``,
which always binds ``organization_id = tenant_id``. Blocking SQLite work runs
in an executor (one connection per call, opened in the worker thread), so
awaiting a read never blocks the event loop.

Failure policy
--------------
A database error is raised as ``FetchError`` chained from the underlying
``sqlite3.Error``. There is no silent empty-list fallback: the orchestrator
decides per model type whether a failed fetch skips or fails the run.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sqlite3
from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Optional

from model_lifecycle.config import DataConfig, DatabaseConfig
from model_lifecycle.db.connection import open_db
from model_lifecycle.db.repositories.record_repo import RecordRepository
from model_lifecycle.errors import FetchError
from model_lifecycle.governance.registry import validate_tenant_id
from model_lifecycle.models.records import (
    InventoryMovementRecord,
    ProductPricingRecord,
    SaleRecord,
    TrustMetricRecord,
)

logger = logging.getLogger(__name__)


class DataProvider:
    """Reads tenant records for training.

    Args:
        db_config:   Record store location and SQLite settings.
        data_config: Default lookback windows and row limits.
        executor:    Executor for blocking reads (None = loop default).
    """

    def __init__(
        self,
        db_config: DatabaseConfig,
        data_config: Optional[DataConfig] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.db_config = db_config
        self.data_config = data_config or DataConfig()
        self._executor = executor

    # ── Public reads ──────────────────────────────────────────────────────────

    async def get_historical_sales(
        self,
        tenant_id: str,
        lookback_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[SaleRecord]:
        """Sales since ``now - lookback_days``, oldest first."""
        if lookback_days is None:
            lookback_days = self.data_config.lookback_days
        return await self._read(
            tenant_id,
            "sales",
            lookback_days=lookback_days,
            now=now,
        )

    async def get_inventory_movements(
        self,
        tenant_id: str,
        product_id: str,
        lookback_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[InventoryMovementRecord]:
        """Stock movements of one product, oldest first."""
        if lookback_days is None:
            lookback_days = self.data_config.lookback_days
        return await self._read(
            tenant_id,
            "inventory_movements",
            lookback_days=lookback_days,
            filters={"product_id": product_id},
            now=now,
        )

    async def get_transaction_history(
        self,
        tenant_id: str,
        limit: Optional[int] = None,
    ) -> list[SaleRecord]:
        """Most recent transactions, newest first."""
        if limit is None:
            limit = self.data_config.transaction_limit
        return await self._read(
            tenant_id,
            "transactions",
            limit=limit,
            ascending=False,
        )

    async def get_trust_metrics(
        self,
        tenant_id: str,
        limit: Optional[int] = None,
    ) -> list[TrustMetricRecord]:
        """Most recent trust snapshots, newest first."""
        if limit is None:
            limit = self.data_config.trust_metrics_limit
        return await self._read(
            tenant_id,
            "trust_metrics",
            limit=limit,
            ascending=False,
        )

    async def get_product_pricing_data(self, tenant_id: str) -> list[ProductPricingRecord]:
        return await self._read(tenant_id, "products")

    async def get_customer_behavior(self, tenant_id: str) -> list[SaleRecord]:
        """Sales attributed to a customer."""
        return await self._read(tenant_id, "customer_behavior")

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _read(self, tenant_id: str, entity_type: str, **kwargs: Any) -> list:
        validate_tenant_id(tenant_id)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            functools.partial(self._read_sync, tenant_id, entity_type, **kwargs),
        )

    def _read_sync(self, tenant_id: str, entity_type: str, **kwargs: Any) -> list:
        try:
            with open_db(self.db_config) as conn:
                records = RecordRepository(conn).read(tenant_id, entity_type, **kwargs)
        except sqlite3.Error as exc:
            raise FetchError(
                f"Reading {entity_type} for tenant '{tenant_id}' failed: {exc}"
            ) from exc
        logger.debug(
            "Fetched %d %s rows tenant=%s", len(records), entity_type, tenant_id
        )
        return records
