"""
Tenant-scoped, read-only access to business records.

``RecordRepository.read()`` is the single query path: every entity type maps
to a fixed table, column list, timestamp column and optional extra predicate.
The ``organization_id = ?`` predicate is always present and always bound to
the caller's tenant id, so a read can never return another tenant's rows.

Entity types
------------
  sales               — sales in ascending time order (forecasting)
  transactions        — sales, newest first (fraud detection)
  customer_behavior   — sales with a non-null customer_id (segmentation)
  trust_metrics       — trust snapshots, newest first (credit risk)
  products            — catalog rows (price recommendation)
  inventory_movements — stock movements for one product
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from model_lifecycle.db.repositories.base import BaseRepository
from model_lifecycle.models.records import (
    InventoryMovementRecord,
    ProductPricingRecord,
    SaleRecord,
    TrustMetricRecord,
)
from model_lifecycle.utils.time_utils import lookback_start


@dataclass(frozen=True)
class EntitySpec:
    """How one entity type is read from the record store."""

    table: str
    columns: tuple[str, ...]
    record_cls: type[BaseModel]
    time_column: Optional[str] = None
    extra_where: Optional[str] = None
    filterable: tuple[str, ...] = ()


ENTITY_SPECS: dict[str, EntitySpec] = {
    "sales": EntitySpec(
        table="sales",
        columns=("total_amount", "created_at"),
        record_cls=SaleRecord,
        time_column="created_at",
    ),
    "transactions": EntitySpec(
        table="sales",
        columns=("id", "total_amount", "created_at", "customer_id"),
        record_cls=SaleRecord,
        time_column="created_at",
    ),
    "customer_behavior": EntitySpec(
        table="sales",
        columns=("customer_id", "total_amount", "created_at"),
        record_cls=SaleRecord,
        time_column="created_at",
        extra_where="customer_id IS NOT NULL",
    ),
    "trust_metrics": EntitySpec(
        table="trust_metrics",
        columns=("score", "reliability", "consistency", "created_at"),
        record_cls=TrustMetricRecord,
        time_column="created_at",
    ),
    "products": EntitySpec(
        table="products",
        columns=("id", "name", "base_price", "category", "units_sold"),
        record_cls=ProductPricingRecord,
    ),
    "inventory_movements": EntitySpec(
        table="inventory_movements",
        columns=("quantity", "date", "type"),
        record_cls=InventoryMovementRecord,
        time_column="date",
        filterable=("product_id",),
    ),
}


class RecordRepository(BaseRepository):
    """Read-only queries over the record tables, always filtered by tenant."""

    def read(
        self,
        tenant_id: str,
        entity_type: str,
        lookback_days: Optional[int] = None,
        limit: Optional[int] = None,
        ascending: bool = True,
        filters: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> list[BaseModel]:
        """Read records of one entity type for one tenant.

        Args:
            tenant_id:     Tenant (organization) id; bound into every query.
            entity_type:   Key of ``ENTITY_SPECS``.
            lookback_days: Only rows whose timestamp is within this many days
                           of ``now``. Ignored for entities without a
                           timestamp column.
            limit:         Maximum number of rows.
            ascending:     Chronological order when True, newest first when
                           False. Entities without a timestamp are ordered by
                           rowid.
            filters:       Equality filters on the entity's ``filterable``
                           columns (e.g. ``{"product_id": "p-1"}``).
            now:           Reference instant for the lookback window.

        Returns:
            List of frozen record models.

        Raises:
            ValueError: Unknown entity type or non-filterable column.
        """
        spec = ENTITY_SPECS.get(entity_type)
        if spec is None:
            raise ValueError(
                f"Unknown entity type '{entity_type}'. "
                f"Must be one of {sorted(ENTITY_SPECS)}."
            )

        where = ["organization_id = ?"]
        params: list[Any] = [tenant_id]

        if spec.extra_where:
            where.append(spec.extra_where)

        for column, value in (filters or {}).items():
            if column not in spec.filterable:
                raise ValueError(
                    f"Column '{column}' is not filterable for '{entity_type}'."
                )
            where.append(f"{column} = ?")
            params.append(value)

        if lookback_days is not None and spec.time_column:
            where.append(f"{spec.time_column} >= ?")
            params.append(
                lookback_start(lookback_days, now).strftime("%Y-%m-%dT%H:%M:%SZ")
            )

        direction = "ASC" if ascending else "DESC"
        order_column = spec.time_column or "rowid"
        sql = (
            f"SELECT {', '.join(spec.columns)} FROM {spec.table} "
            f"WHERE {' AND '.join(where)} "
            f"ORDER BY {order_column} {direction}, rowid {direction}"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        rows = self.fetchall(sql, tuple(params))
        return [spec.record_cls(**dict(row)) for row in rows]

