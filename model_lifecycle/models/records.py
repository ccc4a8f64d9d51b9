"""
Tenant business records as read from the backing store.

These are read-only views: the engine never writes to the record tables. All
models are frozen. Timestamps are kept as the ISO-8601 strings stored in
SQLite; ``features.daily_agg`` turns them into calendar-day keys.

Numeric columns that the host application may leave NULL (trust metric
components, base price) are ``Optional`` here and coerced to ``0.0`` by the
training recipes, never by the repository.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class SaleRecord(BaseModel):
    """One sale (also used as a transaction and as customer behavior)."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    total_amount: float = 0.0
    created_at: str
    customer_id: Optional[str] = None


class InventoryMovementRecord(BaseModel):
    """One stock movement for a product."""

    model_config = ConfigDict(frozen=True)

    quantity: float = 0.0
    date: str
    type: str = "out"


class TrustMetricRecord(BaseModel):
    """One trust snapshot for the tenant."""

    model_config = ConfigDict(frozen=True)

    score: Optional[float] = None
    reliability: Optional[float] = None
    consistency: Optional[float] = None
    created_at: str


class ProductPricingRecord(BaseModel):
    """Catalog row used for price recommendation."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    base_price: Optional[float] = None
    category: Optional[str] = None
    units_sold: float = 0.0
