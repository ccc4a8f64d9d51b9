"""
Tests for ingestion/data_provider.py.

Reads run through the default executor against a file-backed record store
seeded for two tenants; every read must stay inside its tenant.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from model_lifecycle.config import DataConfig, DatabaseConfig
from model_lifecycle.errors import FetchError
from model_lifecycle.ingestion.data_provider import DataProvider
from model_lifecycle.utils.time_utils import utcnow


@pytest.fixture
def provider(records_db, seed_tenant) -> DataProvider:
    seed_tenant("acme", days=20)
    seed_tenant("globex", days=4, base_amount=9000.0)
    return DataProvider(
        DatabaseConfig(db_path=records_db),
        DataConfig(transaction_limit=15, trust_metrics_limit=3),
    )


@pytest.mark.asyncio
async def test_sales_are_tenant_scoped(provider):
    acme = await provider.get_historical_sales("acme")
    globex = await provider.get_historical_sales("globex")
    assert len(acme) == 20
    assert len(globex) == 4
    assert all(r.total_amount < 1000 for r in acme)
    assert all(r.total_amount >= 9000 for r in globex)


@pytest.mark.asyncio
async def test_sales_lookback(provider):
    recent = await provider.get_historical_sales("acme", lookback_days=5)
    assert 4 <= len(recent) <= 6


@pytest.mark.asyncio
async def test_sales_lookback_relative_to_now(provider):
    rows = await provider.get_historical_sales(
        "acme", lookback_days=12, now=utcnow() + timedelta(days=10)
    )
    assert len(rows) == 2


@pytest.mark.asyncio
async def test_transaction_history_uses_configured_limit(provider):
    rows = await provider.get_transaction_history("acme")
    assert len(rows) == 15
    assert rows[0].created_at >= rows[-1].created_at
    assert len(await provider.get_transaction_history("acme", limit=2)) == 2


@pytest.mark.asyncio
async def test_trust_metrics_limit(provider):
    assert len(await provider.get_trust_metrics("acme")) == 3


@pytest.mark.asyncio
async def test_products_and_customers(provider):
    products = await provider.get_product_pricing_data("acme")
    assert {p.id for p in products} == {f"p{i}" for i in range(6)}
    customers = await provider.get_customer_behavior("globex")
    assert {r.customer_id for r in customers} == {"c0", "c1", "c2", "c3"}


@pytest.mark.asyncio
async def test_inventory_movements(provider):
    rows = await provider.get_inventory_movements("acme", "p1")
    assert len(rows) == 20
    assert await provider.get_inventory_movements("acme", "p5") == []


@pytest.mark.asyncio
async def test_unknown_tenant_gets_empty_lists(provider):
    assert await provider.get_historical_sales("initech") == []
    assert await provider.get_trust_metrics("initech") == []


@pytest.mark.asyncio
async def test_invalid_tenant_id_rejected(provider):
    with pytest.raises(ValueError):
        await provider.get_historical_sales("acme; DROP TABLE sales")


@pytest.mark.asyncio
async def test_database_error_raises_fetch_error(tmp_path):
    provider = DataProvider(DatabaseConfig(db_path=str(tmp_path / "no_schema.db")))
    with pytest.raises(FetchError) as excinfo:
        await provider.get_historical_sales("acme")
    assert excinfo.value.__cause__ is not None


@pytest.mark.asyncio
async def test_explicit_zero_limit_is_not_replaced_by_default(provider):
    assert await provider.get_transaction_history("acme", limit=0) == []
    assert await provider.get_trust_metrics("acme", limit=0) == []


@pytest.mark.asyncio
async def test_explicit_zero_lookback_is_not_replaced_by_default(provider):
    assert await provider.get_historical_sales("acme", lookback_days=0) == []
    assert await provider.get_inventory_movements("acme", "p1", lookback_days=0) == []
