"""
Shared pytest fixtures for the model lifecycle engine test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``records_db`` / ``cache_db``: file-backed SQLite paths under tmp_path
    (the data provider and blob store open one connection per operation).
  - ``seed_tenant``: inserts enough records for every recipe to train.
  - ``FakeBackend``: a deterministic, instant ``NumericBackend`` for
    orchestrator tests.
"""

from __future__ import annotations

import io
import sqlite3
from datetime import timedelta
from typing import Generator, Optional

import joblib
import numpy as np
import pytest

from model_lifecycle.config import AppConfig, CacheConfig, DatabaseConfig
from model_lifecycle.db.connection import get_connection
from model_lifecycle.db.repositories.store_repo import KeyedBlobStore
from model_lifecycle.db.schema import apply_schema
from model_lifecycle.errors import BackendUnavailableError
from model_lifecycle.ml.backend import MixtureSpec, ModelHandle, ModelSpec, as_matrix
from model_lifecycle.ml.runtime import EngineRuntime
from model_lifecycle.pipeline.orchestrator import LifecycleOrchestrator
from model_lifecycle.utils.time_utils import utcnow


# ── Fake numeric backend ──────────────────────────────────────────────────────

class FakeBackend:
    """Predicts the training-target mean; mixtures predict uniform memberships.

    Args:
        fail_init: ``initialize()`` raises ``BackendUnavailableError``.
        fail_fit:  ``fit()`` raises ``RuntimeError``.
        performance: Value returned by ``score()``.
    """

    name = "fake"

    def __init__(
        self,
        fail_init: bool = False,
        fail_fit: bool = False,
        performance: float = 0.9,
    ) -> None:
        self.fail_init = fail_init
        self.fail_fit = fail_fit
        self.performance = performance
        self.init_calls = 0
        self.fit_calls: list[str] = []

    def initialize(self) -> str:
        self.init_calls += 1
        if self.fail_init:
            raise BackendUnavailableError("fake backend disabled")
        return "fake 1.0"

    def fit(self, spec: ModelSpec, X, y, epochs: int, batch_size: Optional[int] = None) -> ModelHandle:
        if self.fail_fit:
            raise RuntimeError("fit exploded")
        X_arr = as_matrix(X)
        self.fit_calls.append(spec.kind)
        if isinstance(spec, MixtureSpec):
            return ModelHandle(
                spec=spec,
                estimator={"mean": 0.0},
                n_features=X_arr.shape[1],
                n_outputs=spec.n_components,
            )
        return ModelHandle(
            spec=spec,
            estimator={"mean": float(np.mean(y))},
            n_features=X_arr.shape[1],
            n_outputs=1,
        )

    def predict(self, handle: ModelHandle, X) -> np.ndarray:
        X_arr = as_matrix(X)
        if X_arr.shape[1] != handle.n_features:
            raise ValueError("width mismatch")
        if handle.n_outputs > 1:
            return np.full((X_arr.shape[0], handle.n_outputs), 1.0 / handle.n_outputs)
        return np.full((X_arr.shape[0], 1), handle.estimator["mean"])

    def score(self, handle: ModelHandle, X, y) -> float:
        return self.performance

    def dumps(self, handle: ModelHandle) -> bytes:
        buf = io.BytesIO()
        joblib.dump(handle, buf)
        return buf.getvalue()

    def loads(self, blob: bytes) -> ModelHandle:
        handle = joblib.load(io.BytesIO(blob))
        if not isinstance(handle, ModelHandle):
            raise ValueError("not a handle")
        return handle


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def records_db(tmp_path) -> str:
    """File-backed record store with the schema applied."""
    path = str(tmp_path / "records.db")
    with get_connection(path) as conn:
        apply_schema(conn)
    return path


@pytest.fixture
def cache_db(tmp_path) -> str:
    return str(tmp_path / "cache" / "models.db")


@pytest.fixture
def store(cache_db) -> KeyedBlobStore:
    return KeyedBlobStore(cache_db)


def _iso(dt) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def insert_tenant_records(
    conn: sqlite3.Connection,
    tenant_id: str,
    days: int = 20,
    base_amount: float = 100.0,
) -> None:
    """Insert sales, trust metrics, products and inventory movements for a tenant.

    Sales: one per day over the last ``days`` days, attributed round-robin
    to 8 customers. Trust metrics: 5 rows. Products: 6 priced rows.
    """
    now = utcnow()
    for d in range(days):
        created = now - timedelta(days=d, hours=1)
        amount = base_amount + d * 3.0 + (d % 3) * 10.0
        conn.execute(
            "INSERT INTO sales (organization_id, customer_id, total_amount, created_at) "
            "VALUES (?, ?, ?, ?)",
            (tenant_id, f"c{d % 8}", amount, _iso(created)),
        )
        conn.execute(
            "INSERT INTO inventory_movements (organization_id, product_id, quantity, type, date) "
            "VALUES (?, ?, ?, ?, ?)",
            (tenant_id, "p1", float(d % 5 + 1), "out", _iso(created)),
        )
    for i in range(5):
        conn.execute(
            "INSERT INTO trust_metrics (organization_id, score, reliability, consistency, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (tenant_id, 60.0 + i * 7, 0.5 + i * 0.1, 0.4 + i * 0.05,
             _iso(now - timedelta(days=i))),
        )
    for i in range(6):
        conn.execute(
            "INSERT INTO products (id, organization_id, name, base_price, category, units_sold) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (f"p{i}", tenant_id, f"Product {i}", 10.0 + i * 5, "general", float(20 - i * 2)),
        )


@pytest.fixture
def insert_records():
    """The ``insert_tenant_records`` helper, for tests holding their own connection."""
    return insert_tenant_records


@pytest.fixture
def seed_tenant(records_db):
    """Callable: ``seed_tenant(tenant_id, **kwargs)`` inserts a full record set."""
    def _seed(tenant_id: str, **kwargs) -> None:
        with get_connection(records_db) as conn:
            insert_tenant_records(conn, tenant_id, **kwargs)
    return _seed


# ── Engine fixtures ───────────────────────────────────────────────────────────

@pytest.fixture
def app_config(records_db, cache_db) -> AppConfig:
    return AppConfig(
        database=DatabaseConfig(db_path=records_db),
        cache=CacheConfig(db_path=cache_db),
    )


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def runtime(fake_backend, store) -> EngineRuntime:
    rt = EngineRuntime(fake_backend, store)
    rt.initialize()
    return rt


@pytest.fixture
def orchestrator(app_config, fake_backend) -> LifecycleOrchestrator:
    return LifecycleOrchestrator.from_config(app_config, backend=fake_backend)


@pytest.fixture
def make_backend():
    """``FakeBackend`` class, for tests that need a non-default instance."""
    return FakeBackend
