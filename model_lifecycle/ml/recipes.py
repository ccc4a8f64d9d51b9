"""
Training recipes — one per tracked model type.

Each recipe fetches the tenant's records through the ``DataProvider``,
builds an ``(X, y)`` dataset, fits through the numeric backend (off the event
loop) and returns a ``TrainedModel``. Persistence and the registry swap are
the orchestrator's job; a recipe never writes anything.

Recipes
-------
  sales_forecast         daily sales sums (>= min_daily_points days), z-scored,
                         sliding window -> MLP (32, 16), 30 epochs.
                         Scaling {mean, std}.
  fraud_detection        transaction amounts (>= 10), z-scored -> bottleneck
                         autoencoder MLP (4, 2, 4) reconstructing the amount,
                         20 epochs. Scaling {mean, std}.
  credit_risk            trust metric rows [score, reliability, consistency]
                         (>= 3) -> MLP (8) regressing 1 - score/100, output
                         clipped to [0, 1]. No scaling.
  price_recommendation   product rows [base_price, units_sold] (>= 5 priced
                         products) -> LightGBM toward base_price * markup.
                         No scaling.
  customer_segmentation  total spend per customer (>= 6 customers) ->
                         Gaussian mixture with segment_count components.
                         No scaling.

Too little data raises ``InsufficientDataError``; the orchestrator records a
skip. Epoch budgets are capped by ``lifecycle.max_epochs``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections import defaultdict
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import numpy as np

from model_lifecycle.config import AppConfig
from model_lifecycle.errors import InsufficientDataError
from model_lifecycle.features.daily_agg import aggregate_daily
from model_lifecycle.ingestion.data_provider import DataProvider
from model_lifecycle.ml.backend import (
    BoostedTreeSpec,
    MixtureSpec,
    MLPSpec,
    ModelHandle,
    ModelSpec,
    NumericBackend,
)
from model_lifecycle.ml.runtime import prepare_time_series, standardize
from model_lifecycle.models.meta import ScalingParams

logger = logging.getLogger(__name__)

MIN_TRANSACTIONS = 10
MIN_TRUST_ROWS = 3
MIN_PRICED_PRODUCTS = 5
MIN_CUSTOMERS = 6

SALES_FORECAST_EPOCHS = 30
FRAUD_EPOCHS = 20
CREDIT_RISK_EPOCHS = 20
PRICE_BOOST_ROUNDS = 50
SEGMENTATION_ITERATIONS = 100


@dataclass(frozen=True)
class TrainedModel:
    """Output of a recipe, ready to be persisted."""

    handle:      ModelHandle
    scaling:     ScalingParams
    performance: float
    n_samples:   int


@dataclass
class RecipeContext:
    """Dependencies shared by all recipes for one orchestrator."""

    provider: DataProvider
    backend:  NumericBackend
    config:   AppConfig
    executor: Optional[Executor] = None

    def epochs(self, requested: int) -> int:
        return min(requested, self.config.lifecycle.max_epochs)

    async def fit(
        self,
        spec: ModelSpec,
        X: np.ndarray,
        y: Optional[np.ndarray],
        epochs: int,
        batch_size: Optional[int] = None,
    ) -> tuple[ModelHandle, float]:
        """Fit and score in the executor; returns ``(handle, performance)``."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.executor,
            functools.partial(
                _fit_and_score, self.backend, spec, X, y, self.epochs(epochs), batch_size
            ),
        )


def _fit_and_score(
    backend: NumericBackend,
    spec: ModelSpec,
    X: np.ndarray,
    y: Optional[np.ndarray],
    epochs: int,
    batch_size: Optional[int],
) -> tuple[ModelHandle, float]:
    handle = backend.fit(spec, X, y, epochs=epochs, batch_size=batch_size)
    performance = backend.score(handle, X, y)
    logger.debug(
        "Fitted %s on %d rows (epochs=%d): performance=%.3f",
        spec.kind, X.shape[0], epochs, performance,
    )
    return handle, performance


def _require(model_type: str, required: int, available: int) -> None:
    if available < required:
        raise InsufficientDataError(model_type, required, available)


# ── Recipes ───────────────────────────────────────────────────────────────────


async def train_sales_forecast(ctx: RecipeContext, tenant_id: str) -> TrainedModel:
    records = await ctx.provider.get_historical_sales(tenant_id)
    daily = aggregate_daily(records)
    fc = ctx.config.forecaster
    _require("sales_forecast", max(fc.min_daily_points, fc.window_size + 1), len(daily))

    scaled = standardize(daily)
    X, y = prepare_time_series(scaled.standardized, fc.window_size)
    handle, performance = await ctx.fit(
        MLPSpec(hidden_layers=(32, 16)), X, y, epochs=SALES_FORECAST_EPOCHS
    )
    return TrainedModel(
        handle=handle,
        scaling=ScalingParams(mean=scaled.mean, std=scaled.std),
        performance=performance,
        n_samples=len(y),
    )


async def train_fraud_detection(ctx: RecipeContext, tenant_id: str) -> TrainedModel:
    records = await ctx.provider.get_transaction_history(tenant_id)
    amounts = [r.total_amount for r in records]
    _require("fraud_detection", MIN_TRANSACTIONS, len(amounts))

    scaled = standardize(amounts)
    X = np.asarray(scaled.standardized, dtype=np.float64).reshape(-1, 1)
    handle, performance = await ctx.fit(
        MLPSpec(hidden_layers=(4, 2, 4)), X, X[:, 0], epochs=FRAUD_EPOCHS
    )
    return TrainedModel(
        handle=handle,
        scaling=ScalingParams(mean=scaled.mean, std=scaled.std),
        performance=performance,
        n_samples=len(amounts),
    )


async def train_credit_risk(ctx: RecipeContext, tenant_id: str) -> TrainedModel:
    records = await ctx.provider.get_trust_metrics(tenant_id)
    _require("credit_risk", MIN_TRUST_ROWS, len(records))

    X = np.asarray(
        [[r.score or 0.0, r.reliability or 0.0, r.consistency or 0.0] for r in records],
        dtype=np.float64,
    )
    y = np.clip(1.0 - X[:, 0] / 100.0, 0.0, 1.0)
    handle, performance = await ctx.fit(
        MLPSpec(hidden_layers=(8,), output_range=(0.0, 1.0)),
        X, y, epochs=CREDIT_RISK_EPOCHS,
    )
    return TrainedModel(
        handle=handle, scaling=ScalingParams(), performance=performance, n_samples=len(y)
    )


async def train_price_recommendation(ctx: RecipeContext, tenant_id: str) -> TrainedModel:
    products = await ctx.provider.get_product_pricing_data(tenant_id)
    priced = [p for p in products if p.base_price is not None]
    _require("price_recommendation", MIN_PRICED_PRODUCTS, len(priced))

    X = np.asarray([[p.base_price, p.units_sold] for p in priced], dtype=np.float64)
    y = X[:, 0] * ctx.config.lifecycle.price_markup
    handle, performance = await ctx.fit(BoostedTreeSpec(), X, y, epochs=PRICE_BOOST_ROUNDS)
    return TrainedModel(
        handle=handle, scaling=ScalingParams(), performance=performance, n_samples=len(y)
    )


async def train_customer_segmentation(ctx: RecipeContext, tenant_id: str) -> TrainedModel:
    records = await ctx.provider.get_customer_behavior(tenant_id)
    spend: dict[str, float] = defaultdict(float)
    for r in records:
        spend[r.customer_id] += r.total_amount
    _require("customer_segmentation", MIN_CUSTOMERS, len(spend))

    k = ctx.config.lifecycle.segment_count
    totals = np.asarray(sorted(spend.values()), dtype=np.float64).reshape(-1, 1)
    _require("customer_segmentation", k, len(np.unique(totals)))

    handle, performance = await ctx.fit(
        MixtureSpec(n_components=k), totals, None, epochs=SEGMENTATION_ITERATIONS
    )
    return TrainedModel(
        handle=handle, scaling=ScalingParams(), performance=performance, n_samples=len(totals)
    )


Recipe = Callable[[RecipeContext, str], Awaitable[TrainedModel]]

RECIPES: dict[str, Recipe] = {
    "sales_forecast":        train_sales_forecast,
    "fraud_detection":       train_fraud_detection,
    "credit_risk":           train_credit_risk,
    "price_recommendation":  train_price_recommendation,
    "customer_segmentation": train_customer_segmentation,
}


def get_recipe(model_type: str) -> Recipe:
    """Look up a recipe. Raises ``ValueError`` for an unknown model type."""
    try:
        return RECIPES[model_type]
    except KeyError:
        raise ValueError(
            f"Unknown model type '{model_type}'. Must be one of {sorted(RECIPES)}."
        ) from None
