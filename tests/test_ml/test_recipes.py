"""
Tests for ml/recipes.py — per-model-type training recipes.

Recipes are exercised with the FakeBackend so the assertions are about the
datasets they build, the scaling they capture and their minimum-data gates.
"""

from __future__ import annotations

import pytest

from model_lifecycle.config import AppConfig, LifecycleConfig
from model_lifecycle.errors import InsufficientDataError
from model_lifecycle.ingestion.data_provider import DataProvider
from model_lifecycle.ml.recipes import RECIPES, RecipeContext, get_recipe


@pytest.fixture
def ctx(app_config, fake_backend) -> RecipeContext:
    return RecipeContext(
        provider=DataProvider(app_config.database, app_config.data),
        backend=fake_backend,
        config=app_config,
    )


def test_registry_covers_tracked_types(app_config):
    assert set(RECIPES) == set(app_config.lifecycle.tracked_model_types)


def test_unknown_recipe():
    with pytest.raises(ValueError, match="Unknown model type"):
        get_recipe("weather")


def test_epochs_are_capped(app_config, fake_backend):
    config = app_config.model_copy(update={"lifecycle": LifecycleConfig(max_epochs=5)})
    capped = RecipeContext(provider=None, backend=fake_backend, config=config)
    assert capped.epochs(30) == 5
    assert capped.epochs(3) == 3


class TestSalesForecast:
    @pytest.mark.asyncio
    async def test_windows_and_zscore(self, ctx, seed_tenant):
        seed_tenant("acme", days=20)
        trained = await get_recipe("sales_forecast")(ctx, "acme")

        assert trained.handle.n_features == ctx.config.forecaster.window_size
        assert trained.n_samples == 20 - ctx.config.forecaster.window_size
        assert trained.scaling.kind == "zscore"
        assert trained.scaling.std > 0
        assert trained.performance == 0.9

    @pytest.mark.asyncio
    async def test_too_few_days(self, ctx, seed_tenant):
        seed_tenant("acme", days=9)
        with pytest.raises(InsufficientDataError) as excinfo:
            await get_recipe("sales_forecast")(ctx, "acme")
        assert excinfo.value.required == 10
        assert excinfo.value.available == 9


class TestFraudDetection:
    @pytest.mark.asyncio
    async def test_autoencoder_on_amounts(self, ctx, seed_tenant, fake_backend):
        seed_tenant("acme", days=12)
        trained = await get_recipe("fraud_detection")(ctx, "acme")

        assert trained.handle.n_features == 1
        assert trained.n_samples == 12
        assert trained.scaling.kind == "zscore"
        assert fake_backend.fit_calls == ["mlp"]

    @pytest.mark.asyncio
    async def test_needs_ten_transactions(self, ctx, seed_tenant):
        seed_tenant("acme", days=9)
        with pytest.raises(InsufficientDataError):
            await get_recipe("fraud_detection")(ctx, "acme")


class TestCreditRisk:
    @pytest.mark.asyncio
    async def test_three_features_no_scaling(self, ctx, seed_tenant):
        seed_tenant("acme", days=1)
        trained = await get_recipe("credit_risk")(ctx, "acme")

        assert trained.handle.n_features == 3
        assert trained.handle.spec.output_range == (0.0, 1.0)
        assert trained.scaling.kind == "none"
        assert trained.n_samples == 5

    @pytest.mark.asyncio
    async def test_no_trust_metrics(self, ctx):
        with pytest.raises(InsufficientDataError):
            await get_recipe("credit_risk")(ctx, "acme")


class TestPriceRecommendation:
    @pytest.mark.asyncio
    async def test_boosted_tree_on_products(self, ctx, seed_tenant, fake_backend):
        seed_tenant("acme", days=1)
        trained = await get_recipe("price_recommendation")(ctx, "acme")

        assert trained.handle.n_features == 2
        assert trained.n_samples == 6
        assert fake_backend.fit_calls == ["gbm"]
        # FakeBackend predicts the mean target: mean(base_price) * markup.
        expected = sum(10.0 + i * 5 for i in range(6)) / 6 * 1.15
        assert trained.handle.estimator["mean"] == pytest.approx(expected)


class TestCustomerSegmentation:
    @pytest.mark.asyncio
    async def test_mixture_over_customer_totals(self, ctx, seed_tenant):
        seed_tenant("acme", days=20)
        trained = await get_recipe("customer_segmentation")(ctx, "acme")

        assert trained.handle.n_outputs == ctx.config.lifecycle.segment_count
        assert trained.handle.n_features == 1
        assert trained.n_samples == 8

    @pytest.mark.asyncio
    async def test_needs_six_customers(self, ctx, seed_tenant):
        seed_tenant("acme", days=5)
        with pytest.raises(InsufficientDataError):
            await get_recipe("customer_segmentation")(ctx, "acme")


@pytest.mark.asyncio
async def test_recipes_only_see_their_tenant(app_config, fake_backend, seed_tenant):
    seed_tenant("acme", days=20)
    seed_tenant("globex", days=2)
    ctx = RecipeContext(
        provider=DataProvider(app_config.database, app_config.data),
        backend=fake_backend,
        config=AppConfig(database=app_config.database, cache=app_config.cache),
    )
    with pytest.raises(InsufficientDataError):
        await get_recipe("sales_forecast")(ctx, "globex")
