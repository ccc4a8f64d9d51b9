"""
Tests for governance/registry.py — store keys and the per-tenant registry.

Covers:
  - Key layout for model, metadata and scaling entries
  - Tenant id validation (charset, reserved ``ml_`` prefix)
  - ModelRegistry state transitions and in-flight markers
"""

from datetime import datetime, timedelta, timezone

import pytest

from model_lifecycle.governance.registry import (
    ModelRegistry,
    ModelState,
    RegistryEntry,
    meta_key,
    model_key,
    params_key,
    validate_model_type,
    validate_tenant_id,
)
from model_lifecycle.ml.backend import MLPSpec, ModelHandle
from model_lifecycle.models.meta import ModelMetadata, ScalingParams

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


def _entry(hours_ago=1.0, with_metadata=True) -> RegistryEntry:
    metadata = (
        ModelMetadata(last_trained_at=NOW - timedelta(hours=hours_ago), performance=0.7)
        if with_metadata
        else None
    )
    handle = ModelHandle(spec=MLPSpec(hidden_layers=(2,)), estimator=None, n_features=1, n_outputs=1)
    return RegistryEntry(handle=handle, metadata=metadata, scaling=ScalingParams())


# ── Keys ──────────────────────────────────────────────────────────────────────


class TestKeys:
    def test_layout(self):
        assert model_key("acme", "sales_forecast") == "acme_sales_forecast"
        assert meta_key("acme", "sales_forecast") == "ml_meta_acme_sales_forecast"
        assert params_key("acme", "sales_forecast") == "ml_params_acme_sales_forecast"

    def test_keys_differ_between_tenants(self):
        assert model_key("acme", "credit_risk") != model_key("globex", "credit_risk")

    @pytest.mark.parametrize(
        "bad", ["", "acme corp", "acme/1", "acme\n", "ml_meta", "ml_x", None, 42]
    )
    def test_invalid_tenant_ids(self, bad):
        with pytest.raises(ValueError):
            validate_tenant_id(bad)

    @pytest.mark.parametrize("good", ["acme", "Org-7", "tenant_01", "ml"])
    def test_valid_tenant_ids(self, good):
        assert validate_tenant_id(good) == good

    def test_unknown_model_type(self):
        with pytest.raises(ValueError, match="Unknown model type"):
            validate_model_type("weather")
        with pytest.raises(ValueError):
            model_key("acme", "weather")


# ── Registry ──────────────────────────────────────────────────────────────────


class TestModelRegistry:
    def test_rejects_invalid_tenant(self):
        with pytest.raises(ValueError):
            ModelRegistry("ml_acme")

    def test_absent_then_cached(self):
        reg = ModelRegistry("acme")
        assert reg.state("credit_risk", 24.0, NOW) == ModelState.ABSENT
        reg.put("credit_risk", _entry(hours_ago=1))
        assert reg.state("credit_risk", 24.0, NOW) == ModelState.CACHED
        assert len(reg) == 1
        assert reg.model_types() == ["credit_risk"]

    def test_stale_when_old_or_missing_metadata(self):
        reg = ModelRegistry("acme")
        reg.put("credit_risk", _entry(hours_ago=30))
        reg.put("fraud_detection", _entry(with_metadata=False))
        assert reg.state("credit_risk", 24.0, NOW) == ModelState.STALE
        assert reg.state("fraud_detection", 24.0, NOW) == ModelState.STALE

    def test_in_flight_guard(self):
        reg = ModelRegistry("acme")
        assert reg.try_begin_training("sales_forecast") is True
        assert reg.try_begin_training("sales_forecast") is False
        assert reg.is_in_flight("sales_forecast")
        assert reg.state("sales_forecast", 24.0, NOW) == ModelState.TRAINING
        reg.end_training("sales_forecast")
        assert not reg.is_in_flight("sales_forecast")
        assert reg.try_begin_training("sales_forecast") is True

    def test_failure_marker_cleared_by_success(self):
        reg = ModelRegistry("acme")
        reg.put("credit_risk", _entry())
        reg.try_begin_training("credit_risk")
        reg.end_training("credit_risk", failed=True)
        assert reg.has_failed("credit_risk")
        assert reg.state("credit_risk", 24.0, NOW) == ModelState.FAILED
        assert reg.get("credit_risk") is not None

        reg.put("credit_risk", _entry())
        assert not reg.has_failed("credit_risk")
        assert reg.state("credit_risk", 24.0, NOW) == ModelState.CACHED

    def test_put_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            ModelRegistry("acme").put("weather", _entry())
