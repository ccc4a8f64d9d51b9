"""Tests for models/meta.py — ModelMetadata, ScalingParams, Prediction, bump_version."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from model_lifecycle.models.meta import (
    INITIAL_VERSION,
    ModelMetadata,
    Prediction,
    ScalingParams,
    bump_version,
)


class TestBumpVersion:
    def test_first_version(self):
        assert bump_version(None) == INITIAL_VERSION == "1.0.0"

    def test_patch_increment(self):
        assert bump_version("1.0.0") == "1.0.1"
        assert bump_version("2.3.9") == "2.3.10"

    def test_garbage_restarts(self):
        assert bump_version("v1") == INITIAL_VERSION


class TestModelMetadata:
    def test_naive_datetime_becomes_utc(self):
        meta = ModelMetadata(last_trained_at=datetime(2024, 1, 1, 12), performance=0.5)
        assert meta.last_trained_at.tzinfo == timezone.utc

    @pytest.mark.parametrize("bad", [-0.1, 1.01])
    def test_performance_bounds(self, bad):
        with pytest.raises(ValidationError):
            ModelMetadata(last_trained_at=datetime.now(timezone.utc), performance=bad)

    def test_json_round_trip(self):
        meta = ModelMetadata(
            last_trained_at=datetime(2024, 5, 1, 8, tzinfo=timezone.utc),
            version="1.0.3",
            performance=0.77,
        )
        assert ModelMetadata.model_validate_json(meta.model_dump_json()) == meta


class TestScalingParams:
    def test_kinds(self):
        assert ScalingParams().kind == "none"
        assert ScalingParams(min=0, max=5).kind == "minmax"
        assert ScalingParams(mean=1, std=2).kind == "zscore"

    def test_half_pair_rejected(self):
        with pytest.raises(ValidationError):
            ScalingParams(min=1.0)
        with pytest.raises(ValidationError):
            ScalingParams(std=1.0)

    def test_mixed_kinds_rejected(self):
        with pytest.raises(ValidationError):
            ScalingParams(min=0, max=1, mean=0, std=1)


def test_prediction_accepts_scalar_or_vector():
    assert Prediction(value=3.5, confidence=0.9).value == 3.5
    assert Prediction(value=[0.2, 0.8], confidence=0.85).value == [0.2, 0.8]
