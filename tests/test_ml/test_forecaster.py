"""Tests for ml/forecaster.py — the standalone windowed forecaster."""

from __future__ import annotations

import pytest

from model_lifecycle.config import ForecasterConfig
from model_lifecycle.ml.backend import EstimatorBackend
from model_lifecycle.ml.forecaster import Forecaster
from model_lifecycle.models.meta import ScalingParams


def test_too_short_series_returns_none(fake_backend):
    fc = Forecaster(fake_backend, window_size=7)
    assert fc.train_model([1.0] * 7) is None
    assert not fc.is_trained
    assert fake_backend.fit_calls == []


def test_train_returns_min_max(fake_backend):
    fc = Forecaster(fake_backend, window_size=3)
    scaling = fc.train_model([2.0, 4.0, 6.0, 8.0, 10.0])
    assert scaling == ScalingParams(min=2.0, max=10.0)
    assert fc.is_trained


def test_predict_before_training_is_none(fake_backend):
    fc = Forecaster(fake_backend, window_size=3)
    assert fc.predict_next([1.0, 2.0, 3.0], ScalingParams(min=0.0, max=1.0)) is None


def test_predict_wrong_window_is_none(fake_backend):
    fc = Forecaster(fake_backend, window_size=3)
    scaling = fc.train_model([1.0, 2.0, 3.0, 4.0, 5.0])
    assert fc.predict_next([1.0, 2.0], scaling) is None


def test_predict_denormalizes(fake_backend):
    # The fake backend predicts the mean of the normalized targets.
    fc = Forecaster(fake_backend, window_size=2)
    scaling = fc.train_model([0.0, 10.0, 20.0, 30.0, 40.0])
    # targets (normalized) = [0.5, 0.75, 1.0] -> mean 0.75 -> 30.0
    assert fc.predict_next([30.0, 40.0], scaling) == pytest.approx(30.0)


def test_predict_requires_min_max(fake_backend):
    fc = Forecaster(fake_backend, window_size=2)
    fc.train_model([1.0, 2.0, 3.0, 4.0])
    with pytest.raises(ValueError):
        fc.predict_next([1.0, 2.0], ScalingParams(mean=0.0, std=1.0))


def test_from_config_caps_epochs(fake_backend):
    config = ForecasterConfig(window_size=5, epochs=50, batch_size=8)
    fc = Forecaster.from_config(fake_backend, config, max_epochs=20)
    assert (fc.window_size, fc.epochs, fc.batch_size) == (5, 20, 8)
    assert Forecaster.from_config(fake_backend, config).epochs == 50


def test_real_backend_end_to_end():
    backend = EstimatorBackend()
    backend.initialize()
    series = [float(10 + (i % 7)) for i in range(40)]
    fc = Forecaster(backend, window_size=7, epochs=30)
    scaling = fc.train_model(series)
    value = fc.predict_next(series[-7:], scaling)
    assert value is not None
    assert isinstance(value, float)
