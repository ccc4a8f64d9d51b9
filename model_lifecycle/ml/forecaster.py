"""
Single-series windowed forecaster: train once, predict the next value.

A narrow, reusable unit for callers holding one numeric series (e.g. daily
demand for a product). It is not tenant-aware and does not persist anything;
the caller keeps the returned scaling params and passes them back to
``predict_next``.

    forecaster = Forecaster(backend)
    scaling = forecaster.train_model(daily_units)
    if scaling is not None:
        tomorrow = forecaster.predict_next(daily_units[-7:], scaling)
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from model_lifecycle.config import ForecasterConfig
from model_lifecycle.ml.backend import MLPSpec, ModelHandle, NumericBackend
from model_lifecycle.ml.runtime import (
    denormalize_value,
    normalize_min_max,
    prepare_time_series,
)
from model_lifecycle.models.meta import ScalingParams

logger = logging.getLogger(__name__)

FORECASTER_SPEC = MLPSpec(hidden_layers=(16, 8))


class Forecaster:
    """Min-max scaled MLP over a sliding window.

    Args:
        backend:     Numeric backend used to fit and predict.
        window_size: Number of past values per input row.
        epochs:      Training iterations.
        batch_size:  Mini-batch size.
    """

    def __init__(
        self,
        backend: NumericBackend,
        window_size: int = 7,
        epochs: int = 50,
        batch_size: int = 4,
    ) -> None:
        self.backend = backend
        self.window_size = window_size
        self.epochs = epochs
        self.batch_size = batch_size
        self._handle: Optional[ModelHandle] = None

    @classmethod
    def from_config(
        cls,
        backend: NumericBackend,
        config: ForecasterConfig,
        max_epochs: Optional[int] = None,
    ) -> "Forecaster":
        """Build from ``[forecaster]`` settings; ``max_epochs`` caps the epoch budget."""
        epochs = config.epochs if max_epochs is None else min(config.epochs, max_epochs)
        return cls(
            backend,
            window_size=config.window_size,
            epochs=epochs,
            batch_size=config.batch_size,
        )

    @property
    def is_trained(self) -> bool:
        return self._handle is not None

    def train_model(self, series: Sequence[float]) -> Optional[ScalingParams]:
        """Fit on ``series``; returns ``{min, max}`` or None if too short.

        Needs at least ``window_size + 1`` values.
        """
        if len(series) < self.window_size + 1:
            logger.warning(
                "Forecaster needs >= %d values to train; got %d.",
                self.window_size + 1, len(series),
            )
            return None

        scaled = normalize_min_max(series)
        X, y = prepare_time_series(scaled.normalized, self.window_size)
        self._handle = self.backend.fit(
            FORECASTER_SPEC, X, y, epochs=self.epochs, batch_size=self.batch_size
        )
        logger.info("Forecaster trained on %d windows (W=%d).", len(y), self.window_size)
        return ScalingParams(min=scaled.min, max=scaled.max)

    def predict_next(
        self,
        last_window: Sequence[float],
        scaling: ScalingParams,
    ) -> Optional[float]:
        """Predict the value following ``last_window``.

        Returns None when untrained or when ``len(last_window) != window_size``.
        """
        if self._handle is None or len(last_window) != self.window_size:
            return None
        if scaling.min is None or scaling.max is None:
            raise ValueError("Forecaster scaling must carry min and max.")

        span = (scaling.max - scaling.min) or 1.0
        row = (np.asarray(last_window, dtype=np.float64) - scaling.min) / span
        output = self.backend.predict(self._handle, row.reshape(1, -1))
        return denormalize_value(float(output[0, 0]), scaling.min, scaling.max)
