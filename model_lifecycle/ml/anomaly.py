"""
Stateless z-score outlier checks.

Both checks use the POPULATION standard deviation. For a batch of ``n``
points the largest attainable ``|z|`` is ``sqrt(n - 1)``, so with the default
threshold of 2.5 a batch needs at least 8 points before anything can be
flagged.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

_EPSILON = 1e-6
MIN_BATCH_POINTS = 5


def detect_outliers(
    data: Sequence[float],
    threshold: float = 2.5,
    min_points: int = MIN_BATCH_POINTS,
) -> list[int]:
    """Return indices whose z-score against the whole batch exceeds ``threshold``.

    Batches shorter than ``min_points`` return ``[]``.
    """
    if len(data) < min_points:
        return []
    arr = np.asarray(data, dtype=np.float64)
    z = np.abs(arr - arr.mean()) / (arr.std() + _EPSILON)
    return [int(i) for i in np.flatnonzero(z > threshold)]


def is_anomaly(
    new_value: float,
    baseline: Sequence[float],
    threshold: float = 2.5,
) -> bool:
    """True when ``new_value`` lies more than ``threshold`` std devs from the baseline mean."""
    if len(baseline) == 0:
        return False
    arr = np.asarray(baseline, dtype=np.float64)
    std = float(arr.std()) or 1.0
    return abs(new_value - float(arr.mean())) / std > threshold


def reconstruction_errors(
    actual: Sequence[float],
    reconstructed: Sequence[float],
) -> list[float]:
    """Absolute per-point error between autoencoder input and output.

    Raises:
        ValueError: The sequences differ in length.
    """
    a = np.asarray(actual, dtype=np.float64).ravel()
    r = np.asarray(reconstructed, dtype=np.float64).ravel()
    if a.shape != r.shape:
        raise ValueError(f"Length mismatch: {a.shape[0]} actual vs {r.shape[0]} reconstructed.")
    return [float(v) for v in np.abs(a - r)]
