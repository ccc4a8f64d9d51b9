"""
Heuristic confidence score for served predictions.

    confidence = low + (high - low) * performance * age_decay
    age_decay  = 1 / (1 + age_hours / update_interval_hours)

so a perfect, just-trained model scores close to ``high``, a model one full
update interval old gets half the span, and a model with unknown age gets
``low``. The result always lies in ``[low, high)``.

Uncertainty note
----------------
This is NOT a calibrated probability. It ranks predictions by how well the
model fit its own training data and how recently it was trained; nothing
more.
"""

from __future__ import annotations

import math
from typing import Optional

DEFAULT_LOW = 0.82
DEFAULT_HIGH = 0.97


def age_decay(age_hours: Optional[float], update_interval_hours: float) -> float:
    if age_hours is None:
        return 0.0
    return 1.0 / (1.0 + max(age_hours, 0.0) / update_interval_hours)


def compute_confidence(
    performance: Optional[float],
    age_hours: Optional[float],
    update_interval_hours: float,
    low: float = DEFAULT_LOW,
    high: float = DEFAULT_HIGH,
) -> float:
    """Bounded confidence in ``[low, high)``.

    Args:
        performance:           Backend fit score in [0, 1]; None counts as 0.
        age_hours:             Model age; None (no metadata) counts as unknown.
        update_interval_hours: Freshness interval the decay is relative to.
        low, high:             Range bounds.
    """
    perf = min(1.0, max(0.0, performance or 0.0))
    value = low + (high - low) * perf * age_decay(age_hours, update_interval_hours)
    return min(value, math.nextafter(high, low))
