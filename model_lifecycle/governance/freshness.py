"""
Model freshness checks.

A cached model is fresh while its age (now − ``last_trained_at``) is within
the update interval. Missing metadata means the age cannot be determined, and
such a model is always due for retraining.

Status classification
---------------------
  "fresh"   — age <= update_interval_hours
  "stale"   — age >  update_interval_hours
  "unknown" — no metadata (treated as stale)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from model_lifecycle.models.meta import ModelMetadata
from model_lifecycle.utils.time_utils import age_hours as _age_hours


class FreshnessStatus(str, Enum):
    """How current a cached model is."""

    FRESH   = "fresh"    # Within the update interval
    STALE   = "stale"    # Past the update interval
    UNKNOWN = "unknown"  # No metadata to determine age


@dataclass(frozen=True)
class FreshnessResult:
    """Freshness outcome for one (tenant, model type).

    Attributes:
        last_trained_at:       From metadata, or None.
        age_hours:             Hours since training, or None if unknown.
        update_interval_hours: Threshold applied.
        status:                FreshnessStatus classification.
    """

    last_trained_at:       Optional[datetime]
    age_hours:             Optional[float]
    update_interval_hours: float
    status:                FreshnessStatus

    @property
    def needs_retrain(self) -> bool:
        return self.status is not FreshnessStatus.FRESH


def check_model_freshness(
    metadata: Optional[ModelMetadata],
    update_interval_hours: float,
    now: Optional[datetime] = None,
) -> FreshnessResult:
    """Classify a model's freshness from its metadata."""
    if metadata is None:
        return FreshnessResult(
            last_trained_at=None,
            age_hours=None,
            update_interval_hours=update_interval_hours,
            status=FreshnessStatus.UNKNOWN,
        )

    age = _age_hours(metadata.last_trained_at, now)
    status = FreshnessStatus.STALE if age > update_interval_hours else FreshnessStatus.FRESH
    return FreshnessResult(
        last_trained_at=metadata.last_trained_at,
        age_hours=age,
        update_interval_hours=update_interval_hours,
        status=status,
    )
