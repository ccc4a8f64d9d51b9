"""
Lifecycle metadata — what the engine persists next to every trained model.

``ModelMetadata`` is the source of truth for freshness: a model without
metadata is treated as stale. It is overwritten (never merged) on every
retrain.

``ScalingParams`` records the normalization captured at training time. It is
persisted under the same (tenant, model type) namespace as the model and
loaded with it, so inference never mixes a model with another run's scaling.

``Prediction`` is the caller-facing result of ``LifecycleOrchestrator.predict``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

INITIAL_VERSION = "1.0.0"


def bump_version(previous: Optional[str]) -> str:
    """Return the next patch version after ``previous``.

    ``None`` or an unparseable version yields ``INITIAL_VERSION``.

    >>> bump_version("1.0.4")
    '1.0.5'
    """
    if not previous:
        return INITIAL_VERSION
    parts = previous.split(".")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return INITIAL_VERSION
    major, minor, patch = (int(p) for p in parts)
    return f"{major}.{minor}.{patch + 1}"


class ModelMetadata(BaseModel):
    """Freshness and quality record for one (tenant, model type).

    Attributes:
        last_trained_at: UTC datetime the model finished training.
        version:         Patch-bumped on every retrain, starting at 1.0.0.
        performance:     Fit score in [0, 1] reported by the backend.
    """

    model_config = ConfigDict(frozen=True)

    last_trained_at: datetime
    version: str = INITIAL_VERSION
    performance: float

    @field_validator("last_trained_at")
    @classmethod
    def validate_tz(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("performance")
    @classmethod
    def validate_performance(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"performance must be in [0.0, 1.0], got {v}.")
        return v


class ScalingParams(BaseModel):
    """Normalization constants captured at training time.

    Exactly one of: ``{min, max}`` (min-max), ``{mean, std}`` (z-score), or
    nothing (the model type scales internally or not at all).
    """

    model_config = ConfigDict(frozen=True)

    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    std: Optional[float] = None

    @model_validator(mode="after")
    def validate_pairs(self) -> "ScalingParams":
        has_minmax = self.min is not None or self.max is not None
        has_zscore = self.mean is not None or self.std is not None
        if has_minmax and (self.min is None or self.max is None):
            raise ValueError("min and max must be set together.")
        if has_zscore and (self.mean is None or self.std is None):
            raise ValueError("mean and std must be set together.")
        if has_minmax and has_zscore:
            raise ValueError("ScalingParams holds either {min, max} or {mean, std}, not both.")
        return self

    @property
    def kind(self) -> str:
        """``"minmax"``, ``"zscore"`` or ``"none"``."""
        if self.min is not None:
            return "minmax"
        if self.mean is not None:
            return "zscore"
        return "none"


class Prediction(BaseModel):
    """A served prediction.

    Attributes:
        value:      Scalar (regression, denormalized to the original scale) or
                    the raw output vector (classification / clustering).
        confidence: Heuristic score in ``[confidence_low, confidence_high)``.
                    Not a calibrated probability.
    """

    model_config = ConfigDict(frozen=True)

    value: Union[float, list[float]]
    confidence: float
