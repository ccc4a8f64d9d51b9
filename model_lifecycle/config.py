"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``MODEL_LIFECYCLE_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The orchestrator, data provider, runtime and CLI commands all receive an
``AppConfig`` (or one of its sections) — never raw dicts or env lookups
scattered through the codebase.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

TRACKED_MODEL_TYPES: tuple[str, ...] = (
    "sales_forecast",
    "fraud_detection",
    "credit_risk",
    "price_recommendation",
    "customer_segmentation",
)

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite settings for the read-only business records store."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/records.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class CacheConfig(BaseModel):
    """Local keyed store holding trained models, metadata and scaling params."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/cache/models.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class DataConfig(BaseModel):
    """Lookback windows and row limits for tenant record reads."""

    model_config = ConfigDict(frozen=True)

    lookback_days: int = 90
    transaction_limit: int = 1000
    trust_metrics_limit: int = 10

    @field_validator("lookback_days", "transaction_limit", "trust_metrics_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v


class LifecycleConfig(BaseModel):
    """Freshness policy, training bounds and confidence range."""

    model_config = ConfigDict(frozen=True)

    update_interval_hours: float = 24.0
    sweep_interval_minutes: float = 60.0
    tracked_model_types: list[str] = list(TRACKED_MODEL_TYPES)
    max_epochs: int = 200
    price_markup: float = 1.15
    segment_count: int = 3
    confidence_low: float = 0.82
    confidence_high: float = 0.97
    random_seed: int = 42

    @field_validator("update_interval_hours", "sweep_interval_minutes")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Intervals must be > 0, got {v}.")
        return v

    @field_validator("tracked_model_types")
    @classmethod
    def validate_model_types(cls, v: list[str]) -> list[str]:
        unknown = sorted(set(v) - set(TRACKED_MODEL_TYPES))
        if unknown:
            raise ValueError(
                f"Unknown model types {unknown}. "
                f"Must be drawn from {list(TRACKED_MODEL_TYPES)}."
            )
        return v

    @model_validator(mode="after")
    def validate_confidence_range(self) -> "LifecycleConfig":
        if not 0.0 <= self.confidence_low < self.confidence_high <= 1.0:
            raise ValueError(
                "Confidence range must satisfy 0 <= low < high <= 1, "
                f"got [{self.confidence_low}, {self.confidence_high})."
            )
        return self


class ForecasterConfig(BaseModel):
    """Windowed regression settings shared by the forecaster and sales recipe."""

    model_config = ConfigDict(frozen=True)

    window_size: int = 7
    epochs: int = 50
    batch_size: int = 4
    min_daily_points: int = 10

    @field_validator("window_size")
    @classmethod
    def validate_window(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"window_size must be >= 1, got {v}.")
        return v


class AnomalyConfig(BaseModel):
    """Z-score outlier detection thresholds."""

    model_config = ConfigDict(frozen=True)

    z_threshold: float = 2.5
    min_points: int = 5


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/model_lifecycle.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth."""

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    cache: CacheConfig = CacheConfig()
    data: DataConfig = DataConfig()
    lifecycle: LifecycleConfig = LifecycleConfig()
    forecaster: ForecasterConfig = ForecasterConfig()
    anomaly: AnomalyConfig = AnomalyConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config explicitly."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply MODEL_LIFECYCLE_* env vars to the raw config dict.

    Supported overrides:
      MODEL_LIFECYCLE_DB_PATH                → raw["database"]["db_path"]
      MODEL_LIFECYCLE_CACHE_DB_PATH          → raw["cache"]["db_path"]
      MODEL_LIFECYCLE_LOG_LEVEL              → raw["logging"]["level"]
      MODEL_LIFECYCLE_UPDATE_INTERVAL_HOURS  → raw["lifecycle"]["update_interval_hours"]
      MODEL_LIFECYCLE_DEBUG                  → raw["debug"]
    """
    if db_path := os.environ.get("MODEL_LIFECYCLE_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if cache_path := os.environ.get("MODEL_LIFECYCLE_CACHE_DB_PATH"):
        raw.setdefault("cache", {})["db_path"] = cache_path

    if log_level := os.environ.get("MODEL_LIFECYCLE_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if interval := os.environ.get("MODEL_LIFECYCLE_UPDATE_INTERVAL_HOURS"):
        raw.setdefault("lifecycle", {})["update_interval_hours"] = float(interval)

    if debug := os.environ.get("MODEL_LIFECYCLE_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        cache=CacheConfig(**raw.get("cache", {})),
        data=DataConfig(**raw.get("data", {})),
        lifecycle=LifecycleConfig(**raw.get("lifecycle", {})),
        forecaster=ForecasterConfig(**raw.get("forecaster", {})),
        anomaly=AnomalyConfig(**raw.get("anomaly", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
