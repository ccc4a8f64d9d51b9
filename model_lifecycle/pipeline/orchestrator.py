"""
Per-tenant model lifecycle orchestration.

The ``LifecycleOrchestrator`` is the engine's caller-facing API:

  initialize(tenant_id)   Step 1 — Backend:  initialize the runtime once
                                             (unavailable -> no predictions).
                          Step 2 — Load:     load every tracked model with its
                                             paired metadata and scaling.
                          Step 3 — Sweep:    retrain loaded models that are
                                             stale (or lack metadata); if
                                             nothing was cached at all, train
                                             every tracked type.
  run_sweep(tenant_id)    One freshness pass: retrain absent, stale and failed
                          types. Used by the scheduler.
  update_model(t, type)   fetch -> transform -> fit -> persist bundle -> swap.
  predict(t, type, x)     Serve from the registry's last-known-good entry.
  score_transactions(t, amounts)
                          Fraud autoencoder reconstruction errors, flagged
                          above the anomaly threshold.
  status(tenant_id)       Per-type lifecycle state for reporting.

Failure isolation
-----------------
- Insufficient data:  outcome "skipped", logged at INFO.
- Fetch / backend:    outcome "failed"; sibling model types still train.
- Persistence:        outcome "failed"; the registry keeps the previous entry
                      so an unpersisted model is never served as fresh.
- Failed types are retried on the NEXT sweep, never immediately.

Concurrency
-----------
One asyncio thread of control per tenant. Reads, fits, saves and inference
run in an executor. An in-flight marker per (tenant, model type) makes a
concurrent ``update_model`` for the same key return "skipped_in_flight".
``predict`` reads a frozen registry entry that is replaced in one assignment
after the bundle is persisted.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import Executor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Sequence

import numpy as np

from model_lifecycle.config import AppConfig
from model_lifecycle.db.repositories.store_repo import KeyedBlobStore
from model_lifecycle.errors import FetchError, InsufficientDataError, PersistenceError
from model_lifecycle.governance.freshness import FreshnessResult, check_model_freshness
from model_lifecycle.governance.registry import (
    ModelRegistry,
    ModelState,
    RegistryEntry,
    validate_model_type,
    validate_tenant_id,
)
from model_lifecycle.ingestion.data_provider import DataProvider
from model_lifecycle.ml.anomaly import reconstruction_errors
from model_lifecycle.ml.backend import EstimatorBackend, NumericBackend
from model_lifecycle.ml.confidence import compute_confidence
from model_lifecycle.ml.recipes import RecipeContext, get_recipe
from model_lifecycle.ml.runtime import EngineRuntime, destandardize_value
from model_lifecycle.models.meta import ModelMetadata, Prediction, bump_version
from model_lifecycle.utils.time_utils import age_hours, utcnow

logger = logging.getLogger(__name__)

FRAUD_MODEL_TYPE = "fraud_detection"


# ── Result types ──────────────────────────────────────────────────────────────


class UpdateStatus(str, Enum):
    TRAINED           = "trained"
    SKIPPED           = "skipped"            # Insufficient data
    SKIPPED_IN_FLIGHT = "skipped_in_flight"  # Another run holds the marker
    FAILED            = "failed"             # Fetch, backend or persistence error


@dataclass
class UpdateOutcome:
    """Result of one ``update_model`` call.

    Attributes:
        tenant_id:   Tenant trained for.
        model_type:  Model type trained.
        status:      UpdateStatus.
        version:     New version when status is TRAINED.
        performance: Fit score when status is TRAINED.
        error:       Message when status is SKIPPED or FAILED.
    """

    tenant_id:   str
    model_type:  str
    status:      UpdateStatus
    version:     Optional[str]   = None
    performance: Optional[float] = None
    error:       Optional[str]   = None


@dataclass
class SweepResult:
    """Outcome of ``initialize`` or ``run_sweep`` for one tenant.

    Attributes:
        tenant_id:         Tenant swept.
        backend_available: False when the numeric backend could not start.
        started_at:        UTC start.
        finished_at:       UTC end.
        loaded:            Model types loaded from the store.
        initial_training:  True when nothing was cached and every type trained.
        outcomes:          One UpdateOutcome per attempted model type.
    """

    tenant_id:         str
    backend_available: bool                = True
    started_at:        Optional[datetime]  = None
    finished_at:       Optional[datetime]  = None
    loaded:            list[str]           = field(default_factory=list)
    initial_training:  bool                = False
    outcomes:          list[UpdateOutcome] = field(default_factory=list)

    def by_status(self, status: UpdateStatus) -> list[str]:
        return [o.model_type for o in self.outcomes if o.status is status]

    @property
    def trained(self) -> list[str]:
        return self.by_status(UpdateStatus.TRAINED)

    @property
    def failed(self) -> list[str]:
        return self.by_status(UpdateStatus.FAILED)


@dataclass(frozen=True)
class TransactionScores:
    """Fraud autoencoder evidence for a batch of transaction amounts.

    Attributes:
        errors:     Absolute reconstruction error per amount, in std devs.
        flagged:    Indices whose error exceeds the anomaly threshold.
        confidence: Confidence of the fraud model that produced the errors.
    """

    errors:     list[float]
    flagged:    list[int]
    confidence: float


@dataclass(frozen=True)
class ModelStatus:
    """Reporting view of one (tenant, model type)."""

    model_type: str
    state:      ModelState
    metadata:   Optional[ModelMetadata]
    freshness:  Optional[FreshnessResult]


# ── Orchestrator ──────────────────────────────────────────────────────────────


class LifecycleOrchestrator:
    """Trains, caches, refreshes and serves per-tenant models.

    Args:
        config:   Application config.
        runtime:  Shared engine runtime (backend + model store).
        provider: Tenant-scoped record reader.
        executor: Executor for blocking work (None = loop default).
    """

    def __init__(
        self,
        config: AppConfig,
        runtime: EngineRuntime,
        provider: DataProvider,
        executor: Optional[Executor] = None,
    ) -> None:
        self.config = config
        self.runtime = runtime
        self.provider = provider
        self.executor = executor
        self._registries: dict[str, ModelRegistry] = {}
        self._recipe_ctx = RecipeContext(
            provider=provider,
            backend=runtime.backend,
            config=config,
            executor=executor,
        )

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        backend: Optional[NumericBackend] = None,
        executor: Optional[Executor] = None,
    ) -> "LifecycleOrchestrator":
        """Wire the default store, runtime and provider from ``config``."""
        store = KeyedBlobStore(
            config.cache.db_path,
            wal_mode=config.cache.wal_mode,
            busy_timeout_ms=config.cache.busy_timeout_ms,
        )
        runtime = EngineRuntime(
            backend or EstimatorBackend(random_seed=config.lifecycle.random_seed),
            store,
        )
        provider = DataProvider(config.database, config.data, executor=executor)
        return cls(config, runtime, provider, executor=executor)

    @property
    def tracked_model_types(self) -> list[str]:
        return list(self.config.lifecycle.tracked_model_types)

    def registry(self, tenant_id: str) -> Optional[ModelRegistry]:
        return self._registries.get(tenant_id)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self, tenant_id: str) -> SweepResult:
        """Load cached models for ``tenant_id`` and refresh stale or missing ones."""
        validate_tenant_id(tenant_id)
        result = SweepResult(tenant_id=tenant_id, started_at=utcnow())

        if not await self._ensure_runtime():
            logger.warning(
                "Backend unavailable; tenant=%s will get no predictions.", tenant_id
            )
            result.backend_available = False
            result.finished_at = utcnow()
            return result

        result.loaded = await self.load_cached(tenant_id)
        registry = self._registries[tenant_id]

        if not result.loaded:
            logger.info(
                "No cached models for tenant=%s; starting initial training.", tenant_id
            )
            result.initial_training = True
            due = self.tracked_model_types
        else:
            interval = self.config.lifecycle.update_interval_hours
            due = [
                t for t in result.loaded
                if registry.state(t, interval) is ModelState.STALE
            ]
            logger.info(
                "tenant=%s loaded=%s stale=%s", tenant_id, result.loaded, due
            )

        for model_type in due:
            result.outcomes.append(await self.update_model(tenant_id, model_type))

        result.finished_at = utcnow()
        return result

    async def load_cached(self, tenant_id: str) -> list[str]:
        """Register every cached model for ``tenant_id``; returns the types found.

        Does not train anything. Returns ``[]`` when the backend is unavailable.
        """
        validate_tenant_id(tenant_id)
        if not await self._ensure_runtime():
            return []
        registry = self._registries.setdefault(tenant_id, ModelRegistry(tenant_id))
        loaded: list[str] = []
        for model_type in self.tracked_model_types:
            entry = await self._run(self._load_entry, tenant_id, model_type)
            if entry is None:
                continue
            registry.put(model_type, entry)
            loaded.append(model_type)
        return loaded

    def _load_entry(self, tenant_id: str, model_type: str) -> Optional[RegistryEntry]:
        bundle = self.runtime.load_bundle(tenant_id, model_type)
        if bundle is None:
            return None
        if bundle.metadata is None:
            logger.warning(
                "Model tenant=%s model_type=%s has no metadata; treating as stale.",
                tenant_id, model_type,
            )
        logger.debug("Cache hit tenant=%s model_type=%s", tenant_id, model_type)
        return RegistryEntry(
            handle=bundle.handle, metadata=bundle.metadata, scaling=bundle.scaling
        )

    async def run_sweep(self, tenant_id: str) -> SweepResult:
        """Retrain every absent, stale or failed tracked type for ``tenant_id``."""
        if tenant_id not in self._registries:
            return await self.initialize(tenant_id)

        result = SweepResult(tenant_id=tenant_id, started_at=utcnow())
        if not await self._ensure_runtime():
            result.backend_available = False
            result.finished_at = utcnow()
            return result

        registry = self._registries[tenant_id]
        interval = self.config.lifecycle.update_interval_hours
        due_states = (ModelState.ABSENT, ModelState.STALE, ModelState.FAILED)
        for model_type in self.tracked_model_types:
            if registry.state(model_type, interval) in due_states:
                result.outcomes.append(await self.update_model(tenant_id, model_type))

        result.finished_at = utcnow()
        logger.info(
            "Sweep tenant=%s trained=%s failed=%s",
            tenant_id, result.trained, result.failed,
        )
        return result

    async def update_model(self, tenant_id: str, model_type: str) -> UpdateOutcome:
        """Train ``model_type`` for ``tenant_id`` and swap it in on success.

        Raises:
            ValueError: Unknown model type or invalid tenant id.
        """
        validate_tenant_id(tenant_id)
        validate_model_type(model_type)
        recipe = get_recipe(model_type)

        if not await self._ensure_runtime():
            return UpdateOutcome(
                tenant_id, model_type, UpdateStatus.FAILED, error="numeric backend unavailable"
            )

        registry = self._registries.setdefault(tenant_id, ModelRegistry(tenant_id))
        if not registry.try_begin_training(model_type):
            logger.info(
                "Training already in flight tenant=%s model_type=%s; skipping.",
                tenant_id, model_type,
            )
            return UpdateOutcome(tenant_id, model_type, UpdateStatus.SKIPPED_IN_FLIGHT)

        failed = False
        try:
            logger.info("Training tenant=%s model_type=%s", tenant_id, model_type)
            trained = await recipe(self._recipe_ctx, tenant_id)

            previous = registry.get(model_type)
            if previous is not None:
                previous_meta = previous.metadata
            else:
                previous_meta = await self._run(
                    self.runtime.load_metadata, tenant_id, model_type
                )
            metadata = ModelMetadata(
                last_trained_at=utcnow(),
                version=bump_version(previous_meta.version if previous_meta else None),
                performance=trained.performance,
            )

            await self._run(
                self.runtime.save_bundle,
                tenant_id, model_type, trained.handle, metadata, trained.scaling,
            )
            registry.put(
                model_type,
                RegistryEntry(handle=trained.handle, metadata=metadata, scaling=trained.scaling),
            )
            logger.info(
                "Trained tenant=%s model_type=%s version=%s performance=%.3f samples=%d",
                tenant_id, model_type, metadata.version, metadata.performance,
                trained.n_samples,
            )
            return UpdateOutcome(
                tenant_id, model_type, UpdateStatus.TRAINED,
                version=metadata.version, performance=metadata.performance,
            )

        except InsufficientDataError as exc:
            logger.info("Skipping tenant=%s model_type=%s: %s", tenant_id, model_type, exc)
            return UpdateOutcome(tenant_id, model_type, UpdateStatus.SKIPPED, error=str(exc))

        except (FetchError, PersistenceError) as exc:
            failed = True
            logger.error("tenant=%s model_type=%s failed: %s", tenant_id, model_type, exc)
            return UpdateOutcome(tenant_id, model_type, UpdateStatus.FAILED, error=str(exc))

        except Exception as exc:
            failed = True
            logger.exception(
                "Training raised for tenant=%s model_type=%s", tenant_id, model_type
            )
            return UpdateOutcome(tenant_id, model_type, UpdateStatus.FAILED, error=str(exc))

        finally:
            registry.end_training(model_type, failed=failed)

    # ── Inference ─────────────────────────────────────────────────────────────

    async def predict(
        self,
        tenant_id: str,
        model_type: str,
        input_data: Any,
    ) -> Optional[Prediction]:
        """Predict with the registered model, or return None.

        ``input_data`` may be a 1-D sequence (standardized with the stored
        ``{mean, std}``, defaults 0 / 1, and treated as one row) or a 2-D
        sequence of rows (passed through unscaled). A single output value is
        destandardized; wider outputs are returned as a list.
        """
        if not self.runtime.available:
            return None
        registry = self._registries.get(tenant_id)
        if registry is None:
            return None
        entry = registry.get(model_type)
        if entry is None:
            logger.debug("No model for tenant=%s model_type=%s", tenant_id, model_type)
            return None

        mean = entry.scaling.mean if entry.scaling.mean is not None else 0.0
        std = entry.scaling.std or 1.0

        try:
            arr = np.asarray(input_data, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            logger.warning(
                "Non-numeric input for tenant=%s model_type=%s: %s", tenant_id, model_type, exc
            )
            return None

        if arr.ndim == 2:
            X = arr
        elif arr.ndim <= 1:
            X = ((arr.reshape(-1) - mean) / std).reshape(1, -1)
        else:
            logger.warning("Input for model_type=%s must be 1-D or 2-D.", model_type)
            return None

        if X.shape[1] != entry.handle.n_features:
            logger.warning(
                "Input width %d does not match model width %d for tenant=%s model_type=%s",
                X.shape[1], entry.handle.n_features, tenant_id, model_type,
            )
            return None

        try:
            output = await self._run(self.runtime.backend.predict, entry.handle, X)
        except Exception as exc:
            logger.warning(
                "Inference failed for tenant=%s model_type=%s: %s", tenant_id, model_type, exc
            )
            return None

        flat = np.asarray(output, dtype=np.float64).ravel()
        if flat.size == 1:
            value: Any = destandardize_value(float(flat[0]), mean, std)
        else:
            value = [float(v) for v in flat]

        return Prediction(value=value, confidence=self._confidence(entry))

    async def score_transactions(
        self,
        tenant_id: str,
        amounts: Sequence[float],
    ) -> Optional[TransactionScores]:
        """Score transaction amounts with the tenant's fraud autoencoder.

        Amounts are standardized with the stored ``{mean, std}``, so each
        reconstruction error is in standard deviations. Points whose error
        exceeds ``anomaly.z_threshold`` are flagged. Returns None when no
        fraud model is registered or inference fails.
        """
        if not self.runtime.available:
            return None
        registry = self._registries.get(tenant_id)
        entry = registry.get(FRAUD_MODEL_TYPE) if registry else None
        if entry is None:
            return None
        if len(amounts) == 0:
            return TransactionScores(errors=[], flagged=[], confidence=self._confidence(entry))

        mean = entry.scaling.mean if entry.scaling.mean is not None else 0.0
        std = entry.scaling.std or 1.0
        z = (np.asarray(amounts, dtype=np.float64) - mean) / std

        try:
            output = await self._run(
                self.runtime.backend.predict, entry.handle, z.reshape(-1, 1)
            )
            errors = reconstruction_errors(z, output)
        except Exception as exc:
            logger.warning("Transaction scoring failed for tenant=%s: %s", tenant_id, exc)
            return None

        threshold = self.config.anomaly.z_threshold
        flagged = [i for i, err in enumerate(errors) if err > threshold]
        if flagged:
            logger.info(
                "tenant=%s flagged %d of %d transactions", tenant_id, len(flagged), len(errors)
            )
        return TransactionScores(
            errors=errors, flagged=flagged, confidence=self._confidence(entry)
        )

    def _confidence(self, entry: RegistryEntry) -> float:
        lc = self.config.lifecycle
        meta = entry.metadata
        return compute_confidence(
            performance=meta.performance if meta else None,
            age_hours=age_hours(meta.last_trained_at) if meta else None,
            update_interval_hours=lc.update_interval_hours,
            low=lc.confidence_low,
            high=lc.confidence_high,
        )

    # ── Reporting ─────────────────────────────────────────────────────────────

    def status(self, tenant_id: str) -> list[ModelStatus]:
        """State of every tracked model type for ``tenant_id``."""
        interval = self.config.lifecycle.update_interval_hours
        registry = self._registries.get(tenant_id)
        statuses: list[ModelStatus] = []
        for model_type in self.tracked_model_types:
            entry = registry.get(model_type) if registry else None
            state = registry.state(model_type, interval) if registry else ModelState.ABSENT
            metadata = entry.metadata if entry else None
            statuses.append(
                ModelStatus(
                    model_type=model_type,
                    state=state,
                    metadata=metadata,
                    freshness=check_model_freshness(metadata, interval) if entry else None,
                )
            )
        return statuses

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _ensure_runtime(self) -> bool:
        if self.runtime.available:
            return True
        return await self._run(self.runtime.initialize)

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(fn, *args))
