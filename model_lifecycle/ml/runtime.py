"""
Engine runtime — backend lifecycle, normalization math and model persistence.

The runtime is shared by every tenant in the process. It owns:

  - the numeric backend and its one-time initialization (degrading to
    ``available == False`` rather than crashing when the backend is missing);
  - the scaling helpers used at training and inference time;
  - the keyed blob store holding models, metadata and scaling params.

Persistence layout (see ``governance.registry`` for the key builders)::

    {tenant_id}_{model_type}            -> joblib bytes (ModelHandle)
    ml_meta_{tenant_id}_{model_type}    -> JSON (ModelMetadata)
    ml_params_{tenant_id}_{model_type}  -> JSON (ScalingParams)

``save_bundle`` writes all three in one store transaction, so a reader never
sees a new model next to old metadata or old scaling.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from pydantic import ValidationError

from model_lifecycle.db.repositories.store_repo import KeyedBlobStore
from model_lifecycle.errors import PersistenceError
from model_lifecycle.governance.registry import meta_key, model_key, params_key
from model_lifecycle.ml.backend import ModelHandle, NumericBackend
from model_lifecycle.models.meta import ModelMetadata, ScalingParams

logger = logging.getLogger(__name__)


# ── Scaling ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MinMaxResult:
    normalized: list[float]
    min: float
    max: float


@dataclass(frozen=True)
class StandardizeResult:
    standardized: list[float]
    mean: float
    std: float


def normalize_min_max(data: Sequence[float]) -> MinMaxResult:
    """Map ``data`` into [0, 1].

    A constant series has range 0; 1 is used instead so every value maps to 0.
    """
    if len(data) == 0:
        return MinMaxResult(normalized=[], min=0.0, max=0.0)
    lo = float(min(data))
    hi = float(max(data))
    span = (hi - lo) or 1.0
    return MinMaxResult(
        normalized=[(float(v) - lo) / span for v in data],
        min=lo,
        max=hi,
    )


def standardize(data: Sequence[float]) -> StandardizeResult:
    """Z-score ``data`` using the population standard deviation.

    A zero standard deviation is replaced by 1 (and returned as 1).
    """
    if len(data) == 0:
        return StandardizeResult(standardized=[], mean=0.0, std=0.0)
    arr = np.asarray(data, dtype=np.float64)
    mean = float(arr.mean())
    std = float(arr.std()) or 1.0
    return StandardizeResult(
        standardized=[float(v) for v in (arr - mean) / std],
        mean=mean,
        std=std,
    )


def denormalize_value(value: float, min_value: float, max_value: float) -> float:
    return value * (max_value - min_value) + min_value


def destandardize_value(value: float, mean: float, std: float) -> float:
    return value * std + mean


def prepare_time_series(
    data: Sequence[float], window_size: int
) -> tuple[np.ndarray, np.ndarray]:
    """Slide a window over ``data`` to build supervised pairs.

    ``X[i] = data[i:i+W]`` and ``y[i] = data[i+W]``, giving ``N - W`` rows.
    Returns empty arrays (shapes ``(0, W)`` and ``(0,)``) when ``N <= W``.

    >>> X, y = prepare_time_series([1, 2, 3, 4, 5], 2)
    >>> X.tolist(), y.tolist()
    ([[1.0, 2.0], [2.0, 3.0], [3.0, 4.0]], [3.0, 4.0, 5.0])
    """
    if window_size < 1:
        raise ValueError(f"window_size must be >= 1, got {window_size}.")
    arr = np.asarray(data, dtype=np.float64)
    n_pairs = len(arr) - window_size
    if n_pairs <= 0:
        return np.empty((0, window_size)), np.empty((0,))
    X = np.stack([arr[i : i + window_size] for i in range(n_pairs)])
    y = arr[window_size:].copy()
    return X, y


# ── Runtime ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LoadedBundle:
    """A cached model with the metadata and scaling saved alongside it.

    ``metadata`` is ``None`` when the metadata blob is missing or corrupt.
    """

    handle: ModelHandle
    metadata: Optional[ModelMetadata]
    scaling: ScalingParams


class EngineRuntime:
    """Shared backend + local model store.

    Args:
        backend: Numeric backend used for every fit and inference.
        store:   Keyed blob store for models, metadata and scaling params.
    """

    def __init__(self, backend: NumericBackend, store: KeyedBlobStore) -> None:
        self.backend = backend
        self.store = store
        self._initialized = False
        self._available = False
        self._init_lock = threading.Lock()

    @property
    def available(self) -> bool:
        return self._available

    def initialize(self) -> bool:
        """Initialize the backend once. Returns ``available``.

        Later calls return the cached result without touching the backend.
        """
        with self._init_lock:
            if self._initialized:
                return self._available
            self._initialized = True
            try:
                description = self.backend.initialize()
            except Exception as exc:
                logger.error(
                    "Numeric backend '%s' failed to initialize; "
                    "predictions are disabled: %s",
                    getattr(self.backend, "name", type(self.backend).__name__),
                    exc,
                )
                self._available = False
                return False
            self._available = True
            logger.info("Numeric backend ready: %s (%s)", self.backend.name, description)
            return True

    # ── Single model blobs ────────────────────────────────────────────────────

    def save_model(self, handle: ModelHandle, key: str) -> None:
        """Persist one model under ``key``.

        Raises:
            PersistenceError: Serialization or the store write failed.
        """
        try:
            blob = self.backend.dumps(handle)
            self.store.set(key, blob)
        except (sqlite3.Error, OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Could not save model under '{key}': {exc}") from exc

    def load_model(self, key: str) -> Optional[ModelHandle]:
        """Return the model stored under ``key``, or ``None``.

        A missing key, an unreadable store or a corrupt artifact all yield
        ``None``; the caller treats every case as "no model cached".
        """
        try:
            blob = self.store.get(key)
        except sqlite3.Error as exc:
            logger.warning("Model store read failed for key=%s: %s", key, exc)
            return None
        if blob is None:
            logger.debug("Cache miss for key=%s", key)
            return None
        try:
            return self.backend.loads(blob)
        except Exception as exc:
            logger.warning("Discarding unreadable model artifact key=%s: %s", key, exc)
            return None

    # ── Bundles ───────────────────────────────────────────────────────────────

    def save_bundle(
        self,
        tenant_id: str,
        model_type: str,
        handle: ModelHandle,
        metadata: ModelMetadata,
        scaling: ScalingParams,
    ) -> None:
        """Persist model, metadata and scaling params in one transaction.

        Raises:
            PersistenceError: Nothing was written.
        """
        try:
            items = {
                model_key(tenant_id, model_type):  self.backend.dumps(handle),
                meta_key(tenant_id, model_type):   metadata.model_dump_json().encode("utf-8"),
                params_key(tenant_id, model_type): scaling.model_dump_json(
                    exclude_none=True
                ).encode("utf-8"),
            }
            self.store.set_many(items)
        except (sqlite3.Error, OSError, TypeError, ValueError) as exc:
            raise PersistenceError(
                f"Could not save {model_type} for tenant '{tenant_id}': {exc}"
            ) from exc
        logger.info(
            "Saved model bundle tenant=%s model_type=%s version=%s",
            tenant_id, model_type, metadata.version,
        )

    def load_bundle(self, tenant_id: str, model_type: str) -> Optional[LoadedBundle]:
        """Read model, metadata and scaling params in one store transaction.

        Returns ``None`` when no usable model is cached. Missing scaling
        params fall back to ``ScalingParams()`` (no scaling).
        """
        m_key = model_key(tenant_id, model_type)
        try:
            blobs = self.store.get_many(
                [m_key, meta_key(tenant_id, model_type), params_key(tenant_id, model_type)]
            )
        except sqlite3.Error as exc:
            logger.warning("Model store read failed for key=%s: %s", m_key, exc)
            return None

        model_blob = blobs.get(m_key)
        if model_blob is None:
            logger.debug("Cache miss for key=%s", m_key)
            return None
        try:
            handle = self.backend.loads(model_blob)
        except Exception as exc:
            logger.warning("Discarding unreadable model artifact key=%s: %s", m_key, exc)
            return None

        metadata = self._parse_metadata(
            blobs.get(meta_key(tenant_id, model_type)), tenant_id, model_type
        )
        scaling = self._parse_scaling(
            blobs.get(params_key(tenant_id, model_type)), tenant_id, model_type
        )
        return LoadedBundle(
            handle=handle, metadata=metadata, scaling=scaling or ScalingParams()
        )

    def load_metadata(self, tenant_id: str, model_type: str) -> Optional[ModelMetadata]:
        blob = self._read_json_blob(meta_key(tenant_id, model_type))
        return self._parse_metadata(blob, tenant_id, model_type)

    def load_scaling(self, tenant_id: str, model_type: str) -> Optional[ScalingParams]:
        blob = self._read_json_blob(params_key(tenant_id, model_type))
        return self._parse_scaling(blob, tenant_id, model_type)

    @staticmethod
    def _parse_metadata(
        blob: Optional[bytes], tenant_id: str, model_type: str
    ) -> Optional[ModelMetadata]:
        if blob is None:
            return None
        try:
            return ModelMetadata.model_validate_json(blob)
        except ValidationError as exc:
            logger.warning(
                "Ignoring corrupt metadata tenant=%s model_type=%s: %s",
                tenant_id, model_type, exc,
            )
            return None

    @staticmethod
    def _parse_scaling(
        blob: Optional[bytes], tenant_id: str, model_type: str
    ) -> Optional[ScalingParams]:
        if blob is None:
            return None
        try:
            return ScalingParams.model_validate_json(blob)
        except ValidationError as exc:
            logger.warning(
                "Ignoring corrupt scaling params tenant=%s model_type=%s: %s",
                tenant_id, model_type, exc,
            )
            return None

    def _read_json_blob(self, key: str) -> Optional[bytes]:
        try:
            return self.store.get(key)
        except sqlite3.Error as exc:
            logger.warning("Model store read failed for key=%s: %s", key, exc)
            return None
