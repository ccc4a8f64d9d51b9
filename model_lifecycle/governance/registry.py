"""
Per-tenant model registry and store key layout.

Every persisted entry is namespaced by ``(tenant_id, model_type)``:

    model     {tenant_id}_{model_type}
    metadata  ml_meta_{tenant_id}_{model_type}
    scaling   ml_params_{tenant_id}_{model_type}

Tenant ids are restricted to letters, digits, ``-`` and ``_`` and may not
start with the reserved ``ml_`` prefix; model types must be tracked types.
Together these rules make the mapping from namespace to key injective.

``ModelRegistry`` is the in-memory view for ONE tenant. Entries are frozen
``RegistryEntry`` objects replaced with a single dict assignment once the
bundle has been persisted, so a reader either sees the previous entry or the
new one, never a mix. The registry also carries the in-flight markers that
stop two training runs for the same model type from overlapping.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from model_lifecycle.config import TRACKED_MODEL_TYPES
from model_lifecycle.governance.freshness import check_model_freshness
from model_lifecycle.ml.backend import ModelHandle
from model_lifecycle.models.meta import ModelMetadata, ScalingParams

_TENANT_ID_RE = re.compile(r"[A-Za-z0-9_-]+")
_RESERVED_PREFIX = "ml_"


# ── Keys ──────────────────────────────────────────────────────────────────────


def validate_tenant_id(tenant_id: str) -> str:
    """Return ``tenant_id`` unchanged, or raise ``ValueError``."""
    if not isinstance(tenant_id, str) or not _TENANT_ID_RE.fullmatch(tenant_id):
        raise ValueError(
            f"Invalid tenant id {tenant_id!r}: use letters, digits, '-' and '_' only."
        )
    if tenant_id.startswith(_RESERVED_PREFIX):
        raise ValueError(
            f"Invalid tenant id {tenant_id!r}: the '{_RESERVED_PREFIX}' prefix is reserved."
        )
    return tenant_id


def validate_model_type(model_type: str) -> str:
    if model_type not in TRACKED_MODEL_TYPES:
        raise ValueError(
            f"Unknown model type '{model_type}'. "
            f"Must be one of {list(TRACKED_MODEL_TYPES)}."
        )
    return model_type


def model_key(tenant_id: str, model_type: str) -> str:
    return f"{validate_tenant_id(tenant_id)}_{validate_model_type(model_type)}"


def meta_key(tenant_id: str, model_type: str) -> str:
    return f"ml_meta_{model_key(tenant_id, model_type)}"


def params_key(tenant_id: str, model_type: str) -> str:
    return f"ml_params_{model_key(tenant_id, model_type)}"


# ── Registry ──────────────────────────────────────────────────────────────────


class ModelState(str, Enum):
    """Lifecycle state of one (tenant, model type)."""

    ABSENT   = "absent"    # Nothing cached or trained yet
    CACHED   = "cached"    # Usable and fresh
    STALE    = "stale"     # Usable but due for retraining
    TRAINING = "training"  # A training run is in flight
    FAILED   = "failed"    # Last attempt failed; retried on the next sweep


@dataclass(frozen=True)
class RegistryEntry:
    """A trained model together with the metadata and scaling it was saved with."""

    handle:   ModelHandle
    metadata: Optional[ModelMetadata]
    scaling:  ScalingParams


class ModelRegistry:
    """In-memory models for a single tenant.

    Args:
        tenant_id: Owning tenant; validated on construction.
    """

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = validate_tenant_id(tenant_id)
        self._entries: dict[str, RegistryEntry] = {}
        self._in_flight: set[str] = set()
        self._failed: set[str] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, model_type: str) -> Optional[RegistryEntry]:
        return self._entries.get(model_type)

    def put(self, model_type: str, entry: RegistryEntry) -> None:
        """Swap in ``entry`` for ``model_type``."""
        self._entries[validate_model_type(model_type)] = entry
        self._failed.discard(model_type)

    def model_types(self) -> list[str]:
        return sorted(self._entries)

    # ── In-flight markers ─────────────────────────────────────────────────────

    def try_begin_training(self, model_type: str) -> bool:
        """Mark ``model_type`` as training. False if a run is already in flight."""
        if model_type in self._in_flight:
            return False
        self._in_flight.add(model_type)
        return True

    def end_training(self, model_type: str, failed: bool = False) -> None:
        self._in_flight.discard(model_type)
        if failed:
            self._failed.add(model_type)
        else:
            self._failed.discard(model_type)

    def is_in_flight(self, model_type: str) -> bool:
        return model_type in self._in_flight

    def has_failed(self, model_type: str) -> bool:
        return model_type in self._failed

    # ── State ─────────────────────────────────────────────────────────────────

    def state(
        self,
        model_type: str,
        update_interval_hours: float,
        now: Optional[datetime] = None,
    ) -> ModelState:
        """Current lifecycle state for ``model_type``."""
        if model_type in self._in_flight:
            return ModelState.TRAINING
        if model_type in self._failed:
            return ModelState.FAILED
        entry = self._entries.get(model_type)
        if entry is None:
            return ModelState.ABSENT
        freshness = check_model_freshness(entry.metadata, update_interval_hours, now)
        return ModelState.STALE if freshness.needs_retrain else ModelState.CACHED
