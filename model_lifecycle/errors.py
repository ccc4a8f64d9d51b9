"""
Exception taxonomy for the model lifecycle engine.

None of these are allowed to escape the orchestrator's public entry points
(``initialize``, ``run_sweep``, ``update_model``, ``predict``): absence of data
or of a model surfaces as an absent insight, never as a crash in the host
application.

  InsufficientDataError   — below a recipe's minimum sample size; the model
                            type is skipped for this sweep.
  BackendUnavailableError — the numeric backend failed to initialize; the
                            engine degrades to "no predictions".
  PersistenceError        — writing to the local model store failed; logged,
                            retried on the next sweep.
  FetchError              — reading tenant records failed; caught at sweep
                            level so sibling model types still train.

A cache miss is not an exception: ``load_model`` returns ``None``.
"""

from __future__ import annotations


class ModelLifecycleError(Exception):
    """Base class for all engine errors."""


class InsufficientDataError(ModelLifecycleError):
    """Raised by a training recipe when the tenant has too little data."""

    def __init__(self, model_type: str, required: int, available: int) -> None:
        self.model_type = model_type
        self.required = required
        self.available = available
        super().__init__(
            f"{model_type} needs >= {required} samples; got {available}."
        )


class BackendUnavailableError(ModelLifecycleError):
    """Raised when the numeric backend cannot be initialized."""


class PersistenceError(ModelLifecycleError):
    """Raised when a model, its metadata or its scaling params cannot be saved."""


class FetchError(ModelLifecycleError):
    """Raised when a tenant-scoped record read fails."""
