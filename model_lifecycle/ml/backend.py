"""
Numeric backend — the only place that touches estimator libraries.

The orchestrator, recipes and forecaster never import scikit-learn or
LightGBM directly. They describe *what* to train with a small architecture
spec and hand ``(X, y)`` to a ``NumericBackend``:

    fit(spec, X, y, epochs, batch_size=None) -> ModelHandle
    predict(handle, X)                       -> ndarray of shape (n, n_outputs)
    score(handle, X, y)                      -> float in [0, 1]
    dumps(handle) / loads(blob)              -> joblib bytes round trip

Any implementation satisfying this protocol is substitutable.

Architectures
-------------
  MLPSpec          — small feed-forward regressor (scikit-learn MLPRegressor,
                     ReLU, Adam). Used for the sales forecaster, the fraud
                     autoencoder (hidden layers 4-2-4, target == input) and the
                     credit risk head (output clipped to [0, 1]).
  BoostedTreeSpec  — LightGBM regression booster. Used for price
                     recommendation, where inputs are raw tabular prices and
                     tree splits need no scaling.
  MixtureSpec      — Gaussian mixture giving soft memberships over a fixed
                     number of segments. Components are re-ordered by mean of
                     the first feature so segment 0 is always the lowest.

"epochs" maps to ``max_iter`` for MLPs and mixtures and to
``num_boost_round`` for boosters. Callers cap it; the backend never trains
unbounded.

Performance score
-----------------
Regressors report the coefficient of determination on the training set,
clipped to [0, 1]. Mixtures report the mean maximum posterior (how
confidently rows are assigned), which lies in [1/k, 1].
"""

from __future__ import annotations

import io
import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Union, runtime_checkable

import numpy as np

from model_lifecycle.errors import BackendUnavailableError

logger = logging.getLogger(__name__)

ARTIFACT_VERSION = 1


# ── Architecture specs ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MLPSpec:
    """Feed-forward regressor with ReLU hidden layers."""

    hidden_layers: tuple[int, ...]
    learning_rate: float = 0.01
    output_range: Optional[tuple[float, float]] = None
    kind: str = field(default="mlp", init=False)


@dataclass(frozen=True)
class BoostedTreeSpec:
    """Gradient boosted regression trees."""

    num_leaves: int = 15
    learning_rate: float = 0.1
    min_child_samples: int = 2
    kind: str = field(default="gbm", init=False)


@dataclass(frozen=True)
class MixtureSpec:
    """Soft clustering into ``n_components`` segments."""

    n_components: int = 3
    kind: str = field(default="mixture", init=False)


ModelSpec = Union[MLPSpec, BoostedTreeSpec, MixtureSpec]


@dataclass
class ModelHandle:
    """Opaque reference to a fitted model.

    Attributes:
        spec:       Architecture the model was trained with.
        estimator:  Backend-specific fitted object.
        n_features: Input width expected by ``predict``.
        n_outputs:  Output width per row.
        component_order: Mixture only — column order applied to posteriors.
    """

    spec: ModelSpec
    estimator: Any
    n_features: int
    n_outputs: int
    component_order: Optional[list[int]] = None


@runtime_checkable
class NumericBackend(Protocol):
    """Contract the engine relies on."""

    name: str

    def initialize(self) -> str: ...

    def fit(
        self,
        spec: ModelSpec,
        X: np.ndarray,
        y: Optional[np.ndarray],
        epochs: int,
        batch_size: Optional[int] = None,
    ) -> ModelHandle: ...

    def predict(self, handle: ModelHandle, X: np.ndarray) -> np.ndarray: ...

    def score(self, handle: ModelHandle, X: np.ndarray, y: Optional[np.ndarray]) -> float: ...

    def dumps(self, handle: ModelHandle) -> bytes: ...

    def loads(self, blob: bytes) -> ModelHandle: ...


# ── Helpers ───────────────────────────────────────────────────────────────────


def as_matrix(X: Any) -> np.ndarray:
    """Coerce rows to a 2-D float64 matrix (a 1-D input becomes one column)."""
    arr = np.asarray(X, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2:
        raise ValueError(f"Expected a 1-D or 2-D input, got shape {arr.shape}.")
    return arr


def _as_target(y: Any) -> np.ndarray:
    arr = np.asarray(y, dtype=np.float64)
    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr.ravel()
    return arr


def _clip_unit(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return float(min(1.0, max(0.0, value)))


# ── Default backend ───────────────────────────────────────────────────────────


class EstimatorBackend:
    """scikit-learn + LightGBM implementation of ``NumericBackend``.

    Args:
        random_seed: Seed passed to every estimator for reproducible fits.
    """

    name = "sklearn+lightgbm"

    def __init__(self, random_seed: int = 42) -> None:
        self.random_seed = random_seed

    def initialize(self) -> str:
        """Import the estimator libraries and return a version description.

        Raises:
            BackendUnavailableError: If either library cannot be imported.
        """
        try:
            import lightgbm
            import sklearn
        except ImportError as exc:
            raise BackendUnavailableError(
                f"Numeric backend '{self.name}' is unavailable: {exc}"
            ) from exc
        return f"scikit-learn {sklearn.__version__}, lightgbm {lightgbm.__version__}"

    # ── Training ──────────────────────────────────────────────────────────────

    def fit(
        self,
        spec: ModelSpec,
        X: np.ndarray,
        y: Optional[np.ndarray],
        epochs: int,
        batch_size: Optional[int] = None,
    ) -> ModelHandle:
        """Fit a model described by ``spec``.

        Args:
            spec:       Architecture spec.
            X:          Feature rows (n, d).
            y:          Targets (n,) or (n, k). Ignored for mixtures.
            epochs:     Iteration budget.
            batch_size: Mini-batch size for MLPs (clipped to n).

        Raises:
            ValueError: Empty input, mismatched lengths or unknown spec.
        """
        X_arr = as_matrix(X)
        if X_arr.shape[0] == 0:
            raise ValueError("Cannot fit on an empty dataset.")

        if isinstance(spec, MixtureSpec):
            return self._fit_mixture(spec, X_arr, epochs)

        if y is None:
            raise ValueError(f"{spec.kind} requires targets.")
        y_arr = _as_target(y)
        if y_arr.shape[0] != X_arr.shape[0]:
            raise ValueError(
                f"X has {X_arr.shape[0]} rows but y has {y_arr.shape[0]}."
            )

        if isinstance(spec, MLPSpec):
            return self._fit_mlp(spec, X_arr, y_arr, epochs, batch_size)
        if isinstance(spec, BoostedTreeSpec):
            return self._fit_boosted(spec, X_arr, y_arr, epochs)
        raise ValueError(f"Unsupported model spec: {spec!r}")

    def _fit_mlp(
        self,
        spec: MLPSpec,
        X: np.ndarray,
        y: np.ndarray,
        epochs: int,
        batch_size: Optional[int],
    ) -> ModelHandle:
        from sklearn.exceptions import ConvergenceWarning
        from sklearn.neural_network import MLPRegressor

        estimator = MLPRegressor(
            hidden_layer_sizes=spec.hidden_layers,
            activation="relu",
            solver="adam",
            learning_rate_init=spec.learning_rate,
            max_iter=max(1, epochs),
            batch_size=min(batch_size or 32, X.shape[0]),
            random_state=self.random_seed,
        )
        # Small tenants rarely converge within the epoch cap; that is expected.
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            estimator.fit(X, y)

        n_outputs = 1 if y.ndim == 1 else y.shape[1]
        return ModelHandle(
            spec=spec, estimator=estimator, n_features=X.shape[1], n_outputs=n_outputs
        )

    def _fit_boosted(
        self,
        spec: BoostedTreeSpec,
        X: np.ndarray,
        y: np.ndarray,
        epochs: int,
    ) -> ModelHandle:
        import lightgbm as lgb

        if y.ndim != 1:
            raise ValueError("Boosted trees support a single target column only.")

        params = {
            "objective":         "regression",
            "metric":            "l2",
            "num_leaves":        spec.num_leaves,
            "learning_rate":     spec.learning_rate,
            "min_child_samples": spec.min_child_samples,
            "min_data_in_bin":   1,
            "seed":              self.random_seed,
            "verbose":           -1,
            "n_jobs":            1,
        }
        dtrain = lgb.Dataset(X, label=y, free_raw_data=False)
        booster = lgb.train(params, dtrain, num_boost_round=max(1, epochs))
        return ModelHandle(spec=spec, estimator=booster, n_features=X.shape[1], n_outputs=1)

    def _fit_mixture(self, spec: MixtureSpec, X: np.ndarray, epochs: int) -> ModelHandle:
        from sklearn.exceptions import ConvergenceWarning
        from sklearn.mixture import GaussianMixture

        if X.shape[0] < spec.n_components:
            raise ValueError(
                f"Mixture with {spec.n_components} components needs at least "
                f"{spec.n_components} rows; got {X.shape[0]}."
            )
        estimator = GaussianMixture(
            n_components=spec.n_components,
            max_iter=max(1, epochs),
            random_state=self.random_seed,
        )
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            estimator.fit(X)

        order = [int(i) for i in np.argsort(estimator.means_[:, 0])]
        return ModelHandle(
            spec=spec,
            estimator=estimator,
            n_features=X.shape[1],
            n_outputs=spec.n_components,
            component_order=order,
        )

    # ── Inference ─────────────────────────────────────────────────────────────

    def predict(self, handle: ModelHandle, X: np.ndarray) -> np.ndarray:
        """Run inference; always returns shape ``(n_rows, n_outputs)``.

        Raises:
            ValueError: Input width differs from the trained width.
        """
        X_arr = as_matrix(X)
        if X_arr.shape[1] != handle.n_features:
            raise ValueError(
                f"Model expects {handle.n_features} feature(s) per row; "
                f"got {X_arr.shape[1]}."
            )

        spec = handle.spec
        if isinstance(spec, MixtureSpec):
            proba = handle.estimator.predict_proba(X_arr)
            if handle.component_order is not None:
                proba = proba[:, handle.component_order]
            return np.asarray(proba, dtype=np.float64)

        raw = np.asarray(handle.estimator.predict(X_arr), dtype=np.float64)
        out = raw.reshape(X_arr.shape[0], -1)
        if isinstance(spec, MLPSpec) and spec.output_range is not None:
            low, high = spec.output_range
            out = np.clip(out, low, high)
        return out

    def score(self, handle: ModelHandle, X: np.ndarray, y: Optional[np.ndarray]) -> float:
        """Training-set fit quality in [0, 1]."""
        if isinstance(handle.spec, MixtureSpec):
            proba = self.predict(handle, X)
            return _clip_unit(float(np.mean(np.max(proba, axis=1))))

        from sklearn.metrics import r2_score

        if y is None:
            raise ValueError("Regression score requires targets.")
        y_arr = _as_target(y)
        preds = self.predict(handle, X)
        if y_arr.ndim == 1:
            preds = preds[:, 0]
        if y_arr.shape[0] < 2:
            return 0.0
        return _clip_unit(float(r2_score(y_arr, preds)))

    # ── Serialization ─────────────────────────────────────────────────────────

    def dumps(self, handle: ModelHandle) -> bytes:
        """Serialize a handle to joblib bytes."""
        import joblib

        buf = io.BytesIO()
        joblib.dump(
            {
                "artifact_version": ARTIFACT_VERSION,
                "backend":          self.name,
                "handle":           handle,
            },
            buf,
        )
        return buf.getvalue()

    def loads(self, blob: bytes) -> ModelHandle:
        """Deserialize bytes written by ``dumps``.

        Raises:
            ValueError: The blob is not a compatible artifact.
        """
        import joblib

        state = joblib.load(io.BytesIO(blob))
        if not isinstance(state, dict) or state.get("artifact_version") != ARTIFACT_VERSION:
            raise ValueError("Incompatible model artifact version.")
        if state.get("backend") != self.name:
            raise ValueError(
                f"Artifact was written by backend '{state.get('backend')}', "
                f"not '{self.name}'."
            )
        handle = state.get("handle")
        if not isinstance(handle, ModelHandle):
            raise ValueError("Artifact does not contain a model handle.")
        return handle
