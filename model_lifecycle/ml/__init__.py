"""
ML layer — small per-tenant models behind a pluggable numeric backend.

Modules
-------
backend         : NumericBackend protocol and the scikit-learn + LightGBM
                  EstimatorBackend (fit, predict, score, dumps, loads).
runtime         : EngineRuntime — backend initialization, scaling helpers,
                  model/metadata/scaling persistence.
recipes         : One training recipe per tracked model type.
forecaster      : Standalone windowed forecaster (train once, predict next).
anomaly         : Z-score outlier checks.
risk_calculator : Rule-based credit risk score.
confidence      : Heuristic confidence for served predictions.
"""
