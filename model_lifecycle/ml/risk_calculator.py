"""
Rule-based credit risk score from a customer profile.

Score 0 (high risk) to 100 (safe), a weighted sum of three features:

  history      40%  on-time payment ratio
  utilization  40%  1 - min(balance / credit_limit, 1.5) / 1.5
  loyalty      20%  min(account_age_days / 365, 1)
"""

from __future__ import annotations

from dataclasses import dataclass

_WEIGHTS = (0.4, 0.4, 0.2)
_MAX_UTILIZATION = 1.5


@dataclass(frozen=True)
class RiskAssessment:
    label:  str
    reason: str


def calculate_score(
    balance: float,
    credit_limit: float,
    account_age_days: float,
    on_time_ratio: float,
) -> int:
    """Return the risk score in [0, 100]. A zero credit limit is treated as 1."""
    utilization = min(max(balance, 0.0) / (credit_limit or 1.0), _MAX_UTILIZATION)
    utilization_score = 1.0 - utilization / _MAX_UTILIZATION
    loyalty_score = min(max(account_age_days, 0.0) / 365.0, 1.0)
    history_score = min(max(on_time_ratio, 0.0), 1.0)

    w_history, w_utilization, w_loyalty = _WEIGHTS
    total = (
        w_history * history_score
        + w_utilization * utilization_score
        + w_loyalty * loyalty_score
    )
    return int(round(total * 100))


def get_risk_assessment(score: int) -> RiskAssessment:
    if score >= 80:
        return RiskAssessment("excellent", "Low debt level and an excellent payment history.")
    if score >= 60:
        return RiskAssessment("good", "Stable behavior with a moderate risk level.")
    if score >= 40:
        return RiskAssessment("fair", "High debt levels or an inconsistent payment history.")
    return RiskAssessment("critical", "High probability of default. Review guarantees.")
