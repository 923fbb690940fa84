# app/services/optimization/scoring_constants.py
"""
Fixed scoring calibration for the action-selection objective.

    w[i]    = risk_i * RISK_FACTOR + cash_i * CASH_FACTOR + goal_weight(i, goal) * GOAL_WEIGHT_SCALE
    q[i][j] = +SYNERGY_BONUS (synergy pair) | -CONFLICT_PENALTY (conflict pair) | 0

Calibration: one risk-reduction point is worth $20/month of recurring
cashflow, and a full goal weight of 1.0 is worth four risk points.
These are not user-tunable; ScoringConstants exists so the calibration
travels with the problem and shows up in diagnostics.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict

RISK_FACTOR = 1.0
CASH_FACTOR = 0.05
GOAL_WEIGHT_SCALE = 4.0
SYNERGY_BONUS = 1.5
CONFLICT_PENALTY = 10.0

# Smallest meaningful violation per constraint unit (penalty scaling)
EFFORT_UNIT = 1.0  # minutes
CASH_UNIT = 0.01  # currency (one cent)


@dataclass(frozen=True)
class ScoringConstants:
    risk_factor: float = RISK_FACTOR
    cash_factor: float = CASH_FACTOR
    goal_weight_scale: float = GOAL_WEIGHT_SCALE
    synergy_bonus: float = SYNERGY_BONUS
    conflict_penalty: float = CONFLICT_PENALTY

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


DEFAULT_SCORING = ScoringConstants()
