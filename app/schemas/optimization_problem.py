# app/schemas/optimization_problem.py
"""
Inbound optimizer request schema and the frozen solver-facing problem.

CRITICAL RULE: Eligibility is decided upstream. Actions flagged
eligible=False are dropped by the problem builder and never reach the
penalty encoder or the solvers.

OptimizationRequest is what callers (API, CLI, service code) hand in.
OptimizationProblem is what the problem builder hands to the encoder:
normalized weights, sparse symmetric interactions, resolved budgets.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GoalProfile(str, Enum):
    """Fixed goal profiles; each selects one column of the goal weight table."""
    STABILIZE_CASHFLOW = "stabilize_cashflow"
    PAY_DOWN_DEBT = "pay_down_debt"
    BUILD_EMERGENCY_FUND = "build_emergency_fund"


# User-facing goal labels accepted on input
GOAL_ALIASES: Dict[str, GoalProfile] = {
    "stability": GoalProfile.STABILIZE_CASHFLOW,
    "debt": GoalProfile.PAY_DOWN_DEBT,
    "emergency": GoalProfile.BUILD_EMERGENCY_FUND,
    "auto": GoalProfile.STABILIZE_CASHFLOW,
}


def parse_goal(value: Any) -> GoalProfile:
    """Map a goal label or alias onto a GoalProfile."""
    if isinstance(value, GoalProfile):
        return value
    key = str(value or "").strip().lower()
    if key in GOAL_ALIASES:
        return GOAL_ALIASES[key]
    try:
        return GoalProfile(key)
    except ValueError as e:
        raise ValueError(f"Unknown goal profile: {value!r}") from e


class Action(BaseModel):
    """
    A candidate financial action.

    Numeric sanity (non-negative costs, finite values) is enforced by the
    problem builder so that it can report every issue at once as an
    InvalidProblem instead of failing on the first bad field.
    """
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    label: Optional[str] = None

    effort_minutes: int = 0
    upfront_cash_cost: float = 0.0
    monthly_cashflow_delta: float = 0.0
    risk_reduction_score: float = 0.0

    eligible: bool = True
    conflicts_with: Set[str] = Field(default_factory=set)
    synergy_with: Set[str] = Field(default_factory=set)

    @field_validator("id")
    @classmethod
    def _strip_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("action id must not be blank")
        return v

    @property
    def display_name(self) -> str:
        return self.label or self.id


class Constraints(BaseModel):
    """Weekly resource limits. Missing fields fall back to ConstraintDefaults."""
    model_config = ConfigDict(extra="ignore")

    max_effort_minutes: Optional[float] = None
    max_upfront_cash: Optional[float] = None
    min_balance_floor: Optional[float] = None


class FinancialContext(BaseModel):
    """Balance inputs for the minimum-balance projection."""
    model_config = ConfigDict(extra="ignore")

    starting_balance: float = 0.0
    # Both estimates must be present to shift the projection by their difference
    monthly_income_est: Optional[float] = None
    monthly_essential_spend_est: Optional[float] = None

    @property
    def baseline_monthly_net(self) -> float:
        if self.monthly_income_est is None or self.monthly_essential_spend_est is None:
            return 0.0
        return float(self.monthly_income_est) - float(self.monthly_essential_spend_est)


class SolverOverrides(BaseModel):
    """Per-request solver knobs (mostly for reproducible tests and 'try again' flows)."""
    model_config = ConfigDict(extra="ignore")

    exact_threshold: Optional[int] = Field(default=None, ge=0, le=26)
    trials: Optional[int] = Field(default=None, ge=1)
    iteration_budget: Optional[int] = Field(default=None, ge=1)
    max_workers: Optional[int] = Field(default=None, ge=1)
    seed: Optional[int] = None
    deadline_seconds: Optional[float] = Field(default=None, ge=0)


class OptimizationRequest(BaseModel):
    """
    Complete optimizer input for a single synchronous call.

    goal_weights is the per-action, per-goal weight table from the goal
    mapping layer: {action_id: {goal_profile: weight}}.
    """
    model_config = ConfigDict(extra="ignore")

    actions: List[Action] = Field(default_factory=list)
    constraints: Constraints = Field(default_factory=Constraints)
    required_action_ids: List[str] = Field(default_factory=list)
    goal: GoalProfile = GoalProfile.STABILIZE_CASHFLOW
    goal_weights: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    context: FinancialContext = Field(default_factory=FinancialContext)
    solver: Optional[SolverOverrides] = None

    @field_validator("goal", mode="before")
    @classmethod
    def _parse_goal(cls, v: Any) -> GoalProfile:
        return parse_goal(v)

    @field_validator("required_action_ids")
    @classmethod
    def _dedupe_required(cls, v: List[str]) -> List[str]:
        # Remove blanks/duplicates while preserving order
        seen: Set[str] = set()
        out: List[str] = []
        for raw in v:
            key = str(raw).strip()
            if key and key not in seen:
                seen.add(key)
                out.append(key)
        return out


@dataclass(frozen=True)
class ResolvedConstraints:
    """Budgets after defaults have been applied."""
    max_effort_minutes: float
    max_upfront_cash: float
    min_balance_floor: float


@dataclass(frozen=True)
class OptimizationProblem:
    """
    Normalized, solver-facing problem over n eligible actions.

    Index i everywhere refers to the i-th eligible action in request
    insertion order. Interactions are stored sparsely as {(i, j): q} with
    i < j; q is symmetric by construction.
    """
    actions: Tuple[Action, ...]
    goal: GoalProfile
    weights: Tuple[float, ...]
    risk_components: Tuple[float, ...]
    cash_components: Tuple[float, ...]
    goal_components: Tuple[float, ...]
    interactions: Mapping[Tuple[int, int], float]
    required_indices: frozenset
    constraints: ResolvedConstraints
    starting_balance: float
    baseline_monthly_net: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.actions)

    @property
    def action_ids(self) -> Tuple[str, ...]:
        return tuple(a.id for a in self.actions)

    def index_of(self, action_id: str) -> int:
        for i, a in enumerate(self.actions):
            if a.id == action_id:
                return i
        raise KeyError(action_id)

    def interaction(self, i: int, j: int) -> float:
        if i == j:
            return 0.0
        key = (i, j) if i < j else (j, i)
        return self.interactions.get(key, 0.0)

    def interaction_matrix(self) -> List[List[float]]:
        """Dense symmetric q matrix (zero diagonal) for presentation layers."""
        n = self.size
        matrix = [[0.0] * n for _ in range(n)]
        for (i, j), q in self.interactions.items():
            matrix[i][j] = q
            matrix[j][i] = q
        return matrix
