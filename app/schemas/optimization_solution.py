# app/schemas/optimization_solution.py
"""
Optimization solution schemas for optimizer output.

Represents the structured result handed to downstream collaborators
(plan narrative generator, presentation layer).
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Literal


SolveStatus = Literal["optimal", "feasible", "infeasible"]
SolverMode = Literal["exact", "heuristic", "infeasible"]


class SolverProvenance(BaseModel):
    """Which solver produced the selection and how much work it did."""

    model_config = ConfigDict(extra="ignore")

    mode: SolverMode
    n_actions_considered: int = 0
    n_free_variables: int = 0
    n_required: int = 0
    exact_threshold: Optional[int] = None

    # exact mode
    assignments_evaluated: Optional[int] = None

    # heuristic mode
    trials_requested: Optional[int] = None
    trials_completed: Optional[int] = None
    iterations: Optional[int] = None
    restarts: Optional[int] = None
    seed: Optional[int] = None
    best_trial: Optional[int] = None
    deadline_hit: bool = False

    time_ms: float = 0.0


class ActionContribution(BaseModel):
    """Unpenalized score components for one selected action."""

    model_config = ConfigDict(extra="ignore")

    id: str
    value: float
    risk_component: float
    cash_component: float
    goal_component: float
    interaction_component: float = 0.0


class ScoreBreakdown(BaseModel):
    model_config = ConfigDict(extra="ignore")

    linear_total: float = 0.0
    synergy_total: float = 0.0
    conflict_total: float = 0.0
    action_contributions: List[ActionContribution] = Field(default_factory=list)


class SelectionMetrics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    effort_minutes_used: float = 0.0
    upfront_cash_used: float = 0.0
    estimated_monthly_cash_impact: float = 0.0
    estimated_risk_reduction: float = 0.0
    projected_balance: float = 0.0
    buffer_respected: bool = True

    max_effort_minutes: float = 0.0
    max_upfront_cash: float = 0.0
    min_balance_floor: float = 0.0


class ConstraintViolation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class Explanation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    top_reasons: List[str] = Field(default_factory=list)
    constraint_notes: List[str] = Field(default_factory=list)


class OptimizationSolution(BaseModel):
    """
    Structured optimizer output.

    Contains:
    - Status (optimal, feasible, infeasible)
    - Selected action ids (insertion order, always includes required ids when feasible)
    - Unpenalized objective value and its breakdown
    - Solver provenance for observability
    - Violations when the required-only selection cannot fit the budgets
    """

    model_config = ConfigDict(extra="ignore")

    status: SolveStatus
    selected_ids: List[str] = Field(default_factory=list)
    objective_value: Optional[float] = None

    solver: SolverProvenance
    metrics: SelectionMetrics = Field(default_factory=SelectionMetrics)
    score_breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    explain: Explanation = Field(default_factory=Explanation)

    advisories: List[str] = Field(default_factory=list)
    violations: List[ConstraintViolation] = Field(default_factory=list)

    # Useful diagnostics
    diagnostics: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_feasible(self) -> bool:
        return self.status != "infeasible"
