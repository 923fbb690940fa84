# app/services/optimization/optimization_problem_builder.py
"""
Builder service for OptimizationProblem objects.

Responsibilities:
1. Apply the upstream eligibility flag (ineligible actions never enter the problem)
2. Resolve budgets (request values, else explicit ConstraintDefaults)
3. Validate the request (FeasibilityChecker) and fail fast with InvalidProblem
4. Project Action -> linear weight w[i] using the fixed scoring constants
5. Build the sparse symmetric interaction map q[i][j]
6. Return a frozen, solver-ready OptimizationProblem

CRITICAL rule: the builder never reads ambient settings. Budget defaults
arrive as a ConstraintDefaults struct so the core stays testable with any
constraint values.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.schemas.optimization_problem import (
    Action,
    OptimizationProblem,
    OptimizationRequest,
    ResolvedConstraints,
)
from app.services.optimization.errors import InvalidProblem
from app.services.optimization.feasibility_checker import FeasibilityChecker
from app.services.optimization.scoring_constants import DEFAULT_SCORING, ScoringConstants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConstraintDefaults:
    """Budgets applied when a request leaves a constraint out."""

    max_effort_minutes: float = 180.0
    max_upfront_cash: float = 200.0
    min_balance_floor: float = 50.0

    @classmethod
    def from_settings(cls, settings) -> "ConstraintDefaults":
        return cls(
            max_effort_minutes=float(settings.DEFAULT_EFFORT_BUDGET_MINUTES),
            max_upfront_cash=float(settings.DEFAULT_UPFRONT_CASH),
            min_balance_floor=float(settings.DEFAULT_MIN_CASH_BUFFER),
        )


def _resolve_constraints(request: OptimizationRequest, defaults: ConstraintDefaults) -> ResolvedConstraints:
    c = request.constraints

    def pick(value: Optional[float], fallback: float) -> float:
        return float(fallback) if value is None else float(value)

    return ResolvedConstraints(
        max_effort_minutes=pick(c.max_effort_minutes, defaults.max_effort_minutes),
        max_upfront_cash=pick(c.max_upfront_cash, defaults.max_upfront_cash),
        min_balance_floor=pick(c.min_balance_floor, defaults.min_balance_floor),
    )


def _build_interactions(
    actions: List[Action],
    scoring: ScoringConstants,
) -> Tuple[Dict[Tuple[int, int], float], int, int]:
    """
    Build {(i, j): q} with i < j. A pair declared by either side counts once.

    Returns:
        (interactions, synergy_pairs, conflict_pairs)
    """
    index = {a.id: i for i, a in enumerate(actions)}
    interactions: Dict[Tuple[int, int], float] = {}
    synergy_pairs = 0
    conflict_pairs = 0

    for i, a in enumerate(actions):
        for other in sorted(a.synergy_with):
            j = index.get(other)
            if j is None or j == i:
                continue
            key = (min(i, j), max(i, j))
            if key not in interactions:
                interactions[key] = scoring.synergy_bonus
                synergy_pairs += 1
        for other in sorted(a.conflicts_with):
            j = index.get(other)
            if j is None or j == i:
                continue
            key = (min(i, j), max(i, j))
            if key not in interactions:
                interactions[key] = -scoring.conflict_penalty
                conflict_pairs += 1

    return interactions, synergy_pairs, conflict_pairs


def build_optimization_problem(
    request: OptimizationRequest,
    defaults: Optional[ConstraintDefaults] = None,
    scoring: ScoringConstants = DEFAULT_SCORING,
) -> OptimizationProblem:
    """
    Build a complete OptimizationProblem ready for the penalty encoder.

    Args:
        request: Optimizer request (actions already pre-scored upstream)
        defaults: Budget defaults for constraints the request leaves out
        scoring: Scoring calibration (fixed; overridable only from code)

    Returns:
        OptimizationProblem over the eligible actions, in insertion order

    Raises:
        InvalidProblem: If the request fails validation
    """
    defaults = defaults or ConstraintDefaults()

    # --- 1) Eligibility ---
    eligible = [a for a in request.actions if a.eligible]
    excluded = [a.id for a in request.actions if not a.eligible]

    # --- 2) Budgets ---
    constraints = _resolve_constraints(request, defaults)

    logger.info(
        "Building optimization problem",
        extra={
            "action_count": len(eligible),
            "required_count": len(request.required_action_ids),
            "goal": request.goal.value,
            "excluded_ineligible": len(excluded),
        },
    )

    # --- 3) Validation ---
    report = FeasibilityChecker().check(request, eligible, constraints)
    if not report.is_valid:
        logger.error(
            "Optimization problem rejected",
            extra={
                "reason": report.summary,
                "codes": sorted({e.code for e in report.errors}),
            },
        )
        raise InvalidProblem(report)

    for w in report.warnings:
        logger.warning(w.message, extra={"warning": w.code, "action_ids": w.action_ids[:10]})

    # --- 4) Linear weights ---
    goal_key = request.goal.value
    risk_components: List[float] = []
    cash_components: List[float] = []
    goal_components: List[float] = []
    weights: List[float] = []

    for a in eligible:
        risk_c = float(a.risk_reduction_score) * scoring.risk_factor
        cash_c = float(a.monthly_cashflow_delta) * scoring.cash_factor
        goal_raw = (request.goal_weights.get(a.id) or {}).get(goal_key, 0.0)
        goal_c = float(goal_raw) * scoring.goal_weight_scale

        risk_components.append(risk_c)
        cash_components.append(cash_c)
        goal_components.append(goal_c)
        weights.append(risk_c + cash_c + goal_c)

    # --- 5) Interactions ---
    interactions, synergy_pairs, conflict_pairs = _build_interactions(eligible, scoring)

    index = {a.id: i for i, a in enumerate(eligible)}
    required_indices = frozenset(index[k] for k in request.required_action_ids)

    problem = OptimizationProblem(
        actions=tuple(eligible),
        goal=request.goal,
        weights=tuple(weights),
        risk_components=tuple(risk_components),
        cash_components=tuple(cash_components),
        goal_components=tuple(goal_components),
        interactions=interactions,
        required_indices=required_indices,
        constraints=constraints,
        starting_balance=float(request.context.starting_balance),
        baseline_monthly_net=float(request.context.baseline_monthly_net),
        metadata={
            "excluded_ineligible": excluded,
            "synergy_pairs": synergy_pairs,
            "conflict_pairs": conflict_pairs,
            "scoring": scoring.as_dict(),
            "warnings": [w.code for w in report.warnings],
        },
    )

    logger.info(
        "Optimization problem built",
        extra={
            "action_count": problem.size,
            "required_count": len(required_indices),
            "synergy_pairs": synergy_pairs,
            "conflict_pairs": conflict_pairs,
        },
    )
    return problem
