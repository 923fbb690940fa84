# copilot_optimizer/app/services/optimization/optimization_results_service.py
"""
Pure computation service turning a solver outcome into an OptimizationSolution.

Key principles:
- Decode the winning bits against the frozen OptimizationProblem
- Recompute the UNPENALIZED objective (linear + synergy + conflict) so callers
  see a meaningful value rather than a penalty-deflated one
- Verify the decoded selection against the hard constraints before returning it
- Package solver provenance for observability
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from app.schemas.optimization_problem import OptimizationProblem
from app.schemas.optimization_solution import (
    ActionContribution,
    ConstraintViolation,
    Explanation,
    OptimizationSolution,
    ScoreBreakdown,
    SelectionMetrics,
    SolverProvenance,
)
from app.services.optimization.constraint_explainer import (
    SelectionEvaluation,
    build_constraint_notes,
    build_top_reasons,
    evaluate_selection,
)
from app.services.optimization.penalty_encoder import EncodedObjective
from app.services.solvers.base import SolveOutcome

logger = logging.getLogger(__name__)


def score_components(
    problem: OptimizationProblem,
    selected: Sequence[int],
) -> Tuple[float, float, float, List[ActionContribution]]:
    """
    Unpenalized objective components for a selection.

    Pair interactions are split evenly between the two actions in the
    per-action view so that contributions sum to the objective value.

    Returns:
        (linear_total, synergy_total, conflict_total, contributions sorted by value desc)
    """
    chosen = sorted(set(selected))
    chosen_set = set(chosen)

    linear_total = sum(problem.weights[i] for i in chosen)
    synergy_total = 0.0
    conflict_total = 0.0
    interaction_share = {i: 0.0 for i in chosen}

    for (i, j), q in problem.interactions.items():
        if i in chosen_set and j in chosen_set:
            if q >= 0:
                synergy_total += q
            else:
                conflict_total += q
            interaction_share[i] += q / 2.0
            interaction_share[j] += q / 2.0

    contributions = [
        ActionContribution(
            id=problem.actions[i].id,
            value=problem.weights[i] + interaction_share[i],
            risk_component=problem.risk_components[i],
            cash_component=problem.cash_components[i],
            goal_component=problem.goal_components[i],
            interaction_component=interaction_share[i],
        )
        for i in chosen
    ]
    contributions.sort(key=lambda c: (-c.value, c.id))
    return linear_total, synergy_total, conflict_total, contributions


def _metrics(problem: OptimizationProblem, evaluation: SelectionEvaluation) -> SelectionMetrics:
    t = evaluation.totals
    c = problem.constraints
    return SelectionMetrics(
        effort_minutes_used=t["effort_minutes"],
        upfront_cash_used=t["upfront_cash"],
        estimated_monthly_cash_impact=round(t["monthly_cashflow_delta"], 2),
        estimated_risk_reduction=t["risk_reduction"],
        projected_balance=round(t["projected_balance"], 2),
        buffer_respected=t["projected_balance"] >= c.min_balance_floor,
        max_effort_minutes=c.max_effort_minutes,
        max_upfront_cash=c.max_upfront_cash,
        min_balance_floor=c.min_balance_floor,
    )


def _violations(evaluation: SelectionEvaluation) -> List[ConstraintViolation]:
    return [ConstraintViolation(code=v.code, message=v.message, details=v.details) for v in evaluation.violations]


def _base_diagnostics(problem: OptimizationProblem, enc: EncodedObjective) -> dict:
    return {
        "big_m": enc.big_m,
        "scoring": problem.metadata.get("scoring", {}),
        "synergy_pairs": problem.metadata.get("synergy_pairs", 0),
        "conflict_pairs": problem.metadata.get("conflict_pairs", 0),
        "excluded_ineligible": problem.metadata.get("excluded_ineligible", []),
        "warnings": problem.metadata.get("warnings", []),
    }


def build_infeasible_solution(
    problem: OptimizationProblem,
    enc: EncodedObjective,
    evaluation: SelectionEvaluation,
    *,
    exact_threshold: Optional[int],
    elapsed_ms: float,
    advisories: Optional[List[str]] = None,
) -> OptimizationSolution:
    """Explicit 'no plan fits your budget' result: nothing selected, violations listed."""
    notes = [v.message for v in evaluation.violations]
    return OptimizationSolution(
        status="infeasible",
        selected_ids=[],
        objective_value=None,
        solver=SolverProvenance(
            mode="infeasible",
            n_actions_considered=problem.size,
            n_free_variables=enc.n_free,
            n_required=len(problem.required_indices),
            exact_threshold=exact_threshold,
            time_ms=round(elapsed_ms, 2),
        ),
        metrics=_metrics(problem, evaluation),
        explain=Explanation(
            top_reasons=["Required actions alone do not fit the weekly budget"],
            constraint_notes=notes,
        ),
        advisories=list(advisories or []),
        violations=_violations(evaluation),
        diagnostics={
            **_base_diagnostics(problem, enc),
            "required_only_ids": [problem.actions[i].id for i in evaluation.selected_indices],
        },
    )


def build_solution(
    problem: OptimizationProblem,
    enc: EncodedObjective,
    outcome: SolveOutcome,
    *,
    exact_threshold: Optional[int],
    elapsed_ms: float,
    advisories: Optional[List[str]] = None,
) -> OptimizationSolution:
    """
    Decode the winning assignment and package it for callers.

    Args:
        problem: Frozen problem snapshot
        enc: Encoded objective the solver maximized
        outcome: Raw solver result
        exact_threshold: Threshold used to choose the solver mode
        elapsed_ms: Wall time of the whole optimize call so far

    Returns:
        OptimizationSolution (status optimal for exact mode, feasible for heuristic)
    """
    selected = enc.decode(outcome.best.bits)
    evaluation = evaluate_selection(problem, selected)

    provenance = SolverProvenance(
        mode=outcome.mode,  # type: ignore[arg-type]
        n_actions_considered=problem.size,
        n_free_variables=enc.n_free,
        n_required=len(problem.required_indices),
        exact_threshold=exact_threshold,
        assignments_evaluated=outcome.assignments_evaluated,
        trials_requested=outcome.trials_requested,
        trials_completed=outcome.trials_completed,
        iterations=outcome.iterations,
        restarts=outcome.restarts,
        seed=outcome.seed,
        best_trial=outcome.best_trial,
        deadline_hit=outcome.deadline_hit,
        time_ms=round(elapsed_ms, 2),
    )

    if not evaluation.is_feasible:
        # Should be impossible once the required-only check passed; keep the guard loud
        logger.error(
            "Solver returned a selection violating hard constraints",
            extra={
                "solver_mode": outcome.mode,
                "codes": [v.code for v in evaluation.violations],
            },
        )
        return OptimizationSolution(
            status="infeasible",
            selected_ids=[],
            solver=provenance.model_copy(update={"mode": "infeasible"}),
            metrics=_metrics(problem, evaluation),
            advisories=list(advisories or []),
            violations=_violations(evaluation),
            diagnostics={**_base_diagnostics(problem, enc), "error": "solution_violates_constraints"},
        )

    linear_total, synergy_total, conflict_total, contributions = score_components(problem, selected)
    objective_value = linear_total + synergy_total + conflict_total

    solution = OptimizationSolution(
        status="optimal" if outcome.mode == "exact" else "feasible",
        selected_ids=[problem.actions[i].id for i in selected],
        objective_value=objective_value,
        solver=provenance,
        metrics=_metrics(problem, evaluation),
        score_breakdown=ScoreBreakdown(
            linear_total=linear_total,
            synergy_total=synergy_total,
            conflict_total=conflict_total,
            action_contributions=contributions,
        ),
        explain=Explanation(
            top_reasons=build_top_reasons(problem, selected, contributions),
            constraint_notes=build_constraint_notes(problem, evaluation.totals),
        ),
        advisories=list(advisories or []),
        diagnostics={**_base_diagnostics(problem, enc), "penalized_score": outcome.best.score},
    )

    logger.info(
        "Solution built",
        extra={
            "status": solution.status,
            "solver_mode": outcome.mode,
            "selected_count": len(selected),
            "objective_value": objective_value,
        },
    )
    return solution
