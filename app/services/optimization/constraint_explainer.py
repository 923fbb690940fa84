# copilot_optimizer/app/services/optimization/constraint_explainer.py
"""
Evaluate a selection against the hard constraints and generate
human-readable explanations for the chosen plan (or for why no plan fits).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Set

from app.schemas.optimization_problem import GoalProfile, OptimizationProblem
from app.services.optimization.penalty_encoder import FEASIBILITY_TOL


@dataclass(frozen=True)
class Violation:
    code: str
    message: str
    severity: str = "error"
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SelectionEvaluation:
    selected_indices: List[int]
    is_feasible: bool
    violations: List[Violation] = field(default_factory=list)
    totals: Dict[str, float] = field(default_factory=dict)


GOAL_EMPHASIS: Dict[GoalProfile, str] = {
    GoalProfile.STABILIZE_CASHFLOW: "Goal is to stabilize cashflow: actions that prevent overdrafts and late fees were weighted up",
    GoalProfile.PAY_DOWN_DEBT: "Goal is to pay down debt: actions that free up money for debt payments were weighted up",
    GoalProfile.BUILD_EMERGENCY_FUND: "Goal is to build an emergency fund: actions that both free cash and reduce risk were weighted up",
}

MAX_REASONS = 5


def _money(x: float) -> str:
    return f"${x:,.2f}"


def _pct(used: float, budget: float) -> str:
    if budget <= 0:
        return "n/a"
    return f"{round(used / budget * 100)}%"


# ----------------------------
# Evaluator
# ----------------------------


def selection_totals(problem: OptimizationProblem, selected: Iterable[int]) -> Dict[str, float]:
    """Effort, cash, cashflow, risk and projected balance for a set of problem indices."""
    effort = cash = delta = risk = 0.0
    for i in selected:
        a = problem.actions[i]
        effort += float(a.effort_minutes)
        cash += float(a.upfront_cash_cost)
        delta += float(a.monthly_cashflow_delta)
        risk += float(a.risk_reduction_score)
    projected = problem.starting_balance + problem.baseline_monthly_net - cash + delta
    return {
        "effort_minutes": effort,
        "upfront_cash": cash,
        "monthly_cashflow_delta": delta,
        "risk_reduction": risk,
        "projected_balance": projected,
    }


def evaluate_selection(problem: OptimizationProblem, selected: Iterable[int]) -> SelectionEvaluation:
    """Evaluate the feasibility of a selection of actions against the problem's hard constraints."""
    indices = sorted(set(selected))
    totals = selection_totals(problem, indices)
    c = problem.constraints
    violations: List[Violation] = []

    missing_required = sorted(problem.required_indices - set(indices))
    if missing_required:
        violations.append(
            Violation(
                code="REQUIRED_MISSING",
                message="Selection omits required action(s): "
                + ", ".join(problem.actions[i].id for i in missing_required),
                details={"action_ids": [problem.actions[i].id for i in missing_required]},
            )
        )

    if totals["effort_minutes"] - c.max_effort_minutes > FEASIBILITY_TOL:
        violations.append(
            Violation(
                code="EFFORT_BUDGET_EXCEEDED",
                message=(
                    f"Selected actions need {totals['effort_minutes']:g} minutes/week, "
                    f"budget is {c.max_effort_minutes:g}."
                ),
                details={"used": totals["effort_minutes"], "limit": c.max_effort_minutes},
            )
        )

    if totals["upfront_cash"] - c.max_upfront_cash > FEASIBILITY_TOL:
        violations.append(
            Violation(
                code="CASH_BUDGET_EXCEEDED",
                message=(
                    f"Selected actions need {_money(totals['upfront_cash'])} upfront, "
                    f"budget is {_money(c.max_upfront_cash)}."
                ),
                details={"used": totals["upfront_cash"], "limit": c.max_upfront_cash},
            )
        )

    if c.min_balance_floor - totals["projected_balance"] > FEASIBILITY_TOL:
        violations.append(
            Violation(
                code="BALANCE_FLOOR_BREACHED",
                message=(
                    f"Projected balance {_money(totals['projected_balance'])} falls below "
                    f"the {_money(c.min_balance_floor)} floor."
                ),
                details={"projected": totals["projected_balance"], "floor": c.min_balance_floor},
            )
        )

    return SelectionEvaluation(
        selected_indices=indices,
        is_feasible=not violations,
        violations=violations,
        totals=totals,
    )


# ----------------------------
# Explanations
# ----------------------------


def build_top_reasons(
    problem: OptimizationProblem,
    selected: Sequence[int],
    contributions: Sequence[Any],
) -> List[str]:
    """
    Short reasons for the plan, highest contributor first.

    `contributions` are ActionContribution-like objects sorted by value desc.
    """
    reasons: List[str] = []
    chosen: Set[int] = set(selected)

    if contributions:
        top = contributions[0]
        top_action = problem.actions[problem.index_of(top.id)]
        reasons.append(f'"{top_action.display_name}" was selected for highest combined value ({top.value:.2f})')

    reasons.append(GOAL_EMPHASIS[problem.goal])

    for i in chosen & problem.required_indices:
        reasons.append(f'"{problem.actions[i].display_name}" is required and always included')

    # Valuable actions left out because they conflict with a chosen one
    for i, a in enumerate(problem.actions):
        if i in chosen or problem.weights[i] <= 0:
            continue
        for j in sorted(chosen):
            if problem.interaction(i, j) < 0:
                reasons.append(f'"{a.display_name}" was skipped because it conflicts with "{problem.actions[j].display_name}"')
                break

    return reasons[:MAX_REASONS]


def build_constraint_notes(problem: OptimizationProblem, totals: Dict[str, float]) -> List[str]:
    c = problem.constraints
    notes = [
        f"Effort budget: {totals['effort_minutes']:g}/{c.max_effort_minutes:g} min "
        f"({_pct(totals['effort_minutes'], c.max_effort_minutes)} used)",
    ]
    if totals["upfront_cash"] > 0:
        notes.append(
            f"Upfront cash: {_money(totals['upfront_cash'])}/{_money(c.max_upfront_cash)} "
            f"({_pct(totals['upfront_cash'], c.max_upfront_cash)} used)"
        )
    notes.append(
        f"Projected balance after one month: {_money(totals['projected_balance'])} "
        f"(floor {_money(c.min_balance_floor)})"
    )
    return notes
