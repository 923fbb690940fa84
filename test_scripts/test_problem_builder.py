from __future__ import annotations

import pytest

from app.schemas.optimization_problem import Constraints, GoalProfile, OptimizationRequest
from app.services.optimization.errors import InvalidProblem
from app.services.optimization.optimization_problem_builder import (
    ConstraintDefaults,
    build_optimization_problem,
)
from app.services.optimization.scoring_constants import DEFAULT_SCORING


def _codes(exc: InvalidProblem):
    return {issue.code for issue in exc.issues}


def test_linear_weights_follow_scoring_constants(make_action, make_request):
    req = make_request(
        [
            make_action("A", risk_reduction_score=2, monthly_cashflow_delta=40),
            make_action("B", risk_reduction_score=1),
        ],
        goal="debt",
        goal_weights={"A": {"pay_down_debt": 0.5, "stabilize_cashflow": 1.0}},
    )
    problem = build_optimization_problem(req)

    assert problem.goal is GoalProfile.PAY_DOWN_DEBT
    assert problem.risk_components[0] == pytest.approx(2.0)
    assert problem.cash_components[0] == pytest.approx(40 * DEFAULT_SCORING.cash_factor)
    assert problem.goal_components[0] == pytest.approx(0.5 * DEFAULT_SCORING.goal_weight_scale)
    assert problem.weights[0] == pytest.approx(2.0 + 2.0 + 2.0)
    assert problem.weights[1] == pytest.approx(1.0)


def test_goal_aliases_and_unknown_goal():
    assert OptimizationRequest(goal="auto").goal is GoalProfile.STABILIZE_CASHFLOW
    assert OptimizationRequest(goal="emergency").goal is GoalProfile.BUILD_EMERGENCY_FUND
    assert OptimizationRequest(goal="Pay_Down_Debt").goal is GoalProfile.PAY_DOWN_DEBT
    with pytest.raises(ValueError):
        OptimizationRequest(goal="get_rich_quick")


def test_ineligible_actions_are_dropped(make_action, make_request):
    req = make_request(
        [
            make_action("A", risk_reduction_score=1, synergy_with={"B"}),
            make_action("B", risk_reduction_score=1, eligible=False),
            make_action("C", risk_reduction_score=1),
        ]
    )
    problem = build_optimization_problem(req)

    assert problem.action_ids == ("A", "C")
    assert problem.metadata["excluded_ineligible"] == ["B"]
    # synergy partner vanished with the ineligible action
    assert problem.interactions == {}
    assert "INTERACTION_REF_NOT_IN_CANDIDATES" in problem.metadata["warnings"]


def test_interactions_are_symmetric_and_counted_once(make_action, make_request):
    req = make_request(
        [
            make_action("A", synergy_with={"B"}),
            make_action("B", synergy_with={"A"}),
            make_action("C", conflicts_with={"A"}),
        ]
    )
    problem = build_optimization_problem(req)

    assert problem.interactions == {
        (0, 1): DEFAULT_SCORING.synergy_bonus,
        (0, 2): -DEFAULT_SCORING.conflict_penalty,
    }
    assert problem.interaction(1, 0) == problem.interaction(0, 1)
    assert problem.interaction(2, 2) == 0.0
    assert problem.metadata["synergy_pairs"] == 1
    assert problem.metadata["conflict_pairs"] == 1

    matrix = problem.interaction_matrix()
    assert matrix[2][0] == matrix[0][2] == -DEFAULT_SCORING.conflict_penalty
    assert all(matrix[i][i] == 0.0 for i in range(3))


def test_missing_budgets_use_explicit_defaults(make_action, make_request):
    req = make_request([make_action("A")], constraints=Constraints(max_upfront_cash=75))
    problem = build_optimization_problem(
        req, ConstraintDefaults(max_effort_minutes=45, max_upfront_cash=999, min_balance_floor=10)
    )

    assert problem.constraints.max_effort_minutes == 45
    assert problem.constraints.max_upfront_cash == 75
    assert problem.constraints.min_balance_floor == 10


def test_builtin_defaults_match_weekly_plan_budgets(make_action, make_request):
    problem = build_optimization_problem(make_request([make_action("A")]))

    assert problem.constraints.max_effort_minutes == 180
    assert problem.constraints.max_upfront_cash == 200
    assert problem.constraints.min_balance_floor == 50


def test_required_action_marked_ineligible_is_invalid(make_action, make_request):
    req = make_request(
        [make_action("A"), make_action("B", eligible=False)],
        required_action_ids=["B"],
    )
    with pytest.raises(InvalidProblem) as exc_info:
        build_optimization_problem(req)

    assert "REQUIRED_NOT_ELIGIBLE" in _codes(exc_info.value)
    assert exc_info.value.issues[0].action_ids == ["B"]


def test_required_action_not_in_candidates_is_invalid(make_action, make_request):
    req = make_request([make_action("A")], required_action_ids=["ghost"])
    with pytest.raises(InvalidProblem) as exc_info:
        build_optimization_problem(req)

    assert _codes(exc_info.value) == {"REQUIRED_NOT_IN_CANDIDATES"}


def test_pair_declared_conflicting_and_synergistic_is_invalid(make_action, make_request):
    req = make_request(
        [
            make_action("A", conflicts_with={"B"}),
            make_action("B", synergy_with={"A"}),
        ]
    )
    with pytest.raises(InvalidProblem) as exc_info:
        build_optimization_problem(req)

    assert "CONFLICT_AND_SYNERGY" in _codes(exc_info.value)


def test_bad_numbers_are_reported_together(make_action, make_request):
    req = make_request(
        [
            make_action("A", effort_minutes=-5),
            make_action("B", upfront_cash_cost=float("nan")),
            make_action("A"),
        ],
        constraints=Constraints(max_upfront_cash=-1),
    )
    with pytest.raises(InvalidProblem) as exc_info:
        build_optimization_problem(req)

    assert {
        "ACTION_NEGATIVE_VALUE",
        "ACTION_NON_FINITE_VALUE",
        "DUPLICATE_ACTION_ID",
        "BUDGET_NEGATIVE",
    } <= _codes(exc_info.value)
    assert not exc_info.value.report.is_valid


def test_warnings_do_not_block_the_build(make_action, make_request):
    req = make_request(
        [make_action("A", synergy_with={"A"})],
        goal_weights={"nobody": {"stabilize_cashflow": 1.0}, "A": {"moonshot": 2.0}},
    )
    problem = build_optimization_problem(req)

    assert set(problem.metadata["warnings"]) == {
        "INTERACTION_SELF_REFERENCE",
        "GOAL_WEIGHT_UNKNOWN_ACTION",
        "GOAL_WEIGHT_UNKNOWN_GOAL",
    }
    assert problem.weights == (0.0,)


def test_required_ids_are_deduplicated(make_action, make_request):
    req = make_request([make_action("A"), make_action("B")], required_action_ids=["B", " B ", "", "A"])

    assert req.required_action_ids == ["B", "A"]
    assert build_optimization_problem(req).required_indices == frozenset({0, 1})
