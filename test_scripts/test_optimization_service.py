from __future__ import annotations

import itertools
import random

import pytest

from app.schemas.optimization_problem import Constraints, FinancialContext, SolverOverrides
from app.services.optimization.errors import DEGENERATE_EMPTY_POOL, InvalidProblem
from app.services.optimization.optimization_problem_builder import ConstraintDefaults
from app.services.optimization.optimization_service import OptimizationService, optimize
from app.services.solvers import SolverConfig


def test_required_actions_over_cash_budget_is_infeasible(make_action, make_request, service):
    req = make_request(
        [
            make_action("rent_buffer", upfront_cash_cost=150, risk_reduction_score=5),
            make_action("card_payoff", upfront_cash_cost=120, risk_reduction_score=4),
            make_action("autopay", effort_minutes=10, risk_reduction_score=2),
        ],
        required_action_ids=["rent_buffer", "card_payoff"],
    )
    solution = service.optimize(req)

    assert solution.status == "infeasible"
    assert not solution.is_feasible
    assert solution.selected_ids == []
    assert solution.objective_value is None
    assert solution.solver.mode == "infeasible"
    assert [v.code for v in solution.violations] == ["CASH_BUDGET_EXCEEDED"]
    assert solution.violations[0].details == {"used": 270.0, "limit": 200.0}
    assert solution.diagnostics["required_only_ids"] == ["rent_buffer", "card_payoff"]
    assert solution.explain.constraint_notes[0].startswith("Selected actions need $270.00 upfront")


def test_required_actions_breaching_balance_floor_is_infeasible(make_action, make_request, service):
    req = make_request(
        [make_action("move", upfront_cash_cost=100)],
        required_action_ids=["move"],
        context=FinancialContext(starting_balance=120),
    )
    solution = service.optimize(req)

    assert solution.status == "infeasible"
    assert [v.code for v in solution.violations] == ["BALANCE_FLOOR_BREACHED"]
    assert solution.metrics.buffer_respected is False
    assert solution.metrics.projected_balance == 20.0


def test_empty_pool_is_degenerate_not_an_error(make_request, service):
    solution = service.optimize(make_request([]))

    assert solution.status == "optimal"
    assert solution.selected_ids == []
    assert solution.objective_value == 0.0
    assert DEGENERATE_EMPTY_POOL in solution.advisories
    assert solution.solver.assignments_evaluated == 1
    assert "NO_ELIGIBLE_ACTIONS" in solution.diagnostics["warnings"]


def test_all_ineligible_pool_is_degenerate(make_action, make_request, service):
    solution = service.optimize(make_request([make_action("A", eligible=False, risk_reduction_score=9)]))

    assert solution.selected_ids == []
    assert solution.advisories == [DEGENERATE_EMPTY_POOL]
    assert solution.diagnostics["excluded_ineligible"] == ["A"]


def test_invalid_problem_never_reaches_the_solver(make_action, make_request, service):
    req = make_request([make_action("A")], required_action_ids=["B"])
    with pytest.raises(InvalidProblem) as exc_info:
        service.optimize(req)

    assert exc_info.value.report.errors[0].code == "REQUIRED_NOT_IN_CANDIDATES"


def test_required_actions_always_selected_even_when_unattractive(make_action, make_request, service):
    req = make_request(
        [
            make_action("paperwork", effort_minutes=45, monthly_cashflow_delta=-30),
            make_action("autopay", effort_minutes=10, risk_reduction_score=2, conflicts_with={"paperwork"}),
        ],
        required_action_ids=["paperwork"],
    )
    solution = service.optimize(req)

    # autopay alone is worth 2, the conflict with the required action costs 10
    assert solution.selected_ids == ["paperwork"]
    assert solution.objective_value == pytest.approx(-30 * 0.05)


def test_synergy_pulls_in_a_partner(make_action, make_request, service):
    req = make_request(
        [
            make_action("budget_app", effort_minutes=20, monthly_cashflow_delta=-10, synergy_with={"review_subs"}),
            make_action("review_subs", effort_minutes=30, risk_reduction_score=1),
        ],
    )
    solution = service.optimize(req)

    # budget_app alone is -0.5, the pair bonus of 1.5 makes it worth taking
    assert solution.selected_ids == ["budget_app", "review_subs"]
    assert solution.score_breakdown.synergy_total == pytest.approx(1.5)
    assert solution.objective_value == pytest.approx(-0.5 + 1.0 + 1.5)


def _toggle(request, a_id, b_id, kind):
    actions = []
    for a in request.actions:
        if a.id == a_id:
            field = "synergy_with" if kind == "synergy" else "conflicts_with"
            a = a.model_copy(update={field: set(getattr(a, field)) | {b_id}})
        actions.append(a)
    return request.model_copy(update={"actions": actions})


@pytest.mark.parametrize("seed", [31, 32, 33, 34])
def test_adding_synergy_never_lowers_and_conflict_never_raises_optimum(seed, random_request, service):
    request = random_request(seed=seed, n=9)
    baseline = service.optimize(request).objective_value

    rng = random.Random(seed)
    free_pairs = [
        (a, b)
        for a, b in itertools.combinations(request.actions, 2)
        if not ({b.id} & (a.synergy_with | a.conflicts_with) or {a.id} & (b.synergy_with | b.conflicts_with))
    ]
    a, b = rng.choice(free_pairs)

    with_synergy = service.optimize(_toggle(request, a.id, b.id, "synergy")).objective_value
    with_conflict = service.optimize(_toggle(request, a.id, b.id, "conflict")).objective_value

    assert with_synergy >= baseline - 1e-9
    assert with_conflict <= baseline + 1e-9


def test_explanations_for_abc_plan(abc_request, service):
    solution = service.optimize(abc_request)
    reasons = solution.explain.top_reasons

    assert reasons[0] == '"A" was selected for highest combined value (5.00)'
    assert '"A" is required and always included' in reasons
    assert '"B" was skipped because it conflicts with "C"' in reasons
    assert solution.explain.constraint_notes[0] == "Effort budget: 90/150 min (60% used)"
    assert solution.explain.constraint_notes[-1] == "Projected balance after one month: $1,000.00 (floor $50.00)"

    contributions = solution.score_breakdown.action_contributions
    assert [c.id for c in contributions] == ["A", "C"]
    assert contributions[0].risk_component == 5.0


def test_contributions_sum_to_objective(random_request, service):
    solution = service.optimize(random_request(seed=17, n=11))

    total = sum(c.value for c in solution.score_breakdown.action_contributions)
    assert total == pytest.approx(solution.objective_value)
    breakdown = solution.score_breakdown
    assert breakdown.linear_total + breakdown.synergy_total + breakdown.conflict_total == pytest.approx(total)


def test_metrics_and_diagnostics(abc_request, service):
    solution = service.optimize(abc_request)

    m = solution.metrics
    assert m.effort_minutes_used == 90
    assert m.upfront_cash_used == 0
    assert m.estimated_risk_reduction == 9
    assert m.buffer_respected is True
    assert m.max_effort_minutes == 150
    assert solution.diagnostics["conflict_pairs"] == 1
    assert solution.diagnostics["scoring"]["conflict_penalty"] == 10.0
    assert solution.diagnostics["big_m"] == pytest.approx(5 + 3 + 4 + 10 + 1)


def test_request_overrides_switch_to_heuristic(abc_request):
    req = abc_request.model_copy(update={"solver": SolverOverrides(exact_threshold=0, seed=5, trials=3)})
    solution = OptimizationService().optimize(req)

    assert solution.solver.mode == "heuristic"
    assert solution.status == "feasible"
    assert solution.solver.seed == 5
    assert solution.solver.trials_requested == 3
    assert solution.selected_ids == ["A", "C"]


def test_heuristic_without_seed_reports_the_seed_it_used(abc_request):
    service = OptimizationService(config=SolverConfig(exact_threshold=0, trials=2))
    solution = service.optimize(abc_request)

    assert isinstance(solution.solver.seed, int)


def test_service_constraint_defaults_apply(make_action, make_request):
    service = OptimizationService(defaults=ConstraintDefaults(max_effort_minutes=30))
    req = make_request(
        [
            make_action("long", effort_minutes=45, risk_reduction_score=5),
            make_action("short", effort_minutes=20, risk_reduction_score=1),
        ]
    )
    assert service.optimize(req).selected_ids == ["short"]


def test_module_level_optimize(abc_request):
    assert optimize(abc_request).selected_ids == ["A", "C"]


def test_income_and_essentials_shift_projection(make_action, make_request, service):
    req = make_request(
        [make_action("A", upfront_cash_cost=80, risk_reduction_score=1)],
        context=FinancialContext(starting_balance=60, monthly_income_est=2500, monthly_essential_spend_est=2400),
        constraints=Constraints(min_balance_floor=50),
    )
    solution = service.optimize(req)

    # 60 + 100 - 80 = 80 >= 50
    assert solution.selected_ids == ["A"]
    assert solution.metrics.projected_balance == 80.0
