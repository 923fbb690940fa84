# Shared fixtures for optimizer tests: request factories and a brute-force oracle
from __future__ import annotations

import itertools
import random
from typing import List, Optional, Tuple

import pytest

from app.schemas.optimization_problem import (
    Action,
    Constraints,
    FinancialContext,
    OptimizationProblem,
    OptimizationRequest,
    SolverOverrides,
)
from app.services.optimization.constraint_explainer import evaluate_selection
from app.services.optimization.optimization_service import OptimizationService
from app.services.solvers import SolverConfig


def _make_action(action_id: str, **kwargs) -> Action:
    return Action(id=action_id, **kwargs)


def _make_request(actions: List[Action], **kwargs) -> OptimizationRequest:
    kwargs.setdefault("context", FinancialContext(starting_balance=1000.0))
    return OptimizationRequest(actions=actions, **kwargs)


def _random_request(seed: int, n: int, n_required: int = 1, solver: Optional[SolverOverrides] = None) -> OptimizationRequest:
    """Random but always well-formed request whose required-only selection fits the budgets."""
    rng = random.Random(seed)
    ids = [f"a{i:02d}" for i in range(n)]

    synergy = {aid: set() for aid in ids}
    conflicts = {aid: set() for aid in ids}
    for i, j in itertools.combinations(range(n), 2):
        r = rng.random()
        if r < 0.12:
            synergy[ids[i]].add(ids[j])
        elif r < 0.24:
            conflicts[ids[j]].add(ids[i])

    actions = []
    for i, aid in enumerate(ids):
        # required actions stay small so the required-only selection always fits
        small = i < n_required
        actions.append(
            Action(
                id=aid,
                effort_minutes=rng.randint(5, 40 if small else 90),
                upfront_cash_cost=round(rng.uniform(0, 30 if small else 80), 2),
                monthly_cashflow_delta=round(rng.uniform(0 if small else -20, 60), 2),
                risk_reduction_score=round(rng.uniform(0, 5), 2),
                synergy_with=synergy[aid],
                conflicts_with=conflicts[aid],
            )
        )
    goal_weights = {aid: {"stabilize_cashflow": round(rng.uniform(0, 1), 2)} for aid in ids if rng.random() < 0.5}

    return OptimizationRequest(
        actions=actions,
        required_action_ids=ids[:n_required],
        goal="stability",
        goal_weights=goal_weights,
        constraints=Constraints(max_effort_minutes=180, max_upfront_cash=150, min_balance_floor=300),
        context=FinancialContext(starting_balance=500.0),
        solver=solver,
    )


def _brute_force_optimum(problem: OptimizationProblem) -> Optional[Tuple[float, List[int]]]:
    """Best unpenalized value over every feasible selection containing the required actions."""
    free = [i for i in range(problem.size) if i not in problem.required_indices]
    best: Optional[Tuple[float, List[int]]] = None
    for bits in itertools.product((0, 1), repeat=len(free)):
        selected = sorted(set(problem.required_indices) | {i for i, b in zip(free, bits) if b})
        if not evaluate_selection(problem, selected).is_feasible:
            continue
        value = sum(problem.weights[i] for i in selected)
        value += sum(problem.interaction(i, j) for i, j in itertools.combinations(selected, 2))
        if best is None or value > best[0] + 1e-9:
            best = (value, selected)
    return best


@pytest.fixture
def make_action():
    return _make_action


@pytest.fixture
def make_request():
    return _make_request


@pytest.fixture
def random_request():
    return _random_request


@pytest.fixture
def brute_force_optimum():
    return _brute_force_optimum


@pytest.fixture
def abc_request() -> OptimizationRequest:
    """A required; B and C conflict; B+A exactly meets the effort budget."""
    return _make_request(
        [
            _make_action("A", effort_minutes=60, upfront_cash_cost=0, risk_reduction_score=5),
            _make_action("B", effort_minutes=90, upfront_cash_cost=50, risk_reduction_score=3, conflicts_with={"C"}),
            _make_action("C", effort_minutes=30, upfront_cash_cost=0, risk_reduction_score=4, conflicts_with={"B"}),
        ],
        required_action_ids=["A"],
        constraints=Constraints(max_effort_minutes=150, max_upfront_cash=50),
    )


@pytest.fixture
def service() -> OptimizationService:
    return OptimizationService(config=SolverConfig(seed=1234))


@pytest.fixture
def heuristic_service() -> OptimizationService:
    """Forces local search on every problem with free variables."""
    return OptimizationService(
        config=SolverConfig(exact_threshold=0, trials=8, iteration_budget=2000, max_workers=4, seed=42)
    )
