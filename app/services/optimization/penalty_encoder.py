# app/services/optimization/penalty_encoder.py
"""
Fold the hard constraints into a single unconstrained quadratic objective.

    f(x) = base + Σ lin[k]·x_k + Σ_{k<l} q[k][l]·x_k·x_l
           - P_effort(x) - P_cash(x) - P_balance(x)

over the FREE variables only:
- Required actions are pre-fixed to 1. Their weights become the constant
  `base`, and their interactions shift the linear terms of their partners.
- Ineligible actions were already dropped by the problem builder.

Each penalty is M·max(v/unit, 1)² for a violation v > 0, with
M = Σ|w| + Σ|q| + 1. Any violated assignment therefore scores below the
least valuable feasible one, and the required-only assignment (when
feasible) bounds the optimum from below.

Pre-fixing required actions is exact. A penalty-only "required bonus"
could still drop a required action if the bonus were miscalibrated.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from app.schemas.optimization_problem import OptimizationProblem
from app.services.optimization.scoring_constants import CASH_UNIT, EFFORT_UNIT

logger = logging.getLogger(__name__)

# Absorbs float noise in budget sums (e.g. 0.1 + 0.2 vs 0.3)
FEASIBILITY_TOL = 1e-9


@dataclass(frozen=True)
class ConstraintTotals:
    effort: float
    cash: float
    balance: float


@dataclass(frozen=True)
class EncodedObjective:
    """Penalized objective restricted to the free variables."""

    problem: OptimizationProblem
    free_indices: Tuple[int, ...]

    base_value: float
    linear: Tuple[float, ...]
    neighbors: Tuple[Tuple[Tuple[int, float], ...], ...]

    # per free variable
    effort: Tuple[float, ...]
    cash: Tuple[float, ...]
    balance_delta: Tuple[float, ...]
    risk: Tuple[float, ...]

    # contribution of the fixed (required) variables
    base_effort: float
    base_cash: float
    base_balance: float
    base_risk: float

    max_effort: float
    max_cash: float
    balance_floor: float

    big_m: float

    @property
    def n_free(self) -> int:
        return len(self.free_indices)

    # -------------------------
    # Penalties
    # -------------------------

    def violations(self, effort_total: float, cash_total: float, balance: float) -> Dict[str, float]:
        """Positive violation amounts per constraint (0.0 when satisfied)."""
        return {
            "effort": max(0.0, effort_total - self.max_effort),
            "cash": max(0.0, cash_total - self.max_cash),
            "balance": max(0.0, self.balance_floor - balance),
        }

    def penalty(self, effort_total: float, cash_total: float, balance: float) -> float:
        total = 0.0
        v = effort_total - self.max_effort
        if v > FEASIBILITY_TOL:
            total += self.big_m * max(v / EFFORT_UNIT, 1.0) ** 2
        v = cash_total - self.max_cash
        if v > FEASIBILITY_TOL:
            total += self.big_m * max(v / CASH_UNIT, 1.0) ** 2
        v = self.balance_floor - balance
        if v > FEASIBILITY_TOL:
            total += self.big_m * max(v / CASH_UNIT, 1.0) ** 2
        return total

    def is_feasible_totals(self, effort_total: float, cash_total: float, balance: float) -> bool:
        return (
            effort_total - self.max_effort <= FEASIBILITY_TOL
            and cash_total - self.max_cash <= FEASIBILITY_TOL
            and self.balance_floor - balance <= FEASIBILITY_TOL
        )

    # -------------------------
    # Full (non-incremental) evaluation
    # -------------------------

    def totals(self, bits: Sequence[int]) -> ConstraintTotals:
        effort_total = self.base_effort
        cash_total = self.base_cash
        balance = self.base_balance
        for k, b in enumerate(bits):
            if b:
                effort_total += self.effort[k]
                cash_total += self.cash[k]
                balance += self.balance_delta[k]
        return ConstraintTotals(effort=effort_total, cash=cash_total, balance=balance)

    def unpenalized(self, bits: Sequence[int]) -> float:
        value = self.base_value
        for k, b in enumerate(bits):
            if not b:
                continue
            value += self.linear[k]
            for other, q in self.neighbors[k]:
                if other > k and bits[other]:
                    value += q
        return value

    def evaluate(self, bits: Sequence[int]) -> float:
        t = self.totals(bits)
        return self.unpenalized(bits) - self.penalty(t.effort, t.cash, t.balance)

    def decode(self, bits: Sequence[int]) -> List[int]:
        """Problem indices selected by `bits`, required ones included, in insertion order."""
        chosen = set(self.problem.required_indices)
        chosen.update(self.free_indices[k] for k, b in enumerate(bits) if b)
        return sorted(chosen)


def encode_problem(problem: OptimizationProblem) -> EncodedObjective:
    """
    Build the penalized objective over the free variables of `problem`.

    Args:
        problem: Output of build_optimization_problem

    Returns:
        EncodedObjective with required actions folded into constants
    """
    required = problem.required_indices
    free = tuple(i for i in range(problem.size) if i not in required)
    local = {i: k for k, i in enumerate(free)}

    # Constant part from fixed variables
    base_value = sum(problem.weights[i] for i in required)
    linear = [problem.weights[i] for i in free]
    adjacency: List[List[Tuple[int, float]]] = [[] for _ in free]

    for (i, j), q in problem.interactions.items():
        if i in required and j in required:
            base_value += q
        elif i in required:
            linear[local[j]] += q
        elif j in required:
            linear[local[i]] += q
        else:
            ki, kj = local[i], local[j]
            adjacency[ki].append((kj, q))
            adjacency[kj].append((ki, q))

    actions = problem.actions
    effort = tuple(float(actions[i].effort_minutes) for i in free)
    cash = tuple(float(actions[i].upfront_cash_cost) for i in free)
    balance_delta = tuple(float(actions[i].monthly_cashflow_delta) - float(actions[i].upfront_cash_cost) for i in free)
    risk = tuple(float(actions[i].risk_reduction_score) for i in free)

    base_effort = sum(float(actions[i].effort_minutes) for i in required)
    base_cash = sum(float(actions[i].upfront_cash_cost) for i in required)
    base_balance = (
        problem.starting_balance
        + problem.baseline_monthly_net
        + sum(float(actions[i].monthly_cashflow_delta) - float(actions[i].upfront_cash_cost) for i in required)
    )
    base_risk = sum(float(actions[i].risk_reduction_score) for i in required)

    # M must exceed the full swing of the unpenalized objective
    big_m = sum(abs(w) for w in problem.weights) + sum(abs(q) for q in problem.interactions.values()) + 1.0

    encoded = EncodedObjective(
        problem=problem,
        free_indices=free,
        base_value=base_value,
        linear=tuple(linear),
        neighbors=tuple(tuple(sorted(adj)) for adj in adjacency),
        effort=effort,
        cash=cash,
        balance_delta=balance_delta,
        risk=risk,
        base_effort=base_effort,
        base_cash=base_cash,
        base_balance=base_balance,
        base_risk=base_risk,
        max_effort=problem.constraints.max_effort_minutes,
        max_cash=problem.constraints.max_upfront_cash,
        balance_floor=problem.constraints.min_balance_floor,
        big_m=big_m,
    )

    logger.info(
        "Penalty encoding complete",
        extra={
            "action_count": problem.size,
            "free_count": len(free),
            "required_count": len(required),
            "big_m": big_m,
        },
    )
    return encoded
