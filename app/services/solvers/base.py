# app/services/solvers/base.py
"""
Shared solver pieces: configuration, incremental assignment state and the
deterministic ordering used to pick a single winner among equal scores.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

from app.services.optimization.penalty_encoder import EncodedObjective

SCORE_ABS_TOL = 1e-9
SCORE_REL_TOL = 1e-12


@dataclass(frozen=True)
class SolverConfig:
    """Configuration for exact enumeration and parallel local search."""

    exact_threshold: int = 20
    trials: int = 16
    iteration_budget: int = 2000
    max_workers: int = 4
    seed: Optional[int] = None
    deadline_seconds: Optional[float] = None

    @classmethod
    def from_settings(cls, settings) -> "SolverConfig":
        return cls(
            exact_threshold=int(settings.OPTIMIZER_EXACT_THRESHOLD),
            trials=int(settings.OPTIMIZER_HEURISTIC_TRIALS),
            iteration_budget=int(settings.OPTIMIZER_ITERATION_BUDGET),
            max_workers=int(settings.OPTIMIZER_MAX_WORKERS),
            seed=settings.OPTIMIZER_DEFAULT_SEED,
            deadline_seconds=settings.OPTIMIZER_DEADLINE_SECONDS,
        )

    def with_overrides(self, overrides) -> "SolverConfig":
        """Apply per-request SolverOverrides (None fields keep the configured value)."""
        if overrides is None:
            return self
        changes = {
            name: getattr(overrides, name)
            for name in ("exact_threshold", "trials", "iteration_budget", "max_workers", "seed", "deadline_seconds")
            if getattr(overrides, name) is not None
        }
        return replace(self, **changes)


@dataclass(frozen=True)
class ScoredAssignment:
    """A bit vector over the free variables plus everything needed for tie-breaks."""

    bits: Tuple[int, ...]
    score: float
    risk: float
    effort: float
    indices: Tuple[int, ...]  # selected problem indices (required included), ascending


def is_better(a: ScoredAssignment, b: Optional[ScoredAssignment]) -> bool:
    """
    Strict ordering: higher score, then higher total risk reduction, then
    lower total effort, then the lexicographically smallest index tuple.
    """
    if b is None:
        return True
    if not math.isclose(a.score, b.score, rel_tol=SCORE_REL_TOL, abs_tol=SCORE_ABS_TOL):
        return a.score > b.score
    if not math.isclose(a.risk, b.risk, rel_tol=SCORE_REL_TOL, abs_tol=SCORE_ABS_TOL):
        return a.risk > b.risk
    if not math.isclose(a.effort, b.effort, rel_tol=SCORE_REL_TOL, abs_tol=SCORE_ABS_TOL):
        return a.effort < b.effort
    return a.indices < b.indices


@dataclass
class SolveOutcome:
    """Raw solver result, decoded by the result assembler."""

    best: ScoredAssignment
    mode: str
    assignments_evaluated: Optional[int] = None
    trials_requested: Optional[int] = None
    trials_completed: Optional[int] = None
    iterations: Optional[int] = None
    restarts: Optional[int] = None
    seed: Optional[int] = None
    best_trial: Optional[int] = None
    deadline_hit: bool = False
    details: dict = field(default_factory=dict)


class AssignmentState:
    """
    Mutable working copy of one assignment with O(degree) single-flip updates.

    field[k] holds lin[k] + Σ q[k][l]·x_l over selected neighbours l, which is
    exactly the change in the unpenalized value when x_k goes 0 -> 1.
    """

    __slots__ = ("enc", "bits", "field", "value", "effort", "cash", "balance", "risk")

    def __init__(self, enc: EncodedObjective, bits: Optional[Sequence[int]] = None) -> None:
        self.enc = enc
        self.bits: List[int] = list(bits) if bits is not None else [0] * enc.n_free
        self.field: List[float] = list(enc.linear)
        for k, b in enumerate(self.bits):
            if b:
                for other, q in enc.neighbors[k]:
                    self.field[other] += q

        totals = enc.totals(self.bits)
        self.value = enc.unpenalized(self.bits)
        self.effort = totals.effort
        self.cash = totals.cash
        self.balance = totals.balance
        self.risk = enc.base_risk + sum(enc.risk[k] for k, b in enumerate(self.bits) if b)

    @property
    def score(self) -> float:
        return self.value - self.enc.penalty(self.effort, self.cash, self.balance)

    @property
    def feasible(self) -> bool:
        return self.enc.is_feasible_totals(self.effort, self.cash, self.balance)

    def flip_delta(self, k: int) -> float:
        """Change in penalized score if bit k were flipped (state untouched)."""
        enc = self.enc
        sign = -1.0 if self.bits[k] else 1.0
        current = self.value - enc.penalty(self.effort, self.cash, self.balance)
        new_value = self.value + sign * self.field[k]
        new_pen = enc.penalty(
            self.effort + sign * enc.effort[k],
            self.cash + sign * enc.cash[k],
            self.balance + sign * enc.balance_delta[k],
        )
        return (new_value - new_pen) - current

    def flip(self, k: int) -> None:
        enc = self.enc
        sign = -1.0 if self.bits[k] else 1.0
        self.value += sign * self.field[k]
        self.effort += sign * enc.effort[k]
        self.cash += sign * enc.cash[k]
        self.balance += sign * enc.balance_delta[k]
        self.risk += sign * enc.risk[k]
        for other, q in enc.neighbors[k]:
            self.field[other] += sign * q
        self.bits[k] = 0 if self.bits[k] else 1

    def snapshot(self) -> ScoredAssignment:
        """Freeze the current assignment, rescored from scratch to shed incremental float drift."""
        enc = self.enc
        totals = enc.totals(self.bits)
        return ScoredAssignment(
            bits=tuple(self.bits),
            score=enc.unpenalized(self.bits) - enc.penalty(totals.effort, totals.cash, totals.balance),
            risk=enc.base_risk + sum(enc.risk[k] for k, b in enumerate(self.bits) if b),
            effort=totals.effort,
            indices=tuple(enc.decode(self.bits)),
        )
