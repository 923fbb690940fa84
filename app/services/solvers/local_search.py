# app/services/solvers/local_search.py
"""
Heuristic solver: parallel randomized steepest-ascent local search.

R independent trials run on a thread pool. Each trial owns its RNG
(derived from the request seed and the trial index) and its own
AssignmentState, so trials share nothing until the final reduction.

Seeding:
- trial 0 starts from the required-only assignment (all free bits 0)
- trial 1 starts from a greedy value/effort seed
- remaining trials start from random assignments

Each trial repeatedly applies the single flip with the largest score gain
until no flip improves, then restarts from a fresh random assignment while
iteration budget remains. The required-only assignment is scored before any
trial runs, so the result is never worse than it even if the deadline has
already passed.
"""
from __future__ import annotations

import concurrent.futures
import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional

from app.services.optimization.penalty_encoder import EncodedObjective
from app.services.solvers.base import (
    AssignmentState,
    ScoredAssignment,
    SolveOutcome,
    SolverConfig,
    is_better,
)

logger = logging.getLogger(__name__)

IMPROVEMENT_EPS = 1e-12
SEED_STRIDE = 1_000_003


@dataclass
class TrialResult:
    trial: int
    best: ScoredAssignment
    iterations: int
    restarts: int


def trial_rng(seed: int, trial: int) -> random.Random:
    """Independent, reproducible RNG per trial."""
    return random.Random(seed * SEED_STRIDE + trial)


def greedy_seed(enc: EncodedObjective) -> List[int]:
    """
    Add free actions in descending value/effort order while each addition
    strictly improves the penalized objective.
    """
    state = AssignmentState(enc)
    order = sorted(
        range(enc.n_free),
        key=lambda k: (-(enc.linear[k] / max(enc.effort[k], 1.0)), k),
    )
    for k in order:
        if state.flip_delta(k) > IMPROVEMENT_EPS:
            state.flip(k)
    return list(state.bits)


def random_bits(enc: EncodedObjective, rng: random.Random) -> List[int]:
    density = rng.random()
    return [1 if rng.random() < density else 0 for _ in range(enc.n_free)]


class ParallelLocalSearchSolver:
    """Multi-start hill climbing for problems too large to enumerate."""

    def __init__(self, config: Optional[SolverConfig] = None) -> None:
        self.config = config or SolverConfig()

    def solve(self, enc: EncodedObjective, seed: int) -> SolveOutcome:
        """
        Args:
            enc: Encoded objective (required actions already fixed)
            seed: Base seed; identical seed + config => identical selection

        Returns:
            SolveOutcome with mode="heuristic" and the work actually done
        """
        cfg = self.config
        started = time.monotonic()
        deadline_at = started + cfg.deadline_seconds if cfg.deadline_seconds is not None else None

        # Floor: required-only assignment
        floor = AssignmentState(enc).snapshot()

        logger.info(
            "Running parallel local search",
            extra={
                "free_count": enc.n_free,
                "trials": cfg.trials,
                "iteration_budget": cfg.iteration_budget,
                "max_workers": cfg.max_workers,
                "seed": seed,
            },
        )

        results: Dict[int, Optional[TrialResult]] = {}
        with ThreadPoolExecutor(max_workers=max(1, min(cfg.max_workers, cfg.trials))) as executor:
            future_to_trial = {
                executor.submit(self._run_trial, enc, t, seed, deadline_at): t
                for t in range(cfg.trials)
            }
            for future in concurrent.futures.as_completed(future_to_trial):
                results[future_to_trial[future]] = future.result()

        # Reduction in trial order => independent of thread scheduling
        best = floor
        best_trial: Optional[int] = None
        iterations = 0
        restarts = 0
        completed = 0
        for t in range(cfg.trials):
            r = results.get(t)
            if r is None:
                continue
            completed += 1
            iterations += r.iterations
            restarts += r.restarts
            if is_better(r.best, best):
                best = r.best
                best_trial = t

        deadline_hit = completed < cfg.trials

        if deadline_hit:
            logger.warning(
                "Local search stopped at deadline",
                extra={"trials": cfg.trials, "trials_completed": completed},
            )

        logger.info(
            "Local search completed",
            extra={
                "solver_mode": "heuristic",
                "trials": completed,
                "iterations": iterations,
                "restarts": restarts,
                "objective_value": best.score,
                "wall_time_seconds": round(time.monotonic() - started, 4),
            },
        )

        return SolveOutcome(
            best=best,
            mode="heuristic",
            trials_requested=cfg.trials,
            trials_completed=completed,
            iterations=iterations,
            restarts=restarts,
            seed=seed,
            best_trial=best_trial,
            deadline_hit=deadline_hit,
        )

    def _run_trial(
        self,
        enc: EncodedObjective,
        trial: int,
        seed: int,
        deadline_at: Optional[float],
    ) -> Optional[TrialResult]:
        """One independent multi-restart hill climb. Returns None if skipped at the deadline."""
        if deadline_at is not None and time.monotonic() >= deadline_at:
            return None

        rng = trial_rng(seed, trial)
        if trial == 0:
            start = [0] * enc.n_free
        elif trial == 1:
            start = greedy_seed(enc)
        else:
            start = random_bits(enc, rng)

        state = AssignmentState(enc, start)
        best = state.snapshot()
        iterations = 0
        restarts = 0
        budget = self.config.iteration_budget

        while iterations < budget:
            iterations += 1

            best_k = -1
            best_delta = IMPROVEMENT_EPS
            for k in range(enc.n_free):
                d = state.flip_delta(k)
                if d > best_delta:
                    best_k, best_delta = k, d

            if best_k >= 0:
                state.flip(best_k)
                continue

            # Local optimum
            candidate = state.snapshot()
            if is_better(candidate, best):
                best = candidate

            if iterations >= budget:
                break
            if deadline_at is not None and time.monotonic() >= deadline_at:
                break

            restarts += 1
            state = AssignmentState(enc, random_bits(enc, rng))

        candidate = state.snapshot()
        if is_better(candidate, best):
            best = candidate

        return TrialResult(trial=trial, best=best, iterations=iterations, restarts=restarts)
