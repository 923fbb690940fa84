# app/services/optimization/optimization_service.py
"""
Single synchronous entry point for the action-selection optimizer.

Pipeline: build problem -> encode penalties -> required-only feasibility
-> exact or heuristic solve -> assemble solution.

Stateless: every call builds its own problem, encoding and solver objects.
The only inputs besides the request are the explicit SolverConfig,
ConstraintDefaults and ScoringConstants handed to the constructor.
"""
from __future__ import annotations

import logging
import random
import time
from typing import Optional

from app.schemas.optimization_problem import OptimizationRequest
from app.schemas.optimization_solution import OptimizationSolution
from app.services.optimization.constraint_explainer import evaluate_selection
from app.services.optimization.errors import DEGENERATE_EMPTY_POOL
from app.services.optimization.optimization_problem_builder import (
    ConstraintDefaults,
    build_optimization_problem,
)
from app.services.optimization.optimization_results_service import (
    build_infeasible_solution,
    build_solution,
)
from app.services.optimization.penalty_encoder import encode_problem
from app.services.optimization.scoring_constants import DEFAULT_SCORING, ScoringConstants
from app.services.solvers import ExactEnumerationSolver, ParallelLocalSearchSolver, SolverConfig

logger = logging.getLogger(__name__)


class OptimizationService:
    """Run one optimization request end to end."""

    def __init__(
        self,
        config: Optional[SolverConfig] = None,
        defaults: Optional[ConstraintDefaults] = None,
        scoring: ScoringConstants = DEFAULT_SCORING,
    ) -> None:
        self.config = config or SolverConfig()
        self.defaults = defaults or ConstraintDefaults()
        self.scoring = scoring

    @classmethod
    def from_settings(cls, settings) -> "OptimizationService":
        return cls(
            config=SolverConfig.from_settings(settings),
            defaults=ConstraintDefaults.from_settings(settings),
        )

    def optimize(self, request: OptimizationRequest) -> OptimizationSolution:
        """
        Args:
            request: Eligible actions, budgets, required ids, goal and weight table

        Returns:
            OptimizationSolution. status="infeasible" when the required
            actions alone break a hard constraint.

        Raises:
            InvalidProblem: Malformed request (never reaches the solver)
        """
        started = time.perf_counter()
        cfg = self.config.with_overrides(request.solver)

        problem = build_optimization_problem(request, self.defaults, self.scoring)
        enc = encode_problem(problem)

        advisories = []
        if problem.size == 0:
            logger.warning("No eligible actions; returning required-only selection", extra={"reason": DEGENERATE_EMPTY_POOL})
            advisories.append(DEGENERATE_EMPTY_POOL)

        # ---- Required-only floor must itself be feasible ----
        required_only = evaluate_selection(problem, problem.required_indices)
        if not required_only.is_feasible:
            logger.info(
                "Required actions alone violate hard constraints",
                extra={
                    "status": "infeasible",
                    "required_count": len(problem.required_indices),
                    "codes": [v.code for v in required_only.violations],
                },
            )
            return build_infeasible_solution(
                problem,
                enc,
                required_only,
                exact_threshold=cfg.exact_threshold,
                elapsed_ms=(time.perf_counter() - started) * 1000.0,
                advisories=advisories,
            )

        # ---- Solve ----
        if enc.n_free <= cfg.exact_threshold:
            outcome = ExactEnumerationSolver().solve(enc)
        else:
            seed = cfg.seed if cfg.seed is not None else random.SystemRandom().randrange(2**31)
            outcome = ParallelLocalSearchSolver(cfg).solve(enc, seed)

        return build_solution(
            problem,
            enc,
            outcome,
            exact_threshold=cfg.exact_threshold,
            elapsed_ms=(time.perf_counter() - started) * 1000.0,
            advisories=advisories,
        )


def optimize(request: OptimizationRequest, service: Optional[OptimizationService] = None) -> OptimizationSolution:
    """Convenience wrapper using default configuration."""
    return (service or OptimizationService()).optimize(request)
