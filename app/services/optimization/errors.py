# app/services/optimization/errors.py
"""
Optimizer error taxonomy.

InvalidProblem is the only exception: malformed upstream data fails loudly.
Infeasible and degenerate outcomes are result values, see
OptimizationSolution.status and OptimizationSolution.advisories.
"""
from __future__ import annotations

from typing import List

from app.schemas.feasibility import FeasibilityIssue, FeasibilityReport


class InvalidProblem(ValueError):
    """Raised by the problem builder when the request cannot form a valid problem."""

    def __init__(self, report: FeasibilityReport) -> None:
        self.report = report
        codes = ", ".join(sorted({e.code for e in report.errors})) or "unknown"
        super().__init__(f"Invalid optimization problem: {report.summary} [{codes}]")

    @property
    def issues(self) -> List[FeasibilityIssue]:
        return list(self.report.errors)


# Advisory codes (non-fatal)
DEGENERATE_EMPTY_POOL = "DEGENERATE_EMPTY_POOL"
