# app/services/solvers/__init__.py
"""
Solvers for the encoded action-selection objective.

Each solver takes an EncodedObjective (free variables only) and returns a
SolveOutcome; the result assembler turns that into an OptimizationSolution.
"""
from .base import SolveOutcome, SolverConfig
from .exact_enumeration import ExactEnumerationSolver
from .local_search import ParallelLocalSearchSolver

__all__ = [
    "SolveOutcome",
    "SolverConfig",
    "ExactEnumerationSolver",
    "ParallelLocalSearchSolver",
]
