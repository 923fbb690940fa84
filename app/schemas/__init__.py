from .optimization_problem import (
	Action,
	Constraints,
	FinancialContext,
	GoalProfile,
	OptimizationProblem,
	OptimizationRequest,
	ResolvedConstraints,
	SolverOverrides,
	parse_goal,
)
from .optimization_solution import OptimizationSolution, SolverProvenance
from .feasibility import FeasibilityIssue, FeasibilityReport

__all__ = [
	"Action",
	"Constraints",
	"FinancialContext",
	"GoalProfile",
	"OptimizationProblem",
	"OptimizationRequest",
	"ResolvedConstraints",
	"SolverOverrides",
	"parse_goal",
	"OptimizationSolution",
	"SolverProvenance",
	"FeasibilityIssue",
	"FeasibilityReport",
]
