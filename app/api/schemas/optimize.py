# copilot_optimizer/app/api/schemas/optimize.py

from __future__ import annotations

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field

from app.schemas.optimization_problem import Action
from app.schemas.optimization_solution import OptimizationSolution


class OptimizeResponse(BaseModel):
    solution: OptimizationSolution
    selected_actions: List[Action] = Field(default_factory=list)


class InvalidProblemResponse(BaseModel):
    error: Literal["invalid_problem"] = "invalid_problem"
    message: str
    issues: List[Dict[str, Any]] = Field(default_factory=list)
