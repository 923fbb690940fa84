# app/schemas/feasibility.py
"""
Feasibility report schemas for pre-solver validation.
Used to detect malformed inputs (InvalidProblem) before the solver ever runs.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal
from pydantic import BaseModel, ConfigDict, Field


Severity = Literal["error", "warning"]


class FeasibilityIssue(BaseModel):
    """A single validation issue (error or warning)."""
    model_config = ConfigDict(extra="ignore")

    severity: Severity
    code: str
    message: str

    # Optional fields for structured API feedback / debugging
    action_ids: List[str] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)


class FeasibilityReport(BaseModel):
    """
    Structured validation report.
    Used to communicate pre-solver validation results to API/CLI callers.
    """
    model_config = ConfigDict(extra="ignore")

    is_valid: bool
    errors: List[FeasibilityIssue] = Field(default_factory=list)
    warnings: List[FeasibilityIssue] = Field(default_factory=list)
    summary: str = ""

    @classmethod
    def from_issues(cls, issues: List[FeasibilityIssue]) -> "FeasibilityReport":
        """Build a report from a list of issues, auto-calculating validity."""
        errors = [i for i in issues if i.severity == "error"]
        warnings = [i for i in issues if i.severity == "warning"]
        is_valid = len(errors) == 0
        summary = (
            f"valid ({len(warnings)} warnings)" if is_valid else f"invalid ({len(errors)} errors, {len(warnings)} warnings)"
        )
        return cls(is_valid=is_valid, errors=errors, warnings=warnings, summary=summary)
