# app/services/optimization/feasibility_checker.py
"""
Fast, deterministic validation checks BEFORE the problem is built.
Operates purely on OptimizationRequest + resolved budgets.

This catches malformed upstream data (required action not eligible,
contradictory conflict/synergy declarations, negative costs, etc.).
Any error-severity issue makes the builder raise InvalidProblem.
Budget feasibility of the required-only selection is NOT decided here:
that is an expected business outcome handled by the optimization service.
"""
from __future__ import annotations

import math
from typing import Dict, List, Sequence, Set

from app.schemas.feasibility import FeasibilityIssue, FeasibilityReport
from app.schemas.optimization_problem import (
    Action,
    GoalProfile,
    OptimizationRequest,
    ResolvedConstraints,
)


def _is_finite(value: float) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


class FeasibilityChecker:
    """
    Deterministic request validation.
    Operates on the raw request, the eligible subset and the resolved budgets.
    """

    def check(
        self,
        request: OptimizationRequest,
        eligible: Sequence[Action],
        constraints: ResolvedConstraints,
    ) -> FeasibilityReport:
        """
        Run all validation checks and return structured report.

        Args:
            request: The optimizer request as received
            eligible: Actions that survived the eligibility filter (insertion order)
            constraints: Budgets after defaults were applied

        Returns:
            FeasibilityReport with errors and warnings
        """
        issues: List[FeasibilityIssue] = []

        all_ids = [a.id for a in request.actions]
        eligible_ids = {a.id for a in eligible}

        # --- 1) Action sanity ---
        issues.extend(self._check_duplicate_ids(all_ids))
        issues.extend(self._check_action_values(eligible))

        # --- 2) Mandatory references ---
        issues.extend(self._check_required_references(request, eligible_ids))

        # --- 3) Interaction declarations ---
        issues.extend(self._check_interactions(eligible, eligible_ids))

        # --- 4) Goal weight table ---
        issues.extend(self._check_goal_weights(request, set(all_ids)))

        # --- 5) Budgets ---
        issues.extend(self._check_budgets(constraints, request))

        if not eligible:
            issues.append(
                FeasibilityIssue(
                    severity="warning",
                    code="NO_ELIGIBLE_ACTIONS",
                    message="No eligible actions provided to optimizer after filtering.",
                    details={"submitted_count": len(request.actions)},
                )
            )

        return FeasibilityReport.from_issues(issues)

    # -------------------------
    # Action sanity
    # -------------------------

    def _check_duplicate_ids(self, ids: List[str]) -> List[FeasibilityIssue]:
        seen: Set[str] = set()
        dupes: Set[str] = set()
        for key in ids:
            if key in seen:
                dupes.add(key)
            seen.add(key)
        if not dupes:
            return []
        return [
            FeasibilityIssue(
                severity="error",
                code="DUPLICATE_ACTION_ID",
                message="Action ids must be unique.",
                action_ids=sorted(dupes),
            )
        ]

    def _check_action_values(self, actions: Sequence[Action]) -> List[FeasibilityIssue]:
        """Check that costs are finite and non-negative and the cashflow delta is finite."""
        issues: List[FeasibilityIssue] = []
        for a in actions:
            for field_name in ("effort_minutes", "upfront_cash_cost", "risk_reduction_score"):
                value = getattr(a, field_name)
                if not _is_finite(value):
                    issues.append(
                        FeasibilityIssue(
                            severity="error",
                            code="ACTION_NON_FINITE_VALUE",
                            message=f"Action {a.id} has a non-finite {field_name}.",
                            action_ids=[a.id],
                            details={"field": field_name},
                        )
                    )
                elif value < 0:
                    issues.append(
                        FeasibilityIssue(
                            severity="error",
                            code="ACTION_NEGATIVE_VALUE",
                            message=f"Action {a.id} has negative {field_name}.",
                            action_ids=[a.id],
                            details={"field": field_name, "value": value},
                        )
                    )
            if not _is_finite(a.monthly_cashflow_delta):
                issues.append(
                    FeasibilityIssue(
                        severity="error",
                        code="ACTION_NON_FINITE_VALUE",
                        message=f"Action {a.id} has a non-finite monthly_cashflow_delta.",
                        action_ids=[a.id],
                        details={"field": "monthly_cashflow_delta"},
                    )
                )
        return issues

    # -------------------------
    # Governance checks
    # -------------------------

    def _check_required_references(self, request: OptimizationRequest, eligible_ids: Set[str]) -> List[FeasibilityIssue]:
        """Check that all required actions exist among eligible actions."""
        issues: List[FeasibilityIssue] = []
        submitted = {a.id: a for a in request.actions}

        ineligible = sorted(k for k in request.required_action_ids if k in submitted and k not in eligible_ids)
        unknown = sorted(k for k in request.required_action_ids if k not in submitted)

        if ineligible:
            issues.append(
                FeasibilityIssue(
                    severity="error",
                    code="REQUIRED_NOT_ELIGIBLE",
                    message="Required action(s) were marked ineligible upstream.",
                    action_ids=ineligible,
                )
            )
        if unknown:
            issues.append(
                FeasibilityIssue(
                    severity="error",
                    code="REQUIRED_NOT_IN_CANDIDATES",
                    message="Required action(s) are not present in the candidate set.",
                    action_ids=unknown,
                )
            )
        return issues

    def _check_interactions(self, actions: Sequence[Action], eligible_ids: Set[str]) -> List[FeasibilityIssue]:
        """Contradictory declarations are errors; dangling or self references are warnings."""
        issues: List[FeasibilityIssue] = []

        conflicts: Set[frozenset] = set()
        synergies: Set[frozenset] = set()
        dangling: Set[str] = set()
        self_refs: Set[str] = set()

        for a in actions:
            for other in a.conflicts_with | a.synergy_with:
                if other == a.id:
                    self_refs.add(a.id)
                elif other not in eligible_ids:
                    dangling.add(other)
            conflicts.update(frozenset((a.id, o)) for o in a.conflicts_with if o != a.id and o in eligible_ids)
            synergies.update(frozenset((a.id, o)) for o in a.synergy_with if o != a.id and o in eligible_ids)

        for pair in sorted(conflicts & synergies, key=sorted):
            a_id, b_id = sorted(pair)
            issues.append(
                FeasibilityIssue(
                    severity="error",
                    code="CONFLICT_AND_SYNERGY",
                    message=f"Actions {a_id} and {b_id} are declared both conflicting and synergistic.",
                    action_ids=[a_id, b_id],
                )
            )

        if self_refs:
            issues.append(
                FeasibilityIssue(
                    severity="warning",
                    code="INTERACTION_SELF_REFERENCE",
                    message="Some actions list themselves as conflict or synergy partner (ignored).",
                    action_ids=sorted(self_refs),
                )
            )
        if dangling:
            issues.append(
                FeasibilityIssue(
                    severity="warning",
                    code="INTERACTION_REF_NOT_IN_CANDIDATES",
                    message="Some interaction partners are not eligible candidates (ignored).",
                    action_ids=sorted(dangling),
                )
            )
        return issues

    def _check_goal_weights(self, request: OptimizationRequest, submitted_ids: Set[str]) -> List[FeasibilityIssue]:
        issues: List[FeasibilityIssue] = []
        known_goals = {g.value for g in GoalProfile}
        unknown_actions: List[str] = []
        unknown_goals: Set[str] = set()

        for action_id, row in (request.goal_weights or {}).items():
            if action_id not in submitted_ids:
                unknown_actions.append(action_id)
            for goal_key, weight in (row or {}).items():
                if goal_key not in known_goals:
                    unknown_goals.add(goal_key)
                if not _is_finite(weight):
                    issues.append(
                        FeasibilityIssue(
                            severity="error",
                            code="GOAL_WEIGHT_NON_FINITE",
                            message=f"Goal weight for {action_id}/{goal_key} is not a finite number.",
                            action_ids=[action_id],
                            details={"goal": goal_key},
                        )
                    )

        if unknown_actions:
            issues.append(
                FeasibilityIssue(
                    severity="warning",
                    code="GOAL_WEIGHT_UNKNOWN_ACTION",
                    message="Goal weight table has rows for actions not in the request (ignored).",
                    action_ids=sorted(unknown_actions),
                )
            )
        if unknown_goals:
            issues.append(
                FeasibilityIssue(
                    severity="warning",
                    code="GOAL_WEIGHT_UNKNOWN_GOAL",
                    message="Goal weight table references unknown goal profiles (ignored).",
                    details={"goals": sorted(unknown_goals)},
                )
            )
        return issues

    # -------------------------
    # Budget sanity
    # -------------------------

    def _check_budgets(self, constraints: ResolvedConstraints, request: OptimizationRequest) -> List[FeasibilityIssue]:
        issues: List[FeasibilityIssue] = []
        values: Dict[str, float] = {
            "max_effort_minutes": constraints.max_effort_minutes,
            "max_upfront_cash": constraints.max_upfront_cash,
            "min_balance_floor": constraints.min_balance_floor,
            "starting_balance": request.context.starting_balance,
            "baseline_monthly_net": request.context.baseline_monthly_net,
        }
        for name, value in values.items():
            if not _is_finite(value):
                issues.append(
                    FeasibilityIssue(
                        severity="error",
                        code="BUDGET_NON_FINITE",
                        message=f"{name} must be a finite number.",
                        details={"field": name},
                    )
                )
        for name in ("max_effort_minutes", "max_upfront_cash"):
            value = values[name]
            if _is_finite(value) and value < 0:
                issues.append(
                    FeasibilityIssue(
                        severity="error",
                        code="BUDGET_NEGATIVE",
                        message=f"{name} must be >= 0.",
                        details={"field": name, "value": value},
                    )
                )
        return issues
