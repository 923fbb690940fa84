# copilot_optimizer/app/api/routes/optimize.py

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.api.deps import get_optimization_service, require_shared_secret
from app.api.schemas.optimize import InvalidProblemResponse, OptimizeResponse
from app.schemas.optimization_problem import OptimizationRequest
from app.services.optimization.errors import InvalidProblem
from app.services.optimization.optimization_service import OptimizationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["optimize"])


@router.post(
    "/optimize",
    response_model=OptimizeResponse,
    responses={400: {"model": InvalidProblemResponse}},
    dependencies=[Depends(require_shared_secret)],
)
def optimize_actions(
    req: OptimizationRequest,
    service: OptimizationService = Depends(get_optimization_service),
):
    """
    Choose the best subset of candidate actions for this week's plan.

    Infeasible budgets are a normal 200 response with solution.status="infeasible".
    """
    try:
        solution = service.optimize(req)
    except InvalidProblem as e:
        body = InvalidProblemResponse(
            message=str(e),
            issues=[issue.model_dump(mode="json") for issue in e.issues],
        )
        return JSONResponse(status_code=400, content=body.model_dump(mode="json"))
    except Exception as e:
        logger.exception("optimize.failed")
        raise HTTPException(status_code=500, detail=f"Optimization failed: {e}") from e

    chosen = set(solution.selected_ids)
    return OptimizeResponse(
        solution=solution,
        selected_actions=[a for a in req.actions if a.id in chosen],
    )
