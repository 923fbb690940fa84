from __future__ import annotations

import os

from fastapi import Header, HTTPException

from app.config import settings
from app.services.optimization.optimization_service import OptimizationService


def get_optimization_service() -> OptimizationService:
    return OptimizationService.from_settings(settings)


def require_shared_secret(x_copilot_secret: str | None = Header(default=None)) -> None:
    """
    v1 security: shared secret header from the copilot frontend.
    Header name: X-COPILOT-SECRET
    """
    expected = os.getenv("COPILOT_API_SECRET", "") or settings.COPILOT_API_SECRET
    if not expected:
        # If secret isn't configured, fail closed (recommended).
        raise HTTPException(status_code=500, detail="COPILOT_API_SECRET is not configured")

    if not x_copilot_secret or x_copilot_secret != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")
