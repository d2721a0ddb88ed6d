"""Health check endpoint.

Liveness only: the proposal tracker has no external dependencies to probe.
"""

from __future__ import annotations

from fastapi import APIRouter

from src.crm.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}
