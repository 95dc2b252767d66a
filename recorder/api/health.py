"""
Health check endpoint for monitoring.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request):
    """Basic health check plus queue utilisation."""
    manager = getattr(request.app.state, "manager", None)
    return {
        "status": "ok",
        "service": "beat-recorder",
        "queue": manager.stats() if manager is not None else None,
    }
