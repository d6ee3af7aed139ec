"""
Health check endpoint.
"""
from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness check; touches nothing beyond the app's own settings."""
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "protocol": "ag-ui",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }
