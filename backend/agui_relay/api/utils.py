"""
Utility functions for API endpoints.
"""
from __future__ import annotations

from fastapi import Request

from agui_relay.config import Settings, get_settings


def get_cors_headers(request: Request, settings: Settings | None = None) -> dict[str, str]:
    """CORS headers to attach to an error response for ``request``."""
    settings = settings or get_settings()
    origin = request.headers.get("origin")
    headers: dict[str, str] = {}
    if not origin:
        return headers
    if "*" in settings.CORS_ALLOW_ORIGINS and not settings.CORS_ALLOW_CREDENTIALS:
        headers["Access-Control-Allow-Origin"] = "*"
    elif origin in settings.CORS_ALLOW_ORIGINS or "*" in settings.CORS_ALLOW_ORIGINS:
        headers["Access-Control-Allow-Origin"] = origin
        if settings.CORS_ALLOW_CREDENTIALS:
            headers["Access-Control-Allow-Credentials"] = "true"
    return headers
