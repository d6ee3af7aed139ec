"""
AG-UI agent endpoint.
"""
from __future__ import annotations

from fastapi import APIRouter

from agui_relay.api.streaming.handler import StreamHandler

# The handler answers every verb itself (OPTIONS, POST, 405 for the rest)
AGENT_METHODS = ["POST", "OPTIONS", "GET", "PUT", "PATCH", "DELETE"]


def create_agent_router(handler: StreamHandler, path: str) -> APIRouter:
    router = APIRouter()
    router.add_api_route(
        path,
        handler.handle,
        methods=AGENT_METHODS,
        response_model=None,
        include_in_schema=False,
    )
    return router
