"""
API routes package.
"""
from __future__ import annotations

from fastapi import APIRouter

from agui_relay.api.routes import agent, health
from agui_relay.api.streaming.handler import StreamHandler


def create_api_router(handler: StreamHandler, agent_path: str) -> APIRouter:
    api_router = APIRouter()
    api_router.include_router(health.router, tags=["health"])
    api_router.include_router(agent.create_agent_router(handler, agent_path), tags=["agent"])
    return api_router
