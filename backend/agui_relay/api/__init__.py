"""
FastAPI application and API initialization.
"""
from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from agui_relay.api.middleware import setup_cors, setup_exception_handlers
from agui_relay.api.routes import create_api_router
from agui_relay.api.streaming.handler import (
    EventAdapter,
    EventSource,
    HandlerConfig,
    PassthroughAdapter,
    StreamHandler,
)
from agui_relay.config import Settings, get_settings
from agui_relay.protocol.converter import EventConverter

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown."""
    settings = app.state.settings
    logger.info(
        "application_startup_complete",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        agent_path=settings.AGENT_PATH,
    )
    yield
    logger.info("application_shutdown_complete")


def create_app(
    event_source: EventSource | None = None,
    settings: Settings | None = None,
    adapter_factory: Callable[[EventConverter], EventAdapter] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without an ``event_source`` the app runs the LangGraph graph named by
    ``AGENT_GRAPH``; a custom source defaults to relaying protocol events as-is.
    """
    settings = settings or get_settings()

    if event_source is None:
        from agui_relay.adapters.langgraph import LangGraphAdapter, LangGraphEventSource

        event_source = LangGraphEventSource(graph_path=settings.AGENT_GRAPH)
        adapter_factory = adapter_factory or LangGraphAdapter

    handler = StreamHandler(
        HandlerConfig(
            event_source=event_source,
            app_name=settings.APP_NAME,
            converter_options=settings.converter_options,
            adapter_factory=adapter_factory or PassthroughAdapter,
            user_id_header=settings.USER_ID_HEADER,
            logger=structlog.get_logger("agui_relay.stream"),
        )
    )

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.stream_handler = handler

    setup_cors(app, settings)
    setup_exception_handlers(app, settings)

    app.include_router(create_api_router(handler, settings.AGENT_PATH))

    return app
