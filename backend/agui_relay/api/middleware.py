"""
FastAPI middleware and exception handlers.
"""
from __future__ import annotations

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import Headers, MutableHeaders

from agui_relay.api.streaming.handler import ALLOWED_HEADERS, ALLOWED_METHODS, PREFLIGHT_HEADERS
from agui_relay.api.utils import get_cors_headers
from agui_relay.config import Settings

logger = structlog.get_logger(__name__)


class PreflightCORSMiddleware(CORSMiddleware):
    """CORS middleware whose preflight answers carry the agent endpoint's allow-lists.

    Starlette answers a preflight itself with an ``OK`` body; this keeps its
    origin handling but answers with no body and the fixed method and header
    lists.
    """

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = MutableHeaders(raw=list(response.raw_headers))
        del headers["content-length"]
        del headers["content-type"]
        headers["Access-Control-Allow-Methods"] = PREFLIGHT_HEADERS["Access-Control-Allow-Methods"]
        headers["Access-Control-Allow-Headers"] = PREFLIGHT_HEADERS["Access-Control-Allow-Headers"]
        return Response(status_code=200, headers=headers)


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Setup CORS middleware."""
    app.add_middleware(
        PreflightCORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=list(ALLOWED_METHODS),
        allow_headers=list(ALLOWED_HEADERS),
    )


def _create_error_response(
    request: Request,
    settings: Settings,
    status_code: int,
    detail: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Create an error response with CORS headers."""
    response_headers = get_cors_headers(request, settings)
    if headers:
        response_headers.update(headers)

    return JSONResponse(
        status_code=status_code,
        content={"detail": detail},
        headers=response_headers,
    )


def setup_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Setup exception handlers."""

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions and ensure CORS headers are included."""
        headers = dict(exc.headers) if exc.headers else None
        return _create_error_response(
            request,
            settings,
            status_code=exc.status_code,
            detail=exc.detail,
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all exceptions and ensure CORS headers are included."""
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            exc_info=exc,
        )
        detail = str(exc) if isinstance(exc, ValueError) else "Internal server error"
        return _create_error_response(
            request,
            settings,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
        )
