"""
Test configuration and fixtures.
"""
import os
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Must be set before any agui_relay import (settings load at import time)
os.environ.setdefault("ENVIRONMENT", "dev")
os.environ.setdefault("LOG_FORMAT", "console")

from agui_relay.config import Settings  # noqa: E402
from agui_relay.protocol.converter import EventConverter  # noqa: E402


class RecordingWriter:
    """Writer that keeps everything it is given."""

    def __init__(self):
        self.chunks: list[bytes] = []
        self.flushes = 0

    async def write(self, data: bytes) -> None:
        self.chunks.append(data)

    async def flush(self) -> None:
        self.flushes += 1

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


class FailingWriter(RecordingWriter):
    """Writer whose peer goes away after ``fail_after`` successful writes."""

    def __init__(self, fail_after: int = 0, error: Exception | None = None):
        super().__init__()
        self.fail_after = fail_after
        self.error = error or BrokenPipeError("peer closed")

    async def write(self, data: bytes) -> None:
        if len(self.chunks) >= self.fail_after:
            raise self.error
        await super().write(data)


class ScriptedSource:
    """Event source that yields fixed items, then optionally raises."""

    def __init__(self, items: list[Any] | None = None, error: Exception | None = None):
        self.items = items or []
        self.error = error
        self.contexts = []
        self.inputs = []
        self.closed = False

    async def run(self, context, run_input):
        self.contexts.append(context)
        self.inputs.append(run_input)
        try:
            for item in self.items:
                yield item
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


def make_settings(**overrides) -> Settings:
    values = {
        "APP_NAME": "AG-UI Relay Test",
        "APP_VERSION": "9.9.9",
        "CORS_ALLOW_ORIGINS": ["*"],
        "CORS_ALLOW_CREDENTIALS": False,
        "AGENT_PATH": "/agent",
        "INCLUDE_RAW_EVENTS": False,
        "EMIT_STEP_EVENTS": False,
        "EMIT_ACTIVITY_EVENTS": False,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def converter() -> EventConverter:
    return EventConverter("t1", "r1")


@pytest.fixture
def writer() -> RecordingWriter:
    return RecordingWriter()


@pytest_asyncio.fixture
async def client_factory(settings):
    """Build an AsyncClient around a fresh app for a given event source."""
    from agui_relay.api import create_app

    clients: list[AsyncClient] = []

    def factory(event_source=None, **kwargs) -> AsyncClient:
        app = create_app(event_source=event_source, settings=settings, **kwargs)
        ac = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(ac)
        return ac

    yield factory
    for ac in clients:
        await ac.aclose()


@pytest_asyncio.fixture
async def client(settings) -> AsyncGenerator[AsyncClient, None]:
    """Client for an app whose source produces nothing."""
    from agui_relay.api import create_app

    app = create_app(event_source=ScriptedSource(), settings=settings)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
