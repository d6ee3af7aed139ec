"""
Streaming of agent runs over HTTP.
"""
from agui_relay.api.streaming.handler import (
    EventAdapter,
    EventSource,
    HandlerConfig,
    PassthroughAdapter,
    RunContext,
    RunInputError,
    RunStream,
    StreamHandler,
    StreamState,
)
from agui_relay.api.streaming.response import ASGIWriter, EventStreamResponse

__all__ = [
    "ASGIWriter",
    "EventAdapter",
    "EventSource",
    "EventStreamResponse",
    "HandlerConfig",
    "PassthroughAdapter",
    "RunContext",
    "RunInputError",
    "RunStream",
    "StreamHandler",
    "StreamState",
]
