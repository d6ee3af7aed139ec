"""
HTTP-facing orchestration of one agent run.

``StreamHandler`` is created once per app and turns each request into a
``RunStream``, which moves through

    IDLE -> DECODING -> (REJECTED | NEGOTIATED) -> STREAMING
         -> (COMPLETED | ERROR_TERMINATED | DISCONNECTED)

Rejected requests get a plain status-coded response and no events. Once
streaming, RUN_STARTED is always first and exactly one of RUN_FINISHED or
RUN_ERROR ends the stream, unless the client went away first.
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from fastapi import Request
from fastapi.responses import PlainTextResponse, Response
from pydantic import ValidationError

from agui_relay.api.models import RunAgentInput
from agui_relay.api.streaming.response import ASGIWriter, EventStreamResponse
from agui_relay.logging import null_logger, run_context
from agui_relay.protocol.converter import ConverterOptions, EventConverter, new_id
from agui_relay.protocol.encoder import Encoder, StreamFormat, create_encoder, negotiate_format
from agui_relay.protocol.errors import RelayError, TransportError
from agui_relay.protocol.events import BaseEvent, RunError, parse_event

ALLOWED_METHODS = ("POST", "OPTIONS")
ALLOWED_HEADERS = ("Content-Type", "Accept", "Authorization", "X-User-ID")

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
    "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
}


class StreamState(str, Enum):
    IDLE = "idle"
    DECODING = "decoding"
    REJECTED = "rejected"
    NEGOTIATED = "negotiated"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR_TERMINATED = "error_terminated"
    DISCONNECTED = "disconnected"


class RunInputError(RelayError):
    """The request body is not a valid run input."""


@dataclass
class RunContext:
    """What a producer gets to know about the run it serves."""

    thread_id: str
    run_id: str
    user_id: str | None = None
    request: Request | None = None


class EventSource(Protocol):
    """Producer of a run's items: protocol events or framework domain events."""

    def run(self, context: RunContext, run_input: RunAgentInput) -> AsyncIterator[Any]: ...


class EventAdapter(Protocol):
    """Translates framework domain events through a shared converter."""

    converter: EventConverter

    def convert(self, event: Any) -> list[BaseEvent]: ...


class PassthroughAdapter:
    """Adapter for sources that already speak the protocol.

    Accepts typed events or their wire-form dicts.
    """

    def __init__(self, converter: EventConverter) -> None:
        self.converter = converter

    def convert(self, event: Any) -> list[BaseEvent]:
        if isinstance(event, BaseEvent):
            return [event]
        if isinstance(event, dict):
            return [parse_event(event)]
        raise TypeError(f"cannot relay item of type {type(event).__name__}")


@dataclass
class HandlerConfig:
    event_source: EventSource
    app_name: str = "agui-relay"
    converter_options: ConverterOptions = field(default_factory=ConverterOptions)
    adapter_factory: Callable[[EventConverter], EventAdapter] = PassthroughAdapter
    user_id_header: str = "X-User-ID"
    logger: Any = None

    def __post_init__(self) -> None:
        if self.logger is None:
            self.logger = null_logger()


class RunStream:
    """State of a single request, from body decoding to the last event."""

    def __init__(self, config: HandlerConfig) -> None:
        self.config = config
        self.state = StreamState.IDLE
        self.run_input: RunAgentInput | None = None
        self.context: RunContext | None = None
        self.stream_format: StreamFormat | None = None
        self.converter: EventConverter | None = None
        self.adapter: EventAdapter | None = None
        self.logger = config.logger

    async def decode(self, request: Request) -> RunAgentInput:
        """Parse the request body.

        Raises:
            RunInputError: With the reason, if the body is not a run input.
        """
        self.state = StreamState.DECODING
        body = await request.body()
        try:
            run_input = RunAgentInput.model_validate_json(body)
        except ValidationError as e:
            self.state = StreamState.REJECTED
            reason = "; ".join(error["msg"] for error in e.errors()) or str(e)
            self.logger.warning("run_input_rejected", error=reason, app_name=self.config.app_name)
            raise RunInputError(f"Invalid JSON: {reason}") from e
        self.run_input = run_input
        return run_input

    def prepare(
        self,
        run_input: RunAgentInput,
        stream_format: StreamFormat,
        user_id: str | None = None,
        request: Request | None = None,
    ) -> RunContext:
        """Fill in missing ids and set up the run's converter and adapter."""
        thread_id = run_input.thread_id or new_id()
        run_id = run_input.run_id or new_id()
        self.run_input = run_input.model_copy(update={"thread_id": thread_id, "run_id": run_id})
        self.context = RunContext(thread_id=thread_id, run_id=run_id, user_id=user_id, request=request)
        self.stream_format = stream_format
        self.converter = EventConverter(thread_id, run_id, self.config.converter_options)
        self.adapter = self.config.adapter_factory(self.converter)
        self.logger = self.config.logger.bind(thread_id=thread_id, run_id=run_id)
        self.state = StreamState.NEGOTIATED
        return self.context

    async def stream(self, writer: ASGIWriter) -> None:
        """Response body: encode the run onto ``writer`` in the negotiated format."""
        await self.run(create_encoder(self.stream_format, writer, self.logger))

    async def run(self, encoder: Encoder) -> None:
        """Relay the producer's items through ``encoder`` until the run ends."""
        with run_context(self.context.thread_id, self.context.run_id, self.context.user_id):
            await self._relay(encoder)

    async def _relay(self, encoder: Encoder) -> None:
        self.state = StreamState.STREAMING
        producer = None
        self.logger.info("stream_started", stream_format=encoder.format.value)
        try:
            await encoder.encode_multiple(self.converter.start_run())
            try:
                producer = self.config.event_source.run(self.context, self.run_input)
                async for item in producer:
                    events = self._convert(item)
                    await encoder.encode_multiple(events)
                    if any(isinstance(event, RunError) for event in events):
                        self.state = StreamState.ERROR_TERMINATED
                        break
            except (TransportError, asyncio.CancelledError):
                raise
            except Exception as e:
                self.logger.error(
                    "stream_producer_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                await encoder.encode_multiple(self.converter.error_run(e))
                self.state = StreamState.ERROR_TERMINATED

            if self.state == StreamState.STREAMING:
                await encoder.encode_multiple(self.converter.finish_run())
                self.state = StreamState.COMPLETED
            await encoder.flush()
            self.logger.info("stream_finished", state=self.state.value)
        except TransportError as e:
            self.state = StreamState.DISCONNECTED
            self.logger.info("stream_transport_closed", error=str(e))
        except asyncio.CancelledError:
            self.state = StreamState.DISCONNECTED
            self.logger.info("stream_client_disconnected")
            raise
        finally:
            await self._close_producer(producer)

    def _convert(self, item: Any) -> list[BaseEvent]:
        events = [item] if isinstance(item, BaseEvent) else self.adapter.convert(item)
        for index, event in enumerate(events):
            if isinstance(event, RunError):
                # A relayed RunError ends the run like a producer failure does.
                return events[:index] + self.converter.error_run(event.message, event.code)
        return events

    async def _close_producer(self, producer: Any) -> None:
        aclose = getattr(producer, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            self.logger.warning("stream_producer_close_failed", error=str(e), error_type=type(e).__name__)


class StreamHandler:
    """Entry point for the agent endpoint."""

    def __init__(self, config: HandlerConfig) -> None:
        self.config = config

    async def handle(self, request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=PREFLIGHT_HEADERS)
        if request.method != "POST":
            return PlainTextResponse(
                "Method Not Allowed",
                status_code=405,
                headers={"Allow": PREFLIGHT_HEADERS["Access-Control-Allow-Methods"]},
            )

        stream = RunStream(self.config)
        try:
            run_input = await stream.decode(request)
        except RunInputError as e:
            return PlainTextResponse(str(e), status_code=400)

        stream_format = negotiate_format(request.headers.get("accept"))
        stream.prepare(
            run_input,
            stream_format,
            user_id=request.headers.get(self.config.user_id_header),
            request=request,
        )
        return EventStreamResponse(stream.stream, stream_format)
