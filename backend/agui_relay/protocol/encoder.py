"""
Wire encoders for AG-UI event streams.

Three framings share one interface: Server-Sent Events and NDJSON write and
flush every event as it arrives, the JSON array encoder buffers everything
and writes a single document on ``flush()``.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from enum import Enum
from typing import Any, Protocol

import structlog

from agui_relay.protocol.errors import EventSerializationError, TransportError
from agui_relay.protocol.events import BaseEvent

SSE_CONTENT_TYPE = "text/event-stream"
NDJSON_CONTENT_TYPE = "application/x-ndjson"
JSON_CONTENT_TYPE = "application/json"


class StreamFormat(str, Enum):
    """Supported response framings, valued by their content type."""

    SSE = SSE_CONTENT_TYPE
    NDJSON = NDJSON_CONTENT_TYPE
    JSON = JSON_CONTENT_TYPE

    @property
    def content_type(self) -> str:
        return self.value

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": self.content_type,
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }


def negotiate_format(accept: str | None) -> StreamFormat:
    """Pick the response framing from an ``Accept`` header value.

    Matching is by substring, NDJSON first. Anything unrecognised, including
    an empty header or ``*/*``, falls back to SSE.
    """
    accept = accept or ""
    if NDJSON_CONTENT_TYPE in accept:
        return StreamFormat.NDJSON
    if JSON_CONTENT_TYPE in accept:
        return StreamFormat.JSON
    return StreamFormat.SSE


class Writer(Protocol):
    """Byte sink an encoder writes to."""

    async def write(self, data: bytes) -> None: ...

    async def flush(self) -> None: ...


class Encoder(ABC):
    """Common encoder interface."""

    def __init__(self, writer: Writer, logger: Any = None) -> None:
        self._writer = writer
        self._logger = logger or structlog.get_logger(__name__)

    @property
    @abstractmethod
    def format(self) -> StreamFormat: ...

    @abstractmethod
    async def encode(self, event: BaseEvent) -> None:
        """Encode one event.

        Raises:
            TransportError: If the writer fails.
        """

    async def encode_multiple(self, events: Iterable[BaseEvent]) -> None:
        for event in events:
            await self.encode(event)

    @abstractmethod
    async def flush(self) -> None: ...

    def _serialise(self, event: BaseEvent) -> str | None:
        """Compact JSON for ``event``, or None if it cannot be serialised."""
        try:
            return event.to_json()
        except EventSerializationError as e:
            self._logger.warning(
                "event_serialization_failed",
                event_type=getattr(event.type, "value", str(event.type)),
                error=str(e),
                error_type=type(e.__cause__ or e).__name__,
            )
            return None

    async def _write(self, data: bytes) -> None:
        try:
            await self._writer.write(data)
        except TransportError:
            raise
        except OSError as e:
            raise TransportError(f"write failed: {e}") from e

    async def _flush_writer(self) -> None:
        try:
            await self._writer.flush()
        except TransportError:
            raise
        except OSError as e:
            raise TransportError(f"flush failed: {e}") from e


class StreamingEncoder(Encoder):
    """Writes each event framed by ``prefix``/``suffix`` and flushes it."""

    prefix = b""
    suffix = b""

    async def encode(self, event: BaseEvent) -> None:
        payload = self._serialise(event)
        if payload is None:
            return
        await self._write(self.prefix + payload.encode("utf-8") + self.suffix)
        await self._flush_writer()

    async def flush(self) -> None:
        await self._flush_writer()


class SSEEncoder(StreamingEncoder):
    """``data: <json>\\n\\n`` per event."""

    prefix = b"data: "
    suffix = b"\n\n"

    @property
    def format(self) -> StreamFormat:
        return StreamFormat.SSE


class NDJSONEncoder(StreamingEncoder):
    """One JSON document per line."""

    suffix = b"\n"

    @property
    def format(self) -> StreamFormat:
        return StreamFormat.NDJSON


class JSONArrayEncoder(Encoder):
    """Buffers events and writes them as one JSON array on ``flush()``.

    Flushing an encoder with nothing buffered writes ``[]``. After the array
    has been written, further flushes are no-ops.
    """

    def __init__(self, writer: Writer, logger: Any = None) -> None:
        super().__init__(writer, logger)
        self._items: list[str] = []
        self._written = False

    @property
    def format(self) -> StreamFormat:
        return StreamFormat.JSON

    @property
    def buffered(self) -> int:
        return len(self._items)

    async def encode(self, event: BaseEvent) -> None:
        payload = self._serialise(event)
        if payload is not None:
            self._items.append(payload)

    async def flush(self) -> None:
        if self._written:
            return
        self._written = True
        body = "[" + ",".join(self._items) + "]"
        self._items = []
        await self._write(body.encode("utf-8"))
        await self._flush_writer()


ENCODERS: dict[StreamFormat, type[Encoder]] = {
    StreamFormat.SSE: SSEEncoder,
    StreamFormat.NDJSON: NDJSONEncoder,
    StreamFormat.JSON: JSONArrayEncoder,
}


def create_encoder(stream_format: StreamFormat, writer: Writer, logger: Any = None) -> Encoder:
    return ENCODERS[stream_format](writer, logger)
