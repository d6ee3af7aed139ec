"""
ASGI response that drives an event encoder.

``EventStreamResponse`` runs the stream body as its own task next to a
listener for ``http.disconnect``; whichever finishes first cancels the other,
so a client that goes away cancels the run and closes its producer.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from starlette.requests import ClientDisconnect
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from agui_relay.protocol.encoder import StreamFormat
from agui_relay.protocol.errors import TransportError

logger = structlog.get_logger(__name__)


class ASGIWriter:
    """Encoder writer backed by an ASGI ``send`` callable.

    Writes are buffered and sent as one body chunk per ``flush()``. The first
    failed send marks the writer closed; every later call raises
    ``TransportError``.
    """

    def __init__(self, send: Send) -> None:
        self._send = send
        self._buffer = bytearray()
        self.closed = False

    async def write(self, data: bytes) -> None:
        if self.closed:
            raise TransportError("connection closed")
        self._buffer.extend(data)

    async def flush(self) -> None:
        if self.closed:
            raise TransportError("connection closed")
        if not self._buffer:
            return
        chunk = bytes(self._buffer)
        self._buffer.clear()
        await self._send_message({"type": "http.response.body", "body": chunk, "more_body": True})

    async def close(self) -> None:
        """Send the final empty body chunk, unless the connection is gone."""
        if self.closed:
            return
        await self._send_message({"type": "http.response.body", "body": b"", "more_body": False})
        self.closed = True

    async def _send_message(self, message: dict[str, Any]) -> None:
        try:
            await self._send(message)
        except (OSError, ClientDisconnect) as e:
            self.closed = True
            raise TransportError(f"send failed: {type(e).__name__}") from e


class EventStreamResponse(Response):
    """Streams whatever ``body`` writes to the ASGIWriter it is given."""

    def __init__(
        self,
        body: Callable[[ASGIWriter], Awaitable[None]],
        stream_format: StreamFormat,
        status_code: int = 200,
    ) -> None:
        self.stream_body = body
        self.stream_format = stream_format
        self.status_code = status_code
        self.media_type = stream_format.content_type
        self.background = None
        self.init_headers(stream_format.headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        writer = ASGIWriter(send)
        try:
            await send({"type": "http.response.start", "status": self.status_code, "headers": self.raw_headers})
        except (OSError, ClientDisconnect):
            logger.info("stream_client_gone_before_start")
            return

        async def listen_for_disconnect() -> None:
            while True:
                message = await receive()
                if message["type"] == "http.disconnect":
                    break

        body_task = asyncio.create_task(self.stream_body(writer))
        listen_task = asyncio.create_task(listen_for_disconnect())
        try:
            await asyncio.wait({body_task, listen_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (body_task, listen_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(body_task, listen_task, return_exceptions=True)

        if body_task.cancelled():
            logger.info("stream_cancelled_by_disconnect")
            return
        error = body_task.exception()
        if error is not None:
            raise error

        try:
            await writer.close()
        except TransportError:
            logger.info("stream_client_gone_before_close")
