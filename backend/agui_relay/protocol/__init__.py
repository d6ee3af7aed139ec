"""
AG-UI protocol core: event model, converter and wire encoders.
"""
from agui_relay.protocol.converter import (
    ConverterOptions,
    EventConverter,
    MessageStream,
    RunLifecycle,
    StateEvents,
    ToolCallStream,
    new_id,
)
from agui_relay.protocol.encoder import (
    Encoder,
    JSONArrayEncoder,
    NDJSONEncoder,
    SSEEncoder,
    StreamFormat,
    create_encoder,
    negotiate_format,
)
from agui_relay.protocol.errors import (
    ConverterError,
    EncoderError,
    EventSerializationError,
    MessageNotOpenError,
    RelayError,
    TransportError,
)
from agui_relay.protocol.events import BaseEvent, EventType, parse_event

__all__ = [
    "BaseEvent",
    "ConverterError",
    "ConverterOptions",
    "Encoder",
    "EncoderError",
    "EventConverter",
    "EventSerializationError",
    "EventType",
    "JSONArrayEncoder",
    "MessageNotOpenError",
    "MessageStream",
    "NDJSONEncoder",
    "RelayError",
    "RunLifecycle",
    "SSEEncoder",
    "StateEvents",
    "StreamFormat",
    "ToolCallStream",
    "TransportError",
    "create_encoder",
    "negotiate_format",
    "new_id",
    "parse_event",
]
