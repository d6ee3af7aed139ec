"""
AG-UI protocol event definitions.

Every event serialises to a camelCase JSON object carrying at least ``type``
and ``timestamp``. Optional fields that are not populated are left out of the
wire form entirely instead of being sent as ``null``.
"""
from __future__ import annotations

import json
import threading
import time
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    field_validator,
    model_serializer,
)
from pydantic.alias_generators import to_camel

from agui_relay.protocol.errors import EventSerializationError


class EventType(str, Enum):
    """All AG-UI event kinds."""

    # Lifecycle
    RUN_STARTED = "RUN_STARTED"
    RUN_FINISHED = "RUN_FINISHED"
    RUN_ERROR = "RUN_ERROR"

    # Steps
    STEP_STARTED = "STEP_STARTED"
    STEP_FINISHED = "STEP_FINISHED"

    # Text messages
    TEXT_MESSAGE_START = "TEXT_MESSAGE_START"
    TEXT_MESSAGE_CONTENT = "TEXT_MESSAGE_CONTENT"
    TEXT_MESSAGE_END = "TEXT_MESSAGE_END"

    # Tool calls
    TOOL_CALL_START = "TOOL_CALL_START"
    TOOL_CALL_ARGS = "TOOL_CALL_ARGS"
    TOOL_CALL_END = "TOOL_CALL_END"
    TOOL_CALL_RESULT = "TOOL_CALL_RESULT"

    # State
    STATE_SNAPSHOT = "STATE_SNAPSHOT"
    STATE_DELTA = "STATE_DELTA"
    MESSAGES_SNAPSHOT = "MESSAGES_SNAPSHOT"

    # Activity
    ACTIVITY_SNAPSHOT = "ACTIVITY_SNAPSHOT"
    ACTIVITY_DELTA = "ACTIVITY_DELTA"

    # Escape hatches
    RAW = "RAW"
    CUSTOM = "CUSTOM"


_last_timestamp = 0
_timestamp_lock = threading.Lock()


def now_ms() -> int:
    """Current time in milliseconds, never lower than a previously returned value."""
    global _last_timestamp
    with _timestamp_lock:
        _last_timestamp = max(int(time.time() * 1000), _last_timestamp)
        return _last_timestamp


class ProtocolModel(BaseModel):
    """Base model for everything that goes on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @model_serializer(mode="wrap")
    def omit_unset_fields(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        # Only top-level fields are dropped; None inside opaque payloads is data.
        return {key: value for key, value in handler(self).items() if value is not None}

    def to_dict(self) -> dict[str, Any]:
        """Wire form as a JSON-compatible dict."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        """Wire form as compact JSON."""
        try:
            return self.model_dump_json(by_alias=True)
        except (TypeError, ValueError) as e:
            raise EventSerializationError(
                f"failed to serialise {type(self).__name__}: {e}"
            ) from e


class ContentPart(ProtocolModel):
    """One part of a message's content (text, image, file...)."""

    type: str
    text: str | None = None
    mime_type: str | None = None
    data: str | None = None
    url: str | None = None
    id: str | None = None
    filename: str | None = None


class Message(ProtocolModel):
    """A chat message in the conversation history.

    ``content`` accepts either a plain string (one text part) or a list of
    parts; it always serialises as the list form.
    """

    id: str
    role: str
    content: list[ContentPart] = Field(default_factory=list)
    name: str | None = None
    created_at: int | None = None

    @field_validator("content", mode="before")
    @classmethod
    def coerce_content(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [{"type": "text", "text": v}]
        return v

    def text_parts(self) -> list[ContentPart]:
        return [part for part in self.content if part.type == "text"]

    @property
    def text(self) -> str:
        """Concatenated text of all non-empty text parts."""
        return "".join(part.text for part in self.text_parts() if part.text)


class Activity(ProtocolModel):
    """An agent activity (status: pending, running, completed or failed)."""

    id: str
    type: str
    status: str
    description: str | None = None
    started_at: int | None = None
    completed_at: int | None = None


class BaseEvent(ProtocolModel):
    """Fields shared by every event."""

    type: EventType
    timestamp: int = Field(default_factory=now_ms)
    raw_event: Any = None


class RunStarted(BaseEvent):
    type: EventType = EventType.RUN_STARTED
    thread_id: str
    run_id: str
    parent_run_id: str | None = None


class RunFinished(BaseEvent):
    type: EventType = EventType.RUN_FINISHED
    thread_id: str
    run_id: str


class RunError(BaseEvent):
    type: EventType = EventType.RUN_ERROR
    thread_id: str | None = None
    run_id: str | None = None
    message: str
    code: str | None = None


class StepStarted(BaseEvent):
    type: EventType = EventType.STEP_STARTED
    step_name: str
    step_id: str


class StepFinished(BaseEvent):
    type: EventType = EventType.STEP_FINISHED
    step_id: str


class TextMessageStart(BaseEvent):
    type: EventType = EventType.TEXT_MESSAGE_START
    message_id: str
    role: str


class TextMessageContent(BaseEvent):
    type: EventType = EventType.TEXT_MESSAGE_CONTENT
    message_id: str
    delta: str = Field(min_length=1)


class TextMessageEnd(BaseEvent):
    type: EventType = EventType.TEXT_MESSAGE_END
    message_id: str


class ToolCallStart(BaseEvent):
    type: EventType = EventType.TOOL_CALL_START
    tool_call_id: str
    tool_call_name: str
    parent_message_id: str | None = None


class ToolCallArgs(BaseEvent):
    """A fragment of the tool call's JSON arguments, to be appended in order."""

    type: EventType = EventType.TOOL_CALL_ARGS
    tool_call_id: str
    delta: str


class ToolCallEnd(BaseEvent):
    type: EventType = EventType.TOOL_CALL_END
    tool_call_id: str


class ToolCallResult(BaseEvent):
    type: EventType = EventType.TOOL_CALL_RESULT
    message_id: str
    tool_call_id: str
    role: str | None = None
    content: str


class StateSnapshot(BaseEvent):
    type: EventType = EventType.STATE_SNAPSHOT
    state: dict[str, Any]


class StateDelta(BaseEvent):
    type: EventType = EventType.STATE_DELTA
    delta: dict[str, Any]


class MessagesSnapshot(BaseEvent):
    type: EventType = EventType.MESSAGES_SNAPSHOT
    messages: list[Message]


class ActivitySnapshot(BaseEvent):
    type: EventType = EventType.ACTIVITY_SNAPSHOT
    activities: list[Activity]


class ActivityDelta(BaseEvent):
    type: EventType = EventType.ACTIVITY_DELTA
    activity: Activity


class Raw(BaseEvent):
    """Opaque pass-through data."""

    type: EventType = EventType.RAW
    data: Any = None


class Custom(BaseEvent):
    """Vendor-specific extension event."""

    type: EventType = EventType.CUSTOM
    name: str
    data: Any = None


EVENT_CLASSES: dict[EventType, type[BaseEvent]] = {
    EventType.RUN_STARTED: RunStarted,
    EventType.RUN_FINISHED: RunFinished,
    EventType.RUN_ERROR: RunError,
    EventType.STEP_STARTED: StepStarted,
    EventType.STEP_FINISHED: StepFinished,
    EventType.TEXT_MESSAGE_START: TextMessageStart,
    EventType.TEXT_MESSAGE_CONTENT: TextMessageContent,
    EventType.TEXT_MESSAGE_END: TextMessageEnd,
    EventType.TOOL_CALL_START: ToolCallStart,
    EventType.TOOL_CALL_ARGS: ToolCallArgs,
    EventType.TOOL_CALL_END: ToolCallEnd,
    EventType.TOOL_CALL_RESULT: ToolCallResult,
    EventType.STATE_SNAPSHOT: StateSnapshot,
    EventType.STATE_DELTA: StateDelta,
    EventType.MESSAGES_SNAPSHOT: MessagesSnapshot,
    EventType.ACTIVITY_SNAPSHOT: ActivitySnapshot,
    EventType.ACTIVITY_DELTA: ActivityDelta,
    EventType.RAW: Raw,
    EventType.CUSTOM: Custom,
}


def parse_event(data: dict[str, Any] | str | bytes) -> BaseEvent:
    """Decode a wire-form event (dict or JSON text) into its typed class.

    Raises:
        ValueError: If the payload is not an object or names an unknown type.
        pydantic.ValidationError: If the fields do not match the event type.
    """
    if isinstance(data, (str, bytes)):
        data = json.loads(data)
    if not isinstance(data, dict):
        raise ValueError(f"event must be a JSON object, got {type(data).__name__}")

    try:
        event_type = EventType(data.get("type"))
    except ValueError as e:
        raise ValueError(f"unknown event type: {data.get('type')!r}") from e

    return EVENT_CLASSES[event_type].model_validate(data)


__all__ = [
    "Activity",
    "ActivityDelta",
    "ActivitySnapshot",
    "BaseEvent",
    "ContentPart",
    "Custom",
    "EVENT_CLASSES",
    "EventType",
    "Message",
    "MessagesSnapshot",
    "ProtocolModel",
    "Raw",
    "RunError",
    "RunFinished",
    "RunStarted",
    "StateDelta",
    "StateSnapshot",
    "StepFinished",
    "StepStarted",
    "TextMessageContent",
    "TextMessageEnd",
    "TextMessageStart",
    "ToolCallArgs",
    "ToolCallEnd",
    "ToolCallResult",
    "ToolCallStart",
    "now_ms",
    "parse_event",
]
