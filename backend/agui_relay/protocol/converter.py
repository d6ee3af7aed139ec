"""
Stateful conversion of a run's domain events into AG-UI protocol events.

One ``EventConverter`` is created per run. It tracks what is currently open
(at most one text message, any number of tool calls) and every mutating
operation returns the events needed to keep the stream well-formed, closing
an open message before anything that requires it closed. Framework adapters
hold a converter and delegate to it instead of subclassing it.
"""
from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

import structlog

from agui_relay.protocol.errors import MessageNotOpenError
from agui_relay.protocol.events import (
    Activity,
    ActivityDelta,
    BaseEvent,
    Custom,
    Message,
    MessagesSnapshot,
    Raw,
    RunError,
    RunFinished,
    RunStarted,
    StateDelta,
    StateSnapshot,
    StepFinished,
    StepStarted,
    TextMessageContent,
    TextMessageEnd,
    TextMessageStart,
    ToolCallArgs,
    ToolCallEnd,
    ToolCallResult,
    ToolCallStart,
)

logger = structlog.get_logger(__name__)

TOOL_RESULT_ROLE = "tool"


def new_id() -> str:
    """Generate a fresh identifier for threads, runs, messages and tool calls."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ConverterOptions:
    """Flags controlling which optional events a converter's adapter emits."""

    include_raw_events: bool = False
    emit_step_events: bool = False
    emit_activity_events: bool = False


@dataclass
class ToolCallState:
    """Tracking entry for one in-flight tool call."""

    tool_call_id: str
    tool_name: str
    args_buffer: str = ""
    started: bool = True
    ended: bool = False


@dataclass
class StepState:
    step_id: str
    step_name: str
    started_at: float = field(default_factory=time.time)


class RunLifecycle(Protocol):
    @property
    def thread_id(self) -> str: ...

    @property
    def run_id(self) -> str: ...

    def start_run(self) -> list[BaseEvent]: ...

    def finish_run(self) -> list[BaseEvent]: ...

    def error_run(self, err: BaseException | str, code: str | None = None) -> list[BaseEvent]: ...


class MessageStream(Protocol):
    @property
    def is_message_open(self) -> bool: ...

    def start_message(self, role: str) -> list[BaseEvent]: ...

    def add_message_content(self, text: str) -> list[BaseEvent]: ...

    def end_message(self) -> list[BaseEvent]: ...


class ToolCallStream(Protocol):
    def start_tool_call(self, tool_name: str, tool_call_id: str | None = None) -> list[BaseEvent]: ...

    def add_tool_call_args(self, tool_call_id: str, args_json: str) -> list[BaseEvent]: ...

    def end_tool_call(self, tool_call_id: str) -> list[BaseEvent]: ...

    def add_tool_call_result(self, tool_call_id: str, content: str) -> list[BaseEvent]: ...


class StateEvents(Protocol):
    def create_step_event(self, step_name: str, step_id: str, started: bool) -> list[BaseEvent]: ...

    def create_activity_event(self, activity: Activity) -> list[BaseEvent]: ...

    def create_state_delta_event(self, delta: dict[str, Any]) -> list[BaseEvent]: ...

    def create_custom_event(self, name: str, data: Any) -> list[BaseEvent]: ...


def describe_error(err: BaseException | str) -> str:
    """Human-readable message for a RunError, never empty."""
    if isinstance(err, str):
        return err or "An error occurred during the run"
    message = str(err)
    if message:
        return message
    return f"{type(err).__name__}: An error occurred during the run"


class EventConverter:
    """Per-run conversion context.

    Implements ``RunLifecycle``, ``MessageStream``, ``ToolCallStream`` and
    ``StateEvents``. All operations are guarded by an internal lock; the
    design still assumes a single producer per run.

    Tool call tracking entries survive ``end_tool_call`` so that late
    arguments and the result can still be matched to the call. They are
    evicted by ``add_tool_call_result``, and whatever is left is dropped when
    the run finishes or fails, so tracking never outlives the run.
    Steps still open at that point get a StepFinished before the terminal
    event.
    """

    def __init__(
        self,
        thread_id: str | None = None,
        run_id: str | None = None,
        options: ConverterOptions | None = None,
    ) -> None:
        self._thread_id = thread_id or new_id()
        self._run_id = run_id or new_id()
        self._options = options or ConverterOptions()
        self._lock = threading.Lock()

        self._current_message_id: str | None = None
        self._message_open = False
        self._active_tool_calls: dict[str, ToolCallState] = {}
        self._active_steps: dict[str, StepState] = {}

    # -- read-only accessors -------------------------------------------------

    @property
    def thread_id(self) -> str:
        return self._thread_id

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def options(self) -> ConverterOptions:
        return self._options

    @property
    def is_message_open(self) -> bool:
        with self._lock:
            return self._message_open

    @property
    def current_message_id(self) -> str | None:
        """Id of the open message, or of the last one opened if it is closed."""
        with self._lock:
            return self._current_message_id

    @property
    def active_tool_calls(self) -> dict[str, ToolCallState]:
        """Snapshot of the tool call tracking entries."""
        with self._lock:
            return {key: replace(state) for key, state in self._active_tool_calls.items()}

    @property
    def active_steps(self) -> dict[str, StepState]:
        with self._lock:
            return {key: replace(state) for key, state in self._active_steps.items()}

    # -- run lifecycle -------------------------------------------------------

    def start_run(self) -> list[BaseEvent]:
        return [RunStarted(thread_id=self._thread_id, run_id=self._run_id)]

    def finish_run(self) -> list[BaseEvent]:
        with self._lock:
            events = self._close_message()
            events += self._close_steps()
            self._forget_run_tracking()
            events.append(RunFinished(thread_id=self._thread_id, run_id=self._run_id))
            return events

    def error_run(self, err: BaseException | str, code: str | None = None) -> list[BaseEvent]:
        """Close any open message and steps, then report the run as failed.

        ``code`` defaults to the exception's class name.
        """
        if code is None and isinstance(err, BaseException):
            code = type(err).__name__
        with self._lock:
            events = self._close_message()
            events += self._close_steps()
            self._forget_run_tracking()
            events.append(
                RunError(
                    thread_id=self._thread_id,
                    run_id=self._run_id,
                    message=describe_error(err),
                    code=code,
                )
            )
            return events

    # -- text messages -------------------------------------------------------

    def start_message(self, role: str) -> list[BaseEvent]:
        with self._lock:
            events = self._close_message()
            self._current_message_id = new_id()
            self._message_open = True
            events.append(TextMessageStart(message_id=self._current_message_id, role=role))
            return events

    def add_message_content(self, text: str) -> list[BaseEvent]:
        """Append a chunk to the open message.

        Empty chunks produce no event since a content delta must not be empty.

        Raises:
            MessageNotOpenError: If no message is open.
        """
        with self._lock:
            if not self._message_open or self._current_message_id is None:
                raise MessageNotOpenError("add_message_content called with no open message")
            if not text:
                return []
            return [TextMessageContent(message_id=self._current_message_id, delta=text)]

    def end_message(self) -> list[BaseEvent]:
        with self._lock:
            if self._current_message_id is None:
                raise MessageNotOpenError("end_message called before any message was started")
            self._message_open = False
            return [TextMessageEnd(message_id=self._current_message_id)]

    # -- tool calls ----------------------------------------------------------

    def start_tool_call(self, tool_name: str, tool_call_id: str | None = None) -> list[BaseEvent]:
        tool_call_id = tool_call_id or new_id()
        with self._lock:
            events = self._close_message()
            self._active_tool_calls[tool_call_id] = ToolCallState(
                tool_call_id=tool_call_id,
                tool_name=tool_name,
            )
            events.append(
                ToolCallStart(
                    tool_call_id=tool_call_id,
                    tool_call_name=tool_name,
                    parent_message_id=self._current_message_id,
                )
            )
            return events

    def add_tool_call_args(self, tool_call_id: str, args_json: str) -> list[BaseEvent]:
        with self._lock:
            state = self._tracked_tool_call(tool_call_id, "args")
            if state is not None:
                state.args_buffer += args_json
            return [ToolCallArgs(tool_call_id=tool_call_id, delta=args_json)]

    def end_tool_call(self, tool_call_id: str) -> list[BaseEvent]:
        with self._lock:
            state = self._tracked_tool_call(tool_call_id, "end")
            if state is not None:
                state.ended = True
            return [ToolCallEnd(tool_call_id=tool_call_id)]

    def add_tool_call_result(self, tool_call_id: str, content: str) -> list[BaseEvent]:
        with self._lock:
            self._tracked_tool_call(tool_call_id, "result")
            self._active_tool_calls.pop(tool_call_id, None)
            return [
                ToolCallResult(
                    message_id=new_id(),
                    tool_call_id=tool_call_id,
                    role=TOOL_RESULT_ROLE,
                    content=content,
                )
            ]

    # -- steps, activity, state ----------------------------------------------

    def create_step_event(self, step_name: str, step_id: str, started: bool) -> list[BaseEvent]:
        with self._lock:
            if started:
                self._active_steps[step_id] = StepState(step_id=step_id, step_name=step_name)
                return [StepStarted(step_name=step_name, step_id=step_id)]
            self._active_steps.pop(step_id, None)
            return [StepFinished(step_id=step_id)]

    def create_activity_event(self, activity: Activity) -> list[BaseEvent]:
        return [ActivityDelta(activity=activity)]

    def create_state_delta_event(self, delta: dict[str, Any]) -> list[BaseEvent]:
        return [StateDelta(delta=delta)]

    def create_state_snapshot_event(self, state: dict[str, Any]) -> list[BaseEvent]:
        return [StateSnapshot(state=state)]

    def create_messages_snapshot_event(self, messages: list[Message]) -> list[BaseEvent]:
        return [MessagesSnapshot(messages=messages)]

    def create_custom_event(self, name: str, data: Any) -> list[BaseEvent]:
        return [Custom(name=name, data=data)]

    def create_raw_event(self, data: Any) -> list[BaseEvent]:
        return [Raw(data=data)]

    # -- internals (lock held) -----------------------------------------------

    def _close_message(self) -> list[BaseEvent]:
        if not self._message_open or self._current_message_id is None:
            return []
        self._message_open = False
        return [TextMessageEnd(message_id=self._current_message_id)]

    def _close_steps(self) -> list[BaseEvent]:
        events: list[BaseEvent] = [StepFinished(step_id=step_id) for step_id in self._active_steps]
        self._active_steps.clear()
        return events

    def _tracked_tool_call(self, tool_call_id: str, operation: str) -> ToolCallState | None:
        state = self._active_tool_calls.get(tool_call_id)
        if state is None:
            logger.warning(
                "tool_call_not_tracked",
                tool_call_id=tool_call_id,
                operation=operation,
                thread_id=self._thread_id,
                run_id=self._run_id,
            )
        return state

    def _forget_run_tracking(self) -> None:
        if self._active_tool_calls:
            logger.debug(
                "tool_calls_dropped_at_run_end",
                tool_call_ids=list(self._active_tool_calls),
                run_id=self._run_id,
            )
        self._active_tool_calls.clear()
