"""
Unit tests for EventConverter.
"""
from __future__ import annotations

import pytest

from agui_relay.protocol.converter import (
    ConverterOptions,
    EventConverter,
    MessageStream,
    RunLifecycle,
    StateEvents,
    ToolCallStream,
)
from agui_relay.protocol.errors import MessageNotOpenError
from agui_relay.protocol.events import (
    Activity,
    EventType,
    Message,
    RunError,
    TextMessageEnd,
    TextMessageStart,
    ToolCallResult,
    ToolCallStart,
)


def types(events):
    return [event.type for event in events]


class TestRunLifecycle:
    """Run start, finish and failure."""

    def test_start_run(self):
        """A single RUN_STARTED carrying the run's ids."""
        events = EventConverter("t1", "r1").start_run()
        assert len(events) == 1
        data = events[0].to_dict()
        assert data["type"] == "RUN_STARTED"
        assert data["threadId"] == "t1"
        assert data["runId"] == "r1"

    def test_blank_ids_are_generated(self):
        converter = EventConverter("", None)
        assert converter.thread_id
        assert converter.run_id
        assert converter.thread_id != converter.run_id

    def test_finish_run_closes_open_message(self, converter):
        converter.start_message("assistant")
        message_id = converter.current_message_id
        events = converter.finish_run()
        assert types(events) == [EventType.TEXT_MESSAGE_END, EventType.RUN_FINISHED]
        assert events[0].message_id == message_id
        assert not converter.is_message_open

    def test_finish_run_without_message(self, converter):
        assert types(converter.finish_run()) == [EventType.RUN_FINISHED]

    def test_error_run_from_exception(self, converter):
        converter.start_message("assistant")
        events = converter.error_run(ValueError("bad input"))
        assert types(events) == [EventType.TEXT_MESSAGE_END, EventType.RUN_ERROR]
        error = events[-1]
        assert isinstance(error, RunError)
        assert error.message == "bad input"
        assert error.code == "ValueError"
        assert error.thread_id == "t1"
        assert error.run_id == "r1"

    def test_error_run_with_empty_exception_message(self, converter):
        error = converter.error_run(RuntimeError())[-1]
        assert error.message == "RuntimeError: An error occurred during the run"

    def test_error_run_from_string(self, converter):
        error = converter.error_run("upstream timed out", code="TIMEOUT")[-1]
        assert error.message == "upstream timed out"
        assert error.code == "TIMEOUT"

    def test_terminal_events_clear_tracking(self, converter):
        converter.start_tool_call("search", "tc1")
        converter.create_step_event("plan", "s1", True)
        converter.finish_run()
        assert converter.active_tool_calls == {}
        assert converter.active_steps == {}

    def test_finish_run_closes_open_steps(self, converter):
        converter.create_step_event("plan", "s1", True)
        converter.create_step_event("act", "s2", True)
        converter.create_step_event("act", "s2", False)
        converter.start_message("assistant")

        events = converter.finish_run()
        assert types(events) == [
            EventType.TEXT_MESSAGE_END,
            EventType.STEP_FINISHED,
            EventType.RUN_FINISHED,
        ]
        assert events[1].step_id == "s1"

    def test_error_run_closes_open_steps(self, converter):
        converter.create_step_event("plan", "s1", True)
        events = converter.error_run("gave up")
        assert types(events) == [EventType.STEP_FINISHED, EventType.RUN_ERROR]


class TestMessages:
    """At most one message is ever open."""

    def test_message_sequence(self, converter):
        """start, content, end, finish in that order."""
        events = []
        events += converter.start_message("assistant")
        events += converter.add_message_content("hi")
        events += converter.end_message()
        events += converter.finish_run()

        assert types(events) == [
            EventType.TEXT_MESSAGE_START,
            EventType.TEXT_MESSAGE_CONTENT,
            EventType.TEXT_MESSAGE_END,
            EventType.RUN_FINISHED,
        ]
        assert events[0].role == "assistant"
        assert events[1].delta == "hi"
        assert events[0].message_id == events[1].message_id == events[2].message_id

    def test_starting_a_message_closes_the_previous_one(self, converter):
        first = converter.start_message("assistant")[-1].message_id
        events = converter.start_message("assistant")
        assert types(events) == [EventType.TEXT_MESSAGE_END, EventType.TEXT_MESSAGE_START]
        assert events[0].message_id == first
        assert events[1].message_id != first
        assert converter.is_message_open

    def test_content_without_open_message_fails(self, converter):
        with pytest.raises(MessageNotOpenError):
            converter.add_message_content("orphan")

    def test_content_after_end_fails(self, converter):
        converter.start_message("assistant")
        converter.end_message()
        with pytest.raises(MessageNotOpenError):
            converter.add_message_content("late")

    def test_empty_content_produces_nothing(self, converter):
        converter.start_message("assistant")
        assert converter.add_message_content("") == []

    def test_end_message_before_any_message_fails(self, converter):
        with pytest.raises(MessageNotOpenError):
            converter.end_message()


class TestToolCalls:
    """Tool call tracking and ordering."""

    def test_generated_id_and_result(self, converter):
        """A blank id is replaced; the result evicts tracking with a fresh message id."""
        start = converter.start_tool_call("search", "")
        assert len(start) == 1
        assert isinstance(start[0], ToolCallStart)
        tool_call_id = start[0].tool_call_id
        assert tool_call_id
        assert tool_call_id in converter.active_tool_calls

        result = converter.add_tool_call_result(tool_call_id, "42")
        assert len(result) == 1
        assert isinstance(result[0], ToolCallResult)
        assert result[0].tool_call_id == tool_call_id
        assert result[0].content == "42"
        assert result[0].message_id
        assert result[0].message_id != tool_call_id
        assert tool_call_id not in converter.active_tool_calls

    def test_start_closes_open_message(self, converter):
        message_id = converter.start_message("assistant")[-1].message_id
        events = converter.start_tool_call("search", "tc1")
        assert types(events) == [EventType.TEXT_MESSAGE_END, EventType.TOOL_CALL_START]
        assert isinstance(events[0], TextMessageEnd)
        assert events[1].parent_message_id == message_id
        assert not converter.is_message_open

    def test_no_parent_without_prior_message(self, converter):
        assert converter.start_tool_call("search", "tc1")[0].parent_message_id is None

    def test_args_accumulate(self, converter):
        converter.start_tool_call("search", "tc1")
        converter.add_tool_call_args("tc1", '{"q": ')
        events = converter.add_tool_call_args("tc1", '"cats"}')
        assert events[0].delta == '"cats"}'
        assert converter.active_tool_calls["tc1"].args_buffer == '{"q": "cats"}'

    def test_end_keeps_entry_marked_ended(self, converter):
        converter.start_tool_call("search", "tc1")
        assert types(converter.end_tool_call("tc1")) == [EventType.TOOL_CALL_END]
        state = converter.active_tool_calls["tc1"]
        assert state.ended
        assert state.tool_name == "search"

    def test_untracked_ids_still_emit(self, converter):
        assert types(converter.add_tool_call_args("ghost", "{}")) == [EventType.TOOL_CALL_ARGS]
        assert types(converter.end_tool_call("ghost")) == [EventType.TOOL_CALL_END]
        assert types(converter.add_tool_call_result("ghost", "x")) == [EventType.TOOL_CALL_RESULT]

    def test_active_tool_calls_is_a_snapshot(self, converter):
        converter.start_tool_call("search", "tc1")
        snapshot = converter.active_tool_calls
        snapshot["tc1"].args_buffer = "mutated"
        snapshot.clear()
        assert converter.active_tool_calls["tc1"].args_buffer == ""


class TestStateEvents:
    """Steps, activity, state and escape hatches."""

    def test_step_tracking(self, converter):
        started = converter.create_step_event("plan", "s1", True)
        assert types(started) == [EventType.STEP_STARTED]
        assert started[0].step_name == "plan"
        assert "s1" in converter.active_steps

        finished = converter.create_step_event("plan", "s1", False)
        assert types(finished) == [EventType.STEP_FINISHED]
        assert finished[0].step_id == "s1"
        assert converter.active_steps == {}

    def test_single_event_creators(self, converter):
        activity = Activity(id="a1", type="search", status="running")
        assert types(converter.create_activity_event(activity)) == [EventType.ACTIVITY_DELTA]
        assert converter.create_state_delta_event({"n": 1})[0].delta == {"n": 1}
        assert converter.create_state_snapshot_event({"n": 2})[0].state == {"n": 2}
        snapshot = converter.create_messages_snapshot_event([Message(id="m", role="user", content="x")])
        assert types(snapshot) == [EventType.MESSAGES_SNAPSHOT]
        custom = converter.create_custom_event("progress", {"pct": 50})
        assert custom[0].name == "progress"
        assert converter.create_raw_event({"k": "v"})[0].data == {"k": "v"}

    def test_state_events_do_not_touch_open_message(self, converter):
        converter.start_message("assistant")
        converter.create_custom_event("progress", 1)
        assert converter.is_message_open


class TestOptionsAndCapabilities:
    def test_default_options(self, converter):
        assert converter.options == ConverterOptions()
        assert not converter.options.include_raw_events

    def test_explicit_options(self):
        options = ConverterOptions(emit_step_events=True)
        assert EventConverter(options=options).options.emit_step_events

    def test_implements_capability_protocols(self, converter):
        """Protocols are structural; check the methods each one names exist."""
        for protocol in (RunLifecycle, MessageStream, ToolCallStream, StateEvents):
            for name, value in vars(protocol).items():
                if callable(value) or isinstance(value, property):
                    if not name.startswith("_"):
                        assert hasattr(converter, name), f"{protocol.__name__}.{name}"

    def test_message_start_event_type(self, converter):
        assert isinstance(converter.start_message("user")[0], TextMessageStart)
