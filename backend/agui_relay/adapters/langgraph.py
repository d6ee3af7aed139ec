"""
LangGraph integration.

``LangGraphAdapter`` translates ``astream_events(version="v2")`` events into
AG-UI events by driving a shared ``EventConverter``; ``LangGraphEventSource``
runs a compiled graph for a run input and yields those events.
"""
from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import structlog
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from pydantic_core import to_jsonable_python

from agui_relay.api.graph_manager import get_graph
from agui_relay.api.models import RunAgentInput
from agui_relay.protocol.converter import EventConverter
from agui_relay.protocol.events import Activity, BaseEvent, now_ms

logger = structlog.get_logger(__name__)

ASSISTANT_ROLE = "assistant"
THINKING_EVENT_NAME = "thinking"
REASONING_BLOCK_TYPES = ("thinking", "reasoning")


def jsonable(value: Any) -> Any:
    """Best-effort JSON-compatible copy of ``value``; unknown objects become strings."""
    return to_jsonable_python(value, fallback=str)


def extract_text(content: Any) -> str:
    """Text of a LangChain message content (string or list of blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                parts.append(block.get("text") or "")
        return "".join(parts)
    return ""


def extract_reasoning(chunk: Any) -> str:
    """Reasoning text carried by a streamed chunk, if any."""
    parts = []
    content = _field(chunk, "content")
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") in REASONING_BLOCK_TYPES:
                text = block.get(block["type"]) or block.get("text") or ""
                if isinstance(text, str):
                    parts.append(text)
    additional_kwargs = _field(chunk, "additional_kwargs") or {}
    if isinstance(additional_kwargs, dict):
        reasoning = additional_kwargs.get("reasoning_content")
        if isinstance(reasoning, str):
            parts.append(reasoning)
    return "".join(parts)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def tool_output_text(output: Any) -> str:
    """Serialise a tool's output as the content of a tool call result."""
    if isinstance(output, ToolMessage):
        output = output.content
    if isinstance(output, str):
        return output
    return json.dumps(jsonable(output))


class LangGraphAdapter:
    """Maps LangGraph v2 stream events onto converter operations."""

    def __init__(self, converter: EventConverter) -> None:
        self.converter = converter
        self._thinking: dict[str, str] = {}

    def convert(self, event: Any) -> list[BaseEvent]:
        if isinstance(event, BaseEvent):
            return [event]
        if not isinstance(event, dict):
            logger.debug("langgraph_event_ignored", item_type=type(event).__name__)
            return []

        kind = event.get("event", "")
        if kind == "on_chat_model_stream":
            events = self._on_chat_model_stream(event)
        elif kind == "on_chat_model_end":
            events = self._on_chat_model_end(event)
        elif kind == "on_tool_start":
            events = self._on_tool_start(event)
        elif kind == "on_tool_end":
            events = self._on_tool_end(event)
        elif kind in ("on_chain_start", "on_chain_end"):
            events = self._on_node_event(event, started=kind == "on_chain_start")
        elif kind == "on_custom_event":
            events = self.converter.create_custom_event(event.get("name", ""), jsonable(event.get("data")))
        else:
            events = []

        if events and self.converter.options.include_raw_events:
            raw = jsonable(event)
            for produced in events:
                produced.raw_event = raw
        return events

    # -- chat model ----------------------------------------------------------

    def _on_chat_model_stream(self, event: dict[str, Any]) -> list[BaseEvent]:
        chunk = (event.get("data") or {}).get("chunk")
        if chunk is None:
            return []

        events: list[BaseEvent] = []
        reasoning = extract_reasoning(chunk)
        if reasoning:
            events.extend(self._on_reasoning(event, reasoning))

        text = extract_text(_field(chunk, "content"))
        if text:
            events.extend(self._finish_thinking(event.get("run_id", "")))
            if not self.converter.is_message_open:
                events.extend(self.converter.start_message(ASSISTANT_ROLE))
            events.extend(self.converter.add_message_content(text))
        return events

    def _on_chat_model_end(self, event: dict[str, Any]) -> list[BaseEvent]:
        events = self._finish_thinking(event.get("run_id", ""))
        if self.converter.is_message_open:
            events.extend(self.converter.end_message())
        return events

    def _on_reasoning(self, event: dict[str, Any], reasoning: str) -> list[BaseEvent]:
        options = self.converter.options
        author = (event.get("metadata") or {}).get("langgraph_node") or event.get("name", "")
        if not options.emit_step_events:
            return self.converter.create_custom_event(
                THINKING_EVENT_NAME, {"content": reasoning, "author": author}
            )

        run_id = event.get("run_id", "")
        events: list[BaseEvent] = []
        step_id = self._thinking.get(run_id)
        if step_id is None:
            step_id = f"{THINKING_EVENT_NAME}-{run_id}"
            self._thinking[run_id] = step_id
            events.extend(self.converter.create_step_event(THINKING_EVENT_NAME, step_id, True))
        if options.emit_activity_events:
            events.extend(
                self.converter.create_activity_event(
                    Activity(
                        id=step_id,
                        type=THINKING_EVENT_NAME,
                        status="running",
                        description=reasoning,
                        started_at=now_ms(),
                    )
                )
            )
        return events

    def _finish_thinking(self, run_id: str) -> list[BaseEvent]:
        step_id = self._thinking.pop(run_id, None)
        if step_id is None:
            return []
        events: list[BaseEvent] = []
        if self.converter.options.emit_activity_events:
            events.extend(
                self.converter.create_activity_event(
                    Activity(id=step_id, type=THINKING_EVENT_NAME, status="completed", completed_at=now_ms())
                )
            )
        events.extend(self.converter.create_step_event(THINKING_EVENT_NAME, step_id, False))
        return events

    # -- tools ---------------------------------------------------------------

    def _on_tool_start(self, event: dict[str, Any]) -> list[BaseEvent]:
        tool_call_id = event.get("run_id") or None
        events = self.converter.start_tool_call(event.get("name", "tool"), tool_call_id)
        tool_call_id = events[-1].tool_call_id
        tool_input = (event.get("data") or {}).get("input")
        if tool_input is not None:
            events.extend(self.converter.add_tool_call_args(tool_call_id, json.dumps(jsonable(tool_input))))
        events.extend(self.converter.end_tool_call(tool_call_id))
        return events

    def _on_tool_end(self, event: dict[str, Any]) -> list[BaseEvent]:
        tool_call_id = event.get("run_id", "")
        output = (event.get("data") or {}).get("output")
        return self.converter.add_tool_call_result(tool_call_id, tool_output_text(output))

    # -- graph nodes ---------------------------------------------------------

    def _on_node_event(self, event: dict[str, Any], started: bool) -> list[BaseEvent]:
        name = event.get("name", "")
        if not name or name != (event.get("metadata") or {}).get("langgraph_node"):
            return []

        step_id = event.get("run_id", "") or name
        emit_steps = self.converter.options.emit_step_events
        if started:
            return self.converter.create_step_event(name, step_id, True) if emit_steps else []

        events: list[BaseEvent] = []
        output = (event.get("data") or {}).get("output")
        if isinstance(output, dict):
            delta = {key: jsonable(value) for key, value in output.items() if key != "messages"}
            if delta:
                events.extend(self.converter.create_state_delta_event(delta))
        if emit_steps:
            events.extend(self.converter.create_step_event(name, step_id, False))
        return events


def to_langchain_messages(messages: list[Any]) -> list[BaseMessage]:
    """Convert run input messages to LangChain messages.

    Roles without a LangChain counterpart (tool results, activities) are skipped.
    """
    converted: list[BaseMessage] = []
    for message in messages:
        text = message.text
        if message.role == "user":
            converted.append(HumanMessage(content=text, id=message.id))
        elif message.role == "assistant":
            converted.append(AIMessage(content=text, id=message.id))
        elif message.role in ("system", "developer"):
            converted.append(SystemMessage(content=text, id=message.id))
        else:
            logger.debug("run_input_message_skipped", role=message.role, message_id=message.id)
    return converted


class LangGraphEventSource:
    """Runs a compiled LangGraph graph and yields its v2 stream events."""

    def __init__(self, graph: Any = None, graph_path: str | None = None) -> None:
        self._graph = graph
        self._graph_path = graph_path

    @property
    def graph(self) -> Any:
        if self._graph is None:
            self._graph = get_graph(self._graph_path)
        return self._graph

    def build_config(self, context: Any, run_input: RunAgentInput) -> dict[str, Any]:
        return {
            "configurable": {
                "thread_id": context.thread_id,
                "user_id": context.user_id,
                "tools": [tool.to_dict() for tool in run_input.tools or []],
                "context": run_input.context,
            },
            "metadata": {"agui_run_id": context.run_id},
        }

    def build_input(self, run_input: RunAgentInput) -> dict[str, Any]:
        """Graph input: object state is merged in, any other state goes under ``state``."""
        if isinstance(run_input.state, dict):
            graph_input = dict(run_input.state)
        elif run_input.state is None:
            graph_input = {}
        else:
            graph_input = {"state": run_input.state}
        graph_input["messages"] = to_langchain_messages(run_input.messages)
        return graph_input

    async def run(self, context: Any, run_input: RunAgentInput) -> AsyncIterator[Any]:
        graph = self.graph
        logger.debug(
            "langgraph_run_started",
            thread_id=context.thread_id,
            run_id=context.run_id,
            message_count=len(run_input.messages),
        )
        async for event in graph.astream_events(
            self.build_input(run_input),
            config=self.build_config(context, run_input),
            version="v2",
        ):
            yield event
