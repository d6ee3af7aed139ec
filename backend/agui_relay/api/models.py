"""
Pydantic models for the agent endpoint's request body.
"""
from __future__ import annotations

from typing import Any

from pydantic import Field

from agui_relay.protocol.events import Message, ProtocolModel


class Tool(ProtocolModel):
    """A front-end tool the agent may call."""
    name: str
    description: str
    parameters: dict[str, Any] | None = None


class RunAgentInput(ProtocolModel):
    """Request body of a run. Missing ids are generated by the handler.

    ``context`` and ``state`` are opaque and relayed to the source as given.
    """
    thread_id: str | None = None
    run_id: str | None = None
    messages: list[Message] = Field(default_factory=list)
    tools: list[Tool] | None = None
    context: Any = None
    state: Any = None

