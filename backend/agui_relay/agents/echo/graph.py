"""
Demo graph: answers "You said: <last user message>", streamed token by token.

Uses a fake chat model, so the relay can run end to end without credentials.
"""
from __future__ import annotations

from typing import Annotated, Any, TypedDict

from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage
from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph
from langgraph.graph.message import add_messages

ECHO_PREFIX = "You said: "


class EchoState(TypedDict):
    messages: Annotated[list[AnyMessage], add_messages]


def _last_user_text(messages: list[AnyMessage]) -> str:
    for message in reversed(messages):
        if isinstance(message, HumanMessage):
            content = message.content
            if isinstance(content, str):
                return content
            return "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
    return ""


async def respond(state: EchoState, config: RunnableConfig) -> dict[str, Any]:
    reply = AIMessage(content=ECHO_PREFIX + _last_user_text(state["messages"]))
    model = GenericFakeChatModel(messages=iter([reply]))
    message = await model.ainvoke(state["messages"], config)
    return {"messages": [message]}


def create_graph():
    """Build and compile the echo graph."""
    builder = StateGraph(EchoState)
    builder.add_node("respond", respond)
    builder.add_edge(START, "respond")
    builder.add_edge("respond", END)
    return builder.compile()
