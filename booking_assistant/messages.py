"""Conversation history messages and their LangChain equivalents.

Sessions store plain :class:`ConversationMessage` objects (JSON-friendly,
independent of the LLM SDK); they are converted to LangChain messages only
when a prompt is assembled.
"""

from __future__ import annotations

import json
from typing import Literal

from langchain_core.messages import (
    AIMessage,
    AnyMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant", "tool"]


class ToolCallRequest(BaseModel):
    """A tool call requested by the model; ``arguments`` is a JSON string."""

    id: str
    name: str
    arguments: str = "{}"


class ConversationMessage(BaseModel):
    role: Role
    content: str
    tool_call_id: str | None = None
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)


def _decode_arguments(arguments: str) -> dict:
    try:
        decoded = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


def to_langchain(message: ConversationMessage) -> AnyMessage:
    if message.role == "system":
        return SystemMessage(content=message.content)
    if message.role == "user":
        return HumanMessage(content=message.content)
    if message.role == "assistant":
        return AIMessage(
            content=message.content,
            tool_calls=[
                {"id": call.id, "name": call.name, "args": _decode_arguments(call.arguments)}
                for call in message.tool_calls
            ],
        )
    if not message.tool_call_id:
        raise ValueError("Tool messages must have tool_call_id")
    return ToolMessage(content=message.content, tool_call_id=message.tool_call_id)


def message_text(message: AnyMessage) -> str:
    """Plain text of a message whose content may be a list of content blocks."""
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)
