"""LangGraph-based conversation orchestrator for the booking assistant.

Architecture:
  One user turn runs through a LangGraph StateGraph with four nodes:

    1. **context**  — builds the prompt: system instructions (plus any
                      knowledge proactively retrieved for informational
                      questions), the last 10 history messages and the
                      new user message
    2. **chatbot**  — first completion request, with every tool offered
                      and automatic tool choice
    3. **tools**    — runs each requested tool call through the
                      dispatcher and appends one tool result per call,
                      in call order, tagged with the call's ID
    4. **respond**  — second completion request over the full message
                      list with tool use disabled; its text is the answer

  Routing:
    context → chatbot → (tool calls?)    → tools → respond → END
                      → (no tool calls?) → END

  History:
    The graph has no checkpointer.  The caller owns the session history
    and gets back a new list with exactly two messages appended (user and
    final assistant reply).  Tool-call messages only live in the prompt.
    If anything fails the caller gets a fixed apology and the history it
    passed in, unchanged.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Annotated, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    AnyMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from pydantic import BaseModel
from typing_extensions import TypedDict

from booking_assistant.config import (
    ANTHROPIC_API_KEY,
    MODEL_MAX_TOKENS,
    MODEL_NAME,
    MODEL_TEMPERATURE,
)
from booking_assistant.knowledge.store import KnowledgeStore
from booking_assistant.messages import ConversationMessage, message_text, to_langchain
from booking_assistant.prompts import format_knowledge_addendum, get_system_prompt, with_knowledge
from booking_assistant.services.metrics import metrics
from booking_assistant.tools.calendar import build_calendar_tools
from booking_assistant.tools.knowledge import build_knowledge_tools
from booking_assistant.tools.registry import ToolDispatcher, ToolError, ToolRegistry

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10
PROACTIVE_RESULTS = 3
APOLOGY = "Sorry, I encountered an error processing your request."

_INFORMATIONAL_RE = re.compile(
    r"\b(what|how|when|where|why|can|do|is|are|policy|policies|appointment|schedule)\b",
    re.IGNORECASE,
)


# ── State schema ─────────────────────────────────────────────────────


class TurnState(TypedDict):
    """State for a single turn.

    ``messages`` is the live prompt and uses the ``add_messages`` reducer
    so each node only returns what it appends.  ``user_message`` and
    ``history`` are the turn's inputs and are never modified.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    user_message: str
    history: list[ConversationMessage]


class ChatTurn(BaseModel):
    """Outcome of :meth:`BookingAgent.chat`."""

    response: str
    history: list[ConversationMessage]
    failed: bool = False


# ── LLM builder ──────────────────────────────────────────────────────


def _build_llm() -> ChatAnthropic:
    return ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=MODEL_TEMPERATURE,
        max_tokens=MODEL_MAX_TOKENS,
    )


# ── Node: context ────────────────────────────────────────────────────


def looks_informational(message: str) -> bool:
    """Question mark or a question-like keyword → worth a knowledge lookup."""
    return "?" in message or bool(_INFORMATIONAL_RE.search(message))


async def retrieve_knowledge(store: KnowledgeStore, message: str) -> str:
    """Semantic lookup for the system-prompt addendum; ``""`` when none.

    Never raises: the turn goes ahead without augmentation if retrieval
    is unavailable.
    """
    if not looks_informational(message):
        return ""
    try:
        results = await store.semantic_search(message, PROACTIVE_RESULTS)
    except Exception as exc:
        logger.warning("Error searching knowledge base: %s", exc)
        return ""

    sources: list[tuple[str, str]] = []
    for result in results:
        doc = store.get(result.document_id)
        if doc is not None:
            sources.append((store.source_title(doc), doc.content))
    return format_knowledge_addendum(sources)


def _make_context_node(store: KnowledgeStore):
    async def context_node(state: TurnState) -> dict:
        message = state["user_message"]
        recent = [to_langchain(m) for m in state["history"][-HISTORY_WINDOW:]]
        addendum = await retrieve_knowledge(store, message)
        system = SystemMessage(content=with_knowledge(get_system_prompt(), addendum))
        return {"messages": [system, *recent, HumanMessage(content=message)]}

    return context_node


# ── Nodes: completions ───────────────────────────────────────────────


def _make_chatbot_node(llm: BaseChatModel, tool_schemas: list[dict[str, Any]]):
    """First completion: tools offered, the model decides whether to call any."""
    llm_with_tools = llm.bind_tools(tool_schemas, tool_choice="auto")

    async def chatbot_node(state: TurnState) -> dict:
        logger.debug("chatbot node invoked — model: %s (with tools)", MODEL_NAME)
        with metrics.track("anthropic", "llm_invoke"):
            response = await llm_with_tools.ainvoke(state["messages"])
        return {"messages": [response]}

    return chatbot_node


def _make_respond_node(llm: BaseChatModel, tool_schemas: list[dict[str, Any]]):
    """Second completion: produce the answer from the tool results.

    The tool definitions stay attached because the prompt now contains
    tool-use blocks, but tool use itself is switched off.
    """
    llm_no_tools = llm.bind_tools(tool_schemas, tool_choice={"type": "none"})

    async def respond_node(state: TurnState) -> dict:
        logger.debug("respond node invoked — model: %s (tools disabled)", MODEL_NAME)
        with metrics.track("anthropic", "llm_final"):
            response = await llm_no_tools.ainvoke(state["messages"])
        return {"messages": [response]}

    return respond_node


# ── Node: tools ──────────────────────────────────────────────────────


async def _dispatch(dispatcher: ToolDispatcher, name: str, args: Any) -> Any:
    try:
        return await dispatcher.invoke(name, args)
    except ToolError as exc:
        logger.warning("Tool call %s failed: %s", name, exc)
        return {"error": str(exc)}


def _calls_in_issue_order(request: AIMessage) -> list[dict]:
    """Valid and invalid calls merged back into the order the model issued them."""
    calls = [*request.tool_calls, *(getattr(request, "invalid_tool_calls", None) or [])]
    if not isinstance(request.content, list):
        return calls
    position = {
        block.get("id"): index
        for index, block in enumerate(request.content)
        if isinstance(block, dict) and block.get("type") == "tool_use"
    }
    return sorted(calls, key=lambda call: position.get(call.get("id"), len(position)))


def _make_tools_node(dispatcher: ToolDispatcher):
    async def tools_node(state: TurnState) -> dict:
        request = state["messages"][-1]
        results: list[ToolMessage] = []

        # Invalid calls carry their raw argument string; the dispatcher rejects it
        for call in _calls_in_issue_order(request):
            name = call.get("name") or ""
            payload = await _dispatch(dispatcher, name, call.get("args") or "")
            results.append(
                ToolMessage(
                    content=json.dumps(payload, default=str),
                    tool_call_id=call.get("id") or "",
                    name=name,
                )
            )

        return {"messages": results}

    return tools_node


# ── Conditional edge ─────────────────────────────────────────────────


def should_use_tools(state: TurnState) -> str:
    """Route to the tools node if the last message requested any calls."""
    last_message = state["messages"][-1]
    if getattr(last_message, "tool_calls", None) or getattr(
        last_message, "invalid_tool_calls", None,
    ):
        return "tools"
    return END


# ── Graph assembly ───────────────────────────────────────────────────


def build_turn_graph(
    store: KnowledgeStore,
    registry: ToolRegistry,
    llm: BaseChatModel,
):
    """Compile the per-turn StateGraph."""
    schemas = registry.schemas()
    graph = StateGraph(TurnState)

    graph.add_node("context", _make_context_node(store))
    graph.add_node("chatbot", _make_chatbot_node(llm, schemas))
    graph.add_node("tools", _make_tools_node(ToolDispatcher(registry)))
    graph.add_node("respond", _make_respond_node(llm, schemas))

    graph.set_entry_point("context")
    graph.add_edge("context", "chatbot")
    graph.add_conditional_edges("chatbot", should_use_tools, {"tools": "tools", END: END})
    graph.add_edge("tools", "respond")
    graph.add_edge("respond", END)

    return graph.compile()


class BookingAgent:
    """Runs conversation turns against a knowledge store and a tool registry."""

    def __init__(
        self,
        store: KnowledgeStore,
        registry: ToolRegistry,
        llm: BaseChatModel | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self._graph = build_turn_graph(store, registry, llm or _build_llm())

    async def chat(
        self, message: str, history: list[ConversationMessage] | None = None,
    ) -> ChatTurn:
        """Answer *message* given the session *history*.

        Returns the reply and the new history.  On failure the reply is
        :data:`APOLOGY` and the history is returned as it was passed in.
        """
        history = list(history or [])
        try:
            result = await self._graph.ainvoke(
                {"messages": [], "user_message": message, "history": history},
            )
            reply = message_text(result["messages"][-1])
        except Exception:
            logger.exception("Error processing chat turn")
            return ChatTurn(response=APOLOGY, history=history, failed=True)

        updated = [
            *history,
            ConversationMessage(role="user", content=message),
            ConversationMessage(role="assistant", content=reply),
        ]
        return ChatTurn(response=reply, history=updated)


def build_tool_registry(store: KnowledgeStore) -> ToolRegistry:
    """Every tool the assistant can call: knowledge lookups and calendar actions."""
    return ToolRegistry([*build_knowledge_tools(store), *build_calendar_tools()])


def create_booking_agent(
    store: KnowledgeStore,
    registry: ToolRegistry | None = None,
    llm: BaseChatModel | None = None,
) -> BookingAgent:
    """Build the agent; defaults to the full tool set and the configured model."""
    registry = registry or build_tool_registry(store)
    agent = BookingAgent(store, registry, llm)
    logger.debug(
        "Booking agent compiled — model: %s, tools: %d", MODEL_NAME, len(registry),
    )
    return agent
