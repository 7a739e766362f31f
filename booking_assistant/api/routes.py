"""FastAPI route definitions for the booking assistant API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request

from booking_assistant.api.schemas import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    KnowledgeDocumentInfo,
)
from booking_assistant.services.calendar_client import CalendarAPIError, get_calendar_client

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_agent(request: Request):
    """Retrieve the booking agent from app state (set by the lifespan)."""
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return agent


@router.get("/health", response_model=HealthResponse)
async def health_check(http_request: Request):
    agent = getattr(http_request.app.state, "agent", None)
    if agent is None:
        return HealthResponse()
    snapshot = agent.store.snapshot
    return HealthResponse(documents=len(snapshot.documents), vectors=len(snapshot.entries))


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Send a message to the assistant and get its reply.

    The session history is read before the turn and replaced after it.  A
    failed turn still answers 200 with a fixed apology and leaves the
    history untouched.
    """
    agent = _get_agent(http_request)
    sessions = http_request.app.state.sessions
    request_id = getattr(http_request.state, "request_id", "?")

    history = sessions.get(request.session_id)
    turn = await agent.chat(request.message, history)
    if turn.failed:
        logger.error("[%s] Turn failed for session %s", request_id, request.session_id)
    else:
        sessions.replace(request.session_id, turn.history)

    return ChatResponse(response=turn.response)


@router.get("/list-kb", response_model=list[KnowledgeDocumentInfo], response_model_by_alias=True)
async def list_knowledge_base(http_request: Request):
    """List the documents currently in the knowledge base."""
    agent = _get_agent(http_request)
    return [
        KnowledgeDocumentInfo(
            id=doc.id,
            title=doc.title,
            content_preview=doc.content[:100] + "...",
            has_embedding=doc.has_embedding,
        )
        for doc in agent.store.documents
    ]


@router.get("/list-calendars")
async def list_calendars():
    """Calendars visible to the configured Google account."""
    try:
        calendars = await asyncio.to_thread(get_calendar_client().list_calendars)
    except CalendarAPIError as e:
        logger.error("Error listing calendars: %s", e)
        raise HTTPException(status_code=500, detail="Failed to list calendars") from e
    return {"items": calendars}
