"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Incoming chat message from the browser UI."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=4000, description="The user's message")
    session_id: str = Field(
        ...,
        alias="sessionId",
        min_length=1,
        max_length=100,
        description="Unique session identifier for conversation continuity",
    )


class ChatResponse(BaseModel):
    response: str = Field(..., description="The assistant's reply")


class KnowledgeDocumentInfo(BaseModel):
    """One row of the knowledge base listing."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    content_preview: str = Field(..., alias="contentPreview")
    has_embedding: bool = Field(..., alias="hasEmbedding")


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "booking-assistant"
    documents: int = 0
    vectors: int = 0
