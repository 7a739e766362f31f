"""FastAPI server for the booking assistant.

Run with:
    uvicorn booking_assistant.server:app --reload --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from booking_assistant.agent import create_booking_agent
from booking_assistant.api.routes import router
from booking_assistant.config import (
    CORS_ORIGINS,
    KNOWLEDGE_BASE_PATH,
    KNOWLEDGE_WATCH_INTERVAL_SECONDS,
    SERVER_HOST,
    SERVER_PORT,
)
from booking_assistant.knowledge.store import open_knowledge_store
from booking_assistant.knowledge.watcher import KnowledgeWatcher
from booking_assistant.services.metrics import metrics
from booking_assistant.services.sessions import SessionStore

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Load the knowledge base, compile the agent and start the watcher.

    The agent is only published to app state once the knowledge base has
    been loaded; until then ``/api/chat`` answers 503.
    """
    logger.info("Loading knowledge base from %s…", KNOWLEDGE_BASE_PATH)
    store = await open_knowledge_store(KNOWLEDGE_BASE_PATH)
    application.state.agent = create_booking_agent(store)
    logger.info("Agent ready.")

    watcher = KnowledgeWatcher(store, KNOWLEDGE_WATCH_INTERVAL_SECONDS)
    await watcher.start()
    try:
        yield
    finally:
        await watcher.stop()
        metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Booking Assistant",
    description=(
        "Conversational booking assistant: answers questions from a local "
        "knowledge base and manages appointments on Google Calendar."
    ),
    version="1.0.0",
    lifespan=lifespan,
)
app.state.sessions = SessionStore()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (``X-Request-ID``) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Booking Assistant",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting booking assistant on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "booking_assistant.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
