"""Booking assistant: a conversational agent for answering policy questions
and managing appointments.

Architecture Overview
=====================

Each user turn is one pass through a **LangGraph** state machine:

1. **context** — builds the prompt: system instructions, knowledge retrieved
   for question-like messages, the last ten history messages and the new
   message.
2. **chatbot** — first Claude request with every tool offered.
3. **tools** — runs the requested calls through the tool dispatcher.
4. **respond** — second Claude request with tool use disabled.

Routing: context → chatbot → (tool calls?) → tools → respond → END

Key Design Decisions
--------------------
- **Knowledge base**: ``.md`` / ``.txt`` / ``.json`` files in one directory.
  Long documents are split into paragraph-aligned chunks; every document
  gets an embedding (OpenAI or Azure OpenAI) and the set is persisted to a
  JSON snapshot so restarts do not re-embed unchanged content.
- **Search**: cosine similarity over embeddings, with keyword scoring and
  synonym expansion as the fallback when no embedder is available.
- **Live reload**: a polling watcher rebuilds the store when source files
  change; rebuilds are serialised and swapped in atomically.
- **Calendar**: Google Calendar REST API via httpx, with OAuth refresh and
  exponential backoff retries.
- **Memory**: per-session history in an in-process store, owned by the API
  layer rather than the graph.
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development).

Package Structure
-----------------
- ``booking_assistant/agent.py`` — LangGraph StateGraph definition
- ``booking_assistant/config.py`` — Configuration from environment / SSM
- ``booking_assistant/prompts.py`` — System prompt and knowledge addendum
- ``booking_assistant/messages.py`` — Conversation message model
- ``booking_assistant/server.py`` — FastAPI application
- ``booking_assistant/main.py`` — CLI chat interface
- ``booking_assistant/knowledge/`` — Ingestion, chunking, embeddings, search
- ``booking_assistant/services/`` — External clients, cache, metrics, sessions
- ``booking_assistant/tools/`` — Tool registry and tool implementations
- ``booking_assistant/api/`` — FastAPI routes and Pydantic schemas
"""
