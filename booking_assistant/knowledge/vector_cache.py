"""Embedding generation and the persisted knowledge snapshot.

``ensure_embeddings`` only calls the embedding service for documents that
do not already carry a vector; the snapshot written by ``persist`` is what
lets a restart (or a reload of unchanged files) skip that work entirely.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from booking_assistant.knowledge.models import (
    EmbeddingFailure,
    EmbeddingReport,
    KnowledgeDocument,
    PersistedSnapshot,
    VectorStoreEntry,
)
from booking_assistant.services.embeddings import EmbeddingClient, EmbeddingError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
INTER_BATCH_DELAY_SECONDS = 0.2
EMBEDDING_INPUT_CHARS = 8000


def embedding_input(document: KnowledgeDocument) -> str:
    return document.title + "\n\n" + document.content[:EMBEDDING_INPUT_CHARS]


def reuse_embeddings(
    documents: list[KnowledgeDocument],
    previous: list[KnowledgeDocument],
) -> int:
    """Copy vectors from *previous* onto documents built from identical text.

    Returns the number of documents that got a vector this way.
    """
    known = {doc.id: doc for doc in previous if doc.has_embedding}
    reused = 0
    for doc in documents:
        if doc.has_embedding:
            continue
        old = known.get(doc.id)
        if old is not None and doc.same_source_as(old):
            doc.metadata.embedding = old.metadata.embedding
            reused += 1
    return reused


async def _embed_one(
    embedder: EmbeddingClient, document: KnowledgeDocument,
) -> EmbeddingFailure | None:
    try:
        document.metadata.embedding = await embedder.embed(embedding_input(document))
    except EmbeddingError as exc:
        logger.error("Failed to generate embedding for %s: %s", document.id, exc)
        return EmbeddingFailure(document_id=document.id, message=str(exc))
    return None


async def ensure_embeddings(
    documents: list[KnowledgeDocument],
    embedder: EmbeddingClient,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    delay_seconds: float = INTER_BATCH_DELAY_SECONDS,
) -> EmbeddingReport:
    """Fill in missing embeddings, *batch_size* concurrent requests at a time.

    Documents are updated in place.  A failed document is reported and left
    without a vector; it stays reachable through keyword search.
    """
    report = EmbeddingReport(documents=documents)
    pending = [doc for doc in documents if not doc.has_embedding]
    if not pending:
        return report

    logger.info("Generating embeddings for %d documents", len(pending))
    for start in range(0, len(pending), batch_size):
        batch = pending[start : start + batch_size]
        outcomes = await asyncio.gather(*(_embed_one(embedder, doc) for doc in batch))
        for failure in outcomes:
            if failure is None:
                report.generated += 1
            else:
                report.failures.append(failure)

        if start + batch_size < len(pending):
            await asyncio.sleep(delay_seconds)

    logger.info(
        "Embeddings generated: %d, failed: %d", report.generated, len(report.failures),
    )
    return report


def persist(
    path: Path,
    documents: list[KnowledgeDocument],
    entries: list[VectorStoreEntry],
) -> PersistedSnapshot:
    """Write the snapshot to *path*, replacing any previous file atomically."""
    snapshot = PersistedSnapshot(knowledge_base=documents, vector_store=entries)
    payload = snapshot.model_dump_json(by_alias=True, exclude_none=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info(
        "Persisted knowledge base with %d documents and %d embeddings",
        len(documents), len(entries),
    )
    return snapshot


def restore(path: Path) -> PersistedSnapshot | None:
    """Load the snapshot at *path*; ``None`` if it is missing or unreadable."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("No persisted vector store found at %s", path)
        return None
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read persisted vector store %s: %s", path, exc)
        return None

    try:
        snapshot = PersistedSnapshot.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("Ignoring corrupt vector store %s: %s", path, exc)
        return None

    logger.info(
        "Loaded %d documents and %d vectors from cache",
        len(snapshot.knowledge_base), len(snapshot.vector_store),
    )
    return snapshot
