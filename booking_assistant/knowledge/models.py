"""Pydantic models for the knowledge base.

Field names are snake_case in Python and camelCase on disk (the persisted
``vector-store.json`` snapshot), so every model serialises ``by_alias``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DocumentMetadata(BaseModel):
    """Metadata attached to a knowledge document.

    Known keys are modelled explicitly; anything else found in a source
    JSON file (``category``, ``importance``, ...) is kept as an extra field.

    - ``embedding``: ``None`` until the embedding service has produced one.
    - ``parent_id`` / ``chunk_index`` / ``parent_title``: only set on chunks.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    embedding: list[float] | None = None
    parent_id: str | None = Field(default=None, alias="parentId")
    chunk_index: int | None = Field(default=None, alias="chunkIndex")
    parent_title: str | None = Field(default=None, alias="parentTitle")

    @property
    def is_chunk(self) -> bool:
        return self.parent_id is not None


class KnowledgeDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    content: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)

    @property
    def has_embedding(self) -> bool:
        return bool(self.metadata.embedding)

    def same_source_as(self, other: KnowledgeDocument) -> bool:
        """True when *other* was built from identical text (embedding reusable)."""
        return (
            self.id == other.id
            and self.title == other.title
            and self.content == other.content
        )


class VectorStoreEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias="documentId")
    embedding: list[float]


class PersistedSnapshot(BaseModel):
    """On-disk layout of the knowledge cache file."""

    model_config = ConfigDict(populate_by_name=True)

    knowledge_base: list[KnowledgeDocument] = Field(alias="knowledgeBase")
    vector_store: list[VectorStoreEntry] = Field(alias="vectorStore")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SearchResult(BaseModel):
    """One search hit.

    ``relevance_score`` is 0-100 for semantic hits and an unbounded
    positive integer for lexical hits.  Scores are only comparable within
    a single search call.
    """

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias="documentId")
    title: str
    excerpt: str
    relevance_score: float = Field(alias="relevanceScore")


# ── Degradation reports ─────────────────────────────────────────────


class IngestionWarning(BaseModel):
    """A source file that could not be ingested as intended."""

    source: str
    message: str


class EmbeddingFailure(BaseModel):
    """A document whose embedding could not be generated."""

    document_id: str
    message: str


class IngestionReport(BaseModel):
    documents: list[KnowledgeDocument] = Field(default_factory=list)
    warnings: list[IngestionWarning] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


class EmbeddingReport(BaseModel):
    documents: list[KnowledgeDocument] = Field(default_factory=list)
    generated: int = 0
    failures: list[EmbeddingFailure] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failures)


def vector_entries(documents: list[KnowledgeDocument]) -> list[VectorStoreEntry]:
    """Build the vector store from the documents that carry an embedding."""
    return [
        VectorStoreEntry(document_id=doc.id, embedding=doc.metadata.embedding)
        for doc in documents
        if doc.has_embedding
    ]


def to_jsonable(model: BaseModel) -> dict[str, Any]:
    """Dump a model the way it is stored and sent to the LLM (camelCase, no nulls)."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


class RebuildReport(BaseModel):
    """Outcome of one knowledge store rebuild."""

    documents: int = 0
    vectors: int = 0
    reused_embeddings: int = 0
    ingestion_warnings: list[IngestionWarning] = Field(default_factory=list)
    embedding_failures: list[EmbeddingFailure] = Field(default_factory=list)
    persisted: bool = False
