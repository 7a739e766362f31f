"""The process-wide knowledge store.

A :class:`KnowledgeStore` owns the current documents and vector store as a
single immutable :class:`KnowledgeSnapshot`.  A rebuild prepares a
complete new snapshot off to the side and then swaps the reference, so
readers always see either the old or the new knowledge base, never a mix.

Rebuilds are serialised: a rebuild requested while another is running is
not started concurrently; instead the running rebuild performs one more
pass when it finishes (any number of requests collapse into that pass).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from booking_assistant.knowledge import retrieval
from booking_assistant.knowledge.ingestion import (
    SNAPSHOT_FILENAME,
    load_documents,
    seed_sample_documents,
)
from booking_assistant.knowledge.models import (
    KnowledgeDocument,
    RebuildReport,
    SearchResult,
    VectorStoreEntry,
    vector_entries,
)
from booking_assistant.knowledge.vector_cache import (
    ensure_embeddings,
    persist,
    restore,
    reuse_embeddings,
)
from booking_assistant.services.embeddings import (
    EmbeddingClient,
    EmbeddingError,
    build_embedding_client,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KnowledgeSnapshot:
    documents: tuple[KnowledgeDocument, ...] = ()
    entries: tuple[VectorStoreEntry, ...] = ()
    by_id: dict[str, KnowledgeDocument] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        documents: list[KnowledgeDocument],
        entries: list[VectorStoreEntry],
    ) -> KnowledgeSnapshot:
        return cls(tuple(documents), tuple(entries), {doc.id: doc for doc in documents})


class KnowledgeStore:
    """Documents plus embeddings, rebuilt wholesale from a source directory."""

    def __init__(
        self,
        directory: Path,
        embedder: EmbeddingClient | None = None,
        *,
        snapshot_name: str = SNAPSHOT_FILENAME,
    ) -> None:
        self.directory = directory
        self.snapshot_path = directory / snapshot_name
        self._snapshot_name = snapshot_name
        self._embedder = embedder
        self._snapshot = KnowledgeSnapshot()
        self._rebuilding = False
        self._rerun_requested = False

    # ── Read side ────────────────────────────────────────────────────

    @property
    def snapshot(self) -> KnowledgeSnapshot:
        return self._snapshot

    @property
    def documents(self) -> tuple[KnowledgeDocument, ...]:
        return self._snapshot.documents

    @property
    def rebuilding(self) -> bool:
        return self._rebuilding

    def get(self, document_id: str) -> KnowledgeDocument | None:
        return self._snapshot.by_id.get(document_id)

    def source_title(self, document: KnowledgeDocument) -> str:
        """Title to cite for *document*: its parent's for a chunk."""
        meta = document.metadata
        if not meta.is_chunk:
            return document.title
        parent = self.get(meta.parent_id)
        if parent is not None:
            return parent.title
        return meta.parent_title or document.title

    def keyword_search(self, query: str, max_results: int = 3) -> list[SearchResult]:
        return retrieval.keyword_search(query, self._snapshot.documents, max_results)

    async def semantic_search(self, query: str, max_results: int = 3) -> list[SearchResult]:
        """Rank documents by embedding similarity.

        Raises:
            EmbeddingError: no embedding service is configured, or the query
                could not be embedded.
        """
        if self._embedder is None:
            raise EmbeddingError("No embedding service configured")
        snapshot = self._snapshot
        if not snapshot.entries:
            return []
        query_vector = await self._embedder.embed_query(query)
        return retrieval.rank_by_similarity(
            query, query_vector, snapshot.by_id, snapshot.entries, max_results,
        )

    async def search(self, query: str, max_results: int = 3) -> list[SearchResult]:
        """Semantic search when vectors are available, keyword search otherwise."""
        if self._embedder is not None and self._snapshot.entries:
            try:
                return await self.semantic_search(query, max_results)
            except EmbeddingError as exc:
                logger.warning("Semantic search failed, falling back to keyword search: %s", exc)
        return self.keyword_search(query, max_results)

    # ── Write side ───────────────────────────────────────────────────

    async def load(self) -> RebuildReport | None:
        """Start-up load: serve the persisted snapshot, then refresh from files."""
        restored = await asyncio.to_thread(restore, self.snapshot_path)
        if restored is not None:
            vectors = {e.document_id: e.embedding for e in restored.vector_store}
            for doc in restored.knowledge_base:
                if not doc.has_embedding and doc.id in vectors:
                    doc.metadata.embedding = vectors[doc.id]
            self._snapshot = KnowledgeSnapshot.build(
                restored.knowledge_base, restored.vector_store,
            )
        return await self.rebuild()

    async def rebuild(self) -> RebuildReport | None:
        """Rebuild from the source directory.

        Returns ``None`` when a rebuild was already running; that rebuild
        will pick up this request with an extra pass.
        """
        if self._rebuilding:
            logger.info("Rebuild already in progress; queued another pass")
            self._rerun_requested = True
            return None

        self._rebuilding = True
        try:
            while True:
                self._rerun_requested = False
                report = await self._rebuild_once()
                if not self._rerun_requested:
                    return report
        finally:
            self._rebuilding = False

    async def _rebuild_once(self) -> RebuildReport:
        previous = self._snapshot
        try:
            ingestion = await asyncio.to_thread(
                load_documents, self.directory, self._snapshot_name,
            )
        except OSError as exc:
            logger.error("Cannot read knowledge directory %s: %s", self.directory, exc)
            return RebuildReport(
                documents=len(previous.documents), vectors=len(previous.entries),
            )

        documents = ingestion.documents
        report = RebuildReport(ingestion_warnings=ingestion.warnings)
        report.reused_embeddings = reuse_embeddings(documents, list(previous.documents))

        if self._embedder is not None:
            embedding = await ensure_embeddings(documents, self._embedder)
            report.embedding_failures = embedding.failures

        entries = vector_entries(documents)
        self._snapshot = KnowledgeSnapshot.build(documents, entries)
        report.documents = len(documents)
        report.vectors = len(entries)

        try:
            await asyncio.to_thread(persist, self.snapshot_path, documents, entries)
            report.persisted = True
        except OSError as exc:
            logger.error("Error persisting knowledge base: %s", exc)

        logger.info(
            "Knowledge base ready: %d documents, %d vectors (%d reused)",
            report.documents, report.vectors, report.reused_embeddings,
        )
        return report


async def open_knowledge_store(directory: Path) -> KnowledgeStore:
    """Seed *directory* if missing, then load a store backed by the configured embedder."""
    await asyncio.to_thread(seed_sample_documents, directory)
    store = KnowledgeStore(directory, build_embedding_client())
    await store.load()
    return store
