"""Async client for the embedding service (OpenAI or Azure OpenAI).

The knowledge base treats embeddings as opaque vectors: one request per
input text, one vector back.  Every failure is re-raised as
:class:`EmbeddingError` so callers can degrade to keyword search without
caring which SDK exception was thrown.
"""

from __future__ import annotations

import logging
from collections import OrderedDict

from openai import AsyncAzureOpenAI, AsyncOpenAI

from booking_assistant.config import (
    AZURE_EMBEDDINGS_API_KEY,
    AZURE_EMBEDDINGS_API_VERSION,
    AZURE_EMBEDDINGS_ENDPOINT,
    EMBEDDING_DEPLOYMENT_NAME,
    EMBEDDING_MODEL,
    OPENAI_API_KEY,
)
from booking_assistant.services.metrics import metrics

logger = logging.getLogger(__name__)

# Repeated chat questions reuse their vector for the life of the process
MAX_CACHED_QUERIES = 256


class EmbeddingError(Exception):
    """Raised when the embedding service cannot produce a vector."""


class QueryVectorCache:
    """Most-recently-used query vectors, keyed by ``(model, query)``.

    Least recently used entries are evicted past *max_entries*.
    """

    def __init__(self, max_entries: int = MAX_CACHED_QUERIES) -> None:
        self._max_entries = max_entries
        self._vectors: OrderedDict[tuple[str, str], list[float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._vectors)

    def lookup(self, model: str, query: str) -> list[float] | None:
        vector = self._vectors.get((model, query))
        if vector is None:
            self.misses += 1
            return None
        self._vectors.move_to_end((model, query))
        self.hits += 1
        return vector

    def remember(self, model: str, query: str, vector: list[float]) -> None:
        self._vectors[(model, query)] = vector
        self._vectors.move_to_end((model, query))
        while len(self._vectors) > self._max_entries:
            evicted, _ = self._vectors.popitem(last=False)
            logger.debug("Evicted cached query vector for %r", evicted[1])


class EmbeddingClient:
    """Thin async wrapper around ``embeddings.create``.

    ``embed_query`` results are memoised in a :class:`QueryVectorCache`;
    ``embed`` (used for document ingestion) always hits the service because
    documents are already cached in the persisted snapshot.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = EMBEDDING_MODEL,
        *,
        cache: QueryVectorCache | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._cache = cache if cache is not None else QueryVectorCache()

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*."""
        try:
            with metrics.track("embeddings", "create"):
                response = await self._client.embeddings.create(model=self._model, input=text)
                return list(response.data[0].embedding)
        except Exception as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

    async def embed_query(self, query: str) -> list[float]:
        """Embed a search query, reusing the vector for repeated queries."""
        cached = self._cache.lookup(self._model, query)
        if cached is not None:
            return cached
        vector = await self.embed(query)
        self._cache.remember(self._model, query, vector)
        return vector


def build_embedding_client() -> EmbeddingClient | None:
    """Create the configured embedding client, or ``None`` if none is set up.

    Azure OpenAI wins when ``AZURE_EMBEDDINGS_ENDPOINT`` is set (the model
    is then the deployment name); otherwise the public OpenAI API is used.
    """
    if AZURE_EMBEDDINGS_ENDPOINT and AZURE_EMBEDDINGS_API_KEY:
        client = AsyncAzureOpenAI(
            api_key=AZURE_EMBEDDINGS_API_KEY,
            azure_endpoint=AZURE_EMBEDDINGS_ENDPOINT,
            api_version=AZURE_EMBEDDINGS_API_VERSION,
        )
        return EmbeddingClient(client, model=EMBEDDING_DEPLOYMENT_NAME or EMBEDDING_MODEL)

    if OPENAI_API_KEY:
        return EmbeddingClient(AsyncOpenAI(api_key=OPENAI_API_KEY))

    logger.warning(
        "No embedding service configured; knowledge search will use keywords only",
    )
    return None
