"""Tests for the embedding service client."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from booking_assistant.services import embeddings
from booking_assistant.services.embeddings import (
    EmbeddingClient,
    EmbeddingError,
    QueryVectorCache,
    build_embedding_client,
)


def _sdk_client(vector: list[float]) -> MagicMock:
    client = MagicMock()
    client.embeddings.create = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(embedding=vector)]),
    )
    return client


class TestEmbeddingClient:
    def test_embed_returns_vector(self):
        sdk = _sdk_client([0.1, 0.2, 0.3])
        client = EmbeddingClient(sdk, model="text-embedding-ada-002")

        assert asyncio.run(client.embed("Cancellation Policy")) == [0.1, 0.2, 0.3]
        sdk.embeddings.create.assert_awaited_once_with(
            model="text-embedding-ada-002", input="Cancellation Policy",
        )

    def test_sdk_errors_become_embedding_errors(self):
        sdk = MagicMock()
        sdk.embeddings.create = AsyncMock(side_effect=RuntimeError("429 Too Many Requests"))
        client = EmbeddingClient(sdk)

        with pytest.raises(EmbeddingError, match="429"):
            asyncio.run(client.embed("text"))

    def test_query_embeddings_are_cached(self):
        sdk = _sdk_client([1.0, 0.0])
        client = EmbeddingClient(sdk)

        async def twice():
            return await client.embed_query("hours"), await client.embed_query("hours")

        first, second = asyncio.run(twice())
        assert first == second == [1.0, 0.0]
        assert sdk.embeddings.create.await_count == 1

    def test_document_embeddings_are_not_cached(self):
        sdk = _sdk_client([1.0, 0.0])
        client = EmbeddingClient(sdk)

        async def twice():
            await client.embed("doc")
            await client.embed("doc")

        asyncio.run(twice())
        assert sdk.embeddings.create.await_count == 2


class TestQueryCaching:
    def test_different_queries_each_hit_the_service(self):
        sdk = _sdk_client([1.0, 0.0])
        client = EmbeddingClient(sdk)

        async def run():
            await client.embed_query("opening hours")
            await client.embed_query("cancellation fee")
            await client.embed_query("opening hours")

        asyncio.run(run())
        assert [c.kwargs["input"] for c in sdk.embeddings.create.await_args_list] == [
            "opening hours", "cancellation fee",
        ]

    def test_vectors_are_not_shared_between_models(self):
        cache = QueryVectorCache()
        ada = _sdk_client([1.0, 0.0])
        large = _sdk_client([0.0, 1.0])

        async def run():
            first = await EmbeddingClient(ada, "text-embedding-ada-002", cache=cache).embed_query("fees")
            second = await EmbeddingClient(large, "text-embedding-3-large", cache=cache).embed_query("fees")
            return first, second

        assert asyncio.run(run()) == ([1.0, 0.0], [0.0, 1.0])
        assert len(cache) == 2

    def test_least_recently_used_query_is_evicted(self):
        sdk = _sdk_client([1.0, 0.0])
        cache = QueryVectorCache(max_entries=2)
        client = EmbeddingClient(sdk, cache=cache)

        async def run():
            await client.embed_query("hours")
            await client.embed_query("fees")
            await client.embed_query("hours")  # refreshes "hours"
            await client.embed_query("parking")  # evicts "fees"
            await client.embed_query("hours")
            await client.embed_query("fees")

        asyncio.run(run())
        assert [c.kwargs["input"] for c in sdk.embeddings.create.await_args_list] == [
            "hours", "fees", "parking", "fees",
        ]
        assert (cache.hits, cache.misses) == (2, 4)

    def test_failed_query_is_not_cached(self):
        sdk = _sdk_client([1.0, 0.0])
        good = sdk.embeddings.create.return_value
        sdk.embeddings.create.side_effect = [RuntimeError("timeout"), good]
        client = EmbeddingClient(sdk)

        with pytest.raises(EmbeddingError):
            asyncio.run(client.embed_query("hours"))
        assert asyncio.run(client.embed_query("hours")) == [1.0, 0.0]
        assert sdk.embeddings.create.await_count == 2


class TestBuildEmbeddingClient:
    def test_none_without_credentials(self):
        with patch.multiple(
            embeddings,
            OPENAI_API_KEY=None,
            AZURE_EMBEDDINGS_ENDPOINT=None,
            AZURE_EMBEDDINGS_API_KEY=None,
        ):
            assert build_embedding_client() is None

    def test_openai_when_key_is_set(self):
        with patch.multiple(
            embeddings,
            OPENAI_API_KEY="sk-test",
            AZURE_EMBEDDINGS_ENDPOINT=None,
            AZURE_EMBEDDINGS_API_KEY=None,
        ), patch.object(embeddings, "AsyncOpenAI") as openai_cls:
            client = build_embedding_client()

        assert isinstance(client, EmbeddingClient)
        openai_cls.assert_called_once_with(api_key="sk-test")

    def test_azure_wins_over_openai(self):
        with patch.multiple(
            embeddings,
            OPENAI_API_KEY="sk-test",
            AZURE_EMBEDDINGS_ENDPOINT="https://example.openai.azure.com",
            AZURE_EMBEDDINGS_API_KEY="azure-key",
            EMBEDDING_DEPLOYMENT_NAME="ada-deployment",
        ), patch.object(embeddings, "AsyncAzureOpenAI") as azure_cls, patch.object(
            embeddings, "AsyncOpenAI",
        ) as openai_cls:
            client = build_embedding_client()

        azure_cls.assert_called_once()
        openai_cls.assert_not_called()
        assert client._model == "ada-deployment"
