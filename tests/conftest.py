"""Shared test fixtures for the booking assistant test suite."""

from __future__ import annotations

import os
import tempfile
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault(
        "KNOWLEDGE_BASE_PATH", os.path.join(tempfile.mkdtemp(), "knowledge"),
    )
    os.environ["METRICS_ENABLED"] = "false"
    # Tests never talk to a real embedding service
    for name in ("OPENAI_API_KEY", "AZURE_EMBEDDINGS_ENDPOINT", "AZURE_EMBEDDINGS_API_KEY"):
        os.environ.pop(name, None)


class FakeEmbedder:
    """Stand-in for :class:`EmbeddingClient`.

    The vector for a text is the one registered for the first key it
    contains, else ``default``.  Texts containing a ``fail_on`` marker raise.
    """

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        *,
        default: list[float] | None = None,
        fail_on: tuple[str, ...] = (),
    ) -> None:
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.fail_on = fail_on
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        from booking_assistant.services.embeddings import EmbeddingError

        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingError("embedding service unavailable")
        for key, vector in self.vectors.items():
            if key in text:
                return list(vector)
        return list(self.default)

    async def embed_query(self, query: str) -> list[float]:
        return await self.embed(query)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder


@pytest.fixture
def knowledge_dir(tmp_path):
    """A knowledge directory with one Markdown and one JSON source."""
    directory = tmp_path / "knowledge"
    directory.mkdir()
    (directory / "cancellation.md").write_text(
        "Appointments must be cancelled at least 24 hours in advance. "
        "Late cancellations are charged a fee.",
        encoding="utf-8",
    )
    (directory / "virtual.json").write_text(
        '{"title": "Virtual Appointment Guide", '
        '"content": "Virtual appointments take place over video. '
        'You will receive a link by email.", '
        '"metadata": {"category": "guide"}}',
        encoding="utf-8",
    )
    return directory


@pytest.fixture
def mock_calendar_response():
    """Factory fixture for creating mock Google Calendar API responses."""

    def _make(data: dict | None, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        mock.content = b"" if data is None else str(data).encode()
        return mock

    return _make
