"""Shared pytest fixtures for the docrag test suite."""

from __future__ import annotations

import hashlib
import math
import re
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.models.chunk import (
    Chunk,
    ChunkMetadata,
    ChunkPosition,
    ContentType,
)
from docrag.models.embedding import (
    Embedding,
    EmbeddingMetadata,
    EmbeddingQuality,
    EmbeddingResponse,
    ProcessingInfo,
)
from docrag.providers.vector_store.memory_provider import InMemoryVectorStore
from docrag.utils.errors import EmbeddingError

FAKE_DIMENSION = 64
FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

_TOKEN_RE = re.compile(r"\w+")


def hashed_vector(text: str, dimension: int = FAKE_DIMENSION) -> list[float]:
    """Deterministic bag-of-words vector: each word increments one hashed bucket."""
    vector = [0.0] * dimension
    for word in _TOKEN_RE.findall(text.lower()):
        bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % dimension
        vector[bucket] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        vector[0] = 1.0
        return vector
    return [v / norm for v in vector]


class FakeEmbeddingProvider(IEmbeddingProvider):
    """In-process embedding provider with scriptable failures.

    Parameters
    ----------
    fail_batches:
        Reject any request with more than one text.
    fail_texts:
        Substrings; a request containing a matching text always fails.
    fail_times:
        Number of initial calls that fail before calls start succeeding.
    """

    def __init__(
        self,
        dimension: int = FAKE_DIMENSION,
        fail_batches: bool = False,
        fail_texts: tuple[str, ...] = (),
        fail_times: int = 0,
    ) -> None:
        self._dimension = dimension
        self._fail_batches = fail_batches
        self._fail_texts = fail_texts
        self._fail_times = fail_times
        self.calls: list[list[str]] = []

    async def embed(
        self,
        texts: list[str],
        model: str | None = None,
        dimensions: int | None = None,
    ) -> EmbeddingResponse:
        self.calls.append(list(texts))
        if self._fail_times > 0:
            self._fail_times -= 1
            raise EmbeddingError(message="transient failure", provider_name="fake")
        if self._fail_batches and len(texts) > 1:
            raise EmbeddingError(message="batch rejected", provider_name="fake")
        if any(marker in text for text in texts for marker in self._fail_texts):
            raise EmbeddingError(message="poisoned text", provider_name="fake")
        vectors = [hashed_vector(text, self._dimension) for text in texts]
        return EmbeddingResponse(vectors=vectors, tokens_used=sum(len(t.split()) for t in texts))

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True


def make_chunk(
    content: str = "Deployment pipelines move code from commit to production safely.",
    chunk_id: str = "chunk-1",
    source: str = "guide.md",
    content_type: ContentType = ContentType.PARAGRAPH,
    importance: float = 0.6,
    index: int = 0,
) -> Chunk:
    return Chunk(
        id=chunk_id,
        content=content,
        token_count=math.ceil(len(content) / 4),
        content_type=content_type,
        importance=importance,
        position=ChunkPosition(document_index=index, section_index=0, paragraph_index=0),
        metadata=ChunkMetadata(source=source, title="Guide", section="Content"),
    )


def make_embedding(
    text: str,
    embedding_id: str = "emb-1",
    source: str = "guide.md",
    overall: float = 0.85,
    content_type: ContentType = ContentType.PARAGRAPH,
    importance: float = 0.6,
    vector: list[float] | None = None,
    keywords: tuple[str, ...] = (),
) -> Embedding:
    return Embedding(
        id=embedding_id,
        vector=vector if vector is not None else hashed_vector(text),
        chunk_id=f"chunk-{embedding_id}",
        text=text,
        tokens=math.ceil(len(text) / 4),
        source=source,
        quality=EmbeddingQuality(
            text_quality=overall,
            semantic_coherence=overall,
            information_density=overall,
            uniqueness=overall,
            retrieval_optimization=0.9,
            overall=overall,
        ),
        metadata=EmbeddingMetadata(
            chunk_id=f"chunk-{embedding_id}",
            content_type=content_type,
            importance=importance,
            position=ChunkPosition(document_index=0, section_index=0, paragraph_index=0),
            keywords=keywords,
            processing=ProcessingInfo(model="fake"),
        ),
    )


SAMPLE_MARKDOWN = """# Deployment Guide

This guide explains how the deployment process moves a change from a developer
laptop to production. It covers the required tooling, the release steps and
what to do when a release goes wrong.

## Prerequisites

- Python 3.10 or newer installed locally
- Access to the staging database server
- An API key for the release service

## Release Steps

1. Build the container image from the main branch.
2. Push the image to the registry.
3. Promote the image to production after the smoke tests pass.

### Rollback

If the smoke tests fail after promotion, roll back to the previous image and
open an incident ticket. The rollback procedure is described in the handbook [1].

## References

[1] Release engineering handbook, chapter four.
"""


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Awaitable stand-in for ``asyncio.sleep`` that records requested delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def sample_markdown() -> str:
    return SAMPLE_MARKDOWN
