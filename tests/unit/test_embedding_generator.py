"""Unit tests for EmbeddingGenerator: batching, fallback, retry and quality gate."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.models.chunk import ContentType
from docrag.models.embedding import EmbeddingOptions, EmbeddingResponse
from docrag.models.pipeline import IssueKind, IssueSeverity
from docrag.services.embedding.generator import EmbeddingGenerator, estimate_cost
from docrag.utils.errors import (
    EmbeddingBatchError,
    EmbeddingRetryExhaustedError,
    PipelineCancelledError,
)
from tests.conftest import FAKE_DIMENSION, FakeEmbeddingProvider, make_chunk

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_TEXTS = (
    "Deployment pipelines move code from commit to production in small safe steps.",
    "Rollback restores the previous container image when smoke tests fail after release.",
    "The staging database mirrors production schema but holds anonymised customer data.",
)


def _make_options(**overrides) -> EmbeddingOptions:
    defaults = {
        "dimensions": FAKE_DIMENSION,
        "batch_size": 2,
        "max_retries": 2,
        "retry_base_delay": 0.5,
        "quality_threshold": 0.0,
        "inter_batch_delay": 0.0,
    }
    defaults.update(overrides)
    return EmbeddingOptions(**defaults)


def _make_generator(provider, sleep, **overrides) -> EmbeddingGenerator:
    return EmbeddingGenerator(provider=provider, options=_make_options(**overrides), sleep=sleep)


def _chunks():
    return [make_chunk(content=text, chunk_id=f"c{i}", index=i) for i, text in enumerate(_TEXTS)]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestGenerate:
    @pytest.mark.asyncio
    async def test_embeds_every_chunk_in_batches(self, fake_provider, no_sleep) -> None:
        generator = _make_generator(fake_provider, no_sleep)
        result = await generator.generate(_chunks())

        assert result.success is True
        assert [e.chunk_id for e in result.embeddings] == ["c0", "c1", "c2"]
        assert [e.id for e in result.embeddings] == ["emb_c0", "emb_c1", "emb_c2"]
        assert all(len(e.vector) == FAKE_DIMENSION for e in result.embeddings)
        assert [len(call) for call in fake_provider.calls] == [2, 1]
        assert result.errors == []
        assert result.statistics.successful_embeddings == 3
        assert result.statistics.total_tokens > 0

    @pytest.mark.asyncio
    async def test_metadata_carries_chunk_fields(self, fake_provider, no_sleep) -> None:
        chunk = make_chunk(
            content="# Setup Guide\n\nInstall the tooling before the first release.",
            chunk_id="h1",
            content_type=ContentType.HEADING,
            importance=0.8,
        )
        result = await _make_generator(fake_provider, no_sleep).generate([chunk])
        metadata = result.embeddings[0].metadata

        assert metadata.chunk_id == "h1"
        assert metadata.content_type == ContentType.HEADING
        assert metadata.importance == 0.8
        assert metadata.structure.is_header is True
        assert metadata.structure.header_level == 1
        assert metadata.processing.model == "text-embedding-3-small"
        assert result.embeddings[0].source == "guide.md"

    @pytest.mark.asyncio
    async def test_progress_reported_per_batch(self, fake_provider, no_sleep) -> None:
        progress: list[tuple[int, int]] = []
        await _make_generator(fake_provider, no_sleep).generate(
            _chunks(), on_progress=lambda done, total: progress.append((done, total))
        )
        assert progress == [(2, 3), (3, 3)]

    @pytest.mark.asyncio
    async def test_inter_batch_delay(self, fake_provider, no_sleep) -> None:
        await _make_generator(fake_provider, no_sleep, inter_batch_delay=0.25).generate(_chunks())
        no_sleep.assert_awaited_once_with(0.25)

    @pytest.mark.asyncio
    async def test_empty_input(self, fake_provider, no_sleep) -> None:
        result = await _make_generator(fake_provider, no_sleep).generate([])
        assert result.success is False
        assert result.embeddings == []
        assert fake_provider.calls == []


class TestBatchFallback:
    @pytest.mark.asyncio
    async def test_failed_batch_embedded_individually(self, no_sleep) -> None:
        provider = FakeEmbeddingProvider(fail_batches=True)
        result = await _make_generator(provider, no_sleep).generate(_chunks())

        assert len(result.embeddings) == 3
        assert [w.kind for w in result.warnings] == [IssueKind.EMBEDDING_BATCH_FAILURE]
        assert result.warnings[0].batch_index == 0
        # One rejected batch call, then one call per chunk; the last batch has a single chunk.
        assert [len(call) for call in provider.calls] == [2, 1, 1, 1]

    @pytest.mark.asyncio
    async def test_retry_exhaustion_isolated_to_chunk(self, no_sleep) -> None:
        provider = FakeEmbeddingProvider(fail_texts=("POISON",))
        chunks = [
            make_chunk(content="Healthy chunk about release tooling and checks.", chunk_id="ok"),
            make_chunk(content="POISON chunk that the provider always rejects.", chunk_id="bad", index=1),
        ]
        result = await _make_generator(provider, no_sleep).generate(chunks)

        assert [e.chunk_id for e in result.embeddings] == ["ok"]
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.kind == IssueKind.EMBEDDING_RETRY_EXHAUSTED
        assert error.severity == IssueSeverity.ERROR
        assert error.chunk_id == "bad"
        assert result.statistics.failed_embeddings == 1
        assert [c.args[0] for c in no_sleep.await_args_list] == [0.5, 1.0]


class TestRetry:
    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, no_sleep) -> None:
        provider = FakeEmbeddingProvider(fail_times=2)
        generator = _make_generator(provider, no_sleep, max_retries=3, retry_base_delay=1.0)

        response = await generator.embed_single_with_retry("some text", chunk_id="c1")

        assert len(response.vectors) == 1
        assert len(provider.calls) == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_after_max_retries_plus_one(self, no_sleep) -> None:
        provider = FakeEmbeddingProvider(fail_times=10)
        generator = _make_generator(provider, no_sleep, max_retries=2)

        with pytest.raises(EmbeddingRetryExhaustedError) as exc_info:
            await generator.embed_single_with_retry("text", chunk_id="c9")

        assert exc_info.value.attempts == 3
        assert exc_info.value.chunk_id == "c9"
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_zero_retries_single_attempt(self, no_sleep) -> None:
        provider = FakeEmbeddingProvider(fail_times=1)
        generator = _make_generator(provider, no_sleep, max_retries=0)

        with pytest.raises(EmbeddingRetryExhaustedError):
            await generator.embed_single_with_retry("text")
        assert len(provider.calls) == 1
        no_sleep.assert_not_awaited()


class TestEmbedBatch:
    @pytest.mark.asyncio
    async def test_vector_count_mismatch(self, no_sleep) -> None:
        provider = MagicMock(spec=IEmbeddingProvider)
        provider.embed = AsyncMock(return_value=EmbeddingResponse(vectors=[[0.1] * 4]))
        provider.get_provider_name.return_value = "mock"

        with pytest.raises(EmbeddingBatchError) as exc_info:
            await _make_generator(provider, no_sleep).embed_batch(["a", "b"], batch_index=7)
        assert exc_info.value.batch_index == 7

    @pytest.mark.asyncio
    async def test_provider_error_wrapped(self, no_sleep) -> None:
        provider = FakeEmbeddingProvider(fail_times=1)
        with pytest.raises(EmbeddingBatchError, match="transient failure"):
            await _make_generator(provider, no_sleep).embed_batch(["a"])


class TestQualityGate:
    @pytest.mark.asyncio
    async def test_everything_below_threshold_rejected(self, fake_provider, no_sleep) -> None:
        result = await _make_generator(fake_provider, no_sleep, quality_threshold=0.99).generate(_chunks())

        assert result.embeddings == []
        assert result.success is False
        assert {w.kind for w in result.warnings} == {IssueKind.EMBEDDING_QUALITY_REJECTED}
        assert result.statistics.rejected_low_quality == 3

    @pytest.mark.asyncio
    async def test_kept_embeddings_meet_threshold(self, fake_provider, no_sleep) -> None:
        threshold = 0.5
        result = await _make_generator(fake_provider, no_sleep, quality_threshold=threshold).generate(_chunks())
        assert result.embeddings
        assert all(e.quality.overall >= threshold for e in result.embeddings)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_before_first_batch(self, fake_provider, no_sleep) -> None:
        event = asyncio.Event()
        event.set()

        with pytest.raises(PipelineCancelledError):
            await _make_generator(fake_provider, no_sleep).generate(_chunks(), cancel_event=event)
        assert fake_provider.calls == []

    @pytest.mark.asyncio
    async def test_cancel_between_batches(self, fake_provider, no_sleep) -> None:
        event = asyncio.Event()

        def _on_progress(done: int, total: int) -> None:
            event.set()

        with pytest.raises(PipelineCancelledError):
            await _make_generator(fake_provider, no_sleep).generate(
                _chunks(), on_progress=_on_progress, cancel_event=event
            )
        assert len(fake_provider.calls) == 1


class TestOptimizeText:
    def test_collapses_whitespace(self, fake_provider, no_sleep) -> None:
        generator = _make_generator(fake_provider, no_sleep)
        assert generator.optimize_text("a  b\n\nc") == "a b c"

    def test_truncates_at_sentence(self, fake_provider, no_sleep) -> None:
        generator = _make_generator(fake_provider, no_sleep, max_tokens_per_item=5)
        text = "First sentence here. Second sentence is much longer."
        assert generator.optimize_text(text) == "First sentence here."

    def test_truncates_at_word(self, fake_provider, no_sleep) -> None:
        generator = _make_generator(fake_provider, no_sleep, max_tokens_per_item=5)
        assert generator.optimize_text("supercalifragilistic words") == "supercalifragilistic"

    def test_character_cut(self, fake_provider, no_sleep) -> None:
        generator = _make_generator(fake_provider, no_sleep, max_tokens_per_item=5)
        assert generator.optimize_text("x" * 40) == "x" * 20


class TestQueryEmbedding:
    @pytest.mark.asyncio
    async def test_single_vector(self, fake_provider, no_sleep) -> None:
        response = await _make_generator(fake_provider, no_sleep).generate_query_embedding("  rollback   steps ")
        assert len(response.vectors) == 1
        assert fake_provider.calls == [["rollback steps"]]


class TestEstimateCost:
    def test_known_model(self) -> None:
        assert estimate_cost(1_000_000, "text-embedding-3-small") == pytest.approx(0.02)
        assert estimate_cost(500_000, "text-embedding-3-large") == pytest.approx(0.065)

    def test_unknown_model(self) -> None:
        assert estimate_cost(1_000_000, "local-model") == 0.0
