"""Unit tests for RAGOrchestrator ingestion, queries and reporting."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from docrag.models.chunk import ChunkingConfig
from docrag.models.document import SourceDocument
from docrag.models.embedding import EmbeddingOptions
from docrag.models.pipeline import IssueKind, PipelinePhase
from docrag.models.retrieval import SearchOptions, UploadOptions, UploadResult
from docrag.pipeline.orchestrator import RAGOrchestrator
from docrag.pipeline.progress_tracker import ProgressTracker
from docrag.services.embedding.generator import EmbeddingGenerator
from docrag.services.ingestion.chunker import SemanticChunker
from docrag.services.retrieval.retrieval_engine import RetrievalEngine
from docrag.utils.errors import PipelineCancelledError
from tests.conftest import FAKE_DIMENSION, FIXED_NOW, FakeEmbeddingProvider

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_orchestrator(
    provider,
    store,
    sleep,
    min_tokens: int = 0,
    quality_threshold: float = 0.0,
) -> RAGOrchestrator:
    chunker = SemanticChunker(config=ChunkingConfig(max_tokens=512, min_tokens=min_tokens))
    generator = EmbeddingGenerator(
        provider=provider,
        options=EmbeddingOptions(
            dimensions=FAKE_DIMENSION,
            quality_threshold=quality_threshold,
            inter_batch_delay=0.0,
        ),
        sleep=sleep,
    )
    engine = RetrievalEngine(
        store=store,
        upload_options=UploadOptions(inter_batch_delay=0.0),
        clock=lambda: FIXED_NOW,
        sleep=sleep,
    )
    return RAGOrchestrator(chunker=chunker, generator=generator, engine=engine, tracker=ProgressTracker())


def _record_progress(orchestrator: RAGOrchestrator, run_id: str) -> list[tuple[PipelinePhase, float]]:
    updates: list[tuple[PipelinePhase, float]] = []
    orchestrator.tracker.register_listener(
        run_id, lambda _run, phase, progress, _msg: updates.append((phase, progress))
    )
    return updates


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


class TestIngest:
    @pytest.mark.asyncio
    async def test_successful_run(self, fake_provider, memory_store, no_sleep, sample_markdown) -> None:
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep)
        updates = _record_progress(orchestrator, "run-1")

        report = await orchestrator.ingest([SourceDocument(content=sample_markdown, source="guide.md")], run_id="run-1")

        assert report.success is True
        assert report.phase == PipelinePhase.COMPLETE
        assert report.errors == []
        stats = report.statistics
        assert stats.total_documents == 1
        assert stats.total_chunks == 5
        assert stats.total_uploaded == 5
        assert stats.success_rate == 1.0
        assert len(report.uploaded_ids) == 5
        assert await memory_store.count() == 5
        assert report.message == "Ingested 1 documents: 5 chunks, 5 uploaded, 0 duplicates skipped"
        assert sum(stats.importance_distribution.values()) == 5

        phases = [phase for phase, _ in updates]
        assert phases[0] == PipelinePhase.CHUNKING
        assert phases[-1] == PipelinePhase.COMPLETE
        progress = [value for _, value in updates]
        assert progress == sorted(progress)
        assert orchestrator.tracker.get_status("run-1")["progress"] == 100.0

    @pytest.mark.asyncio
    async def test_empty_document_fails_at_chunking(self, fake_provider, memory_store, no_sleep) -> None:
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep)

        report = await orchestrator.ingest([SourceDocument(content="   ", source="blank.txt")], run_id="run-2")

        assert report.success is False
        assert report.phase == PipelinePhase.FAILED
        assert [e.kind for e in report.errors] == [IssueKind.STAGE_EMPTY]
        assert report.errors[0].phase == PipelinePhase.CHUNKING
        assert fake_provider.calls == []
        assert orchestrator.tracker.get_status("run-2")["phase"] == "FAILED"

    @pytest.mark.asyncio
    async def test_all_embeddings_rejected(self, fake_provider, memory_store, no_sleep, sample_markdown) -> None:
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep, quality_threshold=1.0)

        report = await orchestrator.ingest([SourceDocument(content=sample_markdown, source="guide.md")])

        assert report.success is False
        assert report.errors[-1].kind == IssueKind.STAGE_EMPTY
        assert report.errors[-1].phase == PipelinePhase.EMBEDDING
        assert report.statistics.quality_issues
        assert await memory_store.count() == 0

    @pytest.mark.asyncio
    async def test_upload_stage_empty(self, fake_provider, no_sleep, sample_markdown) -> None:
        orchestrator = _make_orchestrator(fake_provider, MagicMock(), no_sleep)
        orchestrator._engine = MagicMock(spec=RetrievalEngine)
        orchestrator._engine.upload = AsyncMock(return_value=UploadResult(success=True))

        report = await orchestrator.ingest([SourceDocument(content=sample_markdown, source="guide.md")])

        assert report.success is False
        assert report.errors[-1].phase == PipelinePhase.UPLOADING

    @pytest.mark.asyncio
    async def test_duplicates_reported(self, fake_provider, memory_store, no_sleep) -> None:
        text = "Restart the worker pool after every configuration change to the service."
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep)

        report = await orchestrator.ingest(
            [SourceDocument(content=text, source="a.txt"), SourceDocument(content=text, source="b.txt")]
        )

        assert report.success is True
        assert report.statistics.total_chunks == 2
        assert report.statistics.duplicates_skipped == 1
        assert report.statistics.total_uploaded == 1
        assert any("duplicate" in r for r in report.recommendations)
        assert any("Only 50%" in r for r in report.recommendations)

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, fake_provider, memory_store, no_sleep, sample_markdown) -> None:
        event = asyncio.Event()
        event.set()
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep)

        with pytest.raises(PipelineCancelledError):
            await orchestrator.ingest(
                [SourceDocument(content=sample_markdown, source="guide.md")], cancel_event=event, run_id="run-3"
            )

        status = orchestrator.tracker.get_status("run-3")
        assert status["phase"] == "FAILED"
        assert status["message"] == "Cancelled"
        assert await memory_store.count() == 0

    @pytest.mark.asyncio
    async def test_partial_embedding_failure_is_not_fatal(self, memory_store, no_sleep) -> None:
        provider = FakeEmbeddingProvider(fail_texts=("POISON",))
        orchestrator = _make_orchestrator(provider, memory_store, no_sleep)
        documents = [
            SourceDocument(content="Healthy document about release tooling and checks.", source="ok.txt"),
            SourceDocument(content="POISON document the provider always rejects.", source="bad.txt"),
        ]

        report = await orchestrator.ingest(documents)

        assert report.success is True
        assert report.statistics.total_uploaded == 1
        assert [e.kind for e in report.errors] == [IssueKind.EMBEDDING_RETRY_EXHAUSTED]
        assert [w.kind for w in report.warnings if w.kind != IssueKind.DOCUMENT_QUALITY] == [
            IssueKind.EMBEDDING_BATCH_FAILURE
        ]


class TestDocumentQuality:
    @pytest.mark.asyncio
    async def test_quality_findings_reported_as_warnings(self, fake_provider, memory_store, no_sleep) -> None:
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep)

        report = await orchestrator.ingest([SourceDocument(content="Short note about deploys.", source="note.txt")])

        assert report.success is True
        quality = [w for w in report.warnings if w.kind == IssueKind.DOCUMENT_QUALITY]
        assert "note.txt: Content too short" in [w.message for w in quality]
        assert all(w.phase == PipelinePhase.CHUNKING for w in quality)
        assert any(str(w) in report.statistics.quality_issues for w in quality)
        assert any("extraction quality" in r for r in report.recommendations)
        assert report.statistics.average_document_confidence < 1.0

    @pytest.mark.asyncio
    async def test_average_confidence_across_documents(self, fake_provider, memory_store, no_sleep) -> None:
        body = " ".join(f"the value{i} and" for i in range(40))
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep)

        report = await orchestrator.ingest(
            [
                SourceDocument(content=f"# Guide\n\n{body}", source="clean.md"),
                SourceDocument(content="Tiny.", source="tiny.txt"),
            ]
        )

        messages = [w.message for w in report.warnings if w.kind == IssueKind.DOCUMENT_QUALITY]
        assert messages
        assert all(m.startswith("tiny.txt: ") for m in messages)
        assert 0.0 < report.statistics.average_document_confidence < 1.0


class TestRecommendations:
    @pytest.mark.asyncio
    async def test_small_chunks_flagged(self, fake_provider, memory_store, no_sleep) -> None:
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep, min_tokens=100)

        report = await orchestrator.ingest([SourceDocument(content="A short note.", source="note.txt")])

        assert report.success is True
        assert any("min_tokens" in r for r in report.recommendations)

    @pytest.mark.asyncio
    async def test_degenerate_text_flagged(self, fake_provider, memory_store, no_sleep) -> None:
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep)
        giant = "y" * 4000

        report = await orchestrator.ingest([SourceDocument(content=f"lead in {giant}", source="blob.txt")])

        assert any(w.kind == IssueKind.CHUNKING_DEGENERATE for w in report.warnings)
        assert any("sentence boundaries" in r for r in report.recommendations)
        assert report.statistics.quality_issues


# ---------------------------------------------------------------------------
# Query and maintenance
# ---------------------------------------------------------------------------


class TestQuery:
    @pytest.mark.asyncio
    async def test_query_returns_ranked_results(self, fake_provider, memory_store, no_sleep, sample_markdown) -> None:
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep)
        await orchestrator.ingest([SourceDocument(content=sample_markdown, source="guide.md")])

        response = await orchestrator.query(
            "smoke tests fail roll back previous image", SearchOptions(threshold=0.0, limit=3)
        )

        assert response.query == "smoke tests fail roll back previous image"
        assert 0 < len(response.results) <= 3
        assert "Rollback" in response.results[0].content
        assert [r.rank for r in response.results] == list(range(1, len(response.results) + 1))
        assert response.tokens_used > 0

    @pytest.mark.asyncio
    async def test_stats_and_delete(self, fake_provider, memory_store, no_sleep, sample_markdown) -> None:
        orchestrator = _make_orchestrator(fake_provider, memory_store, no_sleep)
        await orchestrator.ingest([SourceDocument(content=sample_markdown, source="guide.md")])

        stats = await orchestrator.get_stats()
        assert stats.total_documents == 5
        assert stats.source_distribution == {"guide.md": 5}

        assert await orchestrator.delete_source("guide.md") == 5
        assert (await orchestrator.get_stats()).total_documents == 0
