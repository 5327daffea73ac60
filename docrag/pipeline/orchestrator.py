"""Central orchestrator for the three-stage ingestion pipeline.

Runs chunking, embedding and upload strictly in sequence for a document
set, threading the outputs of each stage into the next and broadcasting
progress through the injected :class:`ProgressTracker`.

Stages report per-chunk and per-batch failures as
:class:`~docrag.models.pipeline.PipelineIssue` records instead of raising.
A run only fails outright when a whole stage produces nothing: no chunks
for any document, no embedding for any chunk, or no uploaded row.
Each stage signals that case with :class:`~docrag.utils.errors.StageEmptyError`,
which :meth:`RAGOrchestrator.ingest` turns into a failed report.  Document
quality findings from the structure parser are reported as
``DocumentQuality`` warnings.

Overall progress is split across stages: chunking covers 0-30%,
embedding 30-80% and upload 80-100%.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import Counter

import structlog

from docrag.models.chunk import Chunk
from docrag.models.document import DocumentStructure, SourceDocument
from docrag.models.embedding import EmbeddingBatchResult, EmbeddingStatistics
from docrag.models.pipeline import (
    IngestionReport,
    IssueKind,
    IssueSeverity,
    PipelineIssue,
    PipelinePhase,
    ProcessingStatistics,
)
from docrag.models.retrieval import DatabaseStats, QueryResponse, SearchOptions, UploadResult
from docrag.pipeline.progress_tracker import ProgressTracker
from docrag.services.embedding.generator import EmbeddingGenerator
from docrag.services.ingestion.chunker import SemanticChunker
from docrag.services.retrieval.retrieval_engine import RetrievalEngine
from docrag.utils.errors import PipelineCancelledError, StageEmptyError

logger = structlog.get_logger(logger_name=__name__)

_CHUNKING_SPAN = (0.0, 30.0)
_EMBEDDING_SPAN = (30.0, 80.0)
_UPLOADING_SPAN = (80.0, 100.0)

_LOW_AVERAGE_QUALITY = 0.7
_LOW_SUCCESS_RATE = 0.9

_QUALITY_ISSUE_KINDS = (
    IssueKind.DOCUMENT_QUALITY,
    IssueKind.CHUNKING_DEGENERATE,
    IssueKind.EMBEDDING_QUALITY_REJECTED,
)


def _importance_bucket(importance: float) -> str:
    if importance >= 0.8:
        return "high"
    if importance >= 0.5:
        return "medium"
    return "low"


def _quality_issues(structure: DocumentStructure) -> list[PipelineIssue]:
    """One warning per document-quality issue or warning of *structure*."""
    quality = structure.quality
    return [
        PipelineIssue(
            kind=IssueKind.DOCUMENT_QUALITY,
            message=f"{structure.source}: {text}",
            severity=IssueSeverity.WARNING,
            phase=PipelinePhase.CHUNKING,
        )
        for text in (*quality.issues, *quality.warnings)
    ]


class RAGOrchestrator:
    """Coordinates chunker, embedding generator and retrieval engine.

    All collaborators are injected; :func:`docrag.main.build_pipeline`
    wires them from settings.
    """

    def __init__(
        self,
        chunker: SemanticChunker,
        generator: EmbeddingGenerator,
        engine: RetrievalEngine,
        tracker: ProgressTracker | None = None,
    ) -> None:
        self._chunker = chunker
        self._generator = generator
        self._engine = engine
        self._tracker = tracker or ProgressTracker()

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(
        self,
        documents: list[SourceDocument],
        cancel_event: asyncio.Event | None = None,
        run_id: str | None = None,
    ) -> IngestionReport:
        """Chunk, embed and upload *documents*.

        Parameters
        ----------
        documents:
            Extracted documents (``content`` + ``source``).
        cancel_event:
            Checked between batches by the embedding and upload stages.
        run_id:
            Identifier for progress updates; generated when omitted.

        Returns
        -------
        IngestionReport
            ``success`` is ``False`` only when a stage produced no output.

        Raises
        ------
        PipelineCancelledError
            If *cancel_event* is set while a stage is running.
        """
        run_id = run_id or uuid.uuid4().hex
        started = time.perf_counter()
        errors: list[PipelineIssue] = []
        warnings: list[PipelineIssue] = []
        chunks: list[Chunk] = []
        confidences: list[float] = []
        embedded: EmbeddingBatchResult | None = None
        uploaded: UploadResult | None = None

        logger.info("ingestion_started", run_id=run_id, documents=len(documents))

        try:
            # Stage 1: chunking
            self._tracker.update(run_id, PipelinePhase.CHUNKING, _CHUNKING_SPAN[0], "Chunking documents")
            for index, document in enumerate(documents):
                structure = self._chunker.parse_document(document)
                confidences.append(structure.quality.confidence)
                warnings.extend(_quality_issues(structure))
                result = self._chunker.chunk_structure(structure)
                chunks.extend(result.chunks)
                warnings.extend(result.warnings)
                self._report(run_id, PipelinePhase.CHUNKING, _CHUNKING_SPAN, index + 1, len(documents))

            if not chunks:
                raise StageEmptyError("No chunks were produced", phase=PipelinePhase.CHUNKING)

            # Stage 2: embedding
            self._tracker.update(run_id, PipelinePhase.EMBEDDING, _EMBEDDING_SPAN[0], "Generating embeddings")
            embedded = await self._generator.generate(
                chunks,
                on_progress=lambda done, total: self._report(
                    run_id, PipelinePhase.EMBEDDING, _EMBEDDING_SPAN, done, total
                ),
                cancel_event=cancel_event,
            )
            errors.extend(embedded.errors)
            warnings.extend(embedded.warnings)

            if not embedded.embeddings:
                raise StageEmptyError("No embeddings were generated", phase=PipelinePhase.EMBEDDING)

            # Stage 3: upload
            self._tracker.update(run_id, PipelinePhase.UPLOADING, _UPLOADING_SPAN[0], "Uploading embeddings")
            uploaded = await self._engine.upload(
                embedded.embeddings,
                on_progress=lambda done, total: self._report(
                    run_id, PipelinePhase.UPLOADING, _UPLOADING_SPAN, done, total
                ),
                cancel_event=cancel_event,
            )
            errors.extend(uploaded.errors)

            if uploaded.uploaded == 0:
                raise StageEmptyError("No embeddings were uploaded", phase=PipelinePhase.UPLOADING)
        except PipelineCancelledError:
            self._tracker.update(run_id, PipelinePhase.FAILED, 0.0, "Cancelled")
            logger.info("ingestion_cancelled", run_id=run_id)
            raise
        except StageEmptyError as exc:
            stats = self._statistics(
                documents, chunks, confidences,
                embedded.statistics if embedded is not None else None,
                uploaded, warnings, started,
            )
            return self._fail(run_id, exc, errors, warnings, stats)

        stats = self._statistics(documents, chunks, confidences, embedded.statistics, uploaded, warnings, started)

        message = (
            f"Ingested {len(documents)} documents: {len(chunks)} chunks, "
            f"{uploaded.uploaded} uploaded, {uploaded.duplicates_skipped} duplicates skipped"
        )
        self._tracker.update(run_id, PipelinePhase.COMPLETE, 100.0, message)
        logger.info(
            "ingestion_complete",
            run_id=run_id,
            chunks=len(chunks),
            uploaded=uploaded.uploaded,
            errors=len(errors),
            warnings=len(warnings),
            duration_ms=stats.processing_time_ms,
        )
        return IngestionReport(
            success=True,
            message=message,
            phase=PipelinePhase.COMPLETE,
            uploaded_ids=uploaded.uploaded_ids,
            statistics=stats,
            errors=errors,
            warnings=warnings,
            recommendations=self._recommendations(stats, warnings),
        )

    # ------------------------------------------------------------------
    # Query and maintenance
    # ------------------------------------------------------------------

    async def query(self, text: str, options: SearchOptions | None = None) -> QueryResponse:
        """Embed *text* and return ranked matches from the store."""
        started = time.perf_counter()
        response = await self._generator.generate_query_embedding(text)
        results = await self._engine.search(list(response.vectors[0]), options)
        elapsed = round((time.perf_counter() - started) * 1000, 2)
        logger.info("query_complete", results=len(results), tokens=response.tokens_used, duration_ms=elapsed)
        return QueryResponse(
            query=text,
            results=results,
            tokens_used=response.tokens_used,
            processing_time_ms=elapsed,
        )

    async def get_stats(self) -> DatabaseStats:
        return await self._engine.get_stats()

    async def delete_source(self, source: str) -> int:
        return await self._engine.delete_by_source(source)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _report(
        self,
        run_id: str,
        phase: PipelinePhase,
        span: tuple[float, float],
        done: int,
        total: int,
    ) -> None:
        start, end = span
        fraction = done / total if total else 1.0
        self._tracker.update(run_id, phase, start + (end - start) * fraction, f"{done}/{total}")

    def _fail(
        self,
        run_id: str,
        exc: StageEmptyError,
        errors: list[PipelineIssue],
        warnings: list[PipelineIssue],
        stats: ProcessingStatistics,
    ) -> IngestionReport:
        phase = PipelinePhase(exc.phase)
        message = exc.message
        errors = [
            *errors,
            PipelineIssue(
                kind=IssueKind.STAGE_EMPTY,
                message=message,
                severity=IssueSeverity.ERROR,
                phase=phase,
            ),
        ]
        self._tracker.update(run_id, PipelinePhase.FAILED, 0.0, message)
        logger.error("ingestion_failed", run_id=run_id, phase=phase.value, reason=message, errors=len(errors))
        return IngestionReport(
            success=False,
            message=message,
            phase=PipelinePhase.FAILED,
            statistics=stats,
            errors=errors,
            warnings=warnings,
            recommendations=self._recommendations(stats, warnings),
        )

    @staticmethod
    def _statistics(
        documents: list[SourceDocument],
        chunks: list[Chunk],
        confidences: list[float],
        embedding_stats: EmbeddingStatistics | None,
        upload_result: UploadResult | None,
        warnings: list[PipelineIssue],
        started: float,
    ) -> ProcessingStatistics:
        embedding_stats = embedding_stats or EmbeddingStatistics()
        importance = Counter(_importance_bucket(c.importance) for c in chunks)
        content_types = Counter(c.content_type.value for c in chunks)
        uploaded = upload_result.uploaded if upload_result is not None else 0
        quality_issues = [str(w) for w in warnings if w.kind in _QUALITY_ISSUE_KINDS]
        return ProcessingStatistics(
            total_documents=len(documents),
            total_chunks=len(chunks),
            average_chunk_size=round(sum(c.token_count for c in chunks) / len(chunks), 2) if chunks else 0.0,
            average_document_confidence=(
                round(sum(confidences) / len(confidences), 4) if confidences else 0.0
            ),
            importance_distribution={k: importance.get(k, 0) for k in ("high", "medium", "low")},
            content_type_distribution=dict(content_types),
            total_embeddings=embedding_stats.successful_embeddings,
            total_tokens=embedding_stats.total_tokens,
            estimated_cost=embedding_stats.estimated_cost,
            average_quality=embedding_stats.average_quality,
            total_uploaded=uploaded,
            duplicates_skipped=upload_result.duplicates_skipped if upload_result is not None else 0,
            failed_uploads=upload_result.failed if upload_result is not None else 0,
            success_rate=round(uploaded / len(chunks), 4) if chunks else 0.0,
            processing_time_ms=round((time.perf_counter() - started) * 1000, 2),
            quality_issues=quality_issues,
        )

    def _recommendations(self, stats: ProcessingStatistics, warnings: list[PipelineIssue]) -> list[str]:
        recommendations: list[str] = []
        config = self._chunker.config
        if stats.total_embeddings and stats.average_quality < _LOW_AVERAGE_QUALITY:
            recommendations.append(
                "Average embedding quality is low; review source text quality and chunk sizes."
            )
        if stats.total_chunks and stats.average_chunk_size < config.min_tokens:
            recommendations.append(
                "Chunks are smaller than min_tokens on average; consider lowering min_tokens "
                "or merging short sections in the source."
            )
        if any(w.kind == IssueKind.DOCUMENT_QUALITY for w in warnings):
            recommendations.append(
                "Some documents scored low on extraction quality; check the source files "
                "and the text extraction step."
            )
        if any(w.kind == IssueKind.CHUNKING_DEGENERATE for w in warnings):
            recommendations.append(
                "Some text had no sentence boundaries and was split by words; "
                "preprocess long unpunctuated passages."
            )
        if stats.duplicates_skipped:
            recommendations.append(
                f"{stats.duplicates_skipped} duplicate chunks were skipped; "
                "check the input set for repeated content."
            )
        if stats.failed_uploads:
            recommendations.append(
                f"{stats.failed_uploads} embeddings failed to upload; retry the failed batches."
            )
        if stats.total_chunks and stats.success_rate < _LOW_SUCCESS_RATE:
            recommendations.append(
                f"Only {stats.success_rate:.0%} of chunks were stored; inspect errors and warnings."
            )
        return recommendations
