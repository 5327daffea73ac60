"""Batched embedding generation with retry fallback and quality gating.

The generator has two tiers behind one interface:

* :meth:`EmbeddingGenerator.embed_batch` -- one request for a whole batch.
* :meth:`EmbeddingGenerator.embed_single_with_retry` -- one request per
  chunk, retried with exponential backoff.

Every batch is tried with ``embed_batch`` first.  When that fails, the
batch is recorded as an ``EmbeddingBatchFailure`` warning and each chunk is
embedded on its own with bounded parallelism.  A chunk that still fails
after ``max_retries`` retries becomes an ``EmbeddingRetryExhausted`` error;
the run continues with the remaining chunks.

Successful embeddings are quality-scored; those below the threshold are
dropped and reported as ``EmbeddingQualityRejected`` warnings.
"""

from __future__ import annotations

import asyncio
import re
import time
from typing import Awaitable, Callable

import structlog

from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.models.chunk import Chunk, ContentType, RelationshipType
from docrag.models.embedding import (
    Embedding,
    EmbeddingBatchResult,
    EmbeddingMetadata,
    EmbeddingOptions,
    EmbeddingResponse,
    EmbeddingStatistics,
    ProcessingInfo,
    RelationshipIds,
    StructureFlags,
)
from docrag.models.pipeline import IssueKind, IssueSeverity, PipelineIssue, PipelinePhase
from docrag.services.embedding.quality import (
    HIGH_QUALITY,
    LOW_QUALITY,
    score_embedding_quality,
)
from docrag.services.ingestion.metadata_extractor import MetadataExtractor
from docrag.services.ingestion.tokenizer import TokenCounter, estimate_tokens
from docrag.utils.concurrency import throttled_gather
from docrag.utils.errors import (
    EmbeddingBatchError,
    EmbeddingError,
    EmbeddingRetryExhaustedError,
    PipelineCancelledError,
    RateLimitError,
)
from docrag.utils.text_normalizer import collapse_whitespace, split_sentences

logger = structlog.get_logger(logger_name=__name__)

# USD per million tokens.
MODEL_PRICES: dict[str, float] = {
    "text-embedding-3-small": 0.02,
    "text-embedding-3-large": 0.13,
    "text-embedding-ada-002": 0.10,
}

_RETRYABLE = (EmbeddingError, RateLimitError)
_LIST_ITEM_RE = re.compile(r"^\s*[-*+]\s")

ProgressCallback = Callable[[int, int], None]


def estimate_cost(tokens: int, model: str) -> float:
    """Return the USD cost of embedding *tokens* with *model* (0 for unknown models)."""
    return tokens / 1_000_000 * MODEL_PRICES.get(model, 0.0)


class EmbeddingGenerator:
    """Turns chunks into quality-gated embeddings.

    Parameters
    ----------
    provider:
        The embedding capability.
    options:
        Batch size, retry policy, quality gate and pacing.
    token_counter:
        Counts tokens for text optimization and per-item token figures.
    extractor:
        Supplies entity and sentiment enrichment for embedding metadata.
    sleep:
        Awaitable sleep used for backoff and pacing; injectable for tests.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        options: EmbeddingOptions | None = None,
        token_counter: TokenCounter = estimate_tokens,
        extractor: MetadataExtractor | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._options = options or EmbeddingOptions()
        self._count = token_counter
        self._extractor = extractor or MetadataExtractor()
        self._sleep = sleep

    @property
    def options(self) -> EmbeddingOptions:
        return self._options

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        chunks: list[Chunk],
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> EmbeddingBatchResult:
        """Embed *chunks* batch by batch.

        Parameters
        ----------
        chunks:
            Chunks in document order.
        on_progress:
            Called with ``(processed, total)`` after every batch.
        cancel_event:
            Checked before every batch; when set,
            :class:`~docrag.utils.errors.PipelineCancelledError` is raised.
        """
        started = time.perf_counter()
        opts = self._options
        embeddings: list[Embedding] = []
        errors: list[PipelineIssue] = []
        warnings: list[PipelineIssue] = []
        total_tokens = 0
        rejected = 0

        batches = [chunks[i : i + opts.batch_size] for i in range(0, len(chunks), opts.batch_size)]
        processed = 0

        for batch_index, batch in enumerate(batches):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("embedding_cancelled", batch_index=batch_index, processed=processed)
                raise PipelineCancelledError(
                    message=f"Embedding cancelled before batch {batch_index}",
                )

            texts = [self.optimize_text(c.content) for c in batch]
            vectors: list[list[float] | None]

            try:
                response = await self.embed_batch(texts, batch_index=batch_index)
                vectors = list(response.vectors)
                total_tokens += response.tokens_used or sum(self._count(t) for t in texts)
            except EmbeddingBatchError as exc:
                logger.warning(
                    "embedding_batch_failed",
                    batch_index=batch_index,
                    batch_size=len(batch),
                    error=str(exc),
                )
                warnings.append(
                    PipelineIssue(
                        kind=IssueKind.EMBEDDING_BATCH_FAILURE,
                        message=f"Batch request failed, embedding chunks individually: {exc}",
                        severity=IssueSeverity.WARNING,
                        phase=PipelinePhase.EMBEDDING,
                        batch_index=batch_index,
                    )
                )
                vectors, tokens = await self._embed_individually(batch, texts, errors)
                total_tokens += tokens

            for chunk, text, vector in zip(batch, texts, vectors):
                if vector is None:
                    continue
                embedding = self._build_embedding(chunk, text, vector)
                if embedding.quality.overall < opts.quality_threshold:
                    rejected += 1
                    warnings.append(
                        PipelineIssue(
                            kind=IssueKind.EMBEDDING_QUALITY_REJECTED,
                            message=(
                                f"Quality {embedding.quality.overall:.3f} below "
                                f"threshold {opts.quality_threshold}"
                            ),
                            severity=IssueSeverity.WARNING,
                            phase=PipelinePhase.EMBEDDING,
                            chunk_id=chunk.id,
                        )
                    )
                    continue
                embeddings.append(embedding)

            processed += len(batch)
            if on_progress is not None:
                on_progress(processed, len(chunks))

            if batch_index < len(batches) - 1 and opts.inter_batch_delay > 0:
                await self._sleep(opts.inter_batch_delay)

        statistics = self._statistics(
            total_chunks=len(chunks),
            embeddings=embeddings,
            failed=len(errors),
            rejected=rejected,
            total_tokens=total_tokens,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )

        logger.info(
            "embedding_complete",
            chunks=len(chunks),
            embeddings=len(embeddings),
            failed=len(errors),
            rejected=rejected,
            tokens=total_tokens,
            cost=round(statistics.estimated_cost, 6),
        )
        return EmbeddingBatchResult(
            success=bool(embeddings),
            embeddings=embeddings,
            errors=errors,
            warnings=warnings,
            statistics=statistics,
        )

    async def embed_batch(
        self,
        texts: list[str],
        batch_index: int | None = None,
    ) -> EmbeddingResponse:
        """Embed *texts* in a single request.

        Raises
        ------
        EmbeddingBatchError
            If the request fails or returns a different number of vectors.
        """
        opts = self._options
        try:
            response = await self._provider.embed(texts, model=opts.model, dimensions=opts.dimensions)
        except _RETRYABLE as exc:
            raise EmbeddingBatchError(
                message=f"Batch embedding request failed: {exc.message}",
                provider_name=self._provider.get_provider_name(),
                batch_index=batch_index,
            ) from exc

        if len(response.vectors) != len(texts):
            raise EmbeddingBatchError(
                message=(
                    f"Expected {len(texts)} vectors, got {len(response.vectors)}"
                ),
                provider_name=self._provider.get_provider_name(),
                batch_index=batch_index,
            )
        return response

    async def embed_single_with_retry(self, text: str, chunk_id: str = "") -> EmbeddingResponse:
        """Embed one text, retrying with exponential backoff.

        Makes at most ``max_retries + 1`` attempts; the wait before retry
        *n* is ``retry_base_delay * 2 ** (n - 1)`` seconds.

        Raises
        ------
        EmbeddingRetryExhaustedError
            When every attempt failed.
        """
        opts = self._options
        attempt = 0
        last_error: Exception | None = None

        while attempt <= opts.max_retries:
            attempt += 1
            try:
                response = await self._provider.embed(
                    [text], model=opts.model, dimensions=opts.dimensions
                )
                if len(response.vectors) != 1:
                    raise EmbeddingError(
                        message=f"Expected 1 vector, got {len(response.vectors)}",
                        provider_name=self._provider.get_provider_name(),
                    )
                return response
            except _RETRYABLE as exc:
                last_error = exc
                if attempt > opts.max_retries:
                    break
                delay = opts.retry_base_delay * 2 ** (attempt - 1)
                logger.warning(
                    "embedding_retry",
                    chunk_id=chunk_id,
                    attempt=attempt,
                    delay=delay,
                    error=str(exc),
                )
                await self._sleep(delay)

        raise EmbeddingRetryExhaustedError(
            message=f"Embedding failed after {attempt} attempts: {last_error}",
            provider_name=self._provider.get_provider_name(),
            chunk_id=chunk_id,
            attempts=attempt,
        ) from last_error

    async def generate_query_embedding(self, text: str) -> EmbeddingResponse:
        """Embed a search query with the same text optimization as chunks."""
        return await self.embed_single_with_retry(self.optimize_text(text), chunk_id="query")

    def optimize_text(self, text: str) -> str:
        """Collapse whitespace and truncate to ``max_tokens_per_item``.

        Truncation keeps whole sentences when at least one fits, then whole
        words, then falls back to a character cut.
        """
        cleaned = collapse_whitespace(text)
        limit = self._options.max_tokens_per_item
        if self._count(cleaned) <= limit:
            return cleaned

        kept: list[str] = []
        for sentence in split_sentences(cleaned):
            if self._count(" ".join([*kept, sentence])) > limit:
                break
            kept.append(sentence)
        if kept:
            return " ".join(kept)

        for word in cleaned.split():
            if self._count(" ".join([*kept, word])) > limit:
                break
            kept.append(word)
        if kept:
            return " ".join(kept)

        return cleaned[: limit * 4]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _embed_individually(
        self,
        batch: list[Chunk],
        texts: list[str],
        errors: list[PipelineIssue],
    ) -> tuple[list[list[float] | None], int]:
        results = await throttled_gather(
            [self.embed_single_with_retry(text, chunk.id) for chunk, text in zip(batch, texts)],
            limit=self._options.max_concurrency,
        )

        vectors: list[list[float] | None] = []
        tokens = 0
        for chunk, text, result in zip(batch, texts, results):
            if isinstance(result, BaseException):
                logger.error("embedding_chunk_failed", chunk_id=chunk.id, error=str(result))
                errors.append(
                    PipelineIssue(
                        kind=IssueKind.EMBEDDING_RETRY_EXHAUSTED,
                        message=str(result),
                        severity=IssueSeverity.ERROR,
                        phase=PipelinePhase.EMBEDDING,
                        chunk_id=chunk.id,
                    )
                )
                vectors.append(None)
                continue
            vectors.append(result.vectors[0])
            tokens += result.tokens_used or self._count(text)
        return vectors, tokens

    def _build_embedding(self, chunk: Chunk, text: str, vector: list[float]) -> Embedding:
        opts = self._options
        tokens = self._count(text)
        quality = score_embedding_quality(
            chunk,
            text,
            tokens,
            max_tokens_per_item=opts.max_tokens_per_item,
            optimized=opts.optimize_for_retrieval,
        )
        return Embedding(
            id=f"emb_{chunk.id}",
            vector=vector,
            chunk_id=chunk.id,
            text=text,
            tokens=tokens,
            source=chunk.metadata.source,
            quality=quality,
            metadata=self._build_metadata(chunk),
        )

    def _build_metadata(self, chunk: Chunk) -> EmbeddingMetadata:
        is_heading = chunk.content_type == ContentType.HEADING
        parents = chunk.related_ids(RelationshipType.PARENT)
        return EmbeddingMetadata(
            chunk_id=chunk.id,
            content_type=chunk.content_type,
            importance=chunk.importance,
            position=chunk.position,
            title=chunk.metadata.title,
            section=chunk.metadata.section,
            keywords=chunk.metadata.keywords,
            topics=chunk.metadata.topics,
            entities=tuple(self._extractor.extract_entities(chunk.content)),
            sentiment=self._extractor.analyze_sentiment(chunk.content),
            structure=StructureFlags(
                is_header=is_heading,
                header_level=self._extractor.detect_header_level(chunk.content) if is_heading else None,
                list_item=bool(_LIST_ITEM_RE.match(chunk.content)),
                table_cell=chunk.content_type == ContentType.TABLE,
            ),
            relationships=RelationshipIds(
                parent_chunk=parents[0] if parents else None,
                child_chunks=tuple(chunk.related_ids(RelationshipType.CHILD)),
                sibling_chunks=tuple(chunk.related_ids(RelationshipType.SIBLING)),
                references=tuple(chunk.related_ids(RelationshipType.REFERENCE)),
            ),
            processing=ProcessingInfo(model=self._options.model, optimized=self._options.optimize_for_retrieval),
        )

    def _statistics(
        self,
        total_chunks: int,
        embeddings: list[Embedding],
        failed: int,
        rejected: int,
        total_tokens: int,
        elapsed_ms: float,
    ) -> EmbeddingStatistics:
        scores = [e.quality.overall for e in embeddings]
        return EmbeddingStatistics(
            total_chunks=total_chunks,
            successful_embeddings=len(embeddings),
            failed_embeddings=failed,
            rejected_low_quality=rejected,
            average_quality=round(sum(scores) / len(scores), 4) if scores else 0.0,
            high_quality_count=sum(1 for s in scores if s >= HIGH_QUALITY),
            low_quality_count=sum(1 for s in scores if s < LOW_QUALITY),
            total_tokens=total_tokens,
            estimated_cost=estimate_cost(total_tokens, self._options.model),
            processing_time_ms=round(elapsed_ms, 2),
        )
