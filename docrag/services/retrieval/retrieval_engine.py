"""Persistence and similarity search over stored embeddings.

**Upload** deduplicates embeddings by normalized-content hash, converts
them to :class:`~docrag.models.retrieval.VectorRecord` rows and inserts
them in batches.  A failing batch is counted and reported; the remaining
batches still run.

**Search** follows a fixed sequence:

1. Candidates from the store's similarity search (``limit x
   candidate_multiplier`` rows).  If the store has no such search, a
   client-side cosine scan over paginated rows replaces it.
2. Threshold and metadata filters.
3. Optional re-ranking by importance, quality and recency.
4. Optional greedy diversification (token Jaccard).
5. Content-type and source boosts.
6. Sort by final score, drop duplicate ids, truncate to ``limit``.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Awaitable, Callable

import numpy as np
import structlog

from docrag.interfaces.vector_store_provider import IVectorStoreProvider
from docrag.models.embedding import Embedding
from docrag.models.pipeline import IssueKind, IssueSeverity, PipelineIssue, PipelinePhase
from docrag.models.retrieval import (
    DatabaseStats,
    SearchFilters,
    SearchOptions,
    SearchResult,
    UploadOptions,
    UploadResult,
    UploadStatistics,
    VectorRecord,
)
from docrag.services.embedding.quality import quality_bucket
from docrag.services.retrieval.hashing import hash_content
from docrag.services.retrieval.ranking import (
    ScoredCandidate,
    boost_multiplier,
    cosine_similarities,
    diversify,
    rerank_score,
)
from docrag.utils.errors import (
    PipelineCancelledError,
    RetrievalRpcUnavailableError,
    UploadBatchError,
    VectorStoreError,
)

logger = structlog.get_logger(logger_name=__name__)

SCAN_PAGE_SIZE = 500

ProgressCallback = Callable[[int, int], None]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class RetrievalEngine:
    """Uploads embeddings to a vector store and ranks search results.

    Parameters
    ----------
    store:
        The vector store capability.
    upload_options:
        Defaults for :meth:`upload`.
    search_options:
        Defaults for :meth:`search`.
    clock:
        Returns the current UTC time; used for ``created_at`` stamps and
        the recency re-rank.
    sleep:
        Awaitable sleep for inter-batch pacing; injectable for tests.
    scan_page_size:
        Rows per page in the fallback scan and in :meth:`get_stats`.
    """

    def __init__(
        self,
        store: IVectorStoreProvider,
        upload_options: UploadOptions | None = None,
        search_options: SearchOptions | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        scan_page_size: int = SCAN_PAGE_SIZE,
    ) -> None:
        self._store = store
        self._upload_options = upload_options or UploadOptions()
        self._search_options = search_options or SearchOptions()
        self._clock = clock
        self._sleep = sleep
        self._scan_page_size = scan_page_size

    @property
    def search_options(self) -> SearchOptions:
        return self._search_options

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(
        self,
        embeddings: list[Embedding],
        options: UploadOptions | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> UploadResult:
        """Deduplicate and insert *embeddings* in batches.

        Duplicates are detected across the whole call: the first embedding
        with a given content hash is kept, later ones are counted as
        skipped.
        """
        started = time.perf_counter()
        opts = options or self._upload_options

        seen: set[str] = set()
        unique: list[tuple[Embedding, str]] = []
        duplicates = 0
        rejected = 0

        for embedding in embeddings:
            if opts.quality_threshold is not None and embedding.quality.overall < opts.quality_threshold:
                rejected += 1
                continue
            key = hash_content(embedding.text)
            if opts.deduplicate:
                if key in seen:
                    duplicates += 1
                    logger.debug("upload_duplicate_skipped", embedding_id=embedding.id, content_hash=key)
                    continue
                seen.add(key)
            unique.append((embedding, key))

        created_at = self._clock()
        records = [self._to_record(e, key, created_at) for e, key in unique]
        tokens_by_id = {r.id: e.tokens for r, (e, _) in zip(records, unique)}
        quality_by_id = {r.id: e.quality.overall for r, (e, _) in zip(records, unique)}

        uploaded_ids: list[str] = []
        errors: list[PipelineIssue] = []
        failed = 0
        batches = [
            records[i : i + opts.batch_size] for i in range(0, len(records), opts.batch_size)
        ]

        for batch_index, batch in enumerate(batches):
            if cancel_event is not None and cancel_event.is_set():
                raise PipelineCancelledError(message=f"Upload cancelled before batch {batch_index}")
            try:
                ids = await self._store.insert(batch)
                uploaded_ids.extend(ids)
            except VectorStoreError as exc:
                failed += len(batch)
                batch_error = UploadBatchError(
                    message=f"Failed to insert {len(batch)} records: {exc.message}",
                    provider_name=exc.provider_name,
                    batch_index=batch_index,
                )
                logger.error(
                    "upload_batch_failed",
                    batch_index=batch_index,
                    batch_size=len(batch),
                    error=str(batch_error),
                )
                errors.append(
                    PipelineIssue(
                        kind=IssueKind.UPLOAD_BATCH_FAILURE,
                        message=str(batch_error),
                        severity=IssueSeverity.ERROR,
                        phase=PipelinePhase.UPLOADING,
                        batch_index=batch_index,
                    )
                )

            if on_progress is not None:
                on_progress(min((batch_index + 1) * opts.batch_size, len(records)), len(records))
            if batch_index < len(batches) - 1 and opts.inter_batch_delay > 0:
                await self._sleep(opts.inter_batch_delay)

        qualities = [quality_by_id[i] for i in uploaded_ids if i in quality_by_id]
        distribution = Counter(quality_bucket(q) for q in qualities)
        statistics = UploadStatistics(
            total_documents=len(uploaded_ids),
            total_tokens=sum(tokens_by_id.get(i, 0) for i in uploaded_ids),
            average_quality=round(sum(qualities) / len(qualities), 4) if qualities else 0.0,
            processing_time_ms=round((time.perf_counter() - started) * 1000, 2),
            duplicates_skipped=duplicates,
            quality_distribution={
                "high": distribution.get("high", 0),
                "medium": distribution.get("medium", 0),
                "low": distribution.get("low", 0),
            },
        )

        logger.info(
            "upload_complete",
            uploaded=len(uploaded_ids),
            failed=failed,
            duplicates_skipped=duplicates,
            rejected_low_quality=rejected,
        )
        return UploadResult(
            success=failed == 0,
            uploaded=len(uploaded_ids),
            failed=failed,
            duplicates_skipped=duplicates,
            rejected_low_quality=rejected,
            uploaded_ids=uploaded_ids,
            errors=errors,
            statistics=statistics,
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query_vector: list[float],
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Return up to ``limit`` ranked results for *query_vector*.

        Results are sorted by ``relevance_score`` descending, carry unique
        ids and ranks ``1..n``.
        """
        opts = options or self._search_options
        candidate_count = opts.limit * opts.candidate_multiplier

        try:
            matches = await self._store.match(list(query_vector), opts.threshold, candidate_count)
            pairs = [(m.record, m.similarity) for m in matches]
        except RetrievalRpcUnavailableError as exc:
            logger.warning(
                "retrieval_rpc_unavailable",
                provider=self._store.get_provider_name(),
                error=str(exc),
                scan_limit=opts.fallback_scan_limit,
            )
            pairs = await self._fallback_scan(query_vector, opts.threshold, candidate_count, opts.fallback_scan_limit)

        candidates = [
            ScoredCandidate(record=record, similarity=similarity, score=similarity)
            for record, similarity in pairs
            if similarity >= opts.threshold and self._passes_filters(record, opts.filters)
        ]

        if opts.rerank:
            now = self._clock()
            for candidate in candidates:
                candidate.score = rerank_score(
                    candidate.similarity,
                    candidate.record.importance,
                    candidate.record.overall_quality,
                    candidate.record.created_at,
                    now,
                    opts.recency_window_days,
                )

        candidates.sort(key=lambda c: (-c.score, c.record.id))
        if opts.diversify and opts.diversity_threshold > 0:
            candidates = diversify(candidates, opts.diversity_threshold)

        for candidate in candidates:
            candidate.score *= boost_multiplier(candidate.record, opts.boost_factors)

        candidates.sort(key=lambda c: (-c.score, c.record.id))
        results: list[SearchResult] = []
        seen_ids: set[str] = set()
        for candidate in candidates:
            if candidate.record.id in seen_ids:
                continue
            seen_ids.add(candidate.record.id)
            results.append(
                SearchResult(
                    id=candidate.record.id,
                    content=candidate.record.content,
                    source=candidate.record.source,
                    metadata=candidate.record.metadata,
                    similarity=candidate.similarity,
                    relevance_score=candidate.score,
                    rank=len(results) + 1,
                    created_at=candidate.record.created_at,
                )
            )
            if len(results) >= opts.limit:
                break

        logger.info(
            "search_complete",
            candidates=len(pairs),
            returned=len(results),
            top_score=results[0].relevance_score if results else 0.0,
        )
        return results

    async def _fallback_scan(
        self,
        query_vector: list[float],
        threshold: float,
        count: int,
        scan_limit: int | None,
    ) -> list[tuple[VectorRecord, float]]:
        """Client-side cosine scan over stored rows, page by page."""
        query = np.asarray(query_vector, dtype=np.float64)
        scored: list[tuple[VectorRecord, float]] = []
        offset = 0
        skipped = 0

        while scan_limit is None or offset < scan_limit:
            page_size = self._scan_page_size
            if scan_limit is not None:
                page_size = min(page_size, scan_limit - offset)
            page = await self._store.scan(limit=page_size, offset=offset)
            if not page:
                break

            usable = [r for r in page if len(r.embedding) == query.shape[0]]
            skipped += len(page) - len(usable)
            if usable:
                matrix = np.asarray([r.embedding for r in usable], dtype=np.float64)
                for record, score in zip(usable, cosine_similarities(matrix, query)):
                    if score >= threshold:
                        scored.append((record, float(score)))

            offset += len(page)
            if len(page) < page_size:
                break

        if skipped:
            logger.warning("fallback_scan_dimension_mismatch", skipped=skipped)
        logger.debug("fallback_scan_complete", scanned=offset, matched=len(scored))

        scored.sort(key=lambda pair: (-pair[1], pair[0].id))
        return scored[:count]

    @staticmethod
    def _passes_filters(record: VectorRecord, filters: SearchFilters) -> bool:
        if filters.sources and record.source not in filters.sources:
            return False
        if filters.content_types and record.content_type not in {t.value for t in filters.content_types}:
            return False
        if filters.min_quality is not None and record.overall_quality < filters.min_quality:
            return False
        if filters.min_importance is not None and record.importance < filters.min_importance:
            return False
        if filters.topics and not set(filters.topics) & set(record.metadata.get("topics") or ()):
            return False
        if filters.keywords:
            wanted = {k.lower() for k in filters.keywords}
            if not wanted & {k.lower() for k in record.metadata.get("keywords") or ()}:
                return False
        if filters.created_after is not None and record.created_at < filters.created_after:
            return False
        if filters.created_before is not None and record.created_at > filters.created_before:
            return False
        return True

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def delete_by_source(self, source: str) -> int:
        deleted = await self._store.delete_by_source(source)
        logger.info("source_deleted", source=source, deleted=deleted)
        return deleted

    async def get_stats(self) -> DatabaseStats:
        """Aggregate counts and distributions over every stored row."""
        content_types: Counter[str] = Counter()
        sources: Counter[str] = Counter()
        buckets: Counter[str] = Counter()
        quality_total = 0.0
        total = 0
        offset = 0

        while True:
            page = await self._store.scan(limit=self._scan_page_size, offset=offset)
            if not page:
                break
            for record in page:
                total += 1
                content_types[record.content_type] += 1
                sources[record.source] += 1
                quality_total += record.overall_quality
                buckets[quality_bucket(record.overall_quality)] += 1
            offset += len(page)
            if len(page) < self._scan_page_size:
                break

        return DatabaseStats(
            total_documents=total,
            total_sources=len(sources),
            average_quality=round(quality_total / total, 4) if total else 0.0,
            content_type_distribution=dict(content_types),
            source_distribution=dict(sources),
            quality_distribution={
                "high": buckets.get("high", 0),
                "medium": buckets.get("medium", 0),
                "low": buckets.get("low", 0),
            },
        )

    async def health_check(self) -> dict[str, object]:
        """Report store availability and row count."""
        available = self._store.is_available()
        count = await self._store.count() if available else 0
        return {
            "provider": self._store.get_provider_name(),
            "available": available,
            "count": count,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_record(embedding: Embedding, content_hash: str, created_at: datetime) -> VectorRecord:
        metadata = embedding.metadata.model_dump(mode="json")
        metadata.update(
            {
                "embedding_id": embedding.id,
                "tokens": embedding.tokens,
                "content_hash": content_hash,
                "quality": embedding.quality.model_dump(mode="json"),
            }
        )
        return VectorRecord(
            id=str(uuid.uuid4()),
            content=embedding.text,
            embedding=embedding.vector,
            source=embedding.source,
            metadata=metadata,
            created_at=created_at,
        )
