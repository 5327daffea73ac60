"""Retrieval data models: persisted vector records, search options and results.

:class:`VectorRecord` mirrors the storage schema ``{id, content, embedding,
source, metadata, created_at}``.  The ``metadata`` dict is the JSON form of
:class:`~docrag.models.embedding.EmbeddingMetadata` plus the embedding's
quality breakdown under ``"quality"``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from docrag.models.chunk import ContentType
from docrag.models.pipeline import PipelineIssue


DEFAULT_CONTENT_TYPE_BOOSTS: dict[ContentType, float] = {
    ContentType.HEADING: 1.4,
    ContentType.PARAGRAPH: 1.0,
    ContentType.LIST: 1.1,
    ContentType.TABLE: 1.2,
    ContentType.CODE: 1.3,
}


def _assume_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to a timezone-less *value*; stored timestamps are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class VectorRecord(BaseModel):
    """A stored embedding row."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    embedding: tuple[float, ...]
    source: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return _assume_utc(value)

    @property
    def content_type(self) -> str:
        return str(self.metadata.get("content_type", ContentType.PARAGRAPH.value))

    @property
    def importance(self) -> float:
        return float(self.metadata.get("importance", 0.0) or 0.0)

    @property
    def overall_quality(self) -> float:
        quality = self.metadata.get("quality") or {}
        return float(quality.get("overall", 0.0) or 0.0)


class StoredMatch(BaseModel):
    """A record returned by the store's similarity search, with its cosine score."""

    model_config = ConfigDict(frozen=True)

    record: VectorRecord
    similarity: float


class SearchResult(BaseModel):
    """One ranked search hit."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    source: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    similarity: float = Field(description="Raw cosine similarity to the query vector.")
    relevance_score: float = Field(description="Final score after re-ranking and boosts.")
    rank: int = Field(ge=1)
    created_at: datetime


class BoostFactors(BaseModel):
    """Score multipliers applied after re-ranking and diversification.

    ``quality`` scales ``1 + (overall_quality - 0.5) * quality`` for records
    that carry a quality score; the default of zero disables it.
    """

    model_config = ConfigDict(frozen=True)

    content_type: dict[ContentType, float] = Field(
        default_factory=lambda: dict(DEFAULT_CONTENT_TYPE_BOOSTS)
    )
    source: dict[str, float] = Field(default_factory=dict)
    quality: float = Field(default=0.0, ge=0.0)


class SearchFilters(BaseModel):
    """Client-side metadata filters; an empty field imposes no constraint.

    Timezone-less ``created_after`` / ``created_before`` bounds are read as UTC.
    """

    model_config = ConfigDict(frozen=True)

    sources: tuple[str, ...] = ()
    content_types: tuple[ContentType, ...] = ()
    min_quality: float | None = None
    min_importance: float | None = None
    topics: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    created_after: datetime | None = None
    created_before: datetime | None = None

    @field_validator("created_after", "created_before")
    @classmethod
    def _bounds_utc(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)


class SearchOptions(BaseModel):
    """Immutable query configuration."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(default=10, gt=0)
    threshold: float = Field(default=0.78, ge=-1.0, le=1.0)
    rerank: bool = True
    diversify: bool = True
    diversity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    boost_factors: BoostFactors = Field(default_factory=BoostFactors)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    candidate_multiplier: int = Field(default=2, ge=1)
    recency_window_days: int = Field(default=30, ge=0)
    fallback_scan_limit: int | None = Field(
        default=None,
        gt=0,
        description="Maximum rows the client-side fallback scan reads; None scans everything.",
    )


class UploadOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(default=100, gt=0)
    inter_batch_delay: float = Field(default=0.05, ge=0.0)
    deduplicate: bool = True
    quality_threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class UploadStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_documents: int = 0
    total_tokens: int = 0
    average_quality: float = 0.0
    processing_time_ms: float = 0.0
    duplicates_skipped: int = 0
    quality_distribution: dict[str, int] = Field(
        default_factory=lambda: {"high": 0, "medium": 0, "low": 0}
    )


class UploadResult(BaseModel):
    """Outcome of :meth:`RetrievalEngine.upload`."""

    model_config = ConfigDict(frozen=True)

    success: bool
    uploaded: int = 0
    failed: int = 0
    duplicates_skipped: int = 0
    rejected_low_quality: int = 0
    uploaded_ids: list[str] = Field(default_factory=list)
    errors: list[PipelineIssue] = Field(default_factory=list)
    statistics: UploadStatistics = Field(default_factory=UploadStatistics)


class DatabaseStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_documents: int = 0
    total_sources: int = 0
    average_quality: float = 0.0
    content_type_distribution: dict[str, int] = Field(default_factory=dict)
    source_distribution: dict[str, int] = Field(default_factory=dict)
    quality_distribution: dict[str, int] = Field(
        default_factory=lambda: {"high": 0, "medium": 0, "low": 0}
    )


class QueryResponse(BaseModel):
    """Result of an end-to-end query: embed, search, rank."""

    model_config = ConfigDict(frozen=True)

    query: str
    results: list[SearchResult] = Field(default_factory=list)
    tokens_used: int = 0
    processing_time_ms: float = 0.0
