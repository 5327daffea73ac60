"""Embedding data models produced by the embedding generator.

An :class:`Embedding` pairs exactly one chunk with its vector, a
:class:`EmbeddingQuality` score breakdown, and :class:`EmbeddingMetadata`
that is persisted alongside the vector so the retrieval engine can filter,
re-rank and boost without touching the original chunk.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from docrag.models.chunk import ChunkPosition, ContentType
from docrag.models.pipeline import PipelineIssue


class EmbeddingQuality(BaseModel):
    """Weighted quality breakdown of a single embedding; every field is in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    text_quality: float = Field(ge=0.0, le=1.0)
    semantic_coherence: float = Field(ge=0.0, le=1.0)
    information_density: float = Field(ge=0.0, le=1.0)
    uniqueness: float = Field(ge=0.0, le=1.0)
    retrieval_optimization: float = Field(ge=0.0, le=1.0)
    overall: float = Field(ge=0.0, le=1.0)


class StructureFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_header: bool = False
    header_level: int | None = None
    list_item: bool = False
    table_cell: bool = False


class RelationshipIds(BaseModel):
    model_config = ConfigDict(frozen=True)

    parent_chunk: str | None = None
    child_chunks: tuple[str, ...] = ()
    sibling_chunks: tuple[str, ...] = ()
    references: tuple[str, ...] = ()


class ProcessingInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    version: str = "1.0.0"
    optimized: bool = True


class EmbeddingMetadata(BaseModel):
    """Everything about the originating chunk that retrieval needs later."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    content_type: ContentType = ContentType.PARAGRAPH
    importance: float = Field(default=0.6, ge=0.0, le=1.0)
    position: ChunkPosition
    title: str = ""
    section: str = ""
    keywords: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()
    entities: tuple[str, ...] = ()
    sentiment: float = Field(default=0.0, ge=-1.0, le=1.0)
    structure: StructureFlags = Field(default_factory=StructureFlags)
    relationships: RelationshipIds = Field(default_factory=RelationshipIds)
    processing: ProcessingInfo


class Embedding(BaseModel):
    """A chunk's vector plus its quality score and retrieval metadata."""

    model_config = ConfigDict(frozen=True)

    id: str
    vector: tuple[float, ...]
    chunk_id: str
    text: str = Field(description="Optimized text that was actually embedded.")
    tokens: int = Field(ge=0)
    source: str
    quality: EmbeddingQuality
    metadata: EmbeddingMetadata


class EmbeddingOptions(BaseModel):
    """Immutable embedding generator configuration."""

    model_config = ConfigDict(frozen=True)

    model: str = "text-embedding-3-small"
    dimensions: int = Field(default=1536, gt=0)
    batch_size: int = Field(default=50, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0.0, description="Seconds before the first retry.")
    quality_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens_per_item: int = Field(default=512, gt=0)
    inter_batch_delay: float = Field(default=0.1, ge=0.0, description="Seconds between batches.")
    max_concurrency: int = Field(default=5, gt=0)
    optimize_for_retrieval: bool = True


class EmbeddingResponse(BaseModel):
    """Raw result of one call to the embedding capability."""

    model_config = ConfigDict(frozen=True)

    vectors: list[list[float]]
    tokens_used: int = Field(default=0, ge=0)


class EmbeddingStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_chunks: int = 0
    successful_embeddings: int = 0
    failed_embeddings: int = 0
    rejected_low_quality: int = 0
    average_quality: float = 0.0
    high_quality_count: int = 0
    low_quality_count: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    processing_time_ms: float = 0.0


class EmbeddingBatchResult(BaseModel):
    """Outcome of embedding a chunk list: kept embeddings plus issues."""

    model_config = ConfigDict(frozen=True)

    success: bool
    embeddings: list[Embedding] = Field(default_factory=list)
    errors: list[PipelineIssue] = Field(default_factory=list)
    warnings: list[PipelineIssue] = Field(default_factory=list)
    statistics: EmbeddingStatistics = Field(default_factory=EmbeddingStatistics)
