"""Pydantic v2 data models for docrag.

All models are frozen; updates go through ``model_copy(update={...})``.

- **document** -- SourceDocument, Section, DocumentStructure, DocumentQuality
- **chunk** -- Chunk and its metadata, relationships, ChunkingConfig
- **embedding** -- Embedding, quality breakdown, generator options/results
- **retrieval** -- VectorRecord, search options/filters/results, upload results
- **pipeline** -- phases, PipelineIssue, IngestionReport
"""

from docrag.models.chunk import (
    Chunk,
    ChunkingConfig,
    ChunkingResult,
    ChunkingStrategy,
    ChunkMetadata,
    ChunkPosition,
    ChunkRelationship,
    Complexity,
    ContentType,
    RelationshipType,
)
from docrag.models.document import DocumentQuality, DocumentStructure, Section, SourceDocument
from docrag.models.embedding import (
    Embedding,
    EmbeddingBatchResult,
    EmbeddingMetadata,
    EmbeddingOptions,
    EmbeddingQuality,
    EmbeddingResponse,
    EmbeddingStatistics,
)
from docrag.models.pipeline import (
    IngestionReport,
    IssueKind,
    IssueSeverity,
    PipelineIssue,
    PipelinePhase,
    ProcessingStatistics,
)
from docrag.models.retrieval import (
    BoostFactors,
    DatabaseStats,
    QueryResponse,
    SearchFilters,
    SearchOptions,
    SearchResult,
    StoredMatch,
    UploadOptions,
    UploadResult,
    UploadStatistics,
    VectorRecord,
)

__all__ = [
    "BoostFactors",
    "Chunk",
    "ChunkMetadata",
    "ChunkPosition",
    "ChunkRelationship",
    "ChunkingConfig",
    "ChunkingResult",
    "ChunkingStrategy",
    "Complexity",
    "ContentType",
    "DatabaseStats",
    "DocumentQuality",
    "DocumentStructure",
    "Embedding",
    "EmbeddingBatchResult",
    "EmbeddingMetadata",
    "EmbeddingOptions",
    "EmbeddingQuality",
    "EmbeddingResponse",
    "EmbeddingStatistics",
    "IngestionReport",
    "IssueKind",
    "IssueSeverity",
    "PipelineIssue",
    "PipelinePhase",
    "ProcessingStatistics",
    "QueryResponse",
    "RelationshipType",
    "SearchFilters",
    "SearchOptions",
    "SearchResult",
    "Section",
    "SourceDocument",
    "StoredMatch",
    "UploadOptions",
    "UploadResult",
    "UploadStatistics",
    "VectorRecord",
]
