"""Pipeline state models: phases, non-fatal issues and ingestion reports.

Stages never abort a run for a single failed chunk or batch.  Instead they
append :class:`PipelineIssue` records that travel back to the caller inside
the stage result and, finally, inside the :class:`IngestionReport`.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PipelinePhase(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Phases of an ingestion run, in execution order."""

    CHUNKING = "CHUNKING"
    EMBEDDING = "EMBEDDING"
    UPLOADING = "UPLOADING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class IssueSeverity(str, Enum):  # noqa: UP042
    WARNING = "warning"
    ERROR = "error"


class IssueKind(str, Enum):  # noqa: UP042
    """Named failure modes that are reported instead of raised."""

    DOCUMENT_QUALITY = "DocumentQuality"
    CHUNKING_DEGENERATE = "ChunkingDegenerate"
    EMBEDDING_BATCH_FAILURE = "EmbeddingBatchFailure"
    EMBEDDING_RETRY_EXHAUSTED = "EmbeddingRetryExhausted"
    EMBEDDING_QUALITY_REJECTED = "EmbeddingQualityRejected"
    UPLOAD_BATCH_FAILURE = "UploadBatchFailure"
    DUPLICATE_CONTENT = "DuplicateContent"
    RETRIEVAL_RPC_UNAVAILABLE = "RetrievalRpcUnavailable"
    STAGE_EMPTY = "StageEmpty"


class PipelineIssue(BaseModel):
    """A non-fatal error or warning surfaced to the caller."""

    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    message: str
    severity: IssueSeverity = IssueSeverity.WARNING
    phase: PipelinePhase | None = None
    chunk_id: str | None = None
    batch_index: int | None = None

    def __str__(self) -> str:
        where = ""
        if self.chunk_id:
            where = f" (chunk {self.chunk_id})"
        elif self.batch_index is not None:
            where = f" (batch {self.batch_index})"
        return f"{self.kind.value}: {self.message}{where}"


class ProcessingStatistics(BaseModel):
    """Aggregate numbers for one ingestion run."""

    model_config = ConfigDict(frozen=True)

    total_documents: int = 0
    total_chunks: int = 0
    average_chunk_size: float = 0.0
    average_document_confidence: float = 0.0
    importance_distribution: dict[str, int] = Field(default_factory=dict)
    content_type_distribution: dict[str, int] = Field(default_factory=dict)
    total_embeddings: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    average_quality: float = 0.0
    total_uploaded: int = 0
    duplicates_skipped: int = 0
    failed_uploads: int = 0
    success_rate: float = 0.0
    processing_time_ms: float = 0.0
    quality_issues: list[str] = Field(default_factory=list)


class IngestionReport(BaseModel):
    """Final result of :meth:`RAGOrchestrator.ingest`."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    phase: PipelinePhase
    uploaded_ids: list[str] = Field(default_factory=list)
    statistics: ProcessingStatistics = Field(default_factory=ProcessingStatistics)
    errors: list[PipelineIssue] = Field(default_factory=list)
    warnings: list[PipelineIssue] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
