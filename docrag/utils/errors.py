"""Custom exception hierarchy for docrag.

All package exceptions inherit from :class:`DocRAGError`, which carries an
optional ``provider_name`` so handlers can tell which backend (e.g.
"openai_embedding", "chromadb", "memory") caused the failure.

    DocRAGError  (base -- catch-all for any docrag error)
    +-- ConfigurationError            (invalid or missing config)
    +-- RateLimitError                (provider rate limit exceeded)
    +-- EmbeddingError                (embedding capability call failed)
    |   +-- EmbeddingBatchError       (one batch request failed)
    |   +-- EmbeddingRetryExhaustedError (single-chunk retries used up)
    +-- VectorStoreError              (vector store operation failed)
    |   +-- UploadBatchError          (one insert batch failed)
    |   +-- RetrievalRpcUnavailableError (server-side match not available)
    +-- PipelineError                 (orchestration failure)
        +-- PipelineCancelledError    (cancel event observed)
        +-- StageEmptyError           (a stage produced nothing)

Most of these are caught inside the pipeline and recorded as
:class:`~docrag.models.pipeline.PipelineIssue` entries rather than
propagated; only a stage that produces nothing at all is fatal.
"""


class DocRAGError(Exception):
    """Base exception for all docrag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider in brackets,
    e.g. ``[openai_embedding] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


class ConfigurationError(DocRAGError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(DocRAGError):
    """Raised when a provider rate limit is exceeded.

    The embedding generator treats this like any other transient failure
    and backs off before retrying.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding errors
# ---------------------------------------------------------------------------

class EmbeddingError(DocRAGError):
    """Raised when the embedding capability fails or returns a bad response."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingBatchError(EmbeddingError):
    """Raised when a whole embedding batch fails.

    The generator recovers by embedding each chunk of the batch on its own.
    """

    def __init__(
        self,
        message: str = "Embedding batch failed",
        provider_name: str | None = None,
        batch_index: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._batch_index = batch_index

    @property
    def batch_index(self) -> int | None:
        return self._batch_index


class EmbeddingRetryExhaustedError(EmbeddingError):
    """Raised when a single chunk still fails after every retry attempt."""

    def __init__(
        self,
        message: str = "Embedding retries exhausted",
        provider_name: str | None = None,
        chunk_id: str | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._chunk_id = chunk_id
        self._attempts = attempts

    @property
    def chunk_id(self) -> str | None:
        return self._chunk_id

    @property
    def attempts(self) -> int:
        return self._attempts


# ---------------------------------------------------------------------------
# Vector store errors
# ---------------------------------------------------------------------------

class VectorStoreError(DocRAGError):
    """Raised when a vector store operation fails."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UploadBatchError(VectorStoreError):
    """Raised when inserting one upload batch fails; other batches proceed."""

    def __init__(
        self,
        message: str = "Upload batch failed",
        provider_name: str | None = None,
        batch_index: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._batch_index = batch_index

    @property
    def batch_index(self) -> int | None:
        return self._batch_index


class RetrievalRpcUnavailableError(VectorStoreError):
    """Raised when the store cannot run a server-side similarity match.

    The retrieval engine catches this and falls back to a client-side
    cosine scan over stored rows.
    """

    def __init__(
        self,
        message: str = "Similarity search RPC is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration errors
# ---------------------------------------------------------------------------

class PipelineError(DocRAGError):
    """Raised when pipeline orchestration fails."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PipelineCancelledError(PipelineError):
    """Raised between batches once the caller has set the cancel event."""

    def __init__(
        self,
        message: str = "Pipeline run was cancelled",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StageEmptyError(PipelineError):
    """Raised when a pipeline stage produces no output at all.

    The orchestrator turns it into a failed :class:`IngestionReport` whose
    last error names the stage.
    """

    def __init__(
        self,
        message: str = "Pipeline stage produced no output",
        provider_name: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._phase = phase

    @property
    def phase(self) -> str | None:
        return self._phase
