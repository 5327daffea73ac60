"""Utility modules for docrag.

- **errors** -- Domain exception hierarchy rooted at DocRAGError.
- **concurrency** -- semaphore-throttled ``asyncio.gather`` used for the
  per-chunk embedding fallback.
- **logging** -- structlog setup with console or JSON rendering; chatty
  client libraries are held at WARNING.
- **text_normalizer** -- extracted-text cleanup, sentence splitting and
  duplicate-detection keys.
"""

from docrag.utils.concurrency import throttled_gather
from docrag.utils.errors import (
    ConfigurationError,
    DocRAGError,
    EmbeddingBatchError,
    EmbeddingError,
    EmbeddingRetryExhaustedError,
    PipelineCancelledError,
    PipelineError,
    RateLimitError,
    RetrievalRpcUnavailableError,
    StageEmptyError,
    UploadBatchError,
    VectorStoreError,
)
from docrag.utils.logging import configure_logging
from docrag.utils.text_normalizer import (
    collapse_whitespace,
    normalize_document_text,
    normalize_for_key,
    split_sentences,
)

__all__ = [
    "ConfigurationError",
    "DocRAGError",
    "EmbeddingBatchError",
    "EmbeddingError",
    "EmbeddingRetryExhaustedError",
    "PipelineCancelledError",
    "PipelineError",
    "RateLimitError",
    "RetrievalRpcUnavailableError",
    "StageEmptyError",
    "UploadBatchError",
    "VectorStoreError",
    "collapse_whitespace",
    "configure_logging",
    "normalize_document_text",
    "normalize_for_key",
    "split_sentences",
    "throttled_gather",
]
