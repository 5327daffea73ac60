"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports real OpenAI and OpenAI-compatible endpoints via a custom
``base_url``.  One :meth:`embed` call maps to exactly one API request; the
embedding generator owns batching and retries.
"""

from __future__ import annotations

import openai
import structlog

from docrag.config.settings import Settings
from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.models.embedding import EmbeddingResponse
from docrag.utils.errors import EmbeddingError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# Only the text-embedding-3 family accepts a ``dimensions`` argument.
_SUPPORTS_DIMENSIONS = frozenset({"text-embedding-3-small", "text-embedding-3-large"})


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {"api_key": self._api_key}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._dimension = settings.embedding_dimensions or _MODEL_DIMENSIONS.get(self._model, 1536)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: list[str],
        model: str | None = None,
        dimensions: int | None = None,
    ) -> EmbeddingResponse:
        """Embed *texts* with a single ``embeddings.create`` request."""
        if not texts:
            return EmbeddingResponse(vectors=[], tokens_used=0)

        model_name = model or self._model
        request: dict = {"input": texts, "model": model_name}
        if model_name in _SUPPORTS_DIMENSIONS:
            request["dimensions"] = dimensions or self._dimension

        try:
            response = await self._client.embeddings.create(**request)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limited: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        # The API may return items out of order; ``index`` is authoritative.
        items = list(response.data)
        if all(isinstance(getattr(item, "index", None), int) for item in items):
            items.sort(key=lambda item: item.index)
        vectors = [list(item.embedding) for item in items]
        tokens = response.usage.total_tokens if response.usage else 0

        logger.info(
            "openai_embedding_batch",
            model=model_name,
            provider=self._provider_label,
            batch_size=len(texts),
            tokens=tokens,
        )
        return EmbeddingResponse(vectors=vectors, tokens_used=tokens or 0)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)
