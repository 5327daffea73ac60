"""Abstract base class for text-embedding service providers.

Defines the narrow capability the embedding generator consumes: turn a list
of texts into vectors, in order.  Batching policy, retries, quality gating
and cost accounting all live in
:class:`~docrag.services.embedding.generator.EmbeddingGenerator`; providers
only translate one request into one backend call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docrag.models.embedding import EmbeddingResponse


# Concrete implementation: OpenAIEmbeddingProvider (docrag/providers/embedding/)
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the pipeline."""

    @abstractmethod
    async def embed(
        self,
        texts: list[str],
        model: str | None = None,
        dimensions: int | None = None,
    ) -> EmbeddingResponse:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.
        model:
            Model identifier; ``None`` uses the provider's default.
        dimensions:
            Requested vector dimensionality; ``None`` uses the model default.

        Returns
        -------
        EmbeddingResponse
            ``vectors`` correspond positionally to *texts*; ``tokens_used``
            is the total billed for the request.

        Raises
        ------
        docrag.utils.errors.EmbeddingError
            If the embedding API call fails.
        docrag.utils.errors.RateLimitError
            If the provider reports a rate limit.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the default dimensionality of the embedding vectors."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
