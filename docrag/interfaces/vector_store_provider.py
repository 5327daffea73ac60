"""Abstract base class for vector-store service providers.

Mirrors the storage capability the retrieval engine relies on: a table of
``{id, content, embedding, source, metadata, created_at}`` rows, an
optional server-side similarity search, and a raw paginated scan used when
that search is not available.  Deduplication, filtering, re-ranking and
diversification happen in
:class:`~docrag.services.retrieval.retrieval_engine.RetrievalEngine`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docrag.models.retrieval import StoredMatch, VectorRecord


# Concrete implementations (docrag/providers/vector_store/):
#   ChromaDBProvider     -- persistent, cosine HNSW index as the similarity search
#   InMemoryVectorStore  -- numpy-backed, process-local
class IVectorStoreProvider(ABC):
    """Contract for vector-store services used by the retrieval engine.

    All methods are async to support network-backed stores without
    blocking the event loop.
    """

    @abstractmethod
    async def insert(self, records: list[VectorRecord]) -> list[str]:
        """Insert *records* in a single request.

        Returns
        -------
        list[str]
            Ids of the inserted rows, in input order.

        Raises
        ------
        docrag.utils.errors.VectorStoreError
            If the insert fails; no partial success is reported.
        """

    @abstractmethod
    async def match(
        self,
        query_embedding: list[float],
        threshold: float,
        count: int,
    ) -> list[StoredMatch]:
        """Run the server-side similarity search.

        Parameters
        ----------
        query_embedding:
            The query vector.
        threshold:
            Minimum cosine similarity a row must reach.
        count:
            Maximum number of rows to return.

        Returns
        -------
        list[StoredMatch]
            Rows ordered by descending similarity.

        Raises
        ------
        docrag.utils.errors.RetrievalRpcUnavailableError
            If the store cannot run a similarity search; callers fall back
            to :meth:`scan`.
        """

    @abstractmethod
    async def scan(self, limit: int, offset: int = 0) -> list[VectorRecord]:
        """Return up to *limit* rows starting at *offset*, embeddings included."""

    @abstractmethod
    async def delete_by_source(self, source: str) -> int:
        """Delete every row whose ``source`` equals *source*; return the count."""

    @abstractmethod
    async def count(self) -> int:
        """Return the total number of stored rows."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is configured and reachable."""
