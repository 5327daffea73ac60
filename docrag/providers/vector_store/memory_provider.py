"""In-process vector store backed by a numpy matrix.

Useful for tests, notebooks and short-lived sessions where persistence is
not needed.  Rows keep insertion order so :meth:`scan` pages are stable.

With ``enable_match=False`` the store behaves like a backend without a
similarity-search RPC: :meth:`match` raises
:class:`~docrag.utils.errors.RetrievalRpcUnavailableError` and callers must
fall back to scanning.
"""

from __future__ import annotations

import numpy as np
import structlog

from docrag.interfaces.vector_store_provider import IVectorStoreProvider
from docrag.models.retrieval import StoredMatch, VectorRecord
from docrag.services.retrieval.ranking import cosine_similarities
from docrag.utils.errors import RetrievalRpcUnavailableError, VectorStoreError

logger = structlog.get_logger(logger_name=__name__)


class InMemoryVectorStore(IVectorStoreProvider):
    """Vector store provider holding every row in process memory."""

    def __init__(self, enable_match: bool = True) -> None:
        self._enable_match = enable_match
        self._records: dict[str, VectorRecord] = {}
        # Row matrix rebuilt lazily after mutations.
        self._matrix: np.ndarray | None = None
        self._matrix_ids: list[str] = []

    async def insert(self, records: list[VectorRecord]) -> list[str]:
        if not records:
            return []
        dims = {len(r.embedding) for r in records}
        if self._records:
            dims.add(len(next(iter(self._records.values())).embedding))
        if len(dims) > 1:
            raise VectorStoreError(
                message=f"Embedding dimension mismatch in insert: {sorted(dims)}",
                provider_name=self.get_provider_name(),
            )

        for record in records:
            self._records[record.id] = record
        self._matrix = None
        return [r.id for r in records]

    async def match(
        self,
        query_embedding: list[float],
        threshold: float,
        count: int,
    ) -> list[StoredMatch]:
        if not self._enable_match:
            raise RetrievalRpcUnavailableError(provider_name=self.get_provider_name())
        if not self._records or count <= 0:
            return []

        matrix, ids = self._get_matrix()
        query = np.asarray(query_embedding, dtype=np.float64)
        if query.shape[0] != matrix.shape[1]:
            raise VectorStoreError(
                message=(
                    f"Query dimension {query.shape[0]} does not match "
                    f"stored dimension {matrix.shape[1]}"
                ),
                provider_name=self.get_provider_name(),
            )

        scores = cosine_similarities(matrix, query)

        order = np.argsort(-scores, kind="stable")
        matches: list[StoredMatch] = []
        for idx in order:
            score = float(scores[idx])
            if score < threshold:
                break
            matches.append(StoredMatch(record=self._records[ids[idx]], similarity=score))
            if len(matches) >= count:
                break
        return matches

    async def scan(self, limit: int, offset: int = 0) -> list[VectorRecord]:
        rows = list(self._records.values())
        return rows[offset : offset + limit]

    async def delete_by_source(self, source: str) -> int:
        doomed = [rid for rid, r in self._records.items() if r.source == source]
        for rid in doomed:
            del self._records[rid]
        if doomed:
            self._matrix = None
        logger.info("memory_delete_by_source", source=source, deleted_count=len(doomed))
        return len(doomed)

    async def count(self) -> int:
        return len(self._records)

    def get_provider_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return True

    def _get_matrix(self) -> tuple[np.ndarray, list[str]]:
        if self._matrix is None:
            self._matrix_ids = list(self._records.keys())
            self._matrix = np.asarray(
                [self._records[rid].embedding for rid in self._matrix_ids],
                dtype=np.float64,
            )
        return self._matrix, self._matrix_ids
