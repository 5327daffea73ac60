"""ChromaDB vector store provider adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorStoreProvider`.
The collection uses a cosine HNSW index, so ``1 - distance`` is the cosine
similarity and the index query plays the role of the similarity-search RPC.
Fully local; no external service required.

ChromaDB metadata values must be scalars, so each row stores the full
embedding metadata as a JSON string under ``metadata_json`` next to a few
flat fields (``source``, ``created_at``, ``content_type``) that can be used
in ``where`` clauses.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any

# Turn off anonymized telemetry before chromadb is imported.
os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
import structlog

from docrag.interfaces.vector_store_provider import IVectorStoreProvider
from docrag.models.retrieval import StoredMatch, VectorRecord
from docrag.utils.errors import VectorStoreError

logger = structlog.get_logger(logger_name=__name__)

_INCLUDE_ALL = ["documents", "metadatas", "embeddings"]


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    docrag always passes pre-computed vectors, so ChromaDB's built-in
    embedding is never invoked.  Without this ChromaDB downloads its default
    ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "docrag uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB with local persistence."""

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "docrag_chunks",
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        # Collections created by an older ChromaDB with the default embedding
        # function reject a different one; reopen them without it.
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def insert(self, records: list[VectorRecord]) -> list[str]:
        """Upsert *records* in one ChromaDB call."""
        if not records:
            return []
        try:
            self._collection.upsert(
                ids=[r.id for r in records],
                embeddings=[list(r.embedding) for r in records],
                documents=[r.content for r in records],
                metadatas=[self._record_to_metadata(r) for r in records],
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB insert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("chromadb_insert", count=len(records))
        return [r.id for r in records]

    async def match(
        self,
        query_embedding: list[float],
        threshold: float,
        count: int,
    ) -> list[StoredMatch]:
        """Query the cosine HNSW index and keep rows at or above *threshold*."""
        try:
            total = self._collection.count()
            if total == 0 or count <= 0:
                return []

            results = self._collection.query(
                query_embeddings=[list(query_embedding)],
                n_results=min(count, total),
                include=[*_INCLUDE_ALL, "distances"],
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results.get("ids") else []
        documents = _first_or_empty(results.get("documents"), len(ids))
        metadatas = _first_or_empty(results.get("metadatas"), len(ids))
        embeddings = _first_or_empty(results.get("embeddings"), len(ids))
        distances = _first_or_empty(results.get("distances"), len(ids))

        matches: list[StoredMatch] = []
        for row_id, doc, meta, emb, distance in zip(
            ids, documents, metadatas, embeddings, distances
        ):
            similarity = 1.0 - float(distance if distance is not None else 1.0)
            if similarity < threshold:
                continue
            record = self._row_to_record(row_id, doc, meta, emb)
            matches.append(StoredMatch(record=record, similarity=similarity))

        logger.debug(
            "chromadb_match",
            requested=count,
            returned=len(matches),
            threshold=threshold,
        )
        return matches

    async def scan(self, limit: int, offset: int = 0) -> list[VectorRecord]:
        """Return one page of rows with their embeddings."""
        try:
            page = self._collection.get(limit=limit, offset=offset, include=_INCLUDE_ALL)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB scan failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = page.get("ids") or []
        documents = _column(page.get("documents"), len(ids))
        metadatas = _column(page.get("metadatas"), len(ids))
        embeddings = _column(page.get("embeddings"), len(ids))
        return [
            self._row_to_record(row_id, doc, meta, emb)
            for row_id, doc, meta, emb in zip(ids, documents, metadatas, embeddings)
        ]

    async def delete_by_source(self, source: str) -> int:
        """Delete all rows originating from *source*."""
        try:
            existing = self._collection.get(where={"source": source}, include=["metadatas"])
            count = len(existing["ids"]) if existing["ids"] else 0
            if count > 0:
                self._collection.delete(where={"source": source})
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB delete_by_source failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_delete_by_source", source=source, deleted_count=count)
        return count

    async def count(self) -> int:
        try:
            return self._collection.count()
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB count failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB client can reach its collection."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _record_to_metadata(record: VectorRecord) -> dict[str, Any]:
        quality = record.metadata.get("quality") or {}
        return {
            "source": record.source,
            "created_at": record.created_at.isoformat(),
            "content_type": str(record.metadata.get("content_type", "paragraph")),
            "importance": float(record.metadata.get("importance", 0.0) or 0.0),
            "overall_quality": float(quality.get("overall", 0.0) or 0.0),
            "metadata_json": json.dumps(record.metadata, default=str),
        }

    @staticmethod
    def _row_to_record(
        row_id: str,
        document: str | None,
        meta: dict[str, Any] | None,
        embedding: Any,
    ) -> VectorRecord:
        meta = meta or {}
        raw_json = meta.get("metadata_json")
        metadata = json.loads(raw_json) if raw_json else {}

        created_raw = meta.get("created_at")
        created_at = (
            datetime.fromisoformat(created_raw)
            if created_raw
            else datetime.now(tz=timezone.utc)
        )

        return VectorRecord(
            id=row_id,
            content=document or "",
            embedding=[float(v) for v in embedding] if embedding is not None else [],
            source=str(meta.get("source", "")),
            metadata=metadata,
            created_at=created_at,
        )


def _first_or_empty(column: Any, size: int) -> list[Any]:
    """Return the first query's column from a ChromaDB ``query`` result."""
    if column is None or len(column) == 0:
        return [None] * size
    return list(column[0])


def _column(column: Any, size: int) -> list[Any]:
    """Return a ``get`` result column, padded with ``None`` when not included."""
    if column is None:
        return [None] * size
    return list(column)
