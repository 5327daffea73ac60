"""Unit tests for the numpy-backed InMemoryVectorStore."""

from __future__ import annotations

import pytest

from docrag.models.retrieval import VectorRecord
from docrag.providers.vector_store.memory_provider import InMemoryVectorStore
from docrag.utils.errors import RetrievalRpcUnavailableError, VectorStoreError
from tests.conftest import FIXED_NOW


def _make_record(record_id: str, embedding: tuple[float, ...], source: str = "a.md") -> VectorRecord:
    return VectorRecord(
        id=record_id,
        content=f"content of {record_id}",
        embedding=embedding,
        source=source,
        created_at=FIXED_NOW,
    )


_ROWS = [
    _make_record("x", (1.0, 0.0, 0.0)),
    _make_record("xy", (1.0, 1.0, 0.0)),
    _make_record("z", (0.0, 0.0, 1.0), source="b.md"),
]


class TestInsert:
    @pytest.mark.asyncio
    async def test_insert_and_count(self) -> None:
        store = InMemoryVectorStore()
        assert await store.insert(_ROWS) == ["x", "xy", "z"]
        assert await store.count() == 3

    @pytest.mark.asyncio
    async def test_insert_empty(self) -> None:
        store = InMemoryVectorStore()
        assert await store.insert([]) == []
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_dimension_mismatch_rejected(self) -> None:
        store = InMemoryVectorStore()
        await store.insert(_ROWS[:1])
        with pytest.raises(VectorStoreError, match="dimension mismatch"):
            await store.insert([_make_record("bad", (1.0, 0.0))])
        assert await store.count() == 1


class TestMatch:
    @pytest.mark.asyncio
    async def test_ordered_by_similarity(self) -> None:
        store = InMemoryVectorStore()
        await store.insert(_ROWS)

        matches = await store.match([1.0, 0.0, 0.0], threshold=0.0, count=10)

        assert [m.record.id for m in matches] == ["x", "xy", "z"]
        assert matches[0].similarity == pytest.approx(1.0)
        assert matches[1].similarity == pytest.approx(0.7071, abs=1e-4)

    @pytest.mark.asyncio
    async def test_threshold_and_count(self) -> None:
        store = InMemoryVectorStore()
        await store.insert(_ROWS)

        assert [m.record.id for m in await store.match([1.0, 0.0, 0.0], 0.5, 10)] == ["x", "xy"]
        assert [m.record.id for m in await store.match([1.0, 0.0, 0.0], 0.0, 1)] == ["x"]

    @pytest.mark.asyncio
    async def test_query_dimension_mismatch(self) -> None:
        store = InMemoryVectorStore()
        await store.insert(_ROWS)
        with pytest.raises(VectorStoreError):
            await store.match([1.0, 0.0], 0.0, 5)

    @pytest.mark.asyncio
    async def test_empty_store(self) -> None:
        assert await InMemoryVectorStore().match([1.0, 0.0, 0.0], 0.0, 5) == []

    @pytest.mark.asyncio
    async def test_disabled_match_raises(self) -> None:
        store = InMemoryVectorStore(enable_match=False)
        await store.insert(_ROWS)
        with pytest.raises(RetrievalRpcUnavailableError):
            await store.match([1.0, 0.0, 0.0], 0.0, 5)


class TestScanAndDelete:
    @pytest.mark.asyncio
    async def test_scan_pages_in_insertion_order(self) -> None:
        store = InMemoryVectorStore()
        await store.insert(_ROWS)

        assert [r.id for r in await store.scan(limit=2)] == ["x", "xy"]
        assert [r.id for r in await store.scan(limit=2, offset=2)] == ["z"]
        assert await store.scan(limit=2, offset=4) == []

    @pytest.mark.asyncio
    async def test_delete_by_source(self) -> None:
        store = InMemoryVectorStore()
        await store.insert(_ROWS)

        assert await store.delete_by_source("a.md") == 2
        assert await store.delete_by_source("missing.md") == 0
        matches = await store.match([0.0, 0.0, 1.0], 0.0, 5)
        assert [m.record.id for m in matches] == ["z"]

    def test_provider_identity(self) -> None:
        store = InMemoryVectorStore()
        assert store.get_provider_name() == "memory"
        assert store.is_available() is True
