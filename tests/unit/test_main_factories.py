"""Unit tests for factory functions in docrag/main.py.

Tests the embedding provider and vector store selection and the
build_pipeline assembly, with injected fakes so no network calls or API
keys are required.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from docrag.config.settings import Settings
from docrag.main import _build_embedding_provider, _build_vector_store, build_pipeline
from docrag.models.document import SourceDocument
from docrag.pipeline.orchestrator import RAGOrchestrator
from docrag.providers.vector_store.memory_provider import InMemoryVectorStore
from docrag.utils.errors import ConfigurationError
from tests.conftest import FakeEmbeddingProvider

_CONFIG_PATH = str(Path(__file__).resolve().parents[2] / "config" / "config.yaml")


def _settings(**overrides) -> Settings:
    """Build a Settings instance isolated from any local ``.env`` file."""
    defaults = {
        "openai_api_key": "",
        "openai_base_url": "",
        "vector_store_backend": "memory",
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


# ======================================================================
# _build_embedding_provider
# ======================================================================


class TestBuildEmbeddingProvider:
    def test_missing_key_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            _build_embedding_provider(_settings())

    def test_openai_provider_with_key(self) -> None:
        provider = _build_embedding_provider(_settings(openai_api_key="sk-test"))
        assert provider.get_provider_name() == "openai_embedding"
        assert provider.is_available() is True


# ======================================================================
# _build_vector_store
# ======================================================================


class TestBuildVectorStore:
    def test_memory_backend(self) -> None:
        assert isinstance(_build_vector_store(_settings()), InMemoryVectorStore)

    def test_chromadb_backend(self, tmp_path) -> None:
        store = _build_vector_store(
            _settings(vector_store_backend="chromadb", chromadb_persist_dir=str(tmp_path / "chroma"))
        )
        assert store.get_provider_name() == "chromadb"

    def test_unknown_backend(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown vector store backend"):
            _build_vector_store(_settings(vector_store_backend="pinecone"))


# ======================================================================
# build_pipeline
# ======================================================================


class TestBuildPipeline:
    def test_returns_all_services(self) -> None:
        services = build_pipeline(
            custom_settings=_settings(),
            config_path=_CONFIG_PATH,
            embedding_provider=FakeEmbeddingProvider(),
        )

        assert set(services) == {"config", "chunker", "generator", "engine", "progress_tracker", "orchestrator"}
        assert isinstance(services["orchestrator"], RAGOrchestrator)
        assert services["orchestrator"].tracker is services["progress_tracker"]
        assert services["chunker"].config == services["config"].chunking

    def test_settings_override_yaml(self) -> None:
        services = build_pipeline(
            custom_settings=_settings(chunk_max_tokens=300, search_threshold=0.5),
            config_path=_CONFIG_PATH,
            embedding_provider=FakeEmbeddingProvider(),
        )
        assert services["config"].chunking.max_tokens == 300
        assert services["engine"].search_options.threshold == 0.5

    def test_missing_key_without_injected_provider(self) -> None:
        with pytest.raises(ConfigurationError):
            build_pipeline(custom_settings=_settings(), config_path=_CONFIG_PATH)

    @pytest.mark.asyncio
    async def test_pipeline_ingests_with_fakes(self, sample_markdown: str) -> None:
        store = InMemoryVectorStore()
        services = build_pipeline(
            custom_settings=_settings(
                embedding_dimensions=64,
                embedding_quality_threshold=0.0,
                embedding_inter_batch_delay=0.0,
                upload_inter_batch_delay=0.0,
            ),
            config_path=_CONFIG_PATH,
            embedding_provider=FakeEmbeddingProvider(),
            vector_store=store,
        )

        report = await services["orchestrator"].ingest(
            [SourceDocument(content=sample_markdown, source="guide.md")]
        )

        assert report.success is True
        assert await store.count() == report.statistics.total_uploaded
