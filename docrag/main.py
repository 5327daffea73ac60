"""docrag entry point: wires providers and services from settings.

Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and assembles a :class:`RAGOrchestrator` with every
dependency injected.
"""

from __future__ import annotations

from typing import Any

import structlog

from docrag.config.loader import load_pipeline_config
from docrag.config.settings import Settings
from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.interfaces.vector_store_provider import IVectorStoreProvider
from docrag.pipeline.orchestrator import RAGOrchestrator
from docrag.pipeline.progress_tracker import ProgressTracker
from docrag.services.embedding.generator import EmbeddingGenerator
from docrag.services.ingestion.chunker import SemanticChunker
from docrag.services.ingestion.metadata_extractor import MetadataExtractor
from docrag.services.ingestion.structure_parser import StructureParser
from docrag.services.ingestion.tokenizer import build_token_counter
from docrag.services.retrieval.retrieval_engine import RetrievalEngine
from docrag.utils.errors import ConfigurationError
from docrag.utils.logging import configure_logging

logger = structlog.get_logger(logger_name=__name__)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Return the OpenAI (or OpenAI-compatible) embedding provider.

    Raises
    ------
    ConfigurationError
        If no API key is configured.
    """
    from docrag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

    provider = OpenAIEmbeddingProvider(settings=app_settings)
    if not provider.is_available():
        raise ConfigurationError(
            message="OPENAI_API_KEY is not set; no embedding provider is available",
            provider_name=provider.get_provider_name(),
        )
    return provider


def _build_vector_store(app_settings: Settings) -> IVectorStoreProvider:
    """Select the vector store named by ``vector_store_backend``."""
    backend = app_settings.vector_store_backend.lower()
    if backend == "memory":
        from docrag.providers.vector_store.memory_provider import InMemoryVectorStore

        return InMemoryVectorStore()
    if backend == "chromadb":
        # Imported lazily: chromadb is slow to import.
        from docrag.providers.vector_store.chromadb_provider import ChromaDBProvider

        return ChromaDBProvider(
            persist_directory=app_settings.chromadb_persist_dir,
            collection_name=app_settings.chromadb_collection,
        )
    raise ConfigurationError(
        message=(
            f"Unknown vector store backend {app_settings.vector_store_backend!r}; "
            f"expected one of {app_settings.get_available_backends()}"
        )
    )


def build_pipeline(
    custom_settings: Settings | None = None,
    config_path: str = "config/config.yaml",
    embedding_provider: IEmbeddingProvider | None = None,
    vector_store: IVectorStoreProvider | None = None,
) -> dict[str, Any]:
    """Construct and return all pipeline services with injected dependencies.

    Parameters
    ----------
    custom_settings:
        Application settings.  Read from the environment if not provided.
    config_path:
        YAML file with pipeline defaults.
    embedding_provider, vector_store:
        Pre-built providers; when omitted they are selected from settings.

    Returns
    -------
    dict
        Service instances keyed by role name; ``"orchestrator"`` is the
        entry point for ingestion and queries.
    """
    s = custom_settings or Settings()
    configure_logging(log_level=s.log_level, app_env=s.app_env)
    config = load_pipeline_config(config_path, settings=s)

    token_counter = build_token_counter(s.tokenizer_name)
    extractor = MetadataExtractor()
    chunker = SemanticChunker(
        config=config.chunking,
        token_counter=token_counter,
        parser=StructureParser(),
        extractor=extractor,
    )
    generator = EmbeddingGenerator(
        provider=embedding_provider or _build_embedding_provider(s),
        options=config.embedding,
        token_counter=token_counter,
        extractor=extractor,
    )
    engine = RetrievalEngine(
        store=vector_store or _build_vector_store(s),
        upload_options=config.upload,
        search_options=config.search,
    )
    tracker = ProgressTracker()
    orchestrator = RAGOrchestrator(chunker=chunker, generator=generator, engine=engine, tracker=tracker)

    logger.info(
        "pipeline_built",
        vector_store=s.vector_store_backend,
        embedding_model=config.embedding.model,
        tokenizer=s.tokenizer_name or "estimate",
    )
    return {
        "config": config,
        "chunker": chunker,
        "generator": generator,
        "engine": engine,
        "progress_tracker": tracker,
        "orchestrator": orchestrator,
    }
