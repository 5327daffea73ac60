"""Application settings loaded from environment variables via pydantic-settings.

Values come from (highest priority first) real environment variables, then
a ``.env`` file in the working directory, then the defaults below.  Field
``openai_api_key`` maps to env var ``OPENAI_API_KEY`` and so on.

Tuning fields are flat here; :func:`docrag.config.loader.load_pipeline_config`
groups them into the immutable per-component config objects.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docrag settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === Embedding provider ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (Azure proxy, TogetherAI, ...)
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536

    # === Vector store ===
    vector_store_backend: str = "chromadb"  # "chromadb" or "memory"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "docrag_chunks"

    # === Chunking ===
    chunk_strategy: str = "semantic"
    chunk_max_tokens: int = 512
    chunk_min_tokens: int = 100
    chunk_overlap_words: int = 0
    # Empty = estimate tokens as ceil(len / 4); otherwise a HuggingFace
    # tokenizer id such as "bert-base-uncased".
    tokenizer_name: str = ""

    # === Embedding generation ===
    embedding_batch_size: int = 50
    embedding_max_retries: int = 3
    embedding_retry_base_delay: float = 1.0
    embedding_quality_threshold: float = 0.7
    embedding_max_tokens_per_item: int = 512
    embedding_inter_batch_delay: float = 0.1
    embedding_max_concurrency: int = 5

    # === Upload ===
    upload_batch_size: int = 100
    upload_inter_batch_delay: float = 0.05

    # === Search ===
    search_limit: int = 10
    search_threshold: float = 0.78
    search_rerank: bool = True
    search_diversity_threshold: float = 0.7
    search_fallback_scan_limit: int | None = None

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_backends(self) -> list[str]:
        """Return the vector store backends usable with the current settings."""
        backends = ["memory"]
        if self.chromadb_persist_dir:
            backends.insert(0, "chromadb")
        return backends
