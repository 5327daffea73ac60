"""YAML configuration loader with environment variable overrides.

Configuration is layered, later layers winning:

1. ``config/config.yaml`` -- defaults checked into the repo
2. ``.env`` file -- local developer overrides
3. Environment variables -- deployment overrides

Only settings that were actually provided through ``.env`` or the
environment override the YAML file; pydantic-settings defaults never
shadow a YAML value.  The merged dict is validated into the immutable
:class:`PipelineConfig` that components receive.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from docrag.config.settings import Settings
from docrag.models.chunk import ChunkingConfig
from docrag.models.embedding import EmbeddingOptions
from docrag.models.retrieval import SearchOptions, UploadOptions
from docrag.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"

# Settings field -> (config section, key within section)
_ENV_FIELD_MAP: dict[str, tuple[str, str]] = {
    "chunk_strategy": ("chunking", "strategy"),
    "chunk_max_tokens": ("chunking", "max_tokens"),
    "chunk_min_tokens": ("chunking", "min_tokens"),
    "chunk_overlap_words": ("chunking", "overlap_words"),
    "openai_embedding_model": ("embedding", "model"),
    "embedding_dimensions": ("embedding", "dimensions"),
    "embedding_batch_size": ("embedding", "batch_size"),
    "embedding_max_retries": ("embedding", "max_retries"),
    "embedding_retry_base_delay": ("embedding", "retry_base_delay"),
    "embedding_quality_threshold": ("embedding", "quality_threshold"),
    "embedding_max_tokens_per_item": ("embedding", "max_tokens_per_item"),
    "embedding_inter_batch_delay": ("embedding", "inter_batch_delay"),
    "embedding_max_concurrency": ("embedding", "max_concurrency"),
    "upload_batch_size": ("upload", "batch_size"),
    "upload_inter_batch_delay": ("upload", "inter_batch_delay"),
    "search_limit": ("search", "limit"),
    "search_threshold": ("search", "threshold"),
    "search_rerank": ("search", "rerank"),
    "search_diversity_threshold": ("search", "diversity_threshold"),
    "search_fallback_scan_limit": ("search", "fallback_scan_limit"),
}


class PipelineConfig(BaseModel):
    """Resolved, immutable configuration for every pipeline component."""

    model_config = ConfigDict(frozen=True)

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    embedding: EmbeddingOptions = Field(default_factory=EmbeddingOptions)
    upload: UploadOptions = Field(default_factory=UploadOptions)
    search: SearchOptions = Field(default_factory=SearchOptions)


def load_config(path: str = DEFAULT_CONFIG_PATH, settings: Settings | None = None) -> dict:
    """Load the YAML file and merge explicitly-set environment values on top.

    Parameters
    ----------
    path:
        Path to the YAML configuration file.  A missing file is treated as
        empty.
    settings:
        Settings instance to read overrides from; built from the
        environment when omitted.

    Returns
    -------
    dict
        The merged configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                yaml_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(message=f"Invalid YAML in {config_path}: {exc}") from exc
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(message=f"Top level of {config_path} must be a mapping")

    settings = settings or Settings()
    env_overrides: dict[str, dict[str, Any]] = {}
    for field_name in settings.model_fields_set:
        target = _ENV_FIELD_MAP.get(field_name)
        if target is None:
            continue
        section, key = target
        env_overrides.setdefault(section, {})[key] = getattr(settings, field_name)

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_pipeline_config(
    path: str = DEFAULT_CONFIG_PATH,
    settings: Settings | None = None,
) -> PipelineConfig:
    """Load and validate the full pipeline configuration.

    Raises
    ------
    ConfigurationError
        If the merged values fail validation (for example
        ``min_tokens > max_tokens``).
    """
    raw = load_config(path, settings)
    sections = {k: raw.get(k) or {} for k in ("chunking", "embedding", "upload", "search")}
    try:
        config = PipelineConfig.model_validate(sections)
    except ValidationError as exc:
        raise ConfigurationError(message=f"Invalid pipeline configuration: {exc}") from exc

    logger.debug(
        "pipeline_config_loaded",
        path=path,
        chunk_strategy=config.chunking.strategy.value,
        max_tokens=config.chunking.max_tokens,
        embedding_model=config.embedding.model,
        search_threshold=config.search.threshold,
    )
    return config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
