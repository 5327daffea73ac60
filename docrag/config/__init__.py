"""Configuration module: Settings, the YAML loader and the resolved PipelineConfig."""

from docrag.config.loader import PipelineConfig, load_config, load_pipeline_config
from docrag.config.settings import Settings

__all__ = ["PipelineConfig", "Settings", "load_config", "load_pipeline_config"]
