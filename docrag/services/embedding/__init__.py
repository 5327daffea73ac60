"""Embedding generation and quality scoring."""

from docrag.services.embedding.generator import EmbeddingGenerator, estimate_cost
from docrag.services.embedding.quality import quality_bucket, score_embedding_quality

__all__ = [
    "EmbeddingGenerator",
    "estimate_cost",
    "quality_bucket",
    "score_embedding_quality",
]
