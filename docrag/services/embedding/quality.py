"""Embedding quality scoring.

Each embedding gets five component scores in [0, 1] and a weighted overall
score.  The generator drops embeddings whose overall score falls below the
configured threshold.

Component definitions:

- ``text_quality`` -- how much of the per-item token budget is used.
- ``semantic_coherence`` -- 0.7 base, +0.2 for headings, +0.1 when the chunk
  belongs to a named section, +0.2 x importance.
- ``information_density`` -- twice the unique-word ratio.
- ``uniqueness`` -- distinct characters relative to min(length, 50).
- ``retrieval_optimization`` -- 0.9 when text was optimized for retrieval,
  else 0.7.
"""

from __future__ import annotations

from docrag.models.chunk import Chunk, ContentType
from docrag.models.embedding import EmbeddingQuality

QUALITY_WEIGHTS: dict[str, float] = {
    "text_quality": 0.2,
    "semantic_coherence": 0.25,
    "information_density": 0.25,
    "uniqueness": 0.15,
    "retrieval_optimization": 0.15,
}

HIGH_QUALITY = 0.8
LOW_QUALITY = 0.6


def score_embedding_quality(
    chunk: Chunk,
    text: str,
    tokens: int,
    max_tokens_per_item: int = 512,
    optimized: bool = True,
) -> EmbeddingQuality:
    """Score the embedding of *text* (the optimized form of *chunk*).

    Parameters
    ----------
    chunk:
        The source chunk, for content type, importance and section.
    text:
        The text that was actually sent to the embedding model.
    tokens:
        Token count of *text*.
    max_tokens_per_item:
        Per-item token budget used to normalize ``text_quality``.
    optimized:
        Whether retrieval-oriented text optimization was applied.
    """
    text_quality = min(1.0, tokens / max_tokens_per_item) if max_tokens_per_item > 0 else 0.0

    coherence = 0.7
    if chunk.content_type == ContentType.HEADING:
        coherence += 0.2
    if chunk.metadata.section:
        coherence += 0.1
    coherence += chunk.importance * 0.2
    semantic_coherence = min(1.0, coherence)

    words = text.lower().split()
    information_density = min(1.0, len(set(words)) / len(words) * 2) if words else 0.0

    uniqueness = min(1.0, len(set(text)) / min(len(text), 50)) if text else 0.0

    retrieval_optimization = 0.9 if optimized else 0.7

    overall = (
        text_quality * QUALITY_WEIGHTS["text_quality"]
        + semantic_coherence * QUALITY_WEIGHTS["semantic_coherence"]
        + information_density * QUALITY_WEIGHTS["information_density"]
        + uniqueness * QUALITY_WEIGHTS["uniqueness"]
        + retrieval_optimization * QUALITY_WEIGHTS["retrieval_optimization"]
    )

    return EmbeddingQuality(
        text_quality=round(text_quality, 4),
        semantic_coherence=round(semantic_coherence, 4),
        information_density=round(information_density, 4),
        uniqueness=round(uniqueness, 4),
        retrieval_optimization=retrieval_optimization,
        overall=round(min(1.0, overall), 4),
    )


def quality_bucket(overall: float) -> str:
    """Map an overall score to ``"high"`` (>= 0.8), ``"low"`` (< 0.6) or ``"medium"``."""
    if overall >= HIGH_QUALITY:
        return "high"
    if overall < LOW_QUALITY:
        return "low"
    return "medium"
