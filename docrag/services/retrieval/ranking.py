"""Scoring primitives for search: similarity, re-ranking, diversity and boosts.

All functions are pure.  :class:`ScoredCandidate` is the mutable working
record the retrieval engine threads through the ranking steps.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

import numpy as np

from docrag.models.chunk import ContentType
from docrag.models.retrieval import BoostFactors, VectorRecord

IMPORTANCE_WEIGHT = 0.2
QUALITY_WEIGHT = 0.1
RECENCY_BOOST = 1.05


@dataclass
class ScoredCandidate:
    record: VectorRecord
    similarity: float
    score: float


def cosine_similarity(a: list[float] | np.ndarray, b: list[float] | np.ndarray) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def cosine_similarities(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Row-wise cosine similarity of *matrix* against *query*."""
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, matrix @ query / norms, 0.0)
    return scores


def jaccard_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the lower-cased whitespace token sets of *a* and *b*."""
    tokens_a = set(a.lower().split())
    tokens_b = set(b.lower().split())
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def rerank_score(
    similarity: float,
    importance: float,
    quality: float,
    created_at: datetime,
    now: datetime,
    recency_window_days: int = 30,
) -> float:
    """Adjust *similarity* by importance, quality and recency."""
    score = similarity * (1 + importance * IMPORTANCE_WEIGHT)
    score *= 1 + quality * QUALITY_WEIGHT
    if recency_window_days > 0 and now - created_at <= timedelta(days=recency_window_days):
        score *= RECENCY_BOOST
    return score


def diversify(candidates: list[ScoredCandidate], threshold: float) -> list[ScoredCandidate]:
    """Greedy diversification over a ranked list.

    Walks *candidates* in order and rejects any whose content has a token
    Jaccard similarity above *threshold* with an already accepted one.
    """
    accepted: list[ScoredCandidate] = []
    for candidate in candidates:
        if any(
            jaccard_similarity(candidate.record.content, kept.record.content) > threshold
            for kept in accepted
        ):
            continue
        accepted.append(candidate)
    return accepted


def boost_multiplier(record: VectorRecord, boosts: BoostFactors) -> float:
    """Combined content-type, source and quality multiplier for *record*.

    Returns 1.0 when no boost applies.  Records without a quality score are
    not affected by the quality factor.
    """
    multiplier = 1.0
    try:
        content_type = ContentType(record.content_type)
    except ValueError:
        content_type = None
    if content_type is not None:
        multiplier *= boosts.content_type.get(content_type, 1.0)
    multiplier *= boosts.source.get(record.source, 1.0)
    if boosts.quality and record.overall_quality:
        multiplier *= 1 + (record.overall_quality - 0.5) * boosts.quality
    return multiplier
