"""Heuristic chunk annotation: classification, importance and text statistics.

Everything here is pure string analysis, with no model calls, so results are
fully deterministic for a given input.  The chunker uses the chunk-level
helpers; the embedding generator additionally uses
:meth:`MetadataExtractor.extract_entities` and
:meth:`MetadataExtractor.analyze_sentiment` when it builds embedding
metadata.
"""

from __future__ import annotations

import re
from collections import Counter

from docrag.models.chunk import ChunkMetadata, Complexity, ContentType

# Importance levels on the [0.2, 1.0] scale.
IMPORTANCE_CRITICAL = 1.0
IMPORTANCE_HIGH = 0.8
IMPORTANCE_MEDIUM = 0.6
IMPORTANCE_LOW = 0.4
IMPORTANCE_MINIMAL = 0.2

_KEY_PHRASES_RE = re.compile(
    r"\b(important|key|critical|essential|main|primary)\b", re.IGNORECASE
)
_SHORT_CONTENT_CHARS = 100

# Ordered: the first matching pattern decides the content type.
_CLASSIFIERS: tuple[tuple[ContentType, re.Pattern[str]], ...] = (
    (ContentType.HEADING, re.compile(r"^#{1,6}\s")),
    (ContentType.LIST, re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s", re.MULTILINE)),
    (ContentType.TABLE, re.compile(r"^\s*\|.*\|", re.MULTILINE)),
    (ContentType.CODE, re.compile(r"```|`[^`\n]+`")),
    (ContentType.QUOTE, re.compile(r"^\s*>", re.MULTILINE)),
    (ContentType.FORMULA, re.compile(r"\$[^$\n]+\$|\\\(.+?\\\)|\\\[.+?\\\]")),
    (
        ContentType.REFERENCE,
        re.compile(r"^\s*\[\d+\]|^\s*(?:references?|bibliography)\s*:", re.MULTILINE | re.IGNORECASE),
    ),
)

_TOPIC_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("technical", re.compile(r"\b(api|database|server|client|authentication)\b", re.IGNORECASE)),
    ("business", re.compile(r"\b(strategy|business|market|customer|revenue)\b", re.IGNORECASE)),
    ("process", re.compile(r"\b(process|workflow|procedure|steps|method)\b", re.IGNORECASE)),
)

_STOP_WORDS = frozenset(
    {
        "about", "after", "also", "been", "before", "being", "both", "could",
        "does", "each", "from", "have", "here", "into", "just", "more", "most",
        "much", "only", "other", "over", "same", "should", "some", "such",
        "than", "that", "their", "them", "then", "there", "these", "they",
        "this", "those", "very", "were", "what", "when", "where", "which",
        "while", "will", "with", "would", "your",
    }
)

_ENTITY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b"),  # person-like names
    re.compile(r"\b[A-Z]{2,}\b"),  # acronyms
    re.compile(r"\b\d{4}\b"),  # years
    re.compile(r"\$\d+(?:,\d{3})*(?:\.\d{2})?\b"),  # money
)
_POSITIVE_WORDS = frozenset({"good", "great", "excellent", "positive", "success", "effective"})
_NEGATIVE_WORDS = frozenset({"bad", "poor", "negative", "failure", "problem", "issue"})

_NON_WORD_RE = re.compile(r"[^\w\s]")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]+")
_HEADER_MARK_RE = re.compile(r"^(#+)\s")


class MetadataExtractor:
    """Stateless bundle of the chunk annotation heuristics."""

    max_keywords = 10
    max_entities = 10

    # ------------------------------------------------------------------
    # Chunk-level annotation
    # ------------------------------------------------------------------

    def build_metadata(
        self,
        content: str,
        source: str,
        title: str,
        section: str,
    ) -> ChunkMetadata:
        """Return the full :class:`ChunkMetadata` for a chunk's *content*."""
        return ChunkMetadata(
            keywords=tuple(self.extract_keywords(content)),
            topics=tuple(self.extract_topics(content)),
            complexity=self.assess_complexity(content),
            readability=self.calculate_readability(content),
            source=source,
            title=title,
            section=section,
        )

    def classify_content(self, content: str) -> ContentType:
        """Classify *content* by its leading structural pattern."""
        for content_type, pattern in _CLASSIFIERS:
            if pattern.search(content):
                return content_type
        return ContentType.PARAGRAPH

    def calculate_importance(self, content: str, section_type: ContentType) -> float:
        """Score importance in [0.2, 1.0].

        Base 0.6; +0.2 inside a header-opened section (or when the chunk is
        itself a heading); +0.2 when a key phrase appears; -0.2 for content
        shorter than 100 characters.
        """
        importance = IMPORTANCE_MEDIUM
        if section_type == ContentType.HEADING or self.classify_content(content) == ContentType.HEADING:
            importance = IMPORTANCE_HIGH

        if _KEY_PHRASES_RE.search(content):
            importance = min(importance + 0.2, IMPORTANCE_CRITICAL)

        if len(content) < _SHORT_CONTENT_CHARS:
            importance = max(importance - 0.2, IMPORTANCE_MINIMAL)

        return round(max(IMPORTANCE_MINIMAL, min(IMPORTANCE_CRITICAL, importance)), 2)

    def extract_keywords(self, content: str) -> list[str]:
        """Top terms by frequency; ties keep first-occurrence order."""
        words = [
            w
            for w in _NON_WORD_RE.sub(" ", content.lower()).split()
            if len(w) > 3 and w not in _STOP_WORDS and not w.isdigit()
        ]
        return [word for word, _ in Counter(words).most_common(self.max_keywords)]

    def extract_topics(self, content: str) -> list[str]:
        return [topic for topic, pattern in _TOPIC_PATTERNS if pattern.search(content)]

    def assess_complexity(self, content: str) -> Complexity:
        """Bucket average words per sentence: > 20 high, > 12 medium."""
        avg = self._words_per_sentence(content)
        if avg > 20:
            return Complexity.HIGH
        if avg > 12:
            return Complexity.MEDIUM
        return Complexity.LOW

    def calculate_readability(self, content: str) -> float:
        """Flesch reading ease, clamped to [0, 100]."""
        words = content.split()
        if not words:
            return 0.0
        syllables = sum(self.count_syllables(w) for w in words)
        score = (
            206.835
            - 1.015 * self._words_per_sentence(content)
            - 84.6 * (syllables / len(words))
        )
        return round(max(0.0, min(100.0, score)), 2)

    @staticmethod
    def count_syllables(word: str) -> int:
        """Approximate syllables as vowel groups, at least one per word."""
        return max(1, len(_VOWEL_GROUP_RE.findall(word.lower())))

    # ------------------------------------------------------------------
    # Embedding-level enrichment
    # ------------------------------------------------------------------

    def extract_entities(self, content: str) -> list[str]:
        """Pattern-matched names, acronyms, years and amounts (deduplicated)."""
        seen: dict[str, None] = {}
        for pattern in _ENTITY_PATTERNS:
            for match in pattern.findall(content):
                seen.setdefault(match, None)
        return list(seen)[: self.max_entities]

    @staticmethod
    def analyze_sentiment(content: str) -> float:
        """Lexicon sentiment in [-1, 1]; 0 when no sentiment words appear."""
        words = _NON_WORD_RE.sub(" ", content.lower()).split()
        positive = sum(1 for w in words if w in _POSITIVE_WORDS)
        negative = sum(1 for w in words if w in _NEGATIVE_WORDS)
        if positive + negative == 0:
            return 0.0
        return (positive - negative) / (positive + negative)

    @staticmethod
    def detect_header_level(content: str) -> int:
        match = _HEADER_MARK_RE.match(content)
        return len(match.group(1)) if match else 1

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _words_per_sentence(content: str) -> float:
        words = len(content.split())
        sentences = len([s for s in _SENTENCE_SPLIT_RE.split(content) if s.strip()]) or 1
        return words / sentences
