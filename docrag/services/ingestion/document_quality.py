"""Document-level extraction quality scoring.

Scores the normalized text of a whole document, before chunking, so that
bad extractions (truncated PDFs, OCR garbage, repeated page furniture) are
visible in the ingestion report even when every chunk embeds cleanly.

Three sub-scores start at 1.0 and lose points per detected problem:

- **text quality**: under 100 characters (-0.3), more than 30% special
  characters (-0.1), a run of 10 to 200 characters repeated four or more
  times in a row (-0.1);
- **structure quality**: no sections (-0.2), average section body under
  50 words (-0.1);
- **completeness**: text ending in ``...`` or containing "content
  truncated" (-0.3), sections with fewer than 10 words (-0.1 scaled by
  their share of all sections).

``confidence`` is the mean of the three.
"""

from __future__ import annotations

import re

from docrag.models.document import DocumentQuality, Section
from docrag.services.ingestion.metadata_extractor import MetadataExtractor

MIN_CONTENT_CHARS = 100
MAX_SPECIAL_CHAR_RATIO = 0.3
MIN_AVERAGE_SECTION_WORDS = 50
MIN_SECTION_WORDS = 10
ENGLISH_WORD_RATIO = 0.05

_SPECIAL_CHAR_RE = re.compile(r"[^\w\s]")
_REPEATED_RUN_RE = re.compile(r"(.{10,200})\1{3,}")
_TRUNCATION_MARKER = "content truncated"

_ENGLISH_WORDS = frozenset(
    {"the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"}
)


def detect_language(text: str) -> str:
    """Return ``"en"`` when common English function words make up over 5% of *text*."""
    words = text.lower().split()
    if not words:
        return "unknown"
    english = sum(1 for w in words if w in _ENGLISH_WORDS)
    return "en" if english > len(words) * ENGLISH_WORD_RATIO else "unknown"


class DocumentQualityAssessor:
    """Computes a :class:`DocumentQuality` for parsed document text."""

    def __init__(self, extractor: MetadataExtractor | None = None) -> None:
        self._extractor = extractor or MetadataExtractor()

    def assess(self, text: str, sections: list[Section]) -> DocumentQuality:
        """Score *text* and its flattened *sections*.

        Parameters
        ----------
        text:
            Normalized document text.
        sections:
            Every section of the tree, depth-first.
        """
        issues: list[str] = []
        warnings: list[str] = []

        text_quality = self._text_quality(text, issues, warnings)
        structure_quality = self._structure_quality(sections, warnings)
        completeness = self._completeness(text, sections, issues, warnings)

        return DocumentQuality(
            text_quality=text_quality,
            structure_quality=structure_quality,
            completeness=completeness,
            confidence=round((text_quality + structure_quality + completeness) / 3, 4),
            readability=self._extractor.calculate_readability(text),
            language=detect_language(text),
            issues=tuple(issues),
            warnings=tuple(warnings),
        )

    @staticmethod
    def _text_quality(text: str, issues: list[str], warnings: list[str]) -> float:
        score = 1.0
        if len(text) < MIN_CONTENT_CHARS:
            issues.append("Content too short")
            score -= 0.3

        if text and len(_SPECIAL_CHAR_RE.findall(text)) / len(text) > MAX_SPECIAL_CHAR_RATIO:
            warnings.append("High special character ratio")
            score -= 0.1

        if _REPEATED_RUN_RE.search(text):
            warnings.append("Repeated content patterns detected")
            score -= 0.1

        return round(max(0.0, score), 4)

    @staticmethod
    def _structure_quality(sections: list[Section], warnings: list[str]) -> float:
        if not sections:
            warnings.append("No clear document structure detected")
            return 0.8

        score = 1.0
        average_words = sum(_word_count(s) for s in sections) / len(sections)
        if average_words < MIN_AVERAGE_SECTION_WORDS:
            warnings.append("Sections appear to be very short")
            score -= 0.1
        return round(score, 4)

    @staticmethod
    def _completeness(
        text: str,
        sections: list[Section],
        issues: list[str],
        warnings: list[str],
    ) -> float:
        score = 1.0
        stripped = text.rstrip()
        if stripped.endswith("...") or _TRUNCATION_MARKER in text.lower():
            issues.append("Content appears to be truncated")
            score -= 0.3

        if sections:
            empty = sum(1 for s in sections if _word_count(s) < MIN_SECTION_WORDS)
            if empty:
                warnings.append(f"{empty} sections appear to be empty")
                score -= 0.1 * (empty / len(sections))

        return round(max(0.0, score), 4)


def _word_count(section: Section) -> int:
    return len(section.content.split())
