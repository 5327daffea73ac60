"""Text normalization utilities for extracted documents.

Three concerns live here:

1. **Document cleanup** -- canonicalizes text handed over by the external
   extraction step (PDF/DOCX/plain readers) so the structure parser sees
   consistent line endings and paragraph breaks.

2. **Sentence splitting** -- abbreviation-aware boundaries shared by the
   chunker (oversized paragraphs) and the embedding generator (truncation).

3. **Content keys** -- a normalized form of chunk text used to detect
   duplicate content regardless of case or whitespace layout.
"""

import re

# Non-breaking spaces become regular spaces; zero-width characters and the
# BOM are dropped outright.
_NBSP_RE = re.compile(r"[\u00a0\u2007\u202f]")
_ZERO_WIDTH_RE = re.compile(r"[\u200b\u200c\u200d\u2060\ufeff]")
_TRAILING_WS_RE = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_document_text(text: str) -> str:
    """Clean raw extracted text before structure parsing.

    Normalizes line endings to ``\\n``, strips trailing spaces on every
    line, removes zero-width characters, and collapses runs of three or
    more newlines to a single blank line.  Leading indentation is kept
    because code blocks depend on it.

    Args:
        text: Raw text from the extraction capability.

    Returns:
        Cleaned text with surrounding blank lines trimmed.
    """
    if not text:
        return ""

    cleaned = text.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = _NBSP_RE.sub(" ", cleaned)
    cleaned = _ZERO_WIDTH_RE.sub("", cleaned)
    cleaned = _TRAILING_WS_RE.sub("", cleaned)
    cleaned = _BLANK_RUN_RE.sub("\n\n", cleaned)
    return cleaned.strip("\n")


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run to a single space and trim the ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_for_key(text: str) -> str:
    """Return the lower-cased, whitespace-collapsed form of *text*.

    Two chunks whose text differs only in case or whitespace layout map to
    the same key, which is what duplicate detection on upload relies on.
    """
    return collapse_whitespace(text).lower()


# Abbreviations whose trailing period does not end a sentence.
_ABBREVIATIONS = (
    "Dr", "Mr", "Mrs", "Ms", "Prof", "Jr", "Sr", "St", "vs", "etc",
    "approx", "dept", "est", "inc", "ltd", "co", "Fig", "fig", "No",
    "e.g", "i.e",
)
_ABBREVIATION_RE = re.compile(
    r"\b(" + "|".join(re.escape(a) for a in _ABBREVIATIONS) + r")\."
)
_SENTENCE_END_RE = re.compile(r"[.!?](?:\s|$)")


def split_sentences(text: str) -> list[str]:
    """Split *text* at sentence boundaries while respecting abbreviations.

    Periods after known abbreviations ("Dr.", "e.g.") are masked with
    ``\\x00`` before matching; the mask has the same length, so match
    offsets still index into the original text.
    """
    masked = _ABBREVIATION_RE.sub(lambda m: m.group(1) + "\x00", text)

    sentences: list[str] = []
    last = 0
    for match in _SENTENCE_END_RE.finditer(masked):
        end = match.end()
        sentence = text[last:end].strip()
        if sentence:
            sentences.append(sentence)
        last = end

    remainder = text[last:].strip()
    if remainder:
        sentences.append(remainder)

    return sentences if sentences else [text.strip()]
