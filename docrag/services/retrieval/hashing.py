"""Content hashing for duplicate detection on upload."""

from __future__ import annotations

from docrag.utils.text_normalizer import normalize_for_key

_MASK_32 = 0xFFFFFFFF


def hash_content(text: str) -> str:
    """Return a duplicate-detection key for *text*.

    The text is lower-cased and whitespace-collapsed first, so chunks that
    differ only in layout share a key.  The key is a 32-bit rolling
    polynomial hash (``h = h * 31 + ord(ch)``), rendered as a signed decimal
    string.  The function is pure: equal inputs always give equal keys.
    """
    h = 0
    for ch in normalize_for_key(text):
        h = ((h << 5) - h + ord(ch)) & _MASK_32
    if h & 0x80000000:
        h -= 1 << 32
    return str(h)
