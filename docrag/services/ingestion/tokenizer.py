"""Token counting for chunk sizing.

The chunker and embedding generator take a ``TokenCounter`` (any
``Callable[[str], int]``).  The default, :func:`estimate_tokens`, is the
``ceil(len / 4)`` heuristic for English text with OpenAI tokenizers.  When
exact counts matter, :class:`HuggingFaceTokenCounter` wraps a fast
``tokenizers`` model.
"""

from __future__ import annotations

import math
from typing import Callable

import structlog
from tokenizers import Tokenizer

from docrag.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

TokenCounter = Callable[[str], int]


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


class HuggingFaceTokenCounter:
    """Exact token counter backed by a HuggingFace ``tokenizers`` model.

    Parameters
    ----------
    tokenizer_name:
        Hub identifier passed to ``Tokenizer.from_pretrained``
        (e.g. ``"bert-base-uncased"``).
    tokenizer:
        An already-loaded tokenizer; skips the hub download.
    """

    def __init__(self, tokenizer_name: str = "", tokenizer: Tokenizer | None = None) -> None:
        if tokenizer is None:
            if not tokenizer_name:
                raise ConfigurationError("tokenizer_name is required without a tokenizer instance")
            try:
                tokenizer = Tokenizer.from_pretrained(tokenizer_name)
            except Exception as exc:
                raise ConfigurationError(
                    message=f"Could not load tokenizer '{tokenizer_name}': {exc}",
                    provider_name="tokenizers",
                ) from exc
            logger.info("tokenizer_loaded", tokenizer=tokenizer_name)
        self._name = tokenizer_name
        self._tokenizer = tokenizer

    def __call__(self, text: str) -> int:
        if not text:
            return 0
        return len(self._tokenizer.encode(text, add_special_tokens=False).ids)

    def __repr__(self) -> str:
        return f"HuggingFaceTokenCounter({self._name!r})"


def build_token_counter(tokenizer_name: str = "") -> TokenCounter:
    """Return :func:`estimate_tokens` or an exact counter for *tokenizer_name*."""
    if not tokenizer_name:
        return estimate_tokens
    return HuggingFaceTokenCounter(tokenizer_name)
