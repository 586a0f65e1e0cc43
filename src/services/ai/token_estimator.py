"""Token estimation used to size generation budgets.

Estimates are only ever used to pick `max_tokens` for a provider call; they
never reject input, so every failure degrades to a word-count heuristic.
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache

import tiktoken


logger = logging.getLogger(__name__)

ENCODING_NAME = "cl100k_base"
WORDS_TO_TOKENS = 0.75


def count_words(text: str | None) -> int:
    if not text:
        return 0
    return len(text.split())


def heuristic_tokens(text: str | None) -> int:
    return math.ceil(count_words(text) * WORDS_TO_TOKENS)


@lru_cache(maxsize=1)
def _load_encoding() -> tiktoken.Encoding | None:
    """Load the encoding once; a failed load is cached as None."""
    try:
        return tiktoken.get_encoding(ENCODING_NAME)
    except Exception as exc:  # noqa: BLE001 - any loader failure means "unavailable"
        logger.warning(
            "tiktoken encoding %s unavailable, using word heuristic: %s",
            ENCODING_NAME,
            exc,
        )
        return None


def estimate_tokens(text: str | None) -> int:
    """Approximate the number of tokens `text` will consume. Never raises."""
    if not text:
        return 0
    encoding = _load_encoding()
    if encoding is None:
        return heuristic_tokens(text)
    try:
        # Special-token markers in manuscript text are plain text here
        count = len(encoding.encode(text, disallowed_special=()))
    except Exception:  # noqa: BLE001
        logger.debug("tiktoken failed to encode text; using word heuristic")
        return heuristic_tokens(text)
    return count or heuristic_tokens(text)
