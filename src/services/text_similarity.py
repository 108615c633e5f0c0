"""Text comparison utilities for anti-repetition checks.

Two notions of "already said":
- exact duplicate: identical after lowercasing and collapsing whitespace
- near duplicate: token-set Jaccard overlap at or above a threshold
"""

import re
from typing import Iterable, Optional, Set

from src.core.config import reflection_config

_NON_WORD = re.compile(r"[^a-z0-9\s']")
_WHITESPACE = re.compile(r"\s+")


def normalize_for_compare(text: str) -> str:
    """Lowercase, collapse internal whitespace, trim. None-safe."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", str(text).lower()).strip()


def tokenize(text: str) -> Set[str]:
    """Lowercase word tokens (apostrophes kept, punctuation dropped)."""
    if not text:
        return set()
    cleaned = _NON_WORD.sub(" ", str(text).lower())
    return {t for t in _WHITESPACE.split(cleaned) if t}


def jaccard_similarity(a: str, b: str) -> float:
    """
    Token-set Jaccard similarity.

    Returns:
        |A & B| / |A | B| in [0, 1]; 0.0 when either side has no tokens
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return 0.0
    inter = len(tokens_a & tokens_b)
    union = len(tokens_a) + len(tokens_b) - inter
    return inter / union if union else 0.0


def is_duplicate(text: str, previous: Iterable[str]) -> bool:
    """True if text equals any previous entry after normalization."""
    cur = normalize_for_compare(text)
    return any(normalize_for_compare(p) == cur for p in previous)


def is_near_duplicate(
    text: str, previous: Iterable[str], threshold: Optional[float] = None
) -> bool:
    """True if text overlaps any previous entry at or above the threshold."""
    if threshold is None:
        threshold = reflection_config.similarity.near_duplicate_threshold
    return any(jaccard_similarity(text, p) >= threshold for p in previous)
