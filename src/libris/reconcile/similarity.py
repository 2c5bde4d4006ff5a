# ABOUTME: String, set, and edit-distance similarity helpers for reconciliation and duplicates.
# ABOUTME: All scores are in [0.0, 1.0] where 1.0 means identical after normalization.

import re
import unicodedata
from collections.abc import Iterable

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, strip accents and punctuation, and collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = _PUNCTUATION_RE.sub(" ", stripped.lower())
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def normalize_author(name: str) -> str:
    """Normalize 'Last, First' to 'first last' and apply normalize_text."""
    name = name.strip()
    if "," in name:
        last, first = (part.strip() for part in name.split(",", 1))
        if first:
            name = f"{first} {last}"
    return normalize_text(name)


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def string_similarity(a: str | None, b: str | None) -> float:
    """Edit-distance ratio on lowercased, trimmed strings.

    Returns 0.0 when either side is empty.
    """
    left = (a or "").strip().lower()
    right = (b or "").strip().lower()
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    distance = levenshtein_distance(left, right)
    return 1.0 - distance / max(len(left), len(right))


def set_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard similarity of two collections of already-normalized strings.

    Two empty collections are identical; one empty collection matches nothing.
    """
    left, right = set(a), set(b)
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def author_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """Set similarity of author lists after name normalization."""
    return set_similarity(
        (normalize_author(name) for name in a if name.strip()),
        (normalize_author(name) for name in b if name.strip()),
    )


def relative_difference(a: float, b: float) -> float:
    """|a - b| relative to the larger magnitude; 0.0 when both are zero."""
    scale = max(abs(a), abs(b))
    if scale == 0:
        return 0.0
    return abs(a - b) / scale
