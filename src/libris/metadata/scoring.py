# ABOUTME: Confidence scoring for provider search results against the search criteria.
# ABOUTME: Compares query fields to each returned record using weighted field similarity.

import re
from difflib import SequenceMatcher

from libris.metadata.types import MetadataRecord, MultiCriteriaQuery

# Match weights, must sum to 1.0
_WEIGHT_TITLE = 0.4
_WEIGHT_AUTHOR = 0.3
_WEIGHT_ISBN = 0.2
_WEIGHT_LANGUAGE = 0.1

# Completeness bonus: max added on top of the match score.
_COMPLETENESS_BONUS = 0.10

# Per-field weights within the completeness bonus (must sum to 1.0).
_COMPLETENESS_FIELDS: dict[str, float] = {
    "description": 0.30,
    "isbn": 0.25,
    "authors": 0.15,
    "publication_date": 0.10,
    "subjects": 0.10,
    "language": 0.05,
    "publisher": 0.05,
}

_ISBN_STRIP_RE = re.compile(r"[\s-]")


def _normalize_author(name: str) -> str:
    """Normalize 'Last, First' to 'First Last' and lowercase."""
    name = name.strip().lower()
    if "," in name:
        parts = [p.strip() for p in name.split(",", 1)]
        name = f"{parts[1]} {parts[0]}"
    return name


def _string_similarity(a: str, b: str) -> float:
    """Case-insensitive string similarity using SequenceMatcher."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a.lower(), b.lower()).ratio()


def score_record(query: MultiCriteriaQuery, record: MetadataRecord) -> float:
    """Score how well a search result matches the criteria it was found with.

    Only criteria present in the query contribute; the score is rescaled by
    the weight of those criteria so a title-only search can still reach 1.0.
    Returns a float clamped to [0.0, 1.0].
    """
    score = 0.0
    weight = 0.0

    if query.title:
        score += _WEIGHT_TITLE * _string_similarity(query.title, record.title or "")
        weight += _WEIGHT_TITLE

    if query.authors:
        wanted = " ".join(sorted(_normalize_author(a) for a in query.authors))
        found = " ".join(sorted(_normalize_author(a) for a in record.authors))
        score += _WEIGHT_AUTHOR * _string_similarity(wanted, found)
        weight += _WEIGHT_AUTHOR

    if query.isbn:
        wanted_isbn = _ISBN_STRIP_RE.sub("", query.isbn)
        if any(_ISBN_STRIP_RE.sub("", isbn) == wanted_isbn for isbn in record.isbn):
            score += _WEIGHT_ISBN
        weight += _WEIGHT_ISBN

    if query.language:
        if record.language and record.language.lower() == query.language.lower():
            score += _WEIGHT_LANGUAGE
        weight += _WEIGHT_LANGUAGE

    match = score / weight if weight else 0.0
    # Leave room for the completeness bonus to separate otherwise tied results.
    match *= 1.0 - _COMPLETENESS_BONUS
    return max(0.0, min(1.0, match + completeness_bonus(record)))


def completeness_bonus(record: MetadataRecord) -> float:
    """Small bonus for how many metadata fields are populated.

    Rewards records with richer metadata so they float above sparse stubs
    when match scores are otherwise tied. Returns a value in [0.0, _COMPLETENESS_BONUS].
    """
    filled = 0.0
    for field_name, weight in _COMPLETENESS_FIELDS.items():
        if getattr(record, field_name, None):
            filled += weight
    return _COMPLETENESS_BONUS * filled
