# ABOUTME: Duplicate screening of a candidate catalog entry against existing entries.
# ABOUTME: Weighted per-field similarity, classified into match types with a fixed recommendation.

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from libris.reconcile.dates import parse_date
from libris.reconcile.identifiers import normalize_isbn
from libris.reconcile.publishers import normalize_publisher_name
from libris.reconcile.series import make_series
from libris.reconcile.similarity import author_similarity, string_similarity
from libris.reconcile.types import PublicationDate, Series

logger = logging.getLogger(__name__)

_DEFAULT_MIN_SIMILARITY = 0.3

DEFAULT_FIELD_WEIGHTS: Mapping[str, float] = {
    "title": 0.30,
    "authors": 0.25,
    "isbn": 0.20,
    "publication_date": 0.10,
    "publisher": 0.10,
    "series": 0.05,
}


class MatchType(StrEnum):
    EXACT = "exact"
    LIKELY = "likely"
    POSSIBLE = "possible"
    DIFFERENT_EDITION = "different_edition"
    RELATED_WORK = "related_work"


class Recommendation(StrEnum):
    SKIP = "skip"
    REVIEW_MANUALLY = "review_manually"
    ADD_AS_NEW = "add_as_new"


_EXPLANATIONS = {
    MatchType.EXACT: "This appears to be an exact duplicate of an existing entry.",
    MatchType.LIKELY: "This is likely a duplicate but may have differences worth reviewing.",
    MatchType.POSSIBLE: "This might be a duplicate or a different edition of the same work.",
    MatchType.DIFFERENT_EDITION: "This appears to be a different edition of an existing work.",
    MatchType.RELATED_WORK: "This appears related to, but distinct from, the existing entry.",
}


@dataclass(frozen=True)
class CatalogEntry:
    """The catalog fields duplicate screening compares."""

    title: str
    authors: tuple[str, ...] = ()
    isbn: tuple[str, ...] = ()
    publication_date: str | None = None
    publisher: str | None = None
    series: tuple[Series, ...] = ()
    id: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CatalogEntry":
        """Build an entry from a JSON-style dict.

        Accepts a single author/isbn/series or lists of them. Series may be
        "Name #3" strings or {name, volume} objects.
        """
        if not data.get("title"):
            raise ValueError("catalog entry requires a title")

        def as_list(value: Any) -> list[Any]:
            if value is None:
                return []
            return list(value) if isinstance(value, list | tuple) else [value]

        date = data.get("publication_date", data.get("publicationDate"))
        publisher = data.get("publisher")
        if isinstance(publisher, Mapping):
            publisher = publisher.get("name")
        return cls(
            title=str(data["title"]),
            authors=tuple(str(a) for a in as_list(data.get("authors", data.get("author")))),
            isbn=tuple(str(i) for i in as_list(data.get("isbn"))),
            publication_date=str(date) if date is not None else None,
            publisher=publisher,
            series=tuple(make_series(s) for s in as_list(data.get("series"))),
            id=str(data["id"]) if data.get("id") is not None else None,
        )


@runtime_checkable
class CatalogReader(Protocol):
    """Read access to the existing catalog."""

    def list_entries(self) -> list[CatalogEntry]: ...


class JsonCatalog:
    """CatalogReader over a JSON file holding a list of entries."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def list_entries(self) -> list[CatalogEntry]:
        data = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"{self._path}: expected a JSON list of catalog entries")
        return [CatalogEntry.from_mapping(item) for item in data]


@dataclass(frozen=True)
class FieldMatch:
    field: str
    similarity: float
    new_value: Any
    existing_value: Any
    weight: float


@dataclass(frozen=True)
class DuplicateMatch:
    existing_entry: CatalogEntry
    similarity: float
    match_type: MatchType
    matching_fields: tuple[FieldMatch, ...]
    confidence: float
    recommendation: Recommendation
    explanation: str


@dataclass(frozen=True)
class DuplicateDetectionConfig:
    min_similarity: float = _DEFAULT_MIN_SIMILARITY
    exact_threshold: float = 0.9
    likely_threshold: float = 0.7
    possible_threshold: float = 0.5
    edition_threshold: float = 0.8
    weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_FIELD_WEIGHTS))

    def __post_init__(self) -> None:
        if not self.exact_threshold >= self.likely_threshold >= self.possible_threshold:
            raise ValueError("thresholds must satisfy exact >= likely >= possible")
        missing = set(DEFAULT_FIELD_WEIGHTS) - set(self.weights)
        if missing:
            raise ValueError(f"weights missing for: {', '.join(sorted(missing))}")


def isbn_similarity(a: Sequence[str], b: Sequence[str]) -> float:
    """1.0 if any ISBN is shared after normalization, else 0.0."""
    left = {normalize_isbn(i) for i in a if i.strip()}
    right = {normalize_isbn(i) for i in b if i.strip()}
    return 1.0 if left & right else 0.0


def date_similarity(a: str | None, b: str | None) -> float:
    """Graded by how much of year/month/day two dates share."""
    if not a or not b:
        return 0.0
    left, right = parse_date(a), parse_date(b)
    return _date_similarity(left, right)


def _date_similarity(left: PublicationDate, right: PublicationDate) -> float:
    if left.year is None or right.year is None:
        return 0.0
    if left.year != right.year:
        gap = abs(left.year - right.year)
        if gap <= 1:
            return 0.6
        if gap <= 2:
            return 0.4
        return 0.0
    if left.month is None or right.month is None:
        return 0.8
    if left.month != right.month:
        return 0.7
    if left.day is None or right.day is None:
        return 0.9
    return 1.0 if left.day == right.day else 0.8


def publisher_similarity(a: str | None, b: str | None) -> float:
    if not a or not b:
        return 0.0
    return string_similarity(normalize_publisher_name(a), normalize_publisher_name(b))


def series_similarity(a: Sequence[Series], b: Sequence[Series]) -> float:
    """Best pairwise score: name similarity weighted 0.8, matching volume 0.2."""
    best = 0.0
    for left in a:
        for right in b:
            name = string_similarity(left.normalized, right.normalized)
            volume = 1.0 if left.volume == right.volume else 0.0
            best = max(best, name * 0.8 + volume * 0.2)
    return best


def classify(
    similarity: float,
    *,
    isbn: float,
    title: float,
    authors: float,
    config: DuplicateDetectionConfig | None = None,
) -> tuple[MatchType, Recommendation]:
    """Map a weighted similarity onto a match type and its recommendation."""
    config = config or DuplicateDetectionConfig()
    if similarity >= config.exact_threshold:
        return MatchType.EXACT, Recommendation.SKIP
    if similarity >= config.likely_threshold:
        return MatchType.LIKELY, Recommendation.REVIEW_MANUALLY
    if similarity >= config.possible_threshold:
        return MatchType.POSSIBLE, Recommendation.REVIEW_MANUALLY
    edition = config.edition_threshold
    if isbn > edition or (title > edition and authors > edition):
        return MatchType.DIFFERENT_EDITION, Recommendation.ADD_AS_NEW
    return MatchType.RELATED_WORK, Recommendation.ADD_AS_NEW


def calculate_duplicate_match(
    candidate: CatalogEntry,
    existing: CatalogEntry,
    config: DuplicateDetectionConfig | None = None,
) -> DuplicateMatch:
    """Compare one candidate against one existing entry.

    Title and authors always count toward the weighted mean; the other
    fields count only when they have some similarity, so missing data does
    not drag the score down.
    """
    config = config or DuplicateDetectionConfig()
    weights = config.weights
    scores = {
        "title": string_similarity(candidate.title, existing.title),
        "authors": author_similarity(candidate.authors, existing.authors)
        if candidate.authors and existing.authors
        else 0.0,
        "isbn": isbn_similarity(candidate.isbn, existing.isbn),
        "publication_date": date_similarity(
            candidate.publication_date, existing.publication_date
        ),
        "publisher": publisher_similarity(candidate.publisher, existing.publisher),
        "series": series_similarity(candidate.series, existing.series),
    }
    always = ("title", "authors")

    fields: list[FieldMatch] = []
    total = 0.0
    weight_total = 0.0
    for name, score in scores.items():
        if name not in always and score <= 0:
            continue
        fields.append(
            FieldMatch(
                field=name,
                similarity=score,
                new_value=getattr(candidate, name),
                existing_value=getattr(existing, name),
                weight=weights[name],
            )
        )
        total += score * weights[name]
        weight_total += weights[name]
    similarity = total / weight_total if weight_total else 0.0

    match_type, recommendation = classify(
        similarity,
        isbn=scores["isbn"],
        title=scores["title"],
        authors=scores["authors"],
        config=config,
    )
    strongest = sorted((f for f in fields if f.similarity >= 0.8), key=lambda f: -f.similarity)
    explanation = _EXPLANATIONS[match_type]
    if strongest:
        explanation += " Matching fields: " + ", ".join(f.field for f in strongest) + "."
    return DuplicateMatch(
        existing_entry=existing,
        similarity=similarity,
        match_type=match_type,
        matching_fields=tuple(fields),
        confidence=min(similarity + 0.1, 1.0),
        recommendation=recommendation,
        explanation=explanation,
    )


def detect_duplicates(
    candidate: CatalogEntry,
    existing: Sequence[CatalogEntry],
    config: DuplicateDetectionConfig | None = None,
) -> list[DuplicateMatch]:
    """Matches above config.min_similarity, most similar first."""
    config = config or DuplicateDetectionConfig()
    matches = [calculate_duplicate_match(candidate, entry, config) for entry in existing]
    kept = [m for m in matches if m.similarity > config.min_similarity]
    kept.sort(key=lambda m: m.similarity, reverse=True)
    logger.debug(
        "Screened %r against %d entr(ies): %d match(es)", candidate.title, len(existing), len(kept)
    )
    return kept


def screen_catalog(
    candidate: CatalogEntry,
    catalog: CatalogReader,
    config: DuplicateDetectionConfig | None = None,
) -> list[DuplicateMatch]:
    """detect_duplicates against every entry a CatalogReader returns."""
    return detect_duplicates(candidate, catalog.list_entries(), config)
