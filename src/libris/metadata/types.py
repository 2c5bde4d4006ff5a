# ABOUTME: Core data structures for provider answers and the queries sent to providers.
# ABOUTME: MetadataRecord is the interchange format between providers and reconciliation.

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class MetadataType(StrEnum):
    """Field types a provider can supply, each with its own reliability score."""

    TITLE = "title"
    AUTHORS = "authors"
    ISBN = "isbn"
    PUBLICATION_DATE = "publication_date"
    SUBJECTS = "subjects"
    DESCRIPTION = "description"
    LANGUAGE = "language"
    PUBLISHER = "publisher"
    SERIES = "series"
    EDITION = "edition"
    PAGE_COUNT = "page_count"
    PHYSICAL_DIMENSIONS = "physical_dimensions"
    COVER_IMAGE = "cover_image"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_tuple(values: Any) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        return (values,)
    return tuple(values)


@dataclass(frozen=True)
class MetadataRecord:
    """One provider's answer to a query.

    Records are immutable once produced. List-valued fields are stored as
    tuples; lists passed to the constructor are converted.
    """

    id: str
    source: str
    confidence: float
    timestamp: datetime = field(default_factory=_utcnow)
    title: str | None = None
    authors: tuple[str, ...] = ()
    isbn: tuple[str, ...] = ()
    publisher: str | None = None
    publication_date: str | None = None
    description: str | None = None
    subjects: tuple[str, ...] = ()
    series: str | None = None
    series_volume: float | None = None
    page_count: int | None = None
    language: str | None = None
    cover_image: str | None = None
    physical_dimensions: str | None = None
    provider_data: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            msg = f"confidence must be between 0.0 and 1.0, got {self.confidence}"
            raise ValueError(msg)
        if not self.source:
            raise ValueError("source must not be empty")
        for name in ("authors", "isbn", "subjects"):
            object.__setattr__(self, name, _as_tuple(getattr(self, name)))

    @property
    def author(self) -> str:
        """Convenience property: joined author string for display."""
        return ", ".join(self.authors)


@dataclass(frozen=True)
class TitleQuery:
    title: str
    fuzzy: bool = False
    exact_match: bool = False


@dataclass(frozen=True)
class CreatorQuery:
    name: str
    role: str | None = None
    fuzzy: bool = False


@dataclass(frozen=True)
class MultiCriteriaQuery:
    """Combined search criteria; any subset of fields may be populated."""

    title: str | None = None
    authors: tuple[str, ...] = ()
    isbn: str | None = None
    language: str | None = None
    subjects: tuple[str, ...] = ()
    publisher: str | None = None
    year_range: tuple[int, int] | None = None
    fuzzy: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "authors", _as_tuple(self.authors))
        object.__setattr__(self, "subjects", _as_tuple(self.subjects))
        if self.year_range is not None:
            start, end = self.year_range
            if start > end:
                msg = f"year_range start must not exceed end, got {self.year_range}"
                raise ValueError(msg)
            object.__setattr__(self, "year_range", (start, end))

    def criteria_count(self) -> int:
        """Number of populated criteria."""
        populated = [
            self.title,
            self.authors,
            self.isbn,
            self.language,
            self.subjects,
            self.publisher,
            self.year_range,
        ]
        return sum(1 for value in populated if value)

    def is_empty(self) -> bool:
        return self.criteria_count() == 0
