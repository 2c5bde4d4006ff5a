# ABOUTME: Data structures produced and consumed by field reconciliation.
# ABOUTME: Covers sources, reconciled fields, conflicts, and the per-field value types.

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ReconciliationInputError(ValueError):
    """Raised when reconciliation input does not have the expected shape."""


class ConflictType(StrEnum):
    VALUE_MISMATCH = "value_mismatch"
    FORMAT_DIFFERENCE = "format_difference"
    PRECISION_DIFFERENCE = "precision_difference"
    COMPLETENESS_DIFFERENCE = "completeness_difference"
    QUALITY_DIFFERENCE = "quality_difference"
    TEMPORAL_DIFFERENCE = "temporal_difference"
    SOURCE_DISAGREEMENT = "source_disagreement"
    NORMALIZATION_CONFLICT = "normalization_conflict"


class ConflictSeverity(StrEnum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    INFORMATIONAL = "informational"


class DatePrecision(StrEnum):
    DAY = "day"
    MONTH = "month"
    YEAR = "year"
    UNKNOWN = "unknown"


class SubjectScheme(StrEnum):
    DEWEY = "dewey"
    LCC = "lcc"
    LCSH = "lcsh"
    BISAC = "bisac"
    CUSTOM = "custom"
    UNKNOWN = "unknown"


class SubjectType(StrEnum):
    SUBJECT = "subject"
    GENRE = "genre"
    KEYWORD = "keyword"
    TAG = "tag"


class IdentifierType(StrEnum):
    ISBN = "isbn"
    DOI = "doi"
    OCLC = "oclc"
    LCCN = "lccn"
    GOODREADS = "goodreads"
    AMAZON = "amazon"
    GOOGLE = "google"
    OTHER = "other"


class TocFormat(StrEnum):
    SIMPLE = "simple"
    HIERARCHICAL = "hierarchical"
    DETAILED = "detailed"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class MetadataSource:
    """Where a value came from and how far that source is trusted."""

    name: str
    reliability: float
    timestamp: datetime = field(default_factory=_utcnow, compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ReconciliationInputError("source name must not be empty")
        if not 0.0 <= self.reliability <= 1.0:
            msg = f"reliability must be between 0.0 and 1.0, got {self.reliability}"
            raise ReconciliationInputError(msg)


@dataclass(frozen=True)
class SourcedValue(Generic[T]):
    """One raw value for a field, as reported by one source."""

    value: T
    source: MetadataSource


@dataclass(frozen=True)
class ConflictValue:
    value: Any
    source: MetadataSource


@dataclass(frozen=True)
class ConflictImpact:
    score: float
    affected_areas: tuple[str, ...]


@dataclass(frozen=True)
class Conflict:
    """A classified disagreement between sources about one field."""

    type: ConflictType
    severity: ConflictSeverity
    field: str
    values: tuple[ConflictValue, ...]
    explanation: str
    resolution: str
    resolution_suggestions: tuple[str, ...]
    auto_resolvable: bool
    impact: ConflictImpact
    detection_metadata: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ReconciledField(Generic[T]):
    """The merged value of one field plus the evidence behind it."""

    value: T
    confidence: float
    sources: tuple[MetadataSource, ...]
    reasoning: str
    conflicts: tuple[Conflict, ...] = ()

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            msg = f"confidence must be between 0.0 and 1.0, got {self.confidence}"
            raise ValueError(msg)
        if not self.reasoning:
            raise ValueError("reasoning must not be empty")


@dataclass(frozen=True)
class PublicationDate:
    raw: str
    year: int | None = None
    month: int | None = None
    day: int | None = None
    precision: DatePrecision = DatePrecision.UNKNOWN

    def precision_rank(self) -> int:
        return _PRECISION_RANK[self.precision]

    def iso(self) -> str:
        """ISO-style rendering at the date's own precision."""
        if self.year is None:
            return self.raw
        if self.month is None:
            return f"{self.year:04d}"
        if self.day is None:
            return f"{self.year:04d}-{self.month:02d}"
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    def compatible_with(self, other: "PublicationDate") -> bool:
        """True when the two dates differ only in precision."""
        if self.year is None or other.year is None:
            return self.raw.strip().lower() == other.raw.strip().lower()
        if self.year != other.year:
            return False
        if self.month is None or other.month is None:
            return True
        if self.month != other.month:
            return False
        return self.day is None or other.day is None or self.day == other.day


_PRECISION_RANK = {
    DatePrecision.DAY: 3,
    DatePrecision.MONTH: 2,
    DatePrecision.YEAR: 1,
    DatePrecision.UNKNOWN: 0,
}


@dataclass(frozen=True)
class Publisher:
    name: str
    normalized: str
    location: str | None = None


@dataclass(frozen=True)
class PublicationPlace:
    name: str
    normalized: str
    country: str | None = None


@dataclass(frozen=True)
class Subject:
    name: str
    normalized: str
    scheme: SubjectScheme = SubjectScheme.UNKNOWN
    type: SubjectType = SubjectType.SUBJECT
    code: str | None = None
    hierarchy: tuple[str, ...] = ()


@dataclass(frozen=True)
class Identifier:
    type: IdentifierType
    value: str
    normalized: str
    valid: bool


@dataclass(frozen=True)
class Series:
    name: str
    normalized: str
    volume: float | None = None


@dataclass(frozen=True)
class Description:
    text: str
    quality: float | None = None
    language: str | None = None


@dataclass(frozen=True)
class TableOfContents:
    entries: tuple[str, ...]
    format: TocFormat = TocFormat.SIMPLE
    page_numbers: bool = False


@dataclass(frozen=True)
class Review:
    text: str
    rating: float | None = None
    scale: float = 5.0
    reviewer: str | None = None
    verified: bool = False
    helpful: int = 0
    total_votes: int = 0

    @property
    def helpful_ratio(self) -> float:
        return self.helpful / self.total_votes if self.total_votes else 0.0


@dataclass(frozen=True)
class Rating:
    value: float
    scale: float = 5.0
    count: int | None = None

    def __post_init__(self) -> None:
        if self.scale <= 0:
            raise ReconciliationInputError(f"rating scale must be positive, got {self.scale}")
        if not 0.0 <= self.value <= self.scale:
            msg = f"rating {self.value} outside scale 0..{self.scale}"
            raise ReconciliationInputError(msg)

    @property
    def normalized(self) -> float:
        return self.value / self.scale


@dataclass(frozen=True)
class CoverImage:
    url: str
    width: int | None = None
    height: int | None = None
    format: str | None = None
    verified: bool = False

    @property
    def pixels(self) -> int:
        return (self.width or 0) * (self.height or 0)
