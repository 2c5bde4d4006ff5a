# ABOUTME: ReconciliationEngine dispatches per-field inputs to the field reconcilers.
# ABOUTME: Also converts provider MetadataRecords into reconciliation inputs.

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from libris.metadata.types import MetadataRecord
from libris.reconcile.confidence import clamp
from libris.reconcile.conflicts import ConflictDetector, ConflictDetectorConfig, ConflictSummary
from libris.reconcile.content import ContentReconciler
from libris.reconcile.generic import (
    reconcile_authors,
    reconcile_languages,
    reconcile_page_counts,
    reconcile_titles,
)
from libris.reconcile.identifiers import reconcile_identifiers
from libris.reconcile.publication import PublicationReconciler
from libris.reconcile.series import reconcile_series
from libris.reconcile.subjects import reconcile_subjects
from libris.reconcile.types import (
    MetadataSource,
    ReconciledField,
    ReconciliationInputError,
    SourcedValue,
)

logger = logging.getLogger(__name__)

_DEFAULT_MIN_CONFIDENCE = 0.5
_SOURCE_BONUS_PER_FIELD = 0.02
_MAX_SOURCE_BONUS = 0.1

GENERAL_FIELDS = ("title", "authors", "language", "page_count")
PUBLICATION_FIELDS = ("publication_date", "publisher", "place")
CONTENT_FIELDS = (
    "description",
    "table_of_contents",
    "reviews",
    "rating",
    "cover_image",
    "excerpt",
)
SUPPORTED_FIELDS = frozenset(
    GENERAL_FIELDS + PUBLICATION_FIELDS + CONTENT_FIELDS + ("subjects", "identifiers", "series")
)
# Inputs accepted under another name.
FIELD_ALIASES = {"isbn": "identifiers", "date": "publication_date"}


@dataclass(frozen=True)
class ReconciliationConfig:
    reconcile_general: bool = True
    reconcile_publication: bool = True
    reconcile_subjects: bool = True
    reconcile_identifiers: bool = True
    reconcile_series: bool = True
    reconcile_content: bool = True
    min_confidence: float = _DEFAULT_MIN_CONFIDENCE
    detector: ConflictDetectorConfig = field(default_factory=ConflictDetectorConfig)

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_confidence <= 1.0:
            msg = f"min_confidence must be between 0.0 and 1.0, got {self.min_confidence}"
            raise ValueError(msg)


@dataclass(frozen=True)
class ReconciliationStats:
    total_sources: int
    fields_reconciled: int
    conflicts_detected: int
    conflicts_auto_resolvable: int
    processing_time: float


@dataclass(frozen=True)
class ReconciliationResult:
    """Every reconciled field plus the conflict analysis across them."""

    fields: dict[str, ReconciledField[Any]]
    conflict_summary: ConflictSummary
    overall_confidence: float
    stats: ReconciliationStats
    min_confidence: float = _DEFAULT_MIN_CONFIDENCE

    def accepted_fields(self) -> dict[str, ReconciledField[Any]]:
        """Fields with a value and confidence at or above the acceptance threshold."""
        return {
            name: value
            for name, value in self.fields.items()
            if value.value not in (None, ()) and value.confidence >= self.min_confidence
        }

    def value(self, name: str) -> Any:
        reconciled = self.fields.get(name)
        return reconciled.value if reconciled is not None else None


def _validate(inputs_by_field: Mapping[str, Any]) -> dict[str, list[SourcedValue[Any]]]:
    validated: dict[str, list[SourcedValue[Any]]] = {}
    for name, items in inputs_by_field.items():
        canonical = FIELD_ALIASES.get(name, name)
        if canonical not in SUPPORTED_FIELDS:
            raise ReconciliationInputError(f"unknown field: {name!r}")
        if isinstance(items, SourcedValue) or not isinstance(items, Sequence):
            raise ReconciliationInputError(
                f"inputs for {name!r} must be a sequence of SourcedValue"
            )
        for item in items:
            if not isinstance(item, SourcedValue):
                raise ReconciliationInputError(
                    f"inputs for {name!r} must be SourcedValue, got {type(item).__name__}"
                )
        validated.setdefault(canonical, []).extend(items)
    return validated


def overall_confidence(fields: Mapping[str, ReconciledField[Any]]) -> float:
    """Mean of the non-zero field confidences plus a small bonus per reconciled field."""
    confidences = [f.confidence for f in fields.values() if f.confidence > 0]
    if not confidences:
        return 0.0
    bonus = min(_MAX_SOURCE_BONUS, len(confidences) * _SOURCE_BONUS_PER_FIELD)
    return clamp(sum(confidences) / len(confidences) + bonus)


class ReconciliationEngine:
    """Runs every enabled field reconciler over per-field, per-source inputs."""

    def __init__(self, config: ReconciliationConfig | None = None) -> None:
        self._config = config or ReconciliationConfig()
        self._detector = ConflictDetector(self._config.detector)
        self._publication = PublicationReconciler(self._detector)
        self._content = ContentReconciler(self._detector)

    @property
    def config(self) -> ReconciliationConfig:
        return self._config

    @property
    def detector(self) -> ConflictDetector:
        return self._detector

    def reconcile(self, inputs_by_field: Mapping[str, Any]) -> ReconciliationResult:
        """Reconcile each field independently and summarize the conflicts.

        Args:
            inputs_by_field: Field name to the raw values reported for it, one
                SourcedValue per source. Only fields present are reconciled.

        Returns:
            A ReconciliationResult holding one ReconciledField per input field.

        Raises:
            ReconciliationInputError: An unknown field name or an input that
                is not a SourcedValue.
        """
        started = time.monotonic()
        inputs = _validate(inputs_by_field)
        config = self._config
        detector = self._detector
        fields: dict[str, ReconciledField[Any]] = {}

        if config.reconcile_general:
            general = {
                "title": reconcile_titles,
                "authors": reconcile_authors,
                "language": reconcile_languages,
                "page_count": reconcile_page_counts,
            }
            for name, reconciler in general.items():
                if name in inputs:
                    fields[name] = reconciler(inputs[name], detector)

        if config.reconcile_publication and any(name in inputs for name in PUBLICATION_FIELDS):
            publication = self._publication.reconcile(
                dates=inputs.get("publication_date", ()),
                publishers=inputs.get("publisher", ()),
                places=inputs.get("place", ()),
            )
            for name, reconciled in (
                ("publication_date", publication.date),
                ("publisher", publication.publisher),
                ("place", publication.place),
            ):
                if name in inputs:
                    fields[name] = reconciled

        if config.reconcile_subjects and "subjects" in inputs:
            fields["subjects"] = reconcile_subjects(inputs["subjects"], detector)
        if config.reconcile_identifiers and "identifiers" in inputs:
            fields["identifiers"] = reconcile_identifiers(inputs["identifiers"], detector)
        if config.reconcile_series and "series" in inputs:
            fields["series"] = reconcile_series(inputs["series"], detector)

        if config.reconcile_content and any(name in inputs for name in CONTENT_FIELDS):
            content = self._content.reconcile(inputs)
            for name, reconciled in content.fields().items():
                if name in inputs:
                    fields[name] = reconciled

        summary = detector.analyze_all_conflicts(
            {name: reconciled.conflicts for name, reconciled in fields.items()}
        )
        sources = {item.source.name for items in inputs.values() for item in items}
        stats = ReconciliationStats(
            total_sources=len(sources),
            fields_reconciled=sum(1 for f in fields.values() if f.confidence > 0),
            conflicts_detected=summary.total,
            conflicts_auto_resolvable=len(summary.auto_resolvable_conflicts),
            processing_time=time.monotonic() - started,
        )
        logger.info(
            "Reconciled %d field(s) from %d source(s); %d conflict(s)",
            stats.fields_reconciled,
            stats.total_sources,
            stats.conflicts_detected,
        )
        return ReconciliationResult(
            fields=fields,
            conflict_summary=summary,
            overall_confidence=overall_confidence(fields),
            stats=stats,
            min_confidence=config.min_confidence,
        )

    def reconcile_records(self, records: Sequence[MetadataRecord]) -> ReconciliationResult:
        """Reconcile provider records; each record's confidence is its source reliability."""
        return self.reconcile(record_inputs(records))


def record_inputs(records: Sequence[MetadataRecord]) -> dict[str, list[SourcedValue[Any]]]:
    """Turn MetadataRecords into per-field reconciliation inputs."""
    inputs: dict[str, list[SourcedValue[Any]]] = {}

    def add(name: str, value: Any, source: MetadataSource) -> None:
        if not value:
            return
        inputs.setdefault(name, []).append(SourcedValue(value, source))

    for record in records:
        source = MetadataSource(
            name=record.source, reliability=record.confidence, timestamp=record.timestamp
        )
        add("title", record.title, source)
        add("authors", record.authors, source)
        add("identifiers", list(record.isbn), source)
        add("publisher", record.publisher, source)
        add("publication_date", record.publication_date, source)
        add("description", record.description, source)
        add("subjects", list(record.subjects), source)
        add("page_count", record.page_count, source)
        add("language", record.language, source)
        add("cover_image", record.cover_image, source)
        if record.series:
            add("series", {"name": record.series, "volume": record.series_volume}, source)
    return inputs


def reconcile(
    inputs_by_field: Mapping[str, Any], config: ReconciliationConfig | None = None
) -> ReconciliationResult:
    """Reconcile per-field inputs with a fresh engine."""
    return ReconciliationEngine(config).reconcile(inputs_by_field)


def reconcile_records(
    records: Sequence[MetadataRecord], config: ReconciliationConfig | None = None
) -> ReconciliationResult:
    return ReconciliationEngine(config).reconcile_records(records)
