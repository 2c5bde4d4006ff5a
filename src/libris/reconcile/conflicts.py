# ABOUTME: ConflictDetector classifies disagreements between sources for one field.
# ABOUTME: Severity follows disagreement magnitude and the reliability of the agreeing side.

import logging
from collections import Counter, defaultdict
from collections.abc import Callable, Hashable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from libris.reconcile.similarity import (
    normalize_text,
    relative_difference,
    set_similarity,
    string_similarity,
)
from libris.reconcile.types import (
    Conflict,
    ConflictImpact,
    ConflictSeverity,
    ConflictType,
    ConflictValue,
    CoverImage,
    Description,
    Identifier,
    PublicationDate,
    Rating,
    SourcedValue,
    TableOfContents,
)

logger = logging.getLogger(__name__)

_DEFAULT_NUMERIC_THRESHOLD = 0.05
_DEFAULT_STRING_THRESHOLD = 0.8
_DEFAULT_DATE_DIFFERENCE_DAYS = 30
_DEFAULT_MAX_CONFLICTS = 10
_DEFAULT_QUALITY_SPREAD = 0.3

# How much a reliable agreeing side damps severity (0 = not at all, 1 = fully).
_RELIABILITY_DAMPING = 0.5
# Group weights closer than this count as a split decision.
_SPLIT_MARGIN = 0.1
_PRECISION_MAGNITUDE = 0.2
_DATE_SPAN_DAYS = 3650
_COMPARE_PREFIX = 500

_SEVERITY_THRESHOLDS = (
    (0.6, ConflictSeverity.CRITICAL),
    (0.35, ConflictSeverity.MAJOR),
    (0.15, ConflictSeverity.MINOR),
)
SEVERITY_WEIGHTS: Mapping[ConflictSeverity, float] = {
    ConflictSeverity.CRITICAL: 1.0,
    ConflictSeverity.MAJOR: 0.7,
    ConflictSeverity.MINOR: 0.4,
    ConflictSeverity.INFORMATIONAL: 0.1,
}

AUTO_RESOLVABLE_TYPES = frozenset(
    {
        ConflictType.FORMAT_DIFFERENCE,
        ConflictType.PRECISION_DIFFERENCE,
        ConflictType.COMPLETENESS_DIFFERENCE,
    }
)
_MINOR_TYPES = frozenset(
    {
        ConflictType.FORMAT_DIFFERENCE,
        ConflictType.QUALITY_DIFFERENCE,
        ConflictType.NORMALIZATION_CONFLICT,
    }
)

_CORE_FIELDS = frozenset({"title", "authors", "isbn", "identifiers", "publication_date"})
_AFFECTED_AREAS: Mapping[str, tuple[str, ...]] = {
    "title": ("display", "search", "duplicate_detection"),
    "authors": ("display", "search", "duplicate_detection"),
    "isbn": ("identification", "duplicate_detection"),
    "identifiers": ("identification", "duplicate_detection"),
    "publication_date": ("display", "sorting", "edition_matching"),
    "publisher": ("display", "edition_matching"),
    "subjects": ("browsing", "search"),
    "series": ("browsing", "sorting"),
}
_DEFAULT_AREAS = ("display",)

_RESOLUTIONS: Mapping[ConflictType, tuple[str, tuple[str, ...]]] = {
    ConflictType.VALUE_MISMATCH: (
        "Kept the value backed by the strongest group of sources",
        ("Verify the value against an authoritative source", "Prefer the most reliable provider"),
    ),
    ConflictType.SOURCE_DISAGREEMENT: (
        "Sources are evenly split; kept the side with the more reliable source",
        ("Review both candidates manually", "Query an additional provider to break the tie"),
    ),
    ConflictType.FORMAT_DIFFERENCE: (
        "Collapsed equivalent representations into one canonical form",
        ("Store the canonical form",),
    ),
    ConflictType.PRECISION_DIFFERENCE: (
        "Kept the most precise value consistent with every source",
        ("Use the most specific value",),
    ),
    ConflictType.COMPLETENESS_DIFFERENCE: (
        "Kept the most complete value",
        ("Merge the smaller set into the larger one",),
    ),
    ConflictType.QUALITY_DIFFERENCE: (
        "Sources agree but differ in reliability; weighted by reliability",
        ("Prefer values confirmed by high-reliability sources",),
    ),
    ConflictType.TEMPORAL_DIFFERENCE: (
        "Dates fall close together; kept the date from the strongest source",
        ("Check whether the sources describe different printings",),
    ),
    ConflictType.NORMALIZATION_CONFLICT: (
        "Near-identical values normalize to different forms",
        ("Add the variant to the normalization tables", "Review the spelling manually"),
    ),
}

Key = Callable[[Any], Hashable]


@dataclass(frozen=True)
class ConflictDetectorConfig:
    numeric_threshold: float = _DEFAULT_NUMERIC_THRESHOLD
    string_similarity_threshold: float = _DEFAULT_STRING_THRESHOLD
    date_difference_days: int = _DEFAULT_DATE_DIFFERENCE_DAYS
    detect_minor_conflicts: bool = True
    max_conflicts_per_field: int | None = _DEFAULT_MAX_CONFLICTS
    quality_spread: float = _DEFAULT_QUALITY_SPREAD


@dataclass(frozen=True)
class ConflictSummary:
    """Aggregate view of every conflict found during one reconciliation."""

    total: int
    by_severity: dict[ConflictSeverity, int]
    by_type: dict[ConflictType, int]
    by_field: dict[str, int]
    auto_resolvable_conflicts: tuple[Conflict, ...]
    manual_conflicts: tuple[Conflict, ...]
    overall_score: float
    problematic_fields: tuple[str, ...]
    recommendations: tuple[str, ...]


def severity_for_score(score: float) -> ConflictSeverity:
    """Map a severity score in [0, 1] onto a severity level."""
    for threshold, severity in _SEVERITY_THRESHOLDS:
        if score >= threshold:
            return severity
    return ConflictSeverity.INFORMATIONAL


def canonical_form(value: Any) -> Hashable:
    """Comparison key for a raw field value, independent of surface formatting."""
    if isinstance(value, PublicationDate):
        if value.year is None:
            return ("raw", normalize_text(value.raw))
        return (value.year, value.month, value.day)
    if isinstance(value, Identifier):
        return (value.type.value, value.normalized)
    if isinstance(value, Rating):
        return round(value.normalized, 4)
    if isinstance(value, Description):
        return normalize_text(value.text)[:_COMPARE_PREFIX]
    if isinstance(value, TableOfContents):
        return frozenset(normalize_text(entry) for entry in value.entries)
    if isinstance(value, CoverImage):
        return value.url.strip()
    normalized = getattr(value, "normalized", None)
    if isinstance(normalized, str):
        return normalized
    if isinstance(value, str):
        return normalize_text(value)
    if isinstance(value, bool | int | float):
        return float(value)
    if isinstance(value, list | tuple | set | frozenset):
        return frozenset(canonical_form(item) for item in value)
    return value


def surface_form(value: Any) -> str:
    """How a value was written by its source."""
    if isinstance(value, PublicationDate):
        return value.raw
    if isinstance(value, Identifier):
        return value.value
    if isinstance(value, Description):
        return value.text
    name = getattr(value, "name", None)
    if isinstance(name, str):
        return name
    if isinstance(value, list | tuple):
        return ", ".join(surface_form(item) for item in value)
    return str(value)


def _date_ordinal(value: PublicationDate) -> int | None:
    if value.year is None:
        return None
    try:
        return date(value.year, value.month or 1, value.day or 1).toordinal()
    except ValueError:
        return None


def _days_apart(a: PublicationDate, b: PublicationDate) -> int | None:
    first, second = _date_ordinal(a), _date_ordinal(b)
    if first is None or second is None:
        return None
    return abs(first - second)


class ConflictDetector:
    """Compares per-source values of a field and classifies their disagreements."""

    def __init__(self, config: ConflictDetectorConfig | None = None) -> None:
        self._config = config or ConflictDetectorConfig()

    @property
    def config(self) -> ConflictDetectorConfig:
        return self._config

    def similarity(self, a: Any, b: Any, key: Key | None = None) -> float:
        """Type-appropriate similarity in [0, 1]."""
        if key is not None:
            return 1.0 if key(a) == key(b) else 0.0
        left, right = canonical_form(a), canonical_form(b)
        if left == right:
            return 1.0
        if isinstance(a, PublicationDate) and isinstance(b, PublicationDate):
            if a.compatible_with(b):
                return 1.0
            days = _days_apart(a, b)
            return 0.0 if days is None else max(0.0, 1.0 - days / _DATE_SPAN_DAYS)
        if isinstance(left, float) and isinstance(right, float):
            return 1.0 - min(1.0, relative_difference(left, right))
        if isinstance(left, frozenset) and isinstance(right, frozenset):
            return set_similarity(left, right)
        if isinstance(left, str) and isinstance(right, str):
            return string_similarity(left, right)
        return 0.0

    def are_similar(self, a: Any, b: Any, key: Key | None = None) -> bool:
        """Whether two values count as the same claim for grouping purposes."""
        if key is not None:
            return key(a) == key(b)
        left, right = canonical_form(a), canonical_form(b)
        if left == right:
            return True
        if isinstance(a, PublicationDate) and isinstance(b, PublicationDate):
            if a.compatible_with(b):
                return True
            days = _days_apart(a, b)
            return days is not None and days <= self._config.date_difference_days
        if isinstance(left, float) and isinstance(right, float):
            return relative_difference(left, right) <= self._config.numeric_threshold
        if isinstance(left, frozenset) and isinstance(right, frozenset):
            if left and right and (left <= right or right <= left):
                return True
            return set_similarity(left, right) >= self._config.string_similarity_threshold
        if isinstance(left, str) and isinstance(right, str):
            return string_similarity(left, right) >= self._config.string_similarity_threshold
        return False

    def group_values(
        self, values: Sequence[SourcedValue[Any]], key: Key | None = None
    ) -> list[list[SourcedValue[Any]]]:
        """Cluster values; each value joins the first group whose first member it matches."""
        groups: list[list[SourcedValue[Any]]] = []
        for item in values:
            for group in groups:
                if self.are_similar(group[0].value, item.value, key):
                    group.append(item)
                    break
            else:
                groups.append([item])
        return groups

    def split_agreement(
        self, reference: Any, values: Sequence[SourcedValue[Any]], key: Key | None = None
    ) -> tuple[list[SourcedValue[Any]], list[SourcedValue[Any]]]:
        """Partition values into those agreeing with reference and the rest."""
        agreeing: list[SourcedValue[Any]] = []
        dissenting: list[SourcedValue[Any]] = []
        for item in values:
            (agreeing if self.are_similar(reference, item.value, key) else dissenting).append(item)
        return agreeing, dissenting

    def detect_field_conflicts(
        self,
        field: str,
        values: Sequence[SourcedValue[Any]],
        reconciled: Any = None,
        *,
        key: Key | None = None,
    ) -> list[Conflict]:
        """Classify disagreements among the raw values of one field.

        Args:
            field: Field name, used for impact and reporting.
            values: Raw per-source values.
            reconciled: The value chosen by the reconciler, if any; the group
                containing it is treated as the agreeing side.
            key: Optional exact comparison key (identifiers, ISBNs).

        Returns:
            Conflicts, at most max_conflicts_per_field of them.
        """
        if len(values) < 2:
            return []

        groups = self.group_values(values, key)
        winner = self._winning_group(groups, reconciled, key)
        agree_reliability = max(item.source.reliability for item in winner)
        conflicts: list[Conflict] = []

        if len(groups) > 1:
            conflicts.append(self._disagreement(field, groups, winner, agree_reliability, key))

        for group in groups:
            if len(group) < 2:
                continue
            group_reliability = max(item.source.reliability for item in group)
            conflicts.extend(
                self._within_group(field, group, group_reliability, len(groups), key)
            )

        if not self._config.detect_minor_conflicts:
            conflicts = [c for c in conflicts if c.type not in _MINOR_TYPES]
        limit = self._config.max_conflicts_per_field
        if limit is not None:
            conflicts = conflicts[:limit]
        if conflicts:
            logger.debug(
                "Field %s: %d conflict(s) %s",
                field,
                len(conflicts),
                [c.type.value for c in conflicts],
            )
        return conflicts

    def analyze_all_conflicts(
        self, conflicts_by_field: Mapping[str, Sequence[Conflict]]
    ) -> ConflictSummary:
        """Summarize conflicts across fields with counts, a score, and recommendations."""
        everything = [c for conflicts in conflicts_by_field.values() for c in conflicts]
        by_severity = Counter(c.severity for c in everything)
        by_type = Counter(c.type for c in everything)
        by_field = Counter(c.field for c in everything)
        auto = tuple(c for c in everything if c.auto_resolvable)
        manual = tuple(c for c in everything if not c.auto_resolvable)

        weight_total = sum(SEVERITY_WEIGHTS[c.severity] for c in everything)
        overall = (
            sum(SEVERITY_WEIGHTS[c.severity] * c.impact.score for c in everything) / weight_total
            if weight_total
            else 0.0
        )
        problematic = tuple(name for name, _ in by_field.most_common(5))

        return ConflictSummary(
            total=len(everything),
            by_severity={s: by_severity.get(s, 0) for s in ConflictSeverity},
            by_type={t: by_type[t] for t in ConflictType if by_type[t]},
            by_field=dict(by_field),
            auto_resolvable_conflicts=auto,
            manual_conflicts=manual,
            overall_score=min(1.0, overall),
            problematic_fields=problematic,
            recommendations=tuple(self._recommendations(by_severity, auto, manual)),
        )

    def _winning_group(
        self,
        groups: list[list[SourcedValue[Any]]],
        reconciled: Any,
        key: Key | None,
    ) -> list[SourcedValue[Any]]:
        if reconciled is not None:
            target = key(reconciled) if key is not None else canonical_form(reconciled)
            for group in groups:
                for item in group:
                    found = key(item.value) if key is not None else canonical_form(item.value)
                    if found == target:
                        return group
            for group in groups:
                if self.are_similar(group[0].value, reconciled, key):
                    return group
        return max(groups, key=_group_weight)

    def _disagreement(
        self,
        field: str,
        groups: list[list[SourcedValue[Any]]],
        winner: list[SourcedValue[Any]],
        agree_reliability: float,
        key: Key | None,
    ) -> Conflict:
        others = [g for g in groups if g is not winner]
        magnitude = max(1.0 - self.similarity(winner[0].value, g[0].value, key) for g in others)
        strongest_other = max(_group_weight(g) for g in others)
        split = abs(_group_weight(winner) - strongest_other) <= _SPLIT_MARGIN
        conflict_type = ConflictType.SOURCE_DISAGREEMENT if split else ConflictType.VALUE_MISMATCH
        rendered = "; ".join(
            f"{surface_form(g[0].value)!r} ({', '.join(i.source.name for i in g)})" for g in groups
        )
        explanation = f"{len(groups)} incompatible values reported for {field}: {rendered}"
        members = [item for group in groups for item in group]
        return self._build(
            conflict_type,
            field,
            members,
            magnitude,
            agree_reliability,
            group_count=len(groups),
            explanation=explanation,
            metadata={"winning_weight": _group_weight(winner), "strongest_other": strongest_other},
        )

    def _within_group(
        self,
        field: str,
        group: list[SourcedValue[Any]],
        reliability: float,
        group_count: int,
        key: Key | None,
    ) -> list[Conflict]:
        conflicts: list[Conflict] = []

        by_canonical: dict[Hashable, list[SourcedValue[Any]]] = defaultdict(list)
        for item in group:
            by_canonical[key(item.value) if key is not None else canonical_form(item.value)].append(
                item
            )

        for members in by_canonical.values():
            surfaces = {surface_form(m.value) for m in members}
            if len(surfaces) > 1:
                conflicts.append(
                    self._build(
                        ConflictType.FORMAT_DIFFERENCE,
                        field,
                        members,
                        0.0,
                        reliability,
                        group_count=group_count,
                        explanation=(
                            f"Same {field} written {len(surfaces)} ways: "
                            + ", ".join(sorted(surfaces))
                        ),
                    )
                )

        dates = [m for m in group if isinstance(m.value, PublicationDate)]
        if dates:
            conflicts.extend(self._date_conflicts(field, dates, reliability, group_count))
        else:
            distinct = list(by_canonical)
            if len(distinct) > 1 and all(isinstance(c, str) for c in distinct):
                conflicts.append(
                    self._build(
                        ConflictType.NORMALIZATION_CONFLICT,
                        field,
                        group,
                        1.0 - min(self.similarity(a, b) for a in distinct for b in distinct),
                        reliability,
                        group_count=group_count,
                        explanation=(
                            f"Similar {field} values normalize differently: "
                            + ", ".join(sorted(_short(str(c)) for c in distinct))
                        ),
                    )
                )
            if len(distinct) > 1 and all(isinstance(c, frozenset) for c in distinct):
                completeness = self._completeness(field, group, reliability, group_count)
                if completeness is not None:
                    conflicts.append(completeness)

        spread = max(m.source.reliability for m in group) - min(
            m.source.reliability for m in group
        )
        if spread > self._config.quality_spread:
            conflicts.append(
                self._build(
                    ConflictType.QUALITY_DIFFERENCE,
                    field,
                    group,
                    spread * 0.5,
                    reliability,
                    group_count=group_count,
                    explanation=(
                        f"Sources agree on {field} but their reliability differs by {spread:.2f}"
                    ),
                    metadata={"reliability_spread": spread},
                )
            )
        return conflicts

    def _date_conflicts(
        self,
        field: str,
        dates: list[SourcedValue[Any]],
        reliability: float,
        group_count: int,
    ) -> list[Conflict]:
        conflicts: list[Conflict] = []
        precisions = {m.value.precision for m in dates}
        if len(precisions) > 1:
            conflicts.append(
                self._build(
                    ConflictType.PRECISION_DIFFERENCE,
                    field,
                    dates,
                    _PRECISION_MAGNITUDE,
                    reliability,
                    group_count=group_count,
                    explanation=(
                        f"{field} given at different precisions: "
                        + ", ".join(f"{m.value.raw} ({m.value.precision.value})" for m in dates)
                    ),
                    metadata={"precisions": sorted(p.value for p in precisions)},
                )
            )
        incompatible = [
            (a, b)
            for i, a in enumerate(dates)
            for b in dates[i + 1 :]
            if not a.value.compatible_with(b.value)
        ]
        if incompatible:
            gap = max(_days_apart(a.value, b.value) or 0 for a, b in incompatible)
            conflicts.append(
                self._build(
                    ConflictType.TEMPORAL_DIFFERENCE,
                    field,
                    dates,
                    0.3 * min(1.0, gap / max(1, self._config.date_difference_days)),
                    reliability,
                    group_count=group_count,
                    explanation=f"{field} values differ by up to {gap} day(s)",
                    metadata={"max_days_apart": gap},
                )
            )
        return conflicts

    def _completeness(
        self,
        field: str,
        group: list[SourcedValue[Any]],
        reliability: float,
        group_count: int,
    ) -> Conflict | None:
        sets = [(m, canonical_form(m.value)) for m in group]
        pairs = [
            (small, large)
            for small in sets
            for large in sets
            if small[1] and small[1] < large[1]
        ]
        if not pairs:
            return None
        ratio = min(len(s[1]) / len(l[1]) for s, l in pairs)
        return self._build(
            ConflictType.COMPLETENESS_DIFFERENCE,
            field,
            group,
            0.5 * (1.0 - ratio),
            reliability,
            group_count=group_count,
            explanation=(
                f"Some sources report a subset of {field}: "
                + "; ".join(f"{s[0].source.name} within {l[0].source.name}" for s, l in pairs[:3])
            ),
        )

    def _build(
        self,
        conflict_type: ConflictType,
        field: str,
        members: Sequence[SourcedValue[Any]],
        magnitude: float,
        agree_reliability: float,
        *,
        group_count: int,
        explanation: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> Conflict:
        magnitude = max(0.0, min(1.0, magnitude))
        score = magnitude * (1.0 - _RELIABILITY_DAMPING * agree_reliability)
        severity = severity_for_score(score)
        resolution, suggestions = _RESOLUTIONS[conflict_type]
        impact_score = 0.1 + 0.3 * score
        if field in _CORE_FIELDS:
            impact_score += 0.4
        if group_count > 2:
            impact_score += 0.2
        return Conflict(
            type=conflict_type,
            severity=severity,
            field=field,
            values=tuple(ConflictValue(value=m.value, source=m.source) for m in members),
            explanation=explanation,
            resolution=resolution,
            resolution_suggestions=suggestions,
            auto_resolvable=conflict_type in AUTO_RESOLVABLE_TYPES,
            impact=ConflictImpact(
                score=min(1.0, impact_score),
                affected_areas=_AFFECTED_AREAS.get(field, _DEFAULT_AREAS),
            ),
            detection_metadata={
                "magnitude": magnitude,
                "severity_score": score,
                "agreeing_reliability": agree_reliability,
                "group_count": group_count,
                **(metadata or {}),
            },
        )

    @staticmethod
    def _recommendations(
        by_severity: Counter[ConflictSeverity],
        auto: tuple[Conflict, ...],
        manual: tuple[Conflict, ...],
    ) -> list[str]:
        recommendations: list[str] = []
        critical = by_severity.get(ConflictSeverity.CRITICAL, 0)
        major = by_severity.get(ConflictSeverity.MAJOR, 0)
        if critical:
            recommendations.append(f"{critical} critical conflict(s) need manual review")
        if major:
            recommendations.append(f"Review {major} major conflict(s) before applying metadata")
        if auto:
            recommendations.append(f"{len(auto)} conflict(s) can be resolved automatically")
        if manual:
            recommendations.append(f"{len(manual)} conflict(s) require manual review")
        if not recommendations:
            recommendations.append("No conflicts detected - metadata is consistent across sources")
        return recommendations


def _short(text: str, limit: int = 60) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _group_weight(group: Sequence[SourcedValue[Any]]) -> float:
    return sum(item.source.reliability for item in group)
