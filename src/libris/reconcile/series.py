# ABOUTME: Series name normalization, volume parsing, and series reconciliation.
# ABOUTME: Sources are grouped by normalized series name; the strongest source sets the volume.

import re
from collections.abc import Mapping, Sequence
from typing import Any

from libris.reconcile.confidence import consensus_confidence
from libris.reconcile.conflicts import ConflictDetector
from libris.reconcile.similarity import normalize_text
from libris.reconcile.types import (
    ReconciledField,
    ReconciliationInputError,
    Series,
    SourcedValue,
)

_VOLUME_SUFFIX = re.compile(
    r"(?:^|[\s,;(]+)(?:#|no\.?|number|book|bk\.?|vol\.?|volume|part|pt\.?)\s*"
    r"(?P<volume>\d+(?:\.\d+)?|[ivxlc]+)\)?\s*$",
    re.IGNORECASE,
)
_BARE_VOLUME = re.compile(r"^\s*(?P<volume>\d+(?:\.\d+)?)\s*$")
_PARENTHETICAL = re.compile(r"\(([^)]*)\)\s*$")
_SERIES_WORDS = re.compile(r"\b(series|saga|trilogy|sequence|cycle|chronicles?)\s*$")
_LEADING_ARTICLE = re.compile(r"^(the|a|an)\s+")
_ROMAN = {"i": 1, "v": 5, "x": 10, "l": 50, "c": 100}


def roman_to_int(text: str) -> int | None:
    total = 0
    previous = 0
    for char in reversed(text.lower()):
        value = _ROMAN.get(char)
        if value is None:
            return None
        total = total - value if value < previous else total + value
        previous = max(previous, value)
    return total or None


def parse_volume(text: str | int | float | None) -> float | None:
    """Parse '3', '#3', 'Book 3', 'Vol. III' or '2.5' into a volume number."""
    if text is None:
        return None
    if isinstance(text, int | float):
        return float(text)
    match = _BARE_VOLUME.match(text) or _VOLUME_SUFFIX.search(text)
    if match is None:
        return None
    raw = match.group("volume")
    if raw[0].isdigit():
        return float(raw)
    number = roman_to_int(raw)
    return float(number) if number is not None else None


def split_series(text: str) -> tuple[str, float | None]:
    """Split 'Discworld #3' or 'Discworld (Book 3)' into name and volume."""
    name = text.strip()
    inner = _PARENTHETICAL.search(name)
    if inner and parse_volume(inner.group(1)) is not None:
        return name[: inner.start()].strip(" ,;"), parse_volume(inner.group(1))
    match = _VOLUME_SUFFIX.search(name)
    if match and match.start() > 0:
        return name[: match.start()].strip(" ,;"), parse_volume(match.group("volume"))
    return name, None


def normalize_series_name(name: str) -> str:
    """Comparison form of a series name. Idempotent."""
    normalized = normalize_text(split_series(name)[0])
    previous = None
    while previous != normalized:
        previous = normalized
        normalized = normalize_text(split_series(normalized)[0])
        normalized = _LEADING_ARTICLE.sub("", normalized)
        normalized = _SERIES_WORDS.sub("", normalized).strip()
    return normalized or normalize_text(name)


def make_series(value: Any, volume: Any = None) -> Series:
    """Build a Series from 'Name #3', a {name, volume} mapping, or a Series."""
    if isinstance(value, Series):
        return value
    if isinstance(value, Mapping):
        name = str(value.get("name") or "").strip()
        volume = value.get("volume", volume)
    elif isinstance(value, str):
        name = value.strip()
    else:
        raise ReconciliationInputError(f"unsupported series value: {value!r}")
    if not name:
        raise ReconciliationInputError("series name must not be empty")
    display, embedded = split_series(name)
    parsed = parse_volume(volume) if volume is not None else embedded
    return Series(name=display, normalized=normalize_series_name(display), volume=parsed)


def reconcile_series(
    inputs: Sequence[SourcedValue[Any]],
    detector: ConflictDetector | None = None,
    *,
    field: str = "series",
) -> ReconciledField[Series | None]:
    """Pick the series name most sources agree on and its best-supported volume."""
    detector = detector or ConflictDetector()
    series = [
        SourcedValue(make_series(item.value), item.source)
        for item in inputs
        if item.value not in (None, "")
    ]
    if not series:
        return ReconciledField(
            value=None, confidence=0.0, sources=(), reasoning="No series information available"
        )

    groups: dict[str, list[SourcedValue[Series]]] = {}
    for item in series:
        groups.setdefault(item.value.normalized, []).append(item)
    agreeing = max(groups.values(), key=lambda g: sum(i.source.reliability for i in g))
    dissenting = [item for item in series if item not in agreeing]
    ranked = sorted(agreeing, key=lambda i: i.source.reliability, reverse=True)
    best = ranked[0]

    volumes = [SourcedValue(i.value.volume, i.source) for i in ranked if i.value.volume is not None]
    volume = volumes[0].value if volumes else None
    value = Series(name=best.value.name, normalized=best.value.normalized, volume=volume)

    volume_agreeing, volume_dissenting = detector.split_agreement(volume, volumes)
    confidence = consensus_confidence(
        best.source.reliability,
        len(agreeing),
        [i.source.reliability for i in dissenting]
        + [i.source.reliability for i in volume_dissenting],
    )
    conflicts = detector.detect_field_conflicts(field, series, value)
    conflicts += detector.detect_field_conflicts(f"{field}_volume", volumes, volume)

    reasoning = f"Series {value.name!r} backed by {len(agreeing)} of {len(series)} source(s)"
    if volume is not None:
        reasoning += (
            f"; volume {volume:g} from {volumes[0].source.name}"
            f" ({len(volume_agreeing)} of {len(volumes)} agree)"
        )
    return ReconciledField(
        value=value,
        confidence=confidence,
        sources=tuple(item.source for item in agreeing),
        reasoning=reasoning,
        conflicts=tuple(conflicts),
    )
