# ABOUTME: Weighted-vote reconcilers for title, authors, language, and page count.
# ABOUTME: Values are grouped by similarity and the group with the most source reliability wins.

from collections.abc import Callable, Hashable, Sequence
from typing import Any

from libris.reconcile.confidence import consensus_confidence
from libris.reconcile.conflicts import ConflictDetector
from libris.reconcile.similarity import normalize_author
from libris.reconcile.types import ReconciledField, ReconciliationInputError, SourcedValue

_LANGUAGE_CODES = {
    "eng": "en",
    "english": "en",
    "fre": "fr",
    "fra": "fr",
    "french": "fr",
    "ger": "de",
    "deu": "de",
    "german": "de",
    "spa": "es",
    "spanish": "es",
    "ita": "it",
    "italian": "it",
    "por": "pt",
    "portuguese": "pt",
    "dut": "nl",
    "nld": "nl",
    "dutch": "nl",
    "rus": "ru",
    "russian": "ru",
    "jpn": "ja",
    "japanese": "ja",
    "chi": "zh",
    "zho": "zh",
    "chinese": "zh",
}


def normalize_language(value: str) -> str:
    """Two-letter language code for common ISO 639-2 codes and English names."""
    text = value.strip().lower().replace("_", "-")
    if text.startswith("/languages/"):
        text = text.rsplit("/", 1)[-1]
    base = text.split("-", 1)[0]
    return _LANGUAGE_CODES.get(base, base)


def display_author(name: str) -> str:
    """Turn 'Last, First' into 'First Last'; other forms pass through stripped."""
    name = " ".join(name.split())
    if name.count(",") == 1:
        last, first = (part.strip() for part in name.split(","))
        if first and last:
            return f"{first} {last}"
    return name


def reconcile_by_vote(
    field: str,
    values: Sequence[SourcedValue[Any]],
    detector: ConflictDetector,
    *,
    key: Callable[[Any], Hashable] | None = None,
) -> ReconciledField[Any]:
    """Group similar values and keep the one backed by the most source reliability.

    The kept value is the form reported by the most reliable source in the
    winning group. Confidence starts from that source's reliability and
    follows the shared agreement rule.
    """
    if not values:
        return ReconciledField(
            value=None, confidence=0.0, sources=(), reasoning=f"No {field} information available"
        )
    groups = detector.group_values(values, key)
    winner = max(groups, key=lambda g: sum(item.source.reliability for item in g))
    best = max(winner, key=lambda item: item.source.reliability)
    dissenting = [item for group in groups if group is not winner for item in group]
    confidence = consensus_confidence(
        best.source.reliability,
        len(winner),
        (item.source.reliability for item in dissenting),
    )
    reasoning = (
        f"{len(winner)} of {len(values)} source(s) agree on {field}; "
        f"kept the form from {best.source.name}"
    )
    if len(groups) > 1:
        reasoning += f"; {len(groups) - 1} competing value(s) outvoted"
    return ReconciledField(
        value=best.value,
        confidence=confidence,
        sources=tuple(item.source for item in winner),
        reasoning=reasoning,
        conflicts=tuple(detector.detect_field_conflicts(field, values, best.value, key=key)),
    )


def reconcile_titles(
    inputs: Sequence[SourcedValue[Any]],
    detector: ConflictDetector | None = None,
    *,
    field: str = "title",
) -> ReconciledField[str | None]:
    values = []
    for item in inputs:
        if item.value is None:
            continue
        if not isinstance(item.value, str):
            raise ReconciliationInputError(f"unsupported title value: {item.value!r}")
        if item.value.strip():
            values.append(SourcedValue(" ".join(item.value.split()), item.source))
    return reconcile_by_vote(field, values, detector or ConflictDetector())


def reconcile_authors(
    inputs: Sequence[SourcedValue[Any]],
    detector: ConflictDetector | None = None,
    *,
    field: str = "authors",
) -> ReconciledField[tuple[str, ...] | None]:
    """Author lists agree when they name the same people, in any order or name form."""
    values = []
    for item in inputs:
        raw = item.value
        if raw is None:
            continue
        names = [raw] if isinstance(raw, str) else list(raw)
        authors = tuple(display_author(str(name)) for name in names if str(name).strip())
        if authors:
            values.append(SourcedValue(authors, item.source))
    return reconcile_by_vote(
        field,
        values,
        detector or ConflictDetector(),
        key=lambda authors: frozenset(normalize_author(name) for name in authors),
    )


def reconcile_languages(
    inputs: Sequence[SourcedValue[Any]],
    detector: ConflictDetector | None = None,
    *,
    field: str = "language",
) -> ReconciledField[str | None]:
    values = [
        SourcedValue(normalize_language(str(item.value)), item.source)
        for item in inputs
        if item.value not in (None, "")
    ]
    return reconcile_by_vote(field, values, detector or ConflictDetector(), key=str)


def reconcile_page_counts(
    inputs: Sequence[SourcedValue[Any]],
    detector: ConflictDetector | None = None,
    *,
    field: str = "page_count",
) -> ReconciledField[int | None]:
    values = []
    for item in inputs:
        if item.value in (None, ""):
            continue
        try:
            count = int(item.value)
        except (TypeError, ValueError) as exc:
            raise ReconciliationInputError(f"invalid page count: {item.value!r}") from exc
        if count > 0:
            values.append(SourcedValue(count, item.source))
    return reconcile_by_vote(field, values, detector or ConflictDetector())
