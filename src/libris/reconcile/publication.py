# ABOUTME: Reconciles publication information: date, publisher, and place of publication.
# ABOUTME: Combines the three field results into one weighted publication confidence.

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from libris.reconcile.confidence import consensus_confidence
from libris.reconcile.conflicts import ConflictDetector
from libris.reconcile.dates import reconcile_dates
from libris.reconcile.publishers import reconcile_publishers
from libris.reconcile.types import (
    PublicationDate,
    PublicationPlace,
    Publisher,
    ReconciledField,
    ReconciliationInputError,
    SourcedValue,
)

_DATE_WEIGHT = 0.4
_PUBLISHER_WEIGHT = 0.4
_PLACE_WEIGHT = 0.2

_PUNCTUATION_RE = re.compile(r"[^\w\s,]")
_WHITESPACE_RE = re.compile(r"\s+")

_CITY_ALIASES: Mapping[str, str] = {
    "nyc": "new york",
    "new york city": "new york",
    "new york ny": "new york",
    "ny": "new york",
    "la": "los angeles",
    "sf": "san francisco",
    "washington dc": "washington",
    "washington d c": "washington",
    "london uk": "london",
    "london england": "london",
}

_COUNTRY_ALIASES: Mapping[str, str] = {
    "us": "united states",
    "usa": "united states",
    "u s a": "united states",
    "united states of america": "united states",
    "ny": "united states",
    "ma": "united states",
    "ca": "united states",
    "uk": "united kingdom",
    "england": "united kingdom",
    "great britain": "united kingdom",
    "gb": "united kingdom",
}


@dataclass(frozen=True)
class PublicationInfo:
    date: ReconciledField[PublicationDate | None]
    publisher: ReconciledField[Publisher | None]
    place: ReconciledField[PublicationPlace | None]
    confidence: float


def _clean(text: str) -> str:
    text = _PUNCTUATION_RE.sub(" ", text.lower().replace("&", " and "))
    return _WHITESPACE_RE.sub(" ", text).strip(" ,")


def normalize_place(name: str) -> PublicationPlace:
    """Split "City, Region" into a normalized city and an optional country.

    The normalized form is the canonical city name; normalizing it again
    returns the same string.
    """
    cleaned = _clean(name)
    parts = [part.strip() for part in cleaned.split(",") if part.strip()]
    if not parts:
        return PublicationPlace(name=name.strip(), normalized="")
    city = " ".join(parts[0].split())
    city = _CITY_ALIASES.get(city, city)
    country = None
    if len(parts) > 1:
        region = parts[-1]
        country = _COUNTRY_ALIASES.get(region, region)
    return PublicationPlace(name=name.strip(), normalized=city, country=country)


def reconcile_places(
    inputs: Sequence[SourcedValue[str | PublicationPlace | None]],
    detector: ConflictDetector | None = None,
    *,
    field: str = "place",
) -> ReconciledField[PublicationPlace | None]:
    """Merge places of publication by normalized city, strongest group wins."""
    detector = detector or ConflictDetector()
    places: list[SourcedValue[PublicationPlace]] = []
    for item in inputs:
        if not item.value:
            continue
        if isinstance(item.value, PublicationPlace):
            places.append(SourcedValue(item.value, item.source))
        elif isinstance(item.value, str):
            places.append(SourcedValue(normalize_place(item.value), item.source))
        else:
            raise ReconciliationInputError(f"unsupported place value: {item.value!r}")
    if not places:
        return ReconciledField(
            value=None,
            confidence=0.0,
            sources=(),
            reasoning="No publication place information available",
        )

    groups: dict[str, list[SourcedValue[PublicationPlace]]] = {}
    for item in places:
        groups.setdefault(item.value.normalized, []).append(item)
    winning_key, agreeing = max(
        groups.items(), key=lambda kv: sum(i.source.reliability for i in kv[1])
    )
    dissenting = [item for key, group in groups.items() if key != winning_key for item in group]
    best = max(agreeing, key=lambda item: item.source.reliability)
    country = None
    for item in sorted(agreeing, key=lambda i: i.source.reliability, reverse=True):
        if item.value.country:
            country = item.value.country
            break
    value = PublicationPlace(name=best.value.name, normalized=winning_key, country=country)

    return ReconciledField(
        value=value,
        confidence=consensus_confidence(
            best.source.reliability,
            len(agreeing),
            (item.source.reliability for item in dissenting),
        ),
        sources=tuple(item.source for item in agreeing),
        reasoning=(
            f"Selected {value.name!r} backed by {len(agreeing)} of {len(places)} source(s)"
        ),
        conflicts=tuple(detector.detect_field_conflicts(field, places, value)),
    )


class PublicationReconciler:
    """Reconciles date, publisher, and place together."""

    def __init__(self, detector: ConflictDetector | None = None) -> None:
        self._detector = detector or ConflictDetector()

    def reconcile(
        self,
        dates: Sequence[SourcedValue] = (),
        publishers: Sequence[SourcedValue] = (),
        places: Sequence[SourcedValue] = (),
    ) -> PublicationInfo:
        date_field = reconcile_dates(dates, self._detector)
        publisher_field = reconcile_publishers(publishers, self._detector)
        place_field = reconcile_places(places, self._detector)
        confidence = (
            _DATE_WEIGHT * date_field.confidence
            + _PUBLISHER_WEIGHT * publisher_field.confidence
            + _PLACE_WEIGHT * place_field.confidence
        )
        return PublicationInfo(
            date=date_field,
            publisher=publisher_field,
            place=place_field,
            confidence=confidence,
        )
