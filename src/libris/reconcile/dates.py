# ABOUTME: Publication date parsing, validation, and reconciliation across sources.
# ABOUTME: Prefers the most specific date; ties are broken by source reliability.

import calendar
import re
from collections.abc import Sequence
from datetime import UTC, date, datetime

from libris.reconcile.confidence import consensus_confidence
from libris.reconcile.conflicts import ConflictDetector
from libris.reconcile.types import (
    DatePrecision,
    PublicationDate,
    ReconciledField,
    ReconciliationInputError,
    SourcedValue,
)

_ISO_DAY_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T\s].*)?$")
_ISO_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")
_YEAR_RE = re.compile(r"^(\d{4})$")
_EMBEDDED_YEAR_RE = re.compile(r"\b(1\d{3}|20\d{2})\b")

_TEXT_DAY_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%d %B %Y", "%d %b %Y", "%B %d %Y", "%b %d %Y")
_TEXT_MONTH_FORMATS = ("%B %Y", "%b %Y")

_MIN_YEAR = 1000
_FUTURE_YEARS = 10

PRECISION_WEIGHTS = {
    DatePrecision.DAY: 1.0,
    DatePrecision.MONTH: 0.9,
    DatePrecision.YEAR: 0.8,
    DatePrecision.UNKNOWN: 0.3,
}
_INVALID_DATE_FACTOR = 0.5
_ALL_UNKNOWN_CONFIDENCE = 0.1


def parse_date(raw: str | int | date | PublicationDate | None) -> PublicationDate:
    """Parse a raw date into a PublicationDate with its precision.

    Handles ISO dates (YYYY-MM-DD, optionally with a time part), YYYY-MM,
    bare years, English month-name dates, and a year embedded in free text.
    Anything else comes back with UNKNOWN precision.
    """
    if isinstance(raw, PublicationDate):
        return raw
    if raw is None:
        return PublicationDate(raw="")
    if isinstance(raw, datetime):
        raw = raw.date()
    if isinstance(raw, date):
        return PublicationDate(
            raw=raw.isoformat(),
            year=raw.year,
            month=raw.month,
            day=raw.day,
            precision=DatePrecision.DAY,
        )
    if isinstance(raw, int):
        return PublicationDate(raw=str(raw), year=raw, precision=DatePrecision.YEAR)
    if not isinstance(raw, str):
        raise ReconciliationInputError(f"unsupported date value: {raw!r}")

    text = raw.strip()
    if match := _ISO_DAY_RE.match(text):
        year, month, day = (int(part) for part in match.groups())
        return PublicationDate(
            raw=raw, year=year, month=month, day=day, precision=DatePrecision.DAY
        )
    if match := _ISO_MONTH_RE.match(text):
        year, month = (int(part) for part in match.groups())
        return PublicationDate(raw=raw, year=year, month=month, precision=DatePrecision.MONTH)
    if match := _YEAR_RE.match(text):
        return PublicationDate(raw=raw, year=int(match.group(1)), precision=DatePrecision.YEAR)

    for fmt in _TEXT_DAY_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return PublicationDate(
            raw=raw,
            year=parsed.year,
            month=parsed.month,
            day=parsed.day,
            precision=DatePrecision.DAY,
        )
    for fmt in _TEXT_MONTH_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return PublicationDate(
            raw=raw, year=parsed.year, month=parsed.month, precision=DatePrecision.MONTH
        )

    if match := _EMBEDDED_YEAR_RE.search(text):
        return PublicationDate(raw=raw, year=int(match.group(1)), precision=DatePrecision.YEAR)
    return PublicationDate(raw=raw)


def validate_date(value: PublicationDate, *, today: date | None = None) -> list[str]:
    """Return the problems with a parsed date; an empty list means valid."""
    if value.year is None:
        return ["date could not be parsed"]
    today = today or datetime.now(UTC).date()
    problems: list[str] = []
    if not _MIN_YEAR <= value.year <= today.year + _FUTURE_YEARS:
        problems.append(f"year {value.year} outside {_MIN_YEAR}..{today.year + _FUTURE_YEARS}")
    if value.month is not None and not 1 <= value.month <= 12:
        problems.append(f"month {value.month} outside 1..12")
    elif value.month is not None and value.day is not None:
        days_in_month = calendar.monthrange(value.year, value.month)[1]
        if not 1 <= value.day <= days_in_month:
            problems.append(f"day {value.day} outside 1..{days_in_month}")
    return problems


def reconcile_dates(
    inputs: Sequence[SourcedValue[str | int | date | PublicationDate | None]],
    detector: ConflictDetector | None = None,
    *,
    field: str = "publication_date",
) -> ReconciledField[PublicationDate | None]:
    """Merge per-source publication dates into one.

    The winner is the most specific valid date, ties broken by source
    reliability. Sources whose dates are compatible with the winner (differ
    only in precision) or fall within the detector's day threshold agree;
    every other source dissents.
    """
    detector = detector or ConflictDetector()
    parsed = [
        SourcedValue(parse_date(item.value), item.source)
        for item in inputs
        if item.value not in (None, "")
    ]
    if not parsed:
        return ReconciledField(
            value=None,
            confidence=0.0,
            sources=(),
            reasoning="No publication date information available",
        )

    known = [item for item in parsed if item.value.year is not None]
    if not known:
        best = max(parsed, key=lambda item: item.source.reliability)
        return ReconciledField(
            value=best.value,
            confidence=_ALL_UNKNOWN_CONFIDENCE,
            sources=tuple(item.source for item in parsed),
            reasoning=f"No source gave a parseable date; kept {best.value.raw!r} verbatim",
            conflicts=tuple(detector.detect_field_conflicts(field, parsed, best.value)),
        )

    winner = max(
        known,
        key=lambda item: (
            not validate_date(item.value),
            item.value.precision_rank(),
            item.source.reliability,
        ),
    )
    agreeing, dissenting = detector.split_agreement(winner.value, parsed)

    base = max(item.source.reliability for item in agreeing) * PRECISION_WEIGHTS[
        winner.value.precision
    ]
    problems = validate_date(winner.value)
    if problems:
        base *= _INVALID_DATE_FACTOR
    confidence = consensus_confidence(
        base, len(agreeing), (item.source.reliability for item in dissenting)
    )

    reasoning = (
        f"Selected {winner.value.precision.value}-precision date {winner.value.iso()} "
        f"from {winner.source.name} (reliability {winner.source.reliability:.2f}); "
        f"{len(agreeing)} of {len(parsed)} source(s) agree"
    )
    if problems:
        reasoning += f"; validation: {', '.join(problems)}"

    return ReconciledField(
        value=winner.value,
        confidence=confidence,
        sources=tuple(item.source for item in agreeing),
        reasoning=reasoning,
        conflicts=tuple(detector.detect_field_conflicts(field, parsed, winner.value)),
    )
