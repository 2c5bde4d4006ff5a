# ABOUTME: Identifier normalization, type detection, validation, and reconciliation.
# ABOUTME: ISBNs are compared as ISBN-13 so hyphenated and ISBN-10 forms collapse into one.

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from libris.reconcile.confidence import consensus_confidence
from libris.reconcile.conflicts import ConflictDetector
from libris.reconcile.types import (
    Identifier,
    IdentifierType,
    MetadataSource,
    ReconciledField,
    ReconciliationInputError,
    SourcedValue,
)

logger = logging.getLogger(__name__)

TYPE_PRIORITY: Mapping[IdentifierType, int] = {
    IdentifierType.ISBN: 10,
    IdentifierType.DOI: 9,
    IdentifierType.OCLC: 8,
    IdentifierType.LCCN: 7,
    IdentifierType.AMAZON: 6,
    IdentifierType.GOODREADS: 5,
    IdentifierType.GOOGLE: 4,
    IdentifierType.OTHER: 1,
}

_ISBN_SEPARATORS = re.compile(r"[\s\-_.]")
_ISBN_PREFIX = re.compile(r"^(urn:)?isbn(-1[03])?[:\s]*", re.IGNORECASE)
_DOI_PREFIX = re.compile(r"^(https?://(dx\.)?doi\.org/|doi:\s*)", re.IGNORECASE)
_DOI_RE = re.compile(r"^10\.\d{4,9}/\S+$")
_ISBN10_RE = re.compile(r"^\d{9}[\dX]$")
_ISBN13_RE = re.compile(r"^97[89]\d{10}$")
_GOODREADS_RE = re.compile(r"goodreads\.com/book/show/(\d+)", re.IGNORECASE)
_AMAZON_URL_RE = re.compile(r"amazon\.[a-z.]+/(?:.*/)?(?:dp|gp/product)/([A-Z0-9]{10})", re.I)
_ASIN_RE = re.compile(r"^B[0-9A-Z]{9}$")
_GOOGLE_URL_RE = re.compile(r"books\.google\.[a-z.]+/.*[?&]id=([\w-]{12})", re.IGNORECASE)
_GOOGLE_ID_RE = re.compile(r"^[\w-]{12}$")
_OCLC_PREFIX = re.compile(r"^(\(ocolc\)|ocolc|ocm|ocn|on|oclc)[:\s]*", re.IGNORECASE)
_OCLC_RE = re.compile(r"^\d{1,10}$")
_LCCN_PREFIX = re.compile(r"^(https?://lccn\.loc\.gov/|lccn[:\s]*)", re.IGNORECASE)
_LCCN_RE = re.compile(r"^[a-z]{0,3}\d{8,10}$")
_TYPE_PREFIX = re.compile(r"^(?P<type>[a-z]+)\s*:\s*(?P<value>.+)$", re.IGNORECASE)


def _isbn_digits(value: str) -> str:
    compact = _ISBN_SEPARATORS.sub("", _ISBN_PREFIX.sub("", value.strip()))
    return compact.upper()


def isbn10_check_digit(first_nine: str) -> str:
    total = sum((10 - i) * int(d) for i, d in enumerate(first_nine))
    check = (11 - total % 11) % 11
    return "X" if check == 10 else str(check)


def isbn13_check_digit(first_twelve: str) -> str:
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(first_twelve))
    return str((10 - total % 10) % 10)


def is_valid_isbn10(value: str) -> bool:
    digits = _isbn_digits(value)
    return bool(_ISBN10_RE.match(digits)) and isbn10_check_digit(digits[:9]) == digits[9]


def is_valid_isbn13(value: str) -> bool:
    digits = _isbn_digits(value)
    return bool(_ISBN13_RE.match(digits)) and isbn13_check_digit(digits[:12]) == digits[12]


def isbn10_to_isbn13(value: str) -> str:
    """Convert an ISBN-10 to ISBN-13 with a recomputed check digit."""
    digits = _isbn_digits(value)
    if not _ISBN10_RE.match(digits):
        raise ReconciliationInputError(f"not an ISBN-10: {value!r}")
    stem = "978" + digits[:9]
    return stem + isbn13_check_digit(stem)


def normalize_isbn(value: str) -> str:
    """Canonical ISBN form: bare ISBN-13 digits.

    Separators and "ISBN" prefixes are stripped and valid ISBN-10s are
    converted. An ISBN-10 with a wrong check digit keeps its ten characters
    so it never passes ISBN-13 validation. Strings that are not ISBN-shaped
    come back stripped of separators only. Idempotent.
    """
    digits = _isbn_digits(value)
    if is_valid_isbn10(digits):
        return isbn10_to_isbn13(digits)
    return digits


def detect_identifier_type(value: str) -> IdentifierType:
    """Guess the identifier scheme of a raw string."""
    text = value.strip()
    prefixed = _TYPE_PREFIX.match(text)
    if prefixed and not text.lower().startswith(("http", "urn")):
        try:
            return IdentifierType(prefixed.group("type").lower())
        except ValueError:
            pass
    if _DOI_RE.match(_DOI_PREFIX.sub("", text)):
        return IdentifierType.DOI
    digits = _isbn_digits(text)
    # ISBN-10 shaped strings are ISBNs even with a bad check digit; validation flags them.
    if _ISBN13_RE.match(digits) or _ISBN10_RE.match(digits):
        return IdentifierType.ISBN
    if _GOODREADS_RE.search(text):
        return IdentifierType.GOODREADS
    if _AMAZON_URL_RE.search(text) or _ASIN_RE.match(text):
        return IdentifierType.AMAZON
    if _GOOGLE_URL_RE.search(text):
        return IdentifierType.GOOGLE
    if _OCLC_PREFIX.match(text) and _OCLC_RE.match(_OCLC_PREFIX.sub("", text)):
        return IdentifierType.OCLC
    if _LCCN_PREFIX.match(text) or _LCCN_RE.match(text.replace(" ", "").replace("-", "").lower()):
        return IdentifierType.LCCN
    return IdentifierType.OTHER


def normalize_identifier(value: str, id_type: IdentifierType) -> str:
    """Strip separators, URLs, and scheme prefixes. Idempotent for every type."""
    text = value.strip()
    prefixed = _TYPE_PREFIX.match(text)
    if prefixed and prefixed.group("type").lower() == id_type.value:
        text = prefixed.group("value").strip()
    if id_type is IdentifierType.ISBN:
        return normalize_isbn(text)
    if id_type is IdentifierType.DOI:
        return _DOI_PREFIX.sub("", text).lower()
    if id_type is IdentifierType.OCLC:
        return _OCLC_PREFIX.sub("", text).lstrip("0") or "0"
    if id_type is IdentifierType.LCCN:
        return _LCCN_PREFIX.sub("", text).replace(" ", "").replace("-", "").lower()
    if id_type is IdentifierType.GOODREADS:
        match = _GOODREADS_RE.search(text)
        return match.group(1) if match else text.split(".", 1)[0].split("-", 1)[0]
    if id_type is IdentifierType.AMAZON:
        match = _AMAZON_URL_RE.search(text)
        return (match.group(1) if match else text).upper()
    if id_type is IdentifierType.GOOGLE:
        match = _GOOGLE_URL_RE.search(text)
        return match.group(1) if match else text
    return text


def validate_identifier(normalized: str, id_type: IdentifierType) -> bool:
    if id_type is IdentifierType.ISBN:
        return is_valid_isbn13(normalized)
    if id_type is IdentifierType.DOI:
        return bool(_DOI_RE.match(normalized))
    if id_type is IdentifierType.OCLC:
        return bool(_OCLC_RE.match(normalized))
    if id_type is IdentifierType.LCCN:
        return bool(_LCCN_RE.match(normalized))
    if id_type is IdentifierType.GOODREADS:
        return normalized.isdigit()
    if id_type is IdentifierType.AMAZON:
        return bool(_ASIN_RE.match(normalized)) or is_valid_isbn10(normalized)
    if id_type is IdentifierType.GOOGLE:
        return bool(_GOOGLE_ID_RE.match(normalized))
    return bool(normalized)


def make_identifier(value: Any) -> Identifier:
    """Build an Identifier from a raw string, a {type, value} mapping, or an Identifier."""
    if isinstance(value, Identifier):
        return value
    if isinstance(value, Mapping):
        raw = str(value.get("value") or "").strip()
        try:
            id_type = IdentifierType(value["type"]) if value.get("type") else None
        except ValueError as exc:
            raise ReconciliationInputError(f"unknown identifier type: {value['type']!r}") from exc
    elif isinstance(value, str | int):
        raw, id_type = str(value).strip(), None
    else:
        raise ReconciliationInputError(f"unsupported identifier value: {value!r}")
    if not raw:
        raise ReconciliationInputError("identifier value must not be empty")
    id_type = id_type or detect_identifier_type(raw)
    normalized = normalize_identifier(raw, id_type)
    return Identifier(
        type=id_type,
        value=raw,
        normalized=normalized,
        valid=validate_identifier(normalized, id_type),
    )


def identifier_key(value: Any) -> str:
    """Exact comparison key: type plus normalized value."""
    identifier = make_identifier(value)
    return f"{identifier.type.value}:{identifier.normalized}"


def reconcile_identifiers(
    inputs: Sequence[SourcedValue[Any]],
    detector: ConflictDetector | None = None,
    *,
    field: str = "identifiers",
) -> ReconciledField[tuple[Identifier, ...]]:
    """Merge identifiers reported by several sources.

    Each input value may be a single identifier or a list of them. Identifiers
    that normalize to the same type and value are one identifier; the form
    reported by the most reliable source is kept. Output is ordered valid
    first, then by type priority (ISBN first), then by how many sources
    reported it.
    """
    detector = detector or ConflictDetector()
    by_key: dict[str, list[SourcedValue[Identifier]]] = {}
    sources: list[MetadataSource] = []
    for item in inputs:
        raw = item.value
        if raw is None:
            continue
        values = raw if isinstance(raw, list | tuple) else [raw]
        for value in values:
            if value in (None, ""):
                continue
            identifier = make_identifier(value)
            key = f"{identifier.type.value}:{identifier.normalized}"
            by_key.setdefault(key, []).append(SourcedValue(identifier, item.source))
            if item.source not in sources:
                sources.append(item.source)

    if not by_key:
        return ReconciledField(
            value=(), confidence=0.0, sources=(), reasoning="No identifiers available"
        )

    chosen: list[tuple[Identifier, list[SourcedValue[Identifier]]]] = []
    conflicts = []
    for key, reports in by_key.items():
        best = max(reports, key=lambda r: r.source.reliability)
        chosen.append((best.value, reports))
        if len(reports) > 1:
            conflicts.extend(
                detector.detect_field_conflicts(
                    field, reports, best.value, key=lambda v: (v.type, v.normalized)
                )
            )

    chosen.sort(
        key=lambda pair: (
            not pair[0].valid,
            -TYPE_PRIORITY[pair[0].type],
            -len({r.source for r in pair[1]}),
            -max(r.source.reliability for r in pair[1]),
        )
    )
    identifiers = tuple(identifier for identifier, _ in chosen)

    valid = sum(1 for identifier in identifiers if identifier.valid)
    best_reliability = max(source.reliability for source in sources)
    base = valid / len(identifiers) * best_reliability * 0.9 + 0.1
    support = max(len({r.source for r in reports}) for _, reports in chosen)
    confidence = consensus_confidence(base, support)

    invalid = len(identifiers) - valid
    if invalid:
        logger.debug("%d of %d identifier(s) failed validation", invalid, len(identifiers))
    reasoning = (
        f"{len(identifiers)} unique identifier(s) from {len(sources)} source(s); "
        f"{valid} valid, {invalid} invalid"
    )
    return ReconciledField(
        value=identifiers,
        confidence=confidence,
        sources=tuple(sources),
        reasoning=reasoning,
        conflicts=tuple(conflicts),
    )
