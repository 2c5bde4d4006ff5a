# ABOUTME: Parsing functions for Open Library API JSON responses.
# ABOUTME: Converts editions, works, and search docs into MetadataRecord instances.

import re
from typing import Any

from libris.metadata.types import MetadataRecord

PROVIDER_NAME = "openlibrary"
_COVERS_BASE_URL = "https://covers.openlibrary.org/b"
_SERIES_VOLUME_RE = re.compile(
    r"^(?P<name>.+?)[\s,;(]+(?:#|no\.?|book|vol\.?)\s*(?P<volume>\d+)\)?$", re.IGNORECASE
)


def _first(values: Any) -> Any:
    if isinstance(values, list):
        return values[0] if values else None
    return values


def _language_code(entry: Any) -> str | None:
    """'/languages/eng' or {'key': '/languages/eng'} to 'eng'."""
    key = entry.get("key", "") if isinstance(entry, dict) else str(entry or "")
    if not key:
        return None
    return key.rsplit("/", 1)[-1]


def parse_description(data: dict[str, Any]) -> str | None:
    """Extract the description from an Open Library Works or edition response.

    Handles the OL quirk where description can be either a plain string
    or a dict with {"type": ..., "value": "actual text"}.
    """
    desc = data.get("description")
    if desc is None:
        return None
    if isinstance(desc, str):
        return desc
    if isinstance(desc, dict):
        return desc.get("value")
    return None


def parse_series(values: Any) -> tuple[str | None, float | None]:
    """Split an OL series string like 'Discworld (3)' or 'Discworld #3' into name and volume."""
    raw = _first(values)
    if not raw:
        return None, None
    raw = re.sub(r"\((\d+)\)\s*$", r"#\1", str(raw).strip())
    match = _SERIES_VOLUME_RE.match(raw)
    if match:
        return match.group("name").strip(), float(match.group("volume"))
    return raw, None


def build_cover_url(key: str, value: str | int, size: str = "L") -> str:
    """Build an Open Library cover image URL.

    Args:
        key: Lookup key type, "isbn" or "id" (a cover id).
        value: The ISBN or cover id.
        size: Image size, "S" (small), "M" (medium), or "L" (large).
    """
    return f"{_COVERS_BASE_URL}/{key}/{value}-{size}.jpg"


def parse_edition_response(
    data: dict[str, Any], *, confidence: float, authors: list[str] | None = None
) -> MetadataRecord:
    """Parse an Open Library edition (or ISBN endpoint) response into a MetadataRecord.

    The edition endpoint returns fields like title, publishers, isbn_13,
    languages, works, publish_date, number_of_pages, subjects, and covers.
    """
    isbn = [*data.get("isbn_13", []), *data.get("isbn_10", [])]
    works = data.get("works", [])
    works_key = works[0].get("key") if works else None
    series, volume = parse_series(data.get("series"))

    covers = [c for c in data.get("covers", []) if isinstance(c, int) and c > 0]
    cover = build_cover_url("id", covers[0]) if covers else None
    if cover is None and isbn:
        cover = build_cover_url("isbn", isbn[0])

    title = data.get("title", "Unknown")
    subtitle = data.get("subtitle")
    if subtitle:
        title = f"{title}: {subtitle}"

    return MetadataRecord(
        id=works_key or data.get("key") or f"isbn:{isbn[0] if isbn else 'unknown'}",
        source=PROVIDER_NAME,
        confidence=confidence,
        title=title,
        authors=tuple(authors or ()),
        isbn=tuple(isbn),
        publisher=_first(data.get("publishers", [])),
        publication_date=data.get("publish_date"),
        description=parse_description(data),
        subjects=tuple(
            s if isinstance(s, str) else s.get("name", "") for s in data.get("subjects", [])
        ),
        series=series,
        series_volume=volume,
        page_count=data.get("number_of_pages"),
        language=_language_code(_first(data.get("languages", []))),
        cover_image=cover,
        physical_dimensions=data.get("physical_dimensions"),
        provider_data={
            "edition_key": data.get("key"),
            "works_key": works_key,
            "physical_format": data.get("physical_format"),
        },
    )


def parse_author_name(data: dict[str, Any]) -> str:
    """Extract the author name from an Open Library Author response."""
    return data.get("name", "Unknown")


def parse_search_doc(doc: dict[str, Any], *, confidence: float = 0.5) -> MetadataRecord:
    """Parse one doc from the Open Library Search API into a MetadataRecord.

    Each doc contains title, author_name, isbn, publisher, language, etc.
    """
    isbn = doc.get("isbn", [])
    cover_id = doc.get("cover_i")
    year = doc.get("first_publish_year")
    publish_dates = doc.get("publish_date", [])
    series, volume = parse_series(doc.get("series"))
    return MetadataRecord(
        id=doc.get("key") or f"ol-search:{doc.get('title', 'unknown')}",
        source=PROVIDER_NAME,
        confidence=confidence,
        title=doc.get("title", "Unknown"),
        authors=tuple(doc.get("author_name", [])),
        isbn=tuple(isbn[:5]),
        publisher=_first(doc.get("publisher", [])),
        publication_date=str(year) if year else _first(publish_dates),
        subjects=tuple(doc.get("subject", [])[:20]),
        series=series,
        series_volume=volume,
        page_count=doc.get("number_of_pages_median"),
        language=_first(doc.get("language", [])),
        cover_image=build_cover_url("id", cover_id) if cover_id else None,
        provider_data={
            "works_key": doc.get("key"),
            "edition_count": doc.get("edition_count"),
        },
    )


def parse_search_results(data: dict[str, Any]) -> list[MetadataRecord]:
    """Parse an Open Library Search API response into unscored MetadataRecords."""
    return [parse_search_doc(doc) for doc in data.get("docs", [])]


# Format preference for edition selection (lower = better).
_FORMAT_RANK: dict[str, int] = {
    "hardcover": 0,
    "paperback": 1,
    "trade paperback": 1,
    "mass market paperback": 1,
    "electronic resource": 2,
    "ebook": 2,
    "audio cd": 3,
    "audio cassette": 3,
}
_FORMAT_RANK_DEFAULT = 2


def select_best_edition(entries: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Pick the best edition from a list of Open Library edition entries.

    Prefers physical formats with ISBN-13s. Returns the raw edition entry,
    or None if no edition carries an ISBN.
    """
    scored: list[tuple[int, int, int, dict[str, Any]]] = []
    for position, entry in enumerate(entries):
        if not (entry.get("isbn_13") or entry.get("isbn_10")):
            continue
        fmt = (entry.get("physical_format") or "").lower()
        format_rank = _FORMAT_RANK.get(fmt, _FORMAT_RANK_DEFAULT)
        isbn_rank = 0 if entry.get("isbn_13") else 1
        scored.append((format_rank, isbn_rank, position, entry))

    if not scored:
        return None
    scored.sort(key=lambda item: item[:3])
    return scored[0][3]
