# ABOUTME: Parsing functions for Google Books API volume responses.
# ABOUTME: Converts volume items into MetadataRecord instances with https cover links.

import re
from typing import Any

from libris.metadata.types import MetadataRecord

PROVIDER_NAME = "googlebooks"

# Largest first; Google omits sizes it does not have.
_COVER_SIZES = ("extraLarge", "large", "medium", "small", "thumbnail")
_ZOOM_RE = re.compile(r"([?&])zoom=\d+")


def parse_cover_url(image_links: dict[str, str]) -> str | None:
    """Pick the largest cover link, forced to https and full zoom."""
    for size in _COVER_SIZES:
        url = image_links.get(size)
        if not url:
            continue
        if url.startswith("http://"):
            url = "https://" + url[len("http://"):]
        if _ZOOM_RE.search(url):
            return _ZOOM_RE.sub(r"\1zoom=1", url)
        return f"{url}{'&' if '?' in url else '?'}zoom=1"
    return None


def parse_isbns(identifiers: list[dict[str, str]]) -> tuple[str, ...]:
    """ISBN-13s first, then ISBN-10s; other identifier types are dropped."""
    by_type: dict[str, list[str]] = {"ISBN_13": [], "ISBN_10": []}
    for entry in identifiers:
        kind = entry.get("type")
        if kind in by_type and entry.get("identifier"):
            by_type[kind].append(entry["identifier"])
    return (*by_type["ISBN_13"], *by_type["ISBN_10"])


def parse_volume(item: dict[str, Any], *, confidence: float = 0.5) -> MetadataRecord:
    """Parse one item of a volumes response into a MetadataRecord."""
    info = item.get("volumeInfo", {})
    title = info.get("title", "Unknown")
    if info.get("subtitle"):
        title = f"{title}: {info['subtitle']}"
    volume_id = item.get("id", "unknown")

    return MetadataRecord(
        id=f"google-books-{volume_id}",
        source=PROVIDER_NAME,
        confidence=confidence,
        title=title,
        authors=tuple(info.get("authors", [])),
        isbn=parse_isbns(info.get("industryIdentifiers", [])),
        publisher=info.get("publisher"),
        publication_date=info.get("publishedDate"),
        description=info.get("description"),
        subjects=tuple(info.get("categories", [])),
        page_count=info.get("pageCount"),
        language=info.get("language"),
        cover_image=parse_cover_url(info.get("imageLinks", {})),
        provider_data={
            "google_books_id": volume_id,
            "average_rating": info.get("averageRating"),
            "ratings_count": info.get("ratingsCount"),
        },
    )


def parse_volumes(data: dict[str, Any]) -> list[MetadataRecord]:
    """Parse a volumes search response into unscored MetadataRecords."""
    return [parse_volume(item) for item in data.get("items", [])]
