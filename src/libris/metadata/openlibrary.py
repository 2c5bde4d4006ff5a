# ABOUTME: Open Library metadata provider implementation.
# ABOUTME: Searches openlibrary.org by ISBN, title, creator, or combined criteria.

import logging
import re
from dataclasses import replace
from typing import Any

from libris.metadata.http import HttpClient, MetadataFetchError
from libris.metadata.openlibrary_parser import (
    PROVIDER_NAME,
    parse_author_name,
    parse_description,
    parse_edition_response,
    parse_search_results,
    select_best_edition,
)
from libris.metadata.provider import ProviderCapabilities, RateLimitConfig, TimeoutConfig
from libris.metadata.scoring import score_record
from libris.metadata.types import (
    CreatorQuery,
    MetadataRecord,
    MetadataType,
    MultiCriteriaQuery,
    TitleQuery,
)

logger = logging.getLogger(__name__)

_OL_BASE = "https://openlibrary.org"
_SEARCH_LIMIT = 5
_ENRICH_LIMIT = 3
_DEFAULT_PRIORITY = 80
_ISBN_CONFIDENCE = 1.0

# Open Library asks clients to stay around one request per second.
_RATE_LIMIT = RateLimitConfig(max_requests=60, window=60.0, request_delay=0.5)
_TIMEOUT = TimeoutConfig(request_timeout=10.0, operation_timeout=30.0)

_CAPABILITIES = ProviderCapabilities.build(
    supported=[
        MetadataType.TITLE,
        MetadataType.AUTHORS,
        MetadataType.ISBN,
        MetadataType.PUBLICATION_DATE,
        MetadataType.SUBJECTS,
        MetadataType.DESCRIPTION,
        MetadataType.LANGUAGE,
        MetadataType.PUBLISHER,
        MetadataType.SERIES,
        MetadataType.PAGE_COUNT,
        MetadataType.COVER_IMAGE,
        MetadataType.PHYSICAL_DIMENSIONS,
    ],
    overrides={
        MetadataType.TITLE: 0.85,
        MetadataType.AUTHORS: 0.8,
        MetadataType.ISBN: 0.95,
        MetadataType.SUBJECTS: 0.6,
        MetadataType.COVER_IMAGE: 0.6,
    },
)

# Matches a colon followed by a space and remaining text (subtitle pattern).
_SUBTITLE_RE = re.compile(r"\s*:\s+.+$")


def _strip_subtitle(title: str) -> str | None:
    """Remove subtitle from a title string (text after ": ").

    Returns the stripped title, or None if no subtitle was found or
    stripping would produce an identical or empty string.
    """
    stripped = _SUBTITLE_RE.sub("", title).strip()
    if stripped and stripped != title.strip():
        return stripped
    return None


class OpenLibraryProvider:
    """Metadata provider backed by the Open Library API.

    Supports ISBN-based lookup (most precise) and search by title, creator,
    or combined criteria (broader). Errors from the primary request propagate
    so the discovery layer can retry or report them; failures while
    enriching a result (works, authors, editions) are skipped.
    """

    def __init__(
        self,
        http_client: HttpClient,
        *,
        priority: int = _DEFAULT_PRIORITY,
        capabilities: ProviderCapabilities = _CAPABILITIES,
        rate_limit: RateLimitConfig = _RATE_LIMIT,
        timeout: TimeoutConfig = _TIMEOUT,
    ) -> None:
        self._http = http_client
        self._priority = priority
        self._capabilities = capabilities
        self._rate_limit = rate_limit
        self._timeout = timeout

    @property
    def name(self) -> str:
        return PROVIDER_NAME

    @property
    def priority(self) -> int:
        return self._priority

    @property
    def rate_limit(self) -> RateLimitConfig:
        return self._rate_limit

    @property
    def timeout(self) -> TimeoutConfig:
        return self._timeout

    def supports_data_type(self, data_type: MetadataType) -> bool:
        return self._capabilities.supports(data_type)

    def get_reliability_score(self, data_type: MetadataType) -> float:
        return self._capabilities.reliability_for(data_type)

    async def search_by_isbn(self, isbn: str) -> list[MetadataRecord]:
        """Look up a book by ISBN via the Open Library ISBN endpoint.

        Follows up with works and author endpoints to enrich metadata.
        Returns a single-element list on success. A 404 surfaces as
        ProviderHttpError, which the discovery layer treats as no result.
        """
        clean_isbn = re.sub(r"[\s-]", "", isbn)
        data = await self._http.get(f"{_OL_BASE}/isbn/{clean_isbn}.json")
        authors = await self._resolve_authors(data.get("authors", []))
        record = parse_edition_response(data, confidence=_ISBN_CONFIDENCE, authors=authors)
        if not record.authors or not record.description:
            record = await self._enrich_from_works(record)
        return [record]

    async def search_by_title(self, query: TitleQuery) -> list[MetadataRecord]:
        """Search by title.

        If the search returns nothing and the title has a subtitle (text
        after ": "), retries with the subtitle stripped unless exact_match
        is set.
        """
        reference = MultiCriteriaQuery(title=query.title)
        records = await self._search({"title": query.title}, reference)
        if not records and not query.exact_match:
            stripped = _strip_subtitle(query.title)
            if stripped:
                records = await self._search({"title": stripped}, reference)
        if query.exact_match:
            wanted = query.title.strip().lower()
            records = [r for r in records if (r.title or "").strip().lower() == wanted]
        return records

    async def search_by_creator(self, query: CreatorQuery) -> list[MetadataRecord]:
        reference = MultiCriteriaQuery(authors=(query.name,))
        return await self._search({"author": query.name}, reference)

    async def search_multi_criteria(self, query: MultiCriteriaQuery) -> list[MetadataRecord]:
        """Search with every populated criterion mapped onto Open Library search fields."""
        if query.is_empty():
            return []
        params: dict[str, str] = {}
        if query.title:
            params["title"] = query.title
        if query.authors:
            params["author"] = " ".join(query.authors)
        if query.isbn:
            params["isbn"] = re.sub(r"[\s-]", "", query.isbn)
        if query.publisher:
            params["publisher"] = query.publisher
        if query.subjects:
            params["subject"] = query.subjects[0]
        if query.language:
            params["language"] = query.language
        if query.year_range:
            start, end = query.year_range
            params["q"] = f"first_publish_year:[{start} TO {end}]"
        return await self._search(params, query)

    async def aclose(self) -> None:
        close = getattr(self._http, "aclose", None)
        if close is not None:
            await close()

    async def _search(
        self, params: dict[str, str], reference: MultiCriteriaQuery
    ) -> list[MetadataRecord]:
        """Execute a single Open Library search query.

        Returns records sorted by confidence descending, with the top results
        enriched with descriptions and edition-level data.
        """
        data = await self._http.get(
            f"{_OL_BASE}/search.json", params={**params, "limit": str(_SEARCH_LIMIT)}
        )
        records = [
            replace(record, confidence=score_record(reference, record))
            for record in parse_search_results(data)
        ]
        records.sort(key=lambda r: r.confidence, reverse=True)

        enriched: list[MetadataRecord] = []
        for position, record in enumerate(records):
            if position < _ENRICH_LIMIT:
                record = await self._enrich_from_works(record)
                record = await self._enrich_from_editions(record)
            enriched.append(record)
        logger.debug("Open Library search %s returned %d record(s)", params, len(enriched))
        return enriched

    async def _get_optional(self, url: str) -> dict[str, Any] | None:
        try:
            return await self._http.get(url)
        except MetadataFetchError as exc:
            logger.debug("Skipping enrichment from %s: %s", url, exc)
            return None

    async def _resolve_authors(self, entries: list[dict[str, Any]]) -> list[str]:
        """Fetch author names for edition-style {key} or works-style {author: {key}} entries."""
        authors: list[str] = []
        for entry in entries:
            key = entry.get("key") or entry.get("author", {}).get("key", "")
            if not key:
                continue
            data = await self._get_optional(f"{_OL_BASE}{key}.json")
            if data is not None:
                authors.append(parse_author_name(data))
        return authors

    async def _enrich_from_works(self, record: MetadataRecord) -> MetadataRecord:
        """Fill description, authors, and subjects from the works endpoint."""
        works_key = record.provider_data.get("works_key")
        if not works_key or (record.description and record.authors and record.subjects):
            return record
        works = await self._get_optional(f"{_OL_BASE}{works_key}.json")
        if works is None:
            return record

        changes: dict[str, Any] = {}
        if not record.description:
            description = parse_description(works)
            if description:
                changes["description"] = description
        if not record.subjects and works.get("subjects"):
            changes["subjects"] = tuple(works["subjects"][:20])
        if not record.authors:
            authors = await self._resolve_authors(works.get("authors", []))
            if authors:
                changes["authors"] = tuple(authors)
        return replace(record, **changes) if changes else record

    async def _enrich_from_editions(self, record: MetadataRecord) -> MetadataRecord:
        """Fill missing ISBN, publisher, and page count from the best edition."""
        works_key = record.provider_data.get("works_key")
        if not works_key or (record.isbn and record.publisher and record.page_count):
            return record
        editions = await self._get_optional(f"{_OL_BASE}{works_key}/editions.json")
        if editions is None:
            return record
        best = select_best_edition(editions.get("entries", []))
        if best is None:
            return record

        changes: dict[str, Any] = {}
        if not record.isbn:
            changes["isbn"] = tuple([*best.get("isbn_13", []), *best.get("isbn_10", [])])
        if not record.publisher and best.get("publishers"):
            changes["publisher"] = best["publishers"][0]
        if not record.page_count and best.get("number_of_pages"):
            changes["page_count"] = best["number_of_pages"]
        return replace(record, **changes) if changes else record
