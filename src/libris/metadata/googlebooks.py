# ABOUTME: Google Books metadata provider implementation.
# ABOUTME: Searches the volumes API by ISBN, title, creator, or combined criteria.

import logging
import re
from dataclasses import replace

from libris.metadata.googlebooks_parser import PROVIDER_NAME, parse_volumes
from libris.metadata.http import HttpClient
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

_VOLUMES_URL = "https://www.googleapis.com/books/v1/volumes"
_MAX_RESULTS = 10
_DEFAULT_PRIORITY = 85

# Anonymous quota is far tighter than the keyed one.
_RATE_LIMIT_KEYED = RateLimitConfig(max_requests=100, window=60.0, request_delay=0.2)
_RATE_LIMIT_ANONYMOUS = RateLimitConfig(max_requests=10, window=60.0, request_delay=1.0)
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
        MetadataType.PAGE_COUNT,
        MetadataType.COVER_IMAGE,
    ],
    overrides={
        MetadataType.TITLE: 0.95,
        MetadataType.AUTHORS: 0.92,
        MetadataType.ISBN: 0.95,
        MetadataType.PUBLICATION_DATE: 0.88,
        MetadataType.SUBJECTS: 0.85,
        MetadataType.DESCRIPTION: 0.9,
        MetadataType.LANGUAGE: 0.9,
        MetadataType.PUBLISHER: 0.85,
        MetadataType.PAGE_COUNT: 0.85,
        MetadataType.COVER_IMAGE: 0.95,
    },
)

_QUOTE_RE = re.compile(r'["\[\]]')


def _term(prefix: str, value: str) -> str:
    """One quoted search term, e.g. intitle:"Dune"."""
    return f'{prefix}:"{_QUOTE_RE.sub("", value).strip()}"'


class GoogleBooksProvider:
    """Metadata provider backed by the Google Books volumes API.

    Every search is a single request. An API key raises the quota and is
    sent with each request when configured.
    """

    def __init__(
        self,
        http_client: HttpClient,
        *,
        api_key: str | None = None,
        priority: int = _DEFAULT_PRIORITY,
        capabilities: ProviderCapabilities = _CAPABILITIES,
        rate_limit: RateLimitConfig | None = None,
        timeout: TimeoutConfig = _TIMEOUT,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._priority = priority
        self._capabilities = capabilities
        if rate_limit is None:
            rate_limit = _RATE_LIMIT_KEYED if api_key else _RATE_LIMIT_ANONYMOUS
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
        clean_isbn = re.sub(r"[\s-]", "", isbn)
        return await self._search(f"isbn:{clean_isbn}", MultiCriteriaQuery(isbn=clean_isbn))

    async def search_by_title(self, query: TitleQuery) -> list[MetadataRecord]:
        records = await self._search(
            _term("intitle", query.title), MultiCriteriaQuery(title=query.title)
        )
        if query.exact_match:
            wanted = query.title.strip().lower()
            records = [r for r in records if (r.title or "").strip().lower() == wanted]
        return records

    async def search_by_creator(self, query: CreatorQuery) -> list[MetadataRecord]:
        return await self._search(
            _term("inauthor", query.name), MultiCriteriaQuery(authors=(query.name,))
        )

    async def search_multi_criteria(self, query: MultiCriteriaQuery) -> list[MetadataRecord]:
        """Combine populated criteria into one query; an ISBN makes it an ISBN lookup."""
        if query.isbn:
            return await self.search_by_isbn(query.isbn)
        terms: list[str] = []
        if query.title:
            terms.append(_term("intitle", query.title))
        terms.extend(_term("inauthor", author) for author in query.authors)
        if query.publisher:
            terms.append(_term("inpublisher", query.publisher))
        if query.subjects:
            terms.append(_term("subject", query.subjects[0]))
        if not terms:
            return []
        return await self._search("+".join(terms), query, language=query.language)

    async def aclose(self) -> None:
        close = getattr(self._http, "aclose", None)
        if close is not None:
            await close()

    async def _search(
        self, q: str, reference: MultiCriteriaQuery, *, language: str | None = None
    ) -> list[MetadataRecord]:
        params = {"q": q, "maxResults": str(_MAX_RESULTS), "printType": "books"}
        if language:
            params["langRestrict"] = language
        if self._api_key:
            params["key"] = self._api_key
        data = await self._http.get(_VOLUMES_URL, params=params)
        records = [
            replace(record, confidence=score_record(reference, record))
            for record in parse_volumes(data)
        ]
        records.sort(key=lambda r: r.confidence, reverse=True)
        logger.debug("Google Books search %r returned %d record(s)", q, len(records))
        return records
