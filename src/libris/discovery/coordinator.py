# ABOUTME: QueryCoordinator fans one query out to the selected providers concurrently.
# ABOUTME: Each call is rate limited, retried, and timed; failures are isolated per provider.

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from libris.discovery.cancellation import CancellationToken
from libris.discovery.performance import PerformanceMonitor
from libris.discovery.rate_limiter import RateLimiterRegistry
from libris.discovery.registry import ProviderRegistry
from libris.discovery.retry import RetryConfig, RetryPolicy
from libris.discovery.strategy import SelectionOptions, SelectionStrategy, select_providers
from libris.metadata.http import ProviderTimeoutError
from libris.metadata.provider import MetadataProvider
from libris.metadata.types import CreatorQuery, MetadataRecord, MultiCriteriaQuery, TitleQuery
from libris.reconcile.similarity import normalize_author, normalize_text

logger = logging.getLogger(__name__)

Call = Callable[[], Awaitable[list[MetadataRecord]]]


@dataclass(frozen=True)
class ProviderOutcome:
    """Result of querying one provider, successful or not."""

    name: str
    success: bool
    duration: float
    records: tuple[MetadataRecord, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class QueryResult:
    aggregated_records: tuple[MetadataRecord, ...]
    providers: tuple[ProviderOutcome, ...]
    total_duration: float

    @property
    def total_records(self) -> int:
        return len(self.aggregated_records)

    @property
    def succeeded(self) -> list[str]:
        return [outcome.name for outcome in self.providers if outcome.success]

    @property
    def failed(self) -> list[str]:
        return [outcome.name for outcome in self.providers if not outcome.success]


def dedup_key(record: MetadataRecord) -> tuple[str, ...]:
    """Equality key of normalized title plus normalized, sorted authors.

    Records without a title never collide with each other.
    """
    title = normalize_text(record.title or "")
    if not title:
        return ("", record.source, record.id)
    authors = sorted(normalize_author(a) for a in record.authors if a.strip())
    return (title, *authors)


def aggregate_records(records: Iterable[MetadataRecord]) -> list[MetadataRecord]:
    """Deduplicate by dedup_key (first seen wins) and sort by confidence, highest first."""
    seen: set[tuple[str, ...]] = set()
    unique: list[MetadataRecord] = []
    for record in records:
        key = dedup_key(record)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return sorted(unique, key=lambda r: r.confidence, reverse=True)


def plan_call(provider: MetadataProvider, query: MultiCriteriaQuery) -> tuple[str, Call]:
    """Pick the provider operation best suited to the populated query fields."""
    if query.isbn:
        isbn = query.isbn
        return "search_by_isbn", lambda: provider.search_by_isbn(isbn)
    if query.criteria_count() > 1 or query.is_empty():
        return "search_multi_criteria", lambda: provider.search_multi_criteria(query)
    if query.title:
        title_query = TitleQuery(title=query.title, fuzzy=query.fuzzy)
        return "search_by_title", lambda: provider.search_by_title(title_query)
    if query.authors:
        creator_query = CreatorQuery(name=query.authors[0], fuzzy=query.fuzzy)
        return "search_by_creator", lambda: provider.search_by_creator(creator_query)
    return "search_multi_criteria", lambda: provider.search_multi_criteria(query)


class QueryCoordinator:
    """Runs one query against many providers and aggregates their answers.

    Provider failures never raise out of query(); they are reported in the
    per-provider outcome list, which follows call-issuance order.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        limiters: RateLimiterRegistry | None = None,
        retry_config: RetryConfig | None = None,
        monitor: PerformanceMonitor | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._registry = registry
        self._limiters = limiters or RateLimiterRegistry(sleep=sleep)
        self._retry_config = retry_config or RetryConfig()
        self._monitor = monitor
        self._sleep = sleep
        self._clock = clock

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def limiters(self) -> RateLimiterRegistry:
        return self._limiters

    async def query(
        self,
        query: MultiCriteriaQuery,
        strategy: SelectionStrategy | str = SelectionStrategy.ALL,
        options: SelectionOptions | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> QueryResult:
        """Query the providers chosen by strategy concurrently.

        Args:
            query: Search criteria.
            strategy: Selection strategy name.
            options: Selection filters and limits.
            token: Optional cooperative cancellation token.

        Returns:
            QueryResult with deduplicated, confidence-sorted records and one
            outcome per selected provider.

        Raises:
            UnknownStrategyError: strategy is not recognised.
        """
        start = self._clock()
        providers = select_providers(
            self._registry.get_enabled_providers(),
            query,
            strategy,
            options,
            monitor=self._monitor,
            priority=self._registry.effective_priority,
        )
        if not providers:
            logger.info("No providers selected for query %s", query)

        outcomes = await asyncio.gather(
            *(self._query_provider(provider, query, token) for provider in providers)
        )
        records = [record for outcome in outcomes if outcome.success for record in outcome.records]
        aggregated = aggregate_records(records)
        total_duration = self._clock() - start

        logger.info(
            "Query finished: %d/%d providers succeeded, %d records (%d after dedup) in %.2fs",
            sum(1 for o in outcomes if o.success),
            len(outcomes),
            len(records),
            len(aggregated),
            total_duration,
        )
        return QueryResult(
            aggregated_records=tuple(aggregated),
            providers=tuple(outcomes),
            total_duration=total_duration,
        )

    async def _query_provider(
        self,
        provider: MetadataProvider,
        query: MultiCriteriaQuery,
        token: CancellationToken | None,
    ) -> ProviderOutcome:
        operation, call = plan_call(provider, query)
        label = f"{provider.name}.{operation}"
        timeout = self._registry.timeout_for(provider)
        limiter = self._limiters.get_limiter(provider.name, self._registry.rate_limit_for(provider))
        policy = RetryPolicy(self._retry_config, sleep=self._sleep)

        async def attempt() -> list[MetadataRecord]:
            if token is not None:
                token.raise_if_cancelled()
            await limiter.wait_for_slot(provider.name)
            try:
                return await asyncio.wait_for(call(), timeout.request_timeout)
            except TimeoutError as exc:
                raise ProviderTimeoutError(
                    f"{label} timed out after {timeout.request_timeout:.1f}s"
                ) from exc

        start = self._clock()
        try:
            records = await asyncio.wait_for(
                policy.run(label, attempt, token=token), timeout.operation_timeout
            )
        except TimeoutError:
            error = f"{label} exceeded operation timeout of {timeout.operation_timeout:.1f}s"
            return self._failure(provider, operation, start, error)
        except Exception as exc:
            return self._failure(provider, operation, start, str(exc))

        duration = self._clock() - start
        self._record(provider, operation, duration, success=True)
        return ProviderOutcome(
            name=provider.name, success=True, duration=duration, records=tuple(records)
        )

    def _failure(
        self, provider: MetadataProvider, operation: str, start: float, error: str
    ) -> ProviderOutcome:
        duration = self._clock() - start
        logger.warning("Provider %s failed after %.2fs: %s", provider.name, duration, error)
        self._record(provider, operation, duration, success=False)
        return ProviderOutcome(name=provider.name, success=False, duration=duration, error=error)

    def _record(
        self, provider: MetadataProvider, operation: str, duration: float, *, success: bool
    ) -> None:
        if self._monitor is not None:
            self._monitor.record(provider.name, operation, duration, success=success)
