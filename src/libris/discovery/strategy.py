# ABOUTME: Provider selection strategies: all, priority, fastest, and consensus.
# ABOUTME: Applies exclusion, data-type, reliability, and language filters before ordering.

import logging
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from libris.discovery.performance import PerformanceMonitor
from libris.metadata.provider import MetadataProvider
from libris.metadata.types import MetadataType, MultiCriteriaQuery

logger = logging.getLogger(__name__)

DEFAULT_CONSENSUS_PROVIDERS = 3
CONSENSUS_DIVERSITY_GAP = 0.1
CONSENSUS_MIN_PROVIDERS = 2

_EMPTY_QUERY_TYPES = (
    MetadataType.TITLE,
    MetadataType.AUTHORS,
    MetadataType.ISBN,
    MetadataType.PUBLICATION_DATE,
    MetadataType.DESCRIPTION,
)

_DEFAULT_LANGUAGES: tuple[str, ...] = ("en",)

PROVIDER_LANGUAGE_SUPPORT: Mapping[str, tuple[str, ...]] = {
    "openlibrary": ("en", "es", "fr", "de", "it", "pt", "nl", "pl", "ru", "ja", "zh", "ar"),
    "googlebooks": ("en", "es", "fr", "de", "it", "pt", "nl", "ja", "zh", "ko", "ru"),
}


class UnknownStrategyError(ValueError):
    """Raised for a strategy name that is not one of SelectionStrategy."""


class SelectionStrategy(StrEnum):
    ALL = "all"
    PRIORITY = "priority"
    FASTEST = "fastest"
    CONSENSUS = "consensus"


@dataclass(frozen=True)
class SelectionOptions:
    """Filters and limits applied when choosing providers for a query."""

    max_providers: int | None = None
    preferred_languages: tuple[str, ...] = ()
    required_data_types: tuple[MetadataType, ...] = ()
    exclude_providers: frozenset[str] = frozenset()
    min_reliability_score: float | None = None
    diversity_gap: float = CONSENSUS_DIVERSITY_GAP
    consensus_min_providers: int = CONSENSUS_MIN_PROVIDERS
    language_support: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(PROVIDER_LANGUAGE_SUPPORT)
    )

    def __post_init__(self) -> None:
        if self.max_providers is not None and self.max_providers < 0:
            raise ValueError(f"max_providers must not be negative, got {self.max_providers}")
        object.__setattr__(self, "exclude_providers", frozenset(self.exclude_providers))
        object.__setattr__(self, "preferred_languages", tuple(self.preferred_languages))
        object.__setattr__(self, "required_data_types", tuple(self.required_data_types))


PriorityFn = Callable[[MetadataProvider], int]


def _default_priority(provider: MetadataProvider) -> int:
    return provider.priority


def relevant_data_types(query: MultiCriteriaQuery) -> list[MetadataType]:
    """Field types a query cares about, inferred from its populated criteria."""
    types: list[MetadataType] = []
    if query.title:
        types.append(MetadataType.TITLE)
    if query.authors:
        types.append(MetadataType.AUTHORS)
    if query.isbn:
        types.append(MetadataType.ISBN)
    if query.language:
        types.append(MetadataType.LANGUAGE)
    if query.subjects:
        types.append(MetadataType.SUBJECTS)
    if query.publisher:
        types.append(MetadataType.PUBLISHER)
    if query.year_range:
        types.append(MetadataType.PUBLICATION_DATE)
    return types or list(_EMPTY_QUERY_TYPES)


def _average_reliability(provider: MetadataProvider, types: Sequence[MetadataType]) -> float:
    if not types:
        return 0.0
    return sum(provider.get_reliability_score(t) for t in types) / len(types)


def apply_filters(
    providers: Sequence[MetadataProvider],
    options: SelectionOptions,
    priority: PriorityFn = _default_priority,
) -> list[MetadataProvider]:
    """Exclude, require data types, require reliability, then reorder by language."""
    filtered = [p for p in providers if p.name not in options.exclude_providers]

    required = options.required_data_types
    if required:
        filtered = [p for p in filtered if all(p.supports_data_type(t) for t in required)]
        if options.min_reliability_score is not None:
            filtered = [
                p
                for p in filtered
                if _average_reliability(p, required) >= options.min_reliability_score
            ]

    if options.preferred_languages:
        filtered = _order_by_language(filtered, options, priority)
    return filtered


def _order_by_language(
    providers: list[MetadataProvider],
    options: SelectionOptions,
    priority: PriorityFn,
) -> list[MetadataProvider]:
    preferred = options.preferred_languages

    def language_score(provider: MetadataProvider) -> float:
        supported = options.language_support.get(provider.name, _DEFAULT_LANGUAGES)
        return sum(1 for lang in preferred if lang in supported) / len(preferred)

    return sorted(providers, key=lambda p: (language_score(p), priority(p)), reverse=True)


def _by_priority(providers: list[MetadataProvider], priority: PriorityFn) -> list[MetadataProvider]:
    return sorted(providers, key=priority, reverse=True)


def _by_speed(
    providers: list[MetadataProvider],
    monitor: PerformanceMonitor | None,
    priority: PriorityFn,
) -> list[MetadataProvider]:
    if monitor is None:
        return _by_priority(providers, priority)

    def speed_key(provider: MetadataProvider) -> tuple[float, int]:
        average = monitor.average_duration(provider.name)
        return (math.inf if average is None else average, -priority(provider))

    return sorted(providers, key=speed_key)


def _for_consensus(
    providers: list[MetadataProvider],
    query: MultiCriteriaQuery,
    options: SelectionOptions,
    priority: PriorityFn,
) -> list[MetadataProvider]:
    types = relevant_data_types(query)
    ranked = sorted(
        providers,
        key=lambda p: (_average_reliability(p, types), priority(p)),
        reverse=True,
    )
    limit = (
        options.max_providers if options.max_providers is not None else DEFAULT_CONSENSUS_PROVIDERS
    )

    selected: list[MetadataProvider] = ranked[:1]
    for provider in ranked[1:]:
        if len(selected) >= limit:
            break
        adds_diversity = any(
            provider.get_reliability_score(t)
            > max(chosen.get_reliability_score(t) for chosen in selected) + options.diversity_gap
            for t in types
        )
        if adds_diversity or len(selected) < options.consensus_min_providers:
            selected.append(provider)
    return selected


def select_providers(
    providers: Sequence[MetadataProvider],
    query: MultiCriteriaQuery,
    strategy: SelectionStrategy | str = SelectionStrategy.ALL,
    options: SelectionOptions | None = None,
    *,
    monitor: PerformanceMonitor | None = None,
    priority: PriorityFn | None = None,
) -> list[MetadataProvider]:
    """Choose and order the providers to query.

    Args:
        providers: Candidate providers (typically the enabled ones).
        query: The query about to be issued.
        strategy: One of SelectionStrategy, by value or member.
        options: Filters and limits.
        monitor: Latency history for the fastest strategy.
        priority: Priority lookup; defaults to each provider's declared priority.

    Returns:
        Ordered providers, truncated to options.max_providers.

    Raises:
        UnknownStrategyError: strategy is not a known strategy name.
    """
    try:
        strategy = SelectionStrategy(strategy)
    except ValueError as exc:
        raise UnknownStrategyError(f"Unknown strategy: {strategy}") from exc

    options = options or SelectionOptions()
    priority = priority or _default_priority
    if options.max_providers == 0:
        return []

    filtered = apply_filters(providers, options, priority)

    if strategy in (SelectionStrategy.ALL, SelectionStrategy.PRIORITY):
        selected = _by_priority(filtered, priority)
    elif strategy is SelectionStrategy.FASTEST:
        selected = _by_speed(filtered, monitor, priority)
    else:
        selected = _for_consensus(filtered, query, options, priority)

    if options.max_providers is not None:
        selected = selected[: options.max_providers]

    logger.debug(
        "Strategy %s selected %s from %d candidates",
        strategy.value,
        [p.name for p in selected],
        len(providers),
    )
    return selected
