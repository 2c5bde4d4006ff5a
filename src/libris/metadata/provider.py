# ABOUTME: MetadataProvider protocol defining the capability contract for metadata sources.
# ABOUTME: Also holds the per-provider rate limit, timeout, and reliability configuration types.

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from libris.metadata.types import (
    CreatorQuery,
    MetadataRecord,
    MetadataType,
    MultiCriteriaQuery,
    TitleQuery,
)

_DEFAULT_MAX_REQUESTS = 100
_DEFAULT_WINDOW_SECONDS = 60.0
_DEFAULT_REQUEST_DELAY = 0.1
_DEFAULT_REQUEST_TIMEOUT = 10.0
_DEFAULT_OPERATION_TIMEOUT = 30.0

DEFAULT_RELIABILITY: Mapping[MetadataType, float] = {
    MetadataType.TITLE: 0.8,
    MetadataType.AUTHORS: 0.7,
    MetadataType.ISBN: 0.9,
    MetadataType.PUBLICATION_DATE: 0.6,
    MetadataType.SUBJECTS: 0.5,
    MetadataType.DESCRIPTION: 0.4,
    MetadataType.LANGUAGE: 0.7,
    MetadataType.PUBLISHER: 0.6,
    MetadataType.SERIES: 0.5,
    MetadataType.EDITION: 0.5,
    MetadataType.PAGE_COUNT: 0.6,
    MetadataType.PHYSICAL_DIMENSIONS: 0.3,
    MetadataType.COVER_IMAGE: 0.4,
}

DEFAULT_SUPPORTED_TYPES: frozenset[MetadataType] = frozenset(
    {
        MetadataType.TITLE,
        MetadataType.AUTHORS,
        MetadataType.ISBN,
        MetadataType.PUBLICATION_DATE,
        MetadataType.SUBJECTS,
        MetadataType.DESCRIPTION,
        MetadataType.LANGUAGE,
    }
)


@dataclass(frozen=True)
class RateLimitConfig:
    """Sliding-window admission settings for one provider."""

    max_requests: int = _DEFAULT_MAX_REQUESTS
    window: float = _DEFAULT_WINDOW_SECONDS
    request_delay: float = _DEFAULT_REQUEST_DELAY

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError(f"max_requests must be at least 1, got {self.max_requests}")
        if self.window <= 0:
            raise ValueError(f"window must be positive, got {self.window}")
        if self.request_delay < 0:
            raise ValueError(f"request_delay must not be negative, got {self.request_delay}")


@dataclass(frozen=True)
class TimeoutConfig:
    """Per-attempt and whole-operation deadlines, in seconds."""

    request_timeout: float = _DEFAULT_REQUEST_TIMEOUT
    operation_timeout: float = _DEFAULT_OPERATION_TIMEOUT

    def __post_init__(self) -> None:
        if self.request_timeout <= 0 or self.operation_timeout <= 0:
            raise ValueError("timeouts must be positive")


@dataclass(frozen=True)
class ProviderCapabilities:
    """Which field types a provider supplies and how far each can be trusted.

    Providers hold one of these and delegate supports_data_type and
    get_reliability_score to it.
    """

    supported_types: frozenset[MetadataType] = DEFAULT_SUPPORTED_TYPES
    reliability: Mapping[MetadataType, float] = field(
        default_factory=lambda: dict(DEFAULT_RELIABILITY)
    )

    def __post_init__(self) -> None:
        for data_type, score in self.reliability.items():
            if not 0.0 <= score <= 1.0:
                msg = f"reliability for {data_type} must be between 0.0 and 1.0, got {score}"
                raise ValueError(msg)

    @classmethod
    def build(
        cls,
        supported: Iterable[MetadataType] | None = None,
        overrides: Mapping[MetadataType, float] | None = None,
    ) -> "ProviderCapabilities":
        """Start from the default reliability table and apply overrides."""
        reliability = dict(DEFAULT_RELIABILITY)
        reliability.update(overrides or {})
        types = frozenset(supported) if supported is not None else DEFAULT_SUPPORTED_TYPES
        return cls(supported_types=types, reliability=reliability)

    def supports(self, data_type: MetadataType) -> bool:
        return data_type in self.supported_types

    def reliability_for(self, data_type: MetadataType) -> float:
        """Reliability of a supported type; unsupported types score 0.0."""
        if data_type not in self.supported_types:
            return 0.0
        return self.reliability.get(data_type, 0.0)


@runtime_checkable
class MetadataProvider(Protocol):
    """Protocol for external metadata sources.

    Implementations describe their capabilities (supported field types and
    per-type reliability), declare rate limit and timeout settings, and
    provide four async search operations returning MetadataRecord lists.
    """

    @property
    def name(self) -> str: ...

    @property
    def priority(self) -> int: ...

    @property
    def rate_limit(self) -> RateLimitConfig: ...

    @property
    def timeout(self) -> TimeoutConfig: ...

    def supports_data_type(self, data_type: MetadataType) -> bool: ...

    def get_reliability_score(self, data_type: MetadataType) -> float: ...

    async def search_by_title(self, query: TitleQuery) -> list[MetadataRecord]: ...

    async def search_by_isbn(self, isbn: str) -> list[MetadataRecord]: ...

    async def search_by_creator(self, query: CreatorQuery) -> list[MetadataRecord]: ...

    async def search_multi_criteria(self, query: MultiCriteriaQuery) -> list[MetadataRecord]: ...
