# ABOUTME: Metadata package: provider records, queries, the provider protocol, and adapters.
# ABOUTME: Exports the MetadataRecord dataclass used throughout libris.

from libris.metadata.provider import MetadataProvider, RateLimitConfig, TimeoutConfig
from libris.metadata.types import (
    CreatorQuery,
    MetadataRecord,
    MetadataType,
    MultiCriteriaQuery,
    TitleQuery,
)

__all__ = [
    "CreatorQuery",
    "MetadataProvider",
    "MetadataRecord",
    "MetadataType",
    "MultiCriteriaQuery",
    "RateLimitConfig",
    "TimeoutConfig",
    "TitleQuery",
]
