# ABOUTME: Discovery package: provider registry, selection, rate limiting, retry, and query fan-out.
# ABOUTME: Exports the coordinator and the types needed to configure a query.

from libris.discovery.cancellation import CancellationToken, QueryCancelledError
from libris.discovery.coordinator import ProviderOutcome, QueryCoordinator, QueryResult
from libris.discovery.rate_limiter import RateLimiter, RateLimiterRegistry
from libris.discovery.registry import ProviderRegistrationError, ProviderRegistry
from libris.discovery.retry import RetryConfig, RetryPolicy
from libris.discovery.strategy import SelectionOptions, SelectionStrategy, select_providers

__all__ = [
    "CancellationToken",
    "ProviderOutcome",
    "ProviderRegistrationError",
    "ProviderRegistry",
    "QueryCancelledError",
    "QueryCoordinator",
    "QueryResult",
    "RateLimiter",
    "RateLimiterRegistry",
    "RetryConfig",
    "RetryPolicy",
    "SelectionOptions",
    "SelectionStrategy",
    "select_providers",
]
