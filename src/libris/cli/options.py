# ABOUTME: Shared Click options and provider wiring for libris CLI commands.
# ABOUTME: Builds the provider registry the discover and providers commands run against.

from collections.abc import Callable

import click

from libris.config import ConfigurationError, Settings, load_settings
from libris.discovery.rate_limiter import RateLimiterRegistry
from libris.discovery.registry import ProviderRegistry
from libris.discovery.strategy import SelectionStrategy
from libris.metadata.googlebooks import GoogleBooksProvider
from libris.metadata.googlebooks_parser import PROVIDER_NAME as GOOGLEBOOKS
from libris.metadata.http import HttpClient, LibrisHttpClient
from libris.metadata.openlibrary import OpenLibraryProvider
from libris.metadata.openlibrary_parser import PROVIDER_NAME as OPENLIBRARY
from libris.metadata.provider import MetadataProvider

ProviderFactory = Callable[[HttpClient], MetadataProvider]

strategy_option = click.option(
    "--strategy",
    type=click.Choice([s.value for s in SelectionStrategy]),
    default=SelectionStrategy.ALL.value,
    show_default=True,
    help="How providers are chosen for the query.",
)

max_providers_option = click.option(
    "--max-providers",
    type=click.IntRange(min=0),
    default=None,
    help="Upper bound on providers queried (default: LIBRIS_MAX_PROVIDERS or 3 for consensus).",
)


def settings_or_exit() -> Settings:
    """Load settings, turning configuration problems into a CLI error."""
    try:
        return load_settings()
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc


def build_registry(
    settings: Settings, limiters: RateLimiterRegistry | None = None
) -> ProviderRegistry:
    """Registry holding every built-in provider, configured from settings.

    When limiters is given, each provider's HTTP client waits on that
    provider's limiter before every request it sends.
    """
    registry = ProviderRegistry()
    factories: list[tuple[str, ProviderFactory]] = [
        (
            OPENLIBRARY,
            lambda http: OpenLibraryProvider(http, timeout=settings.timeout),
        ),
        (
            GOOGLEBOOKS,
            lambda http: GoogleBooksProvider(
                http, api_key=settings.google_books_api_key, timeout=settings.timeout
            ),
        ),
    ]
    for name, factory in factories:
        throttle = limiters.get_limiter(name) if limiters is not None else None
        http = LibrisHttpClient(
            user_agent=settings.user_agent,
            timeout=settings.timeout.request_timeout,
            throttle=throttle,
            throttle_key=f"{name}.requests",
        )
        provider = factory(http)
        if limiters is not None:
            limiters.get_limiter(name, provider.rate_limit)
        registry.register(provider)
    return registry
