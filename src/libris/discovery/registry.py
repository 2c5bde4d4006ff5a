# ABOUTME: ProviderRegistry holds configured metadata providers with enable/disable state.
# ABOUTME: Per-provider settings can override priority, rate limit, and timeout at runtime.

import dataclasses
import logging
from dataclasses import dataclass

from libris.metadata.provider import MetadataProvider, RateLimitConfig, TimeoutConfig
from libris.metadata.types import MetadataType

logger = logging.getLogger(__name__)


class ProviderRegistrationError(Exception):
    """Raised on duplicate registration or when an unknown provider is addressed."""


@dataclass(frozen=True)
class ProviderSettings:
    """Runtime configuration for one registered provider.

    None means "use the provider's own declaration".
    """

    enabled: bool = True
    priority: int | None = None
    rate_limit: RateLimitConfig | None = None
    timeout: TimeoutConfig | None = None


@dataclass(frozen=True)
class RegistryStats:
    total: int
    enabled: int
    disabled: int
    by_data_type: dict[MetadataType, int]


class ProviderRegistry:
    """Registry of metadata providers keyed by provider name."""

    def __init__(self) -> None:
        self._providers: dict[str, MetadataProvider] = {}
        self._settings: dict[str, ProviderSettings] = {}

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def register(
        self,
        provider: MetadataProvider,
        *,
        enabled: bool = True,
        priority: int | None = None,
    ) -> None:
        """Add a provider.

        Raises:
            ProviderRegistrationError: A provider with the same name exists.
        """
        name = provider.name
        if name in self._providers:
            raise ProviderRegistrationError(f"Provider already registered: {name}")
        self._providers[name] = provider
        self._settings[name] = ProviderSettings(enabled=enabled, priority=priority)
        logger.debug("Registered provider %s (enabled=%s)", name, enabled)

    def unregister(self, name: str) -> bool:
        """Remove a provider. Returns False if it was not registered."""
        if name not in self._providers:
            return False
        del self._providers[name]
        del self._settings[name]
        return True

    def get_provider(self, name: str) -> MetadataProvider | None:
        """Return the provider if it is registered and enabled."""
        provider = self._providers.get(name)
        if provider is None or not self._settings[name].enabled:
            return None
        return provider

    def get_all_providers(self) -> list[MetadataProvider]:
        return list(self._providers.values())

    def get_enabled_providers(self) -> list[MetadataProvider]:
        """Enabled providers, highest effective priority first."""
        enabled = [p for p in self._providers.values() if self._settings[p.name].enabled]
        return sorted(enabled, key=self.effective_priority, reverse=True)

    def get_providers_for_data_type(self, data_type: MetadataType) -> list[MetadataProvider]:
        """Enabled providers supporting data_type, most reliable first, then by priority."""
        supporting = [p for p in self.get_enabled_providers() if p.supports_data_type(data_type)]
        return sorted(
            supporting,
            key=lambda p: (p.get_reliability_score(data_type), self.effective_priority(p)),
            reverse=True,
        )

    def is_enabled(self, name: str) -> bool:
        return self._require(name).enabled

    def set_enabled(self, name: str, enabled: bool) -> None:
        self.update_config(name, enabled=enabled)

    def get_config(self, name: str) -> ProviderSettings:
        return self._require(name)

    def update_config(self, name: str, **changes: object) -> ProviderSettings:
        """Replace selected settings for a provider and return the new settings.

        Raises:
            ProviderRegistrationError: The provider is unknown.
            TypeError: A setting name is not recognised.
        """
        current = self._require(name)
        updated = dataclasses.replace(current, **changes)
        self._settings[name] = updated
        logger.debug("Updated settings for %s: %s", name, changes)
        return updated

    def effective_priority(self, provider: MetadataProvider) -> int:
        settings = self._settings.get(provider.name)
        if settings is not None and settings.priority is not None:
            return settings.priority
        return provider.priority

    def rate_limit_for(self, provider: MetadataProvider) -> RateLimitConfig:
        settings = self._settings.get(provider.name)
        if settings is not None and settings.rate_limit is not None:
            return settings.rate_limit
        return provider.rate_limit

    def timeout_for(self, provider: MetadataProvider) -> TimeoutConfig:
        settings = self._settings.get(provider.name)
        if settings is not None and settings.timeout is not None:
            return settings.timeout
        return provider.timeout

    def stats(self) -> RegistryStats:
        enabled = [p for p in self._providers.values() if self._settings[p.name].enabled]
        by_type = {
            data_type: sum(1 for p in enabled if p.supports_data_type(data_type))
            for data_type in MetadataType
        }
        return RegistryStats(
            total=len(self._providers),
            enabled=len(enabled),
            disabled=len(self._providers) - len(enabled),
            by_data_type=by_type,
        )

    async def close(self) -> None:
        """Release provider resources (HTTP clients) for providers that hold any."""
        for provider in self._providers.values():
            closer = getattr(provider, "aclose", None)
            if closer is not None:
                await closer()

    def _require(self, name: str) -> ProviderSettings:
        settings = self._settings.get(name)
        if settings is None:
            raise ProviderRegistrationError(f"Unknown provider: {name}")
        return settings
