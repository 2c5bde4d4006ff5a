# ABOUTME: Unit tests for ProviderRegistry.
# ABOUTME: Covers registration, enable/disable, ordering, runtime settings, stats, and close.

import pytest

from libris.discovery.registry import ProviderRegistrationError, ProviderRegistry
from libris.metadata.provider import RateLimitConfig, TimeoutConfig
from libris.metadata.types import MetadataType
from tests.fixtures.providers import FakeProvider


def _registry(*providers: FakeProvider) -> ProviderRegistry:
    registry = ProviderRegistry()
    for provider in providers:
        registry.register(provider)
    return registry


class TestRegistration:
    """Tests for register and unregister."""

    def test_register_and_lookup(self) -> None:
        """Registered providers can be looked up by name."""
        provider = FakeProvider("alpha")
        registry = _registry(provider)
        assert "alpha" in registry
        assert len(registry) == 1
        assert registry.get_provider("alpha") is provider

    def test_duplicate_name_rejected(self) -> None:
        """Registering the same name twice raises."""
        registry = _registry(FakeProvider("alpha"))
        with pytest.raises(ProviderRegistrationError, match="alpha"):
            registry.register(FakeProvider("alpha"))

    def test_unregister(self) -> None:
        """unregister removes a provider and reports whether it existed."""
        registry = _registry(FakeProvider("alpha"))
        assert registry.unregister("alpha")
        assert not registry.unregister("alpha")
        assert registry.get_provider("alpha") is None

    def test_unknown_provider_settings_raise(self) -> None:
        """Addressing an unknown provider raises."""
        with pytest.raises(ProviderRegistrationError, match="Unknown provider"):
            ProviderRegistry().set_enabled("ghost", False)


class TestEnabledProviders:
    """Tests for enable state and ordering."""

    def test_disabled_provider_hidden(self) -> None:
        """Disabled providers are excluded from lookups but still listed in all providers."""
        registry = _registry(FakeProvider("alpha"), FakeProvider("beta"))
        registry.set_enabled("beta", False)
        assert registry.get_provider("beta") is None
        assert [p.name for p in registry.get_enabled_providers()] == ["alpha"]
        assert len(registry.get_all_providers()) == 2
        assert not registry.is_enabled("beta")

    def test_enabled_sorted_by_priority(self) -> None:
        """Enabled providers come highest priority first."""
        registry = _registry(
            FakeProvider("low", priority=10),
            FakeProvider("high", priority=90),
            FakeProvider("mid", priority=50),
        )
        assert [p.name for p in registry.get_enabled_providers()] == ["high", "mid", "low"]

    def test_register_disabled_with_priority(self) -> None:
        """register accepts initial enabled state and priority override."""
        registry = ProviderRegistry()
        registry.register(FakeProvider("alpha", priority=10), enabled=False, priority=99)
        assert not registry.is_enabled("alpha")
        assert registry.get_config("alpha").priority == 99

    def test_providers_for_data_type(self) -> None:
        """Providers supporting a type are ordered by reliability for it."""
        registry = _registry(
            FakeProvider("a", reliability={MetadataType.ISBN: 0.6}),
            FakeProvider("b", reliability={MetadataType.ISBN: 0.95}),
            FakeProvider("c", supported=[MetadataType.TITLE]),
        )
        names = [p.name for p in registry.get_providers_for_data_type(MetadataType.ISBN)]
        assert names == ["b", "a"]


class TestRuntimeSettings:
    """Tests for per-provider settings overrides."""

    def test_priority_override(self) -> None:
        """A priority override changes ordering."""
        registry = _registry(FakeProvider("a", priority=90), FakeProvider("b", priority=10))
        registry.update_config("b", priority=100)
        assert [p.name for p in registry.get_enabled_providers()] == ["b", "a"]

    def test_rate_limit_and_timeout_overrides(self) -> None:
        """Overrides win over the provider's declarations."""
        provider = FakeProvider("a")
        registry = _registry(provider)
        assert registry.rate_limit_for(provider) == provider.rate_limit
        limit = RateLimitConfig(max_requests=5)
        timeout = TimeoutConfig(request_timeout=1.0, operation_timeout=2.0)
        registry.update_config("a", rate_limit=limit, timeout=timeout)
        assert registry.rate_limit_for(provider) == limit
        assert registry.timeout_for(provider) == timeout

    def test_unknown_setting_rejected(self) -> None:
        """Unknown setting names raise TypeError."""
        registry = _registry(FakeProvider("a"))
        with pytest.raises(TypeError):
            registry.update_config("a", colour="blue")


class TestStatsAndClose:
    """Tests for stats and close."""

    def test_stats(self) -> None:
        """stats counts enabled and disabled providers and data type coverage."""
        registry = _registry(
            FakeProvider("a"), FakeProvider("b", supported=[MetadataType.TITLE])
        )
        registry.set_enabled("a", False)
        stats = registry.stats()
        assert (stats.total, stats.enabled, stats.disabled) == (2, 1, 1)
        assert stats.by_data_type[MetadataType.TITLE] == 1
        assert stats.by_data_type[MetadataType.ISBN] == 0

    @pytest.mark.asyncio
    async def test_close_releases_providers(self) -> None:
        """close calls aclose on every provider that has one."""
        a, b = FakeProvider("a"), FakeProvider("b")
        await _registry(a, b).close()
        assert a.closed and b.closed
