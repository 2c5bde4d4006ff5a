# ABOUTME: Unit tests for reading libris settings from LIBRIS_* environment variables.
# ABOUTME: Defaults apply when unset; blank, non-numeric, or non-positive values are errors.

import pytest

from libris.config import ConfigurationError, Settings, load_settings


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self) -> None:
        """An empty environment gives the defaults."""
        assert load_settings({}) == Settings()

    def test_reads_values(self) -> None:
        """Each variable maps onto its setting."""
        settings = load_settings(
            {
                "LIBRIS_USER_AGENT": "shelf-bot/2.0",
                "LIBRIS_REQUEST_TIMEOUT": "2.5",
                "LIBRIS_OPERATION_TIMEOUT": "20",
                "LIBRIS_MAX_PROVIDERS": "5",
                "LIBRIS_GOOGLE_BOOKS_API_KEY": "abc123",
            }
        )
        assert settings.user_agent == "shelf-bot/2.0"
        assert settings.timeout.request_timeout == 2.5
        assert settings.timeout.operation_timeout == 20.0
        assert settings.max_providers == 5
        assert settings.google_books_api_key == "abc123"

    def test_reads_os_environ(self, monkeypatch) -> None:
        """Without a mapping the process environment is used."""
        monkeypatch.setenv("LIBRIS_MAX_PROVIDERS", "2")
        assert load_settings().max_providers == 2

    @pytest.mark.parametrize(
        ("name", "value", "message"),
        [
            ("LIBRIS_USER_AGENT", "  ", "blank"),
            ("LIBRIS_REQUEST_TIMEOUT", "soon", "must be a number"),
            ("LIBRIS_OPERATION_TIMEOUT", "-1", "must be positive"),
            ("LIBRIS_MAX_PROVIDERS", "2.5", "must be a number"),
            ("LIBRIS_MAX_PROVIDERS", "0", "must be positive"),
        ],
    )
    def test_invalid_values(self, name: str, value: str, message: str) -> None:
        """Malformed values raise ConfigurationError naming the variable."""
        with pytest.raises(ConfigurationError, match=message) as excinfo:
            load_settings({name: value})
        assert name in str(excinfo.value)
