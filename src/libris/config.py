# ABOUTME: Runtime settings for the libris CLI, read from LIBRIS_* environment variables.
# ABOUTME: Unset variables fall back to defaults; blank or malformed ones raise ConfigurationError.

import os
from collections.abc import Mapping
from dataclasses import dataclass

from libris.discovery.strategy import DEFAULT_CONSENSUS_PROVIDERS
from libris.metadata.http import DEFAULT_USER_AGENT
from libris.metadata.provider import TimeoutConfig

ENV_USER_AGENT = "LIBRIS_USER_AGENT"
ENV_REQUEST_TIMEOUT = "LIBRIS_REQUEST_TIMEOUT"
ENV_OPERATION_TIMEOUT = "LIBRIS_OPERATION_TIMEOUT"
ENV_MAX_PROVIDERS = "LIBRIS_MAX_PROVIDERS"
ENV_GOOGLE_BOOKS_API_KEY = "LIBRIS_GOOGLE_BOOKS_API_KEY"


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


@dataclass(frozen=True)
class Settings:
    user_agent: str = DEFAULT_USER_AGENT
    timeout: TimeoutConfig = TimeoutConfig()
    max_providers: int = DEFAULT_CONSENSUS_PROVIDERS
    google_books_api_key: str | None = None


def _read(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None:
        return None
    if not value.strip():
        raise ConfigurationError(f"{name} is set but blank")
    return value.strip()


def _read_number(env: Mapping[str, str], name: str, cast: type) -> float | int | None:
    value = _read(env, name)
    if value is None:
        return None
    try:
        number = cast(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if number <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value!r}")
    return number


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from the environment (or the given mapping)."""
    env = os.environ if env is None else env
    defaults = Settings()

    request_timeout = _read_number(env, ENV_REQUEST_TIMEOUT, float)
    operation_timeout = _read_number(env, ENV_OPERATION_TIMEOUT, float)
    max_providers = _read_number(env, ENV_MAX_PROVIDERS, int)
    try:
        timeout = TimeoutConfig(
            request_timeout=request_timeout or defaults.timeout.request_timeout,
            operation_timeout=operation_timeout or defaults.timeout.operation_timeout,
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    return Settings(
        user_agent=_read(env, ENV_USER_AGENT) or defaults.user_agent,
        timeout=timeout,
        max_providers=int(max_providers or defaults.max_providers),
        google_books_api_key=_read(env, ENV_GOOGLE_BOOKS_API_KEY),
    )
