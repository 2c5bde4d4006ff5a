# ABOUTME: Bounded retry with exponential backoff around one provider operation.
# ABOUTME: An explicit attempting/waiting state machine with a pure delay function.

import asyncio
import logging
import random
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeVar

from libris.discovery.cancellation import CancellationToken
from libris.metadata.http import ProviderHttpError, ProviderNetworkError, ProviderTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 1.0
_DEFAULT_MAX_DELAY = 30.0
_DEFAULT_JITTER = 1.0

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_RETRY_AFTER_RE = re.compile(r"retry.after[:\s]+(\d+)", re.IGNORECASE)


class ProviderCallError(Exception):
    """A provider operation failed; carries the operation name and attempt count."""

    def __init__(self, operation: str, attempts: int, cause: BaseException) -> None:
        self.operation = operation
        self.attempts = attempts
        self.cause = cause
        super().__init__(self._describe())

    def _describe(self) -> str:
        return f"{self.operation} failed: {self.cause}"


class FatalProviderError(ProviderCallError):
    """The error cannot be fixed by retrying (401, other 4xx, bad configuration)."""


class RetryExhaustedError(ProviderCallError):
    """Every allowed attempt failed with a retryable error."""

    def _describe(self) -> str:
        return f"{self.operation} failed after {self.attempts} attempts: {self.cause}"


class ErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    FATAL = "fatal"
    RETRYABLE = "retryable"


class RetryState(StrEnum):
    ATTEMPTING = "attempting"
    WAITING = "waiting"


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = _DEFAULT_MAX_RETRIES
    base_delay: float = _DEFAULT_BASE_DELAY
    max_delay: float = _DEFAULT_MAX_DELAY
    jitter: float = _DEFAULT_JITTER

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must not be negative, got {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays and jitter must not be negative")


def classify_error(exc: BaseException) -> ErrorKind:
    """Decide how the retry loop treats an exception raised by a provider call."""
    if isinstance(exc, ProviderHttpError):
        if exc.status_code == 404:
            return ErrorKind.NOT_FOUND
        if exc.status_code in _RETRYABLE_STATUS_CODES or exc.status_code >= 500:
            return ErrorKind.RETRYABLE
        return ErrorKind.FATAL
    if isinstance(exc, ProviderTimeoutError | ProviderNetworkError | TimeoutError):
        return ErrorKind.RETRYABLE
    return ErrorKind.FATAL


def retry_after_hint(exc: BaseException | None) -> float | None:
    """Server-provided wait, from the response header or an error message."""
    if exc is None:
        return None
    if isinstance(exc, ProviderHttpError) and exc.retry_after is not None:
        return exc.retry_after
    match = _RETRY_AFTER_RE.search(str(exc))
    if match:
        return float(match.group(1))
    return None


def next_delay(
    attempt: int,
    retry_after: float | None = None,
    *,
    config: RetryConfig | None = None,
    jitter: float = 0.0,
) -> float:
    """Seconds to wait before retry number attempt + 1.

    A server hint wins over the computed backoff. Otherwise the delay is
    base_delay * 2**attempt plus jitter, capped at max_delay.
    """
    config = config or RetryConfig()
    if retry_after is not None:
        return max(0.0, retry_after)
    return min(config.base_delay * (2**attempt) + jitter, config.max_delay)


class RetryPolicy:
    """Runs a provider operation with bounded retries.

    404 yields an empty list. 401 and other non-retryable errors fail at
    once. 429, 5xx, timeouts, and network errors are retried until
    max_retries is used up.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def config(self) -> RetryConfig:
        return self._config

    async def run(
        self,
        operation: str,
        call: Callable[[], Awaitable[list[T]]],
        *,
        token: CancellationToken | None = None,
    ) -> list[T]:
        """Execute call under the retry policy.

        Args:
            operation: Name used in log lines and error messages.
            call: Zero-argument coroutine factory performing one attempt.
            token: Optional cancellation token checked before each attempt
                and during backoff.

        Returns:
            The records from the first successful attempt, or an empty list
            when the provider reports not-found.

        Raises:
            FatalProviderError: The error is not retryable.
            RetryExhaustedError: All attempts failed with retryable errors.
            QueryCancelledError: The token was cancelled.
        """
        state = RetryState.ATTEMPTING
        attempt = 0
        last_error: Exception | None = None

        while True:
            if state is RetryState.ATTEMPTING:
                if token is not None:
                    token.raise_if_cancelled()
                try:
                    return await call()
                except Exception as exc:
                    kind = classify_error(exc)
                    if kind is ErrorKind.NOT_FOUND:
                        logger.debug("%s: not found", operation)
                        return []
                    if kind is ErrorKind.FATAL:
                        raise FatalProviderError(operation, attempt + 1, exc) from exc
                    if attempt >= self._config.max_retries:
                        raise RetryExhaustedError(operation, attempt + 1, exc) from exc
                    last_error = exc
                    state = RetryState.WAITING

            else:
                delay = next_delay(
                    attempt,
                    retry_after_hint(last_error),
                    config=self._config,
                    jitter=self._rng.uniform(0, self._config.jitter),
                )
                logger.warning(
                    "%s failed (%s), retrying in %.1fs (attempt %d/%d)",
                    operation,
                    last_error,
                    delay,
                    attempt + 1,
                    self._config.max_retries,
                )
                await self._backoff(delay, token)
                attempt += 1
                state = RetryState.ATTEMPTING

    async def _backoff(self, delay: float, token: CancellationToken | None) -> None:
        """Sleep for delay, waking early if the token is cancelled meanwhile."""
        if token is None:
            await self._sleep(delay)
            return
        sleeper = asyncio.ensure_future(self._sleep(delay))
        cancelled = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({sleeper, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            cancelled.cancel()
        token.raise_if_cancelled()
        sleeper.result()
