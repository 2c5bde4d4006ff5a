# ABOUTME: Unit tests for the bounded retry policy and its delay calculation.
# ABOUTME: Covers error classification, backoff, Retry-After hints, exhaustion, and cancellation.

import asyncio

import pytest

from libris.discovery.cancellation import CancellationToken, QueryCancelledError
from libris.discovery.retry import (
    ErrorKind,
    FatalProviderError,
    RetryConfig,
    RetryExhaustedError,
    RetryPolicy,
    classify_error,
    next_delay,
    retry_after_hint,
)
from libris.metadata.http import ProviderHttpError, ProviderNetworkError, ProviderTimeoutError
from tests.fixtures.providers import RecordingSleep


def _http(status: int, retry_after: float | None = None) -> ProviderHttpError:
    return ProviderHttpError(status, "https://example.com", retry_after=retry_after)


class FlakyCall:
    """Raises the queued errors in order, then returns a result."""

    def __init__(self, *errors: Exception, result: list | None = None) -> None:
        self._errors = list(errors)
        self._result = result if result is not None else ["record"]
        self.attempts = 0

    async def __call__(self) -> list:
        self.attempts += 1
        if self._errors:
            raise self._errors.pop(0)
        return self._result


def _policy(max_retries: int = 3) -> tuple[RetryPolicy, RecordingSleep]:
    sleep = RecordingSleep()
    return RetryPolicy(RetryConfig(max_retries=max_retries, jitter=0.0), sleep=sleep), sleep


class TestClassifyError:
    """Tests for classify_error."""

    def test_not_found(self) -> None:
        """404 means no result."""
        assert classify_error(_http(404)) is ErrorKind.NOT_FOUND

    def test_retryable_statuses(self) -> None:
        """429 and 5xx are retryable."""
        for status in (429, 500, 502, 503, 504, 599):
            assert classify_error(_http(status)) is ErrorKind.RETRYABLE

    def test_auth_and_client_errors_are_fatal(self) -> None:
        """401 and other 4xx are fatal."""
        assert classify_error(_http(401)) is ErrorKind.FATAL
        assert classify_error(_http(400)) is ErrorKind.FATAL

    def test_transport_errors_are_retryable(self) -> None:
        """Timeouts and network errors are retryable."""
        assert classify_error(ProviderTimeoutError("slow")) is ErrorKind.RETRYABLE
        assert classify_error(ProviderNetworkError("down")) is ErrorKind.RETRYABLE
        assert classify_error(TimeoutError()) is ErrorKind.RETRYABLE

    def test_unknown_errors_are_fatal(self) -> None:
        """Programming errors are not retried."""
        assert classify_error(ValueError("bad")) is ErrorKind.FATAL


class TestNextDelay:
    """Tests for the pure delay function."""

    def test_exponential_backoff(self) -> None:
        """Delay doubles with each attempt."""
        assert [next_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self) -> None:
        """Delay never exceeds max_delay."""
        assert next_delay(10) == 30.0

    def test_jitter_added(self) -> None:
        """Jitter is added to the computed backoff."""
        assert next_delay(1, jitter=0.5) == 2.5

    def test_server_hint_wins(self) -> None:
        """A Retry-After hint replaces the computed backoff."""
        assert next_delay(3, 12.0) == 12.0

    def test_custom_config(self) -> None:
        """base_delay and max_delay come from the config."""
        config = RetryConfig(base_delay=0.5, max_delay=3.0)
        assert next_delay(1, config=config) == 1.0
        assert next_delay(5, config=config) == 3.0


class TestRetryAfterHint:
    """Tests for extracting server wait hints."""

    def test_from_header(self) -> None:
        """The parsed header value is used."""
        assert retry_after_hint(_http(429, retry_after=9.0)) == 9.0

    def test_from_message(self) -> None:
        """A 'retry after N' message is recognised."""
        assert retry_after_hint(RuntimeError("Rate limited, Retry-After: 20")) == 20.0

    def test_none(self) -> None:
        """No hint yields None."""
        assert retry_after_hint(_http(503)) is None
        assert retry_after_hint(None) is None


class TestRetryPolicy:
    """Tests for RetryPolicy.run."""

    @pytest.mark.asyncio
    async def test_success_first_try(self) -> None:
        """A successful call is not retried."""
        policy, sleep = _policy()
        call = FlakyCall()
        assert await policy.run("op", call) == ["record"]
        assert call.attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_transient_failure(self) -> None:
        """A 503 is retried after backoff."""
        policy, sleep = _policy()
        call = FlakyCall(_http(503))
        assert await policy.run("op", call) == ["record"]
        assert call.attempts == 2
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_honours_retry_after(self) -> None:
        """A 429 with Retry-After waits the server-specified time."""
        policy, sleep = _policy()
        await policy.run("op", FlakyCall(_http(429, retry_after=7.0)))
        assert sleep.delays == [7.0]

    @pytest.mark.asyncio
    async def test_exhaustion(self) -> None:
        """Persistent retryable failures raise RetryExhaustedError after max_retries."""
        policy, sleep = _policy(max_retries=2)
        call = FlakyCall(_http(500), _http(500), _http(500), _http(500))
        with pytest.raises(RetryExhaustedError) as excinfo:
            await policy.run("openlibrary.search_by_title", call)
        assert call.attempts == 3
        assert sleep.delays == [1.0, 2.0]
        assert excinfo.value.attempts == 3
        assert excinfo.value.operation == "openlibrary.search_by_title"
        assert isinstance(excinfo.value.cause, ProviderHttpError)
        assert "after 3 attempts" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_not_found_returns_empty(self) -> None:
        """A 404 yields an empty result without retrying."""
        policy, sleep = _policy()
        call = FlakyCall(_http(404))
        assert await policy.run("op", call) == []
        assert call.attempts == 1

    @pytest.mark.asyncio
    async def test_auth_failure_is_fatal(self) -> None:
        """A 401 fails at once."""
        policy, sleep = _policy()
        call = FlakyCall(_http(401))
        with pytest.raises(FatalProviderError) as excinfo:
            await policy.run("op", call)
        assert call.attempts == 1
        assert sleep.delays == []
        assert "HTTP 401" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_zero_retries(self) -> None:
        """max_retries=0 makes exactly one attempt."""
        policy, _ = _policy(max_retries=0)
        call = FlakyCall(ProviderNetworkError("down"))
        with pytest.raises(RetryExhaustedError):
            await policy.run("op", call)
        assert call.attempts == 1

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_before_attempt(self) -> None:
        """A cancelled token prevents any further attempt."""
        policy, _ = _policy()
        token = CancellationToken()
        token.cancel("user aborted")
        call = FlakyCall()
        with pytest.raises(QueryCancelledError, match="user aborted"):
            await policy.run("op", call, token=token)
        assert call.attempts == 0

    @pytest.mark.asyncio
    async def test_exhaustion_reports_final_error(self) -> None:
        """The exhausted error wraps the failure from the last attempt."""
        policy, _ = _policy(max_retries=1)
        final = _http(503)
        with pytest.raises(RetryExhaustedError) as excinfo:
            await policy.run("op", FlakyCall(_http(500), final, _http(502)))
        assert excinfo.value.cause is final
        assert excinfo.value.__cause__ is final
        assert excinfo.value.attempts == 2

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_wakes_early(self) -> None:
        """Cancelling the token cuts a long backoff short without another attempt."""
        policy = RetryPolicy(RetryConfig(base_delay=30.0, jitter=0.0))
        token = CancellationToken()
        call = FlakyCall(_http(503))
        asyncio.get_running_loop().call_later(0.01, token.cancel, "shutting down")
        with pytest.raises(QueryCancelledError, match="shutting down"):
            await asyncio.wait_for(policy.run("op", call, token=token), timeout=5.0)
        assert call.attempts == 1

    @pytest.mark.asyncio
    async def test_backoff_with_idle_token_sleeps_fully(self) -> None:
        """An uncancelled token leaves the backoff delay untouched."""
        policy, sleep = _policy()
        call = FlakyCall(_http(503))
        assert await policy.run("op", call, token=CancellationToken()) == ["record"]
        assert sleep.delays == [1.0]


class TestRetryConfig:
    """Tests for RetryConfig validation."""

    def test_negative_retries_rejected(self) -> None:
        """max_retries must not be negative."""
        with pytest.raises(ValueError):
            RetryConfig(max_retries=-1)
