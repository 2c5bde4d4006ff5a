# ABOUTME: Unit tests for the async HTTP client abstraction.
# ABOUTME: Tests the HttpClient protocol, LibrisHttpClient, and typed error mapping.

import httpx
import pytest

from libris.discovery.rate_limiter import RateLimiter
from libris.metadata.http import (
    HttpClient,
    LibrisHttpClient,
    MetadataFetchError,
    ProviderHttpError,
    ProviderNetworkError,
    ProviderTimeoutError,
    parse_retry_after,
)
from libris.metadata.provider import RateLimitConfig
from tests.fixtures.providers import FakeClock, RecordingSleep


def _client(handler) -> LibrisHttpClient:
    return LibrisHttpClient(transport=httpx.MockTransport(handler))


class TestHttpClientProtocol:
    """Tests for HttpClient protocol compliance."""

    def test_libris_client_satisfies_protocol(self) -> None:
        """LibrisHttpClient satisfies the HttpClient protocol."""
        client = LibrisHttpClient()
        assert isinstance(client, HttpClient)


class TestLibrisHttpClient:
    """Tests for LibrisHttpClient request handling."""

    @pytest.mark.asyncio
    async def test_get_returns_json(self) -> None:
        """A 200 response is returned as parsed JSON."""
        client = _client(lambda request: httpx.Response(200, json={"ok": True}))
        assert await client.get("https://example.com/api", params={"q": "x"}) == {"ok": True}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_sends_user_agent_and_params(self) -> None:
        """Requests carry the configured User-Agent and query parameters."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        client = LibrisHttpClient(
            user_agent="libris-test/1.0", transport=httpx.MockTransport(handler)
        )
        await client.get("https://example.com/search.json", params={"title": "Dune"})
        await client.aclose()
        assert seen[0].headers["user-agent"] == "libris-test/1.0"
        assert seen[0].url.params["title"] == "Dune"

    @pytest.mark.asyncio
    async def test_not_found_raises_http_error(self) -> None:
        """A 404 raises ProviderHttpError carrying the status code."""
        client = _client(lambda request: httpx.Response(404, json={"error": "not found"}))
        with pytest.raises(ProviderHttpError) as excinfo:
            await client.get("https://example.com/missing")
        assert excinfo.value.status_code == 404
        assert isinstance(excinfo.value, MetadataFetchError)

    @pytest.mark.asyncio
    async def test_rate_limited_response_carries_retry_after(self) -> None:
        """A 429 with Retry-After exposes the hint in seconds."""
        client = _client(
            lambda request: httpx.Response(429, headers={"Retry-After": "7"}, json={})
        )
        with pytest.raises(ProviderHttpError) as excinfo:
            await client.get("https://example.com/busy")
        assert excinfo.value.status_code == 429
        assert excinfo.value.retry_after == 7.0

    @pytest.mark.asyncio
    async def test_timeout_maps_to_timeout_error(self) -> None:
        """httpx timeouts surface as ProviderTimeoutError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ProviderTimeoutError):
            await _client(handler).get("https://example.com/slow")

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_network_error(self) -> None:
        """Connection failures surface as ProviderNetworkError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderNetworkError, match="refused"):
            await _client(handler).get("https://example.com/down")


class TestRequestThrottling:
    """Tests for per-request throttling through a rate limiter."""

    @pytest.mark.asyncio
    async def test_every_request_waits_for_a_slot(self) -> None:
        """A second request inside a one-request window waits out the window."""
        clock = FakeClock()
        sleep = RecordingSleep(clock)
        limiter = RateLimiter(
            RateLimitConfig(max_requests=1, window=60.0, request_delay=0.0),
            clock=clock,
            sleep=sleep,
        )
        client = LibrisHttpClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
            throttle=limiter,
            throttle_key="openlibrary.requests",
        )
        await client.get("https://example.com/search.json")
        await client.get("https://example.com/works/OL1W.json")
        await client.aclose()

        assert sum(sleep.delays) == pytest.approx(60.0)
        assert limiter.remaining_requests("openlibrary.requests") == 0

    @pytest.mark.asyncio
    async def test_unthrottled_by_default(self) -> None:
        """Without a throttle, requests go straight out."""
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            return httpx.Response(200, json={})

        client = LibrisHttpClient(transport=httpx.MockTransport(handler))
        for _ in range(3):
            await client.get("https://example.com/a")
        await client.aclose()
        assert len(calls) == 3


class TestParseRetryAfter:
    """Tests for Retry-After header parsing."""

    def test_seconds(self) -> None:
        """Integer seconds are parsed."""
        assert parse_retry_after(" 30 ") == 30.0

    def test_missing_or_http_date(self) -> None:
        """Missing headers and HTTP-date values yield None."""
        assert parse_retry_after(None) is None
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
