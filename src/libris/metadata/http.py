# ABOUTME: Async HTTP client abstraction for metadata provider API calls.
# ABOUTME: Maps transport failures and HTTP status codes onto typed fetch errors for retries.

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "libris/0.1.0"
_DEFAULT_TIMEOUT = 10.0


class MetadataFetchError(Exception):
    """Raised when a request to a metadata provider fails."""


class ProviderHttpError(MetadataFetchError):
    """Non-success HTTP status from a provider endpoint."""

    def __init__(self, status_code: int, url: str, *, retry_after: float | None = None) -> None:
        super().__init__(f"HTTP {status_code} from {url}")
        self.status_code = status_code
        self.url = url
        self.retry_after = retry_after


class ProviderTimeoutError(MetadataFetchError):
    """The provider did not answer within the request deadline."""


class ProviderNetworkError(MetadataFetchError):
    """Connection-level failure (DNS, refused connection, protocol error)."""


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds.

    HTTP-date values are not interpreted and yield None.
    """
    if value is None:
        return None
    value = value.strip()
    if not value.isdigit():
        return None
    return float(value)


@runtime_checkable
class HttpClient(Protocol):
    """Protocol for async HTTP GET operations against metadata APIs."""

    async def get(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]: ...


class RequestThrottle(Protocol):
    """Anything that can hold a request back until a rate-limit slot is free."""

    async def wait_for_slot(self, key: str) -> None: ...


class LibrisHttpClient:
    """Async HTTP client for metadata API calls.

    Wraps httpx.AsyncClient. When a throttle is given, every request waits
    for a slot under throttle_key first, so follow-up requests a provider
    makes within one search are limited too. Retries are applied one level
    up by the discovery layer: this client makes exactly one attempt and
    reports failures as typed MetadataFetchError subclasses.
    """

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        throttle: RequestThrottle | None = None,
        throttle_key: str = "http",
    ) -> None:
        self._throttle = throttle
        self._throttle_key = throttle_key
        client_kwargs: dict[str, Any] = {
            "headers": {"User-Agent": user_agent, "Accept": "application/json"},
            "timeout": timeout,
            "follow_redirects": True,
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.AsyncClient(**client_kwargs)

    async def get(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        """Send a single GET request.

        Args:
            url: The URL to request.
            params: Optional query parameters.

        Returns:
            Parsed JSON response body.

        Raises:
            ProviderTimeoutError: The request timed out.
            ProviderNetworkError: The request failed below the HTTP layer.
            ProviderHttpError: The server answered with a non-200 status.
        """
        if self._throttle is not None:
            await self._throttle.wait_for_slot(self._throttle_key)
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"Request timed out: {url}") from exc
        except httpx.HTTPError as exc:
            raise ProviderNetworkError(f"Request failed: {url}: {exc}") from exc

        if response.status_code == 200:
            return response.json()

        retry_after = parse_retry_after(response.headers.get("Retry-After"))
        logger.debug("HTTP %d from %s (retry-after=%s)", response.status_code, url, retry_after)
        raise ProviderHttpError(response.status_code, url, retry_after=retry_after)

    async def aclose(self) -> None:
        await self._client.aclose()
