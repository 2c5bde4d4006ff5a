# ABOUTME: Cooperative cancellation token checked at rate-limit and backoff boundaries.
# ABOUTME: Raising QueryCancelledError fails only the provider calls that observe it.

import asyncio


class QueryCancelledError(Exception):
    """Raised when a provider call observes a cancelled token."""


class CancellationToken:
    """A one-way flag shared between a caller and in-flight provider calls."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = "query cancelled"

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise QueryCancelledError(self._reason)
