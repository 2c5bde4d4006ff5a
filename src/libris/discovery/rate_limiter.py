# ABOUTME: Sliding-window rate limiting for provider calls, one limiter per provider name.
# ABOUTME: RateLimiterRegistry is the explicit, per-process owner of all limiters.

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from libris.metadata.provider import RateLimitConfig

logger = logging.getLogger(__name__)

# Wait used when the window is full but the oldest entry has already expired.
_FALLBACK_WAIT = 1.0
# Upper bound on a single sleep so the window is re-checked regularly.
_MAX_SINGLE_WAIT = 5.0

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class LimiterStats:
    """Point-in-time view of one limiter key, for diagnostics."""

    key: str
    remaining_requests: int | None
    time_until_reset: float


class RateLimiter:
    """Per-key sliding window admission control with a minimum request spacing.

    A limiter without configuration admits everything. All history updates
    happen without an intervening await, and waiters on the same key are
    serialized by a per-key asyncio.Lock.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self._history: dict[str, deque[float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def config(self) -> RateLimitConfig | None:
        return self._config

    def update_config(self, config: RateLimitConfig | None) -> None:
        self._config = config

    def is_allowed(self, key: str) -> bool:
        """Admit a request for key if the window has room, without blocking.

        An admitted request is recorded immediately.
        """
        if self._config is None:
            return True
        now = self._clock()
        history = self._pruned(key, now)
        if len(history) >= self._config.max_requests:
            return False
        history.append(now)
        return True

    async def wait_for_slot(self, key: str) -> None:
        """Suspend until a request for key may be sent, then record it.

        The wait is recomputed from the oldest in-window request on every
        pass. Once a slot is free, the fixed request delay is honoured
        relative to the previous request.
        """
        if self._config is None:
            return
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            while True:
                now = self._clock()
                history = self._pruned(key, now)
                if len(history) < self._config.max_requests:
                    break
                wait = history[0] + self._config.window - now
                if wait <= 0:
                    wait = self._config.request_delay or _FALLBACK_WAIT
                wait = min(wait, _MAX_SINGLE_WAIT)
                logger.debug("Rate limit reached for %s, waiting %.2fs", key, wait)
                await self._sleep(wait)

            if history and self._config.request_delay > 0:
                spacing = history[-1] + self._config.request_delay - self._clock()
                if spacing > 0:
                    await self._sleep(spacing)
            now = self._clock()
            self._pruned(key, now).append(now)

    def remaining_requests(self, key: str) -> int | None:
        """Requests still admissible in the current window; None when unrestricted."""
        if self._config is None:
            return None
        history = self._pruned(key, self._clock())
        return max(0, self._config.max_requests - len(history))

    def time_until_reset(self, key: str) -> float:
        """Seconds until the oldest in-window request expires (0.0 when empty)."""
        if self._config is None:
            return 0.0
        now = self._clock()
        history = self._pruned(key, now)
        if not history:
            return 0.0
        return max(0.0, history[0] + self._config.window - now)

    def stats(self, key: str) -> LimiterStats:
        return LimiterStats(
            key=key,
            remaining_requests=self.remaining_requests(key),
            time_until_reset=self.time_until_reset(key),
        )

    def clear(self, key: str | None = None) -> None:
        """Forget request history for one key, or for all keys."""
        if key is None:
            self._history.clear()
        else:
            self._history.pop(key, None)

    def _pruned(self, key: str, now: float) -> deque[float]:
        history = self._history.setdefault(key, deque())
        if self._config is not None:
            cutoff = now - self._config.window
            while history and history[0] <= cutoff:
                history.popleft()
        return history


class RateLimiterRegistry:
    """Holds one RateLimiter per provider name.

    Constructed once per process or worker and handed to the coordinator.
    """

    def __init__(self, *, clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep) -> None:
        self._clock = clock
        self._sleep = sleep
        self._limiters: dict[str, RateLimiter] = {}

    def get_limiter(self, name: str, config: RateLimitConfig | None = None) -> RateLimiter:
        """Return the limiter for name, creating it with config on first use.

        A config that differs from the existing limiter's replaces it, so
        per-provider overrides made after the first query take effect. Without
        a config the existing limiter is returned unchanged.
        """
        limiter = self._limiters.get(name)
        if limiter is None:
            limiter = RateLimiter(config, clock=self._clock, sleep=self._sleep)
            self._limiters[name] = limiter
        elif config is not None and config != limiter.config:
            logger.debug("Rate limit for %s changed to %s", name, config)
            limiter.update_config(config)
        return limiter

    def update_config(self, name: str, config: RateLimitConfig | None) -> None:
        self.get_limiter(name).update_config(config)

    def clear(self, name: str) -> None:
        limiter = self._limiters.get(name)
        if limiter is not None:
            limiter.clear()

    def clear_all(self) -> None:
        for limiter in self._limiters.values():
            limiter.clear()

    def names(self) -> list[str]:
        return sorted(self._limiters)

    def stats(self) -> dict[str, LimiterStats]:
        return {name: limiter.stats(name) for name, limiter in sorted(self._limiters.items())}
