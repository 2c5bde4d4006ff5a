# ABOUTME: Provider latency history consumed by the "fastest" selection strategy.
# ABOUTME: InMemoryPerformanceMonitor keeps a recency-weighted average per provider and operation.

from collections import deque
from typing import Protocol, runtime_checkable

_HISTORY_SIZE = 50


@runtime_checkable
class PerformanceMonitor(Protocol):
    """Read and record access to per-provider call durations (seconds)."""

    def average_duration(self, provider: str, operation: str | None = None) -> float | None: ...

    def record(self, provider: str, operation: str, duration: float, *, success: bool) -> None: ...


class InMemoryPerformanceMonitor:
    """Keeps the last few durations per (provider, operation).

    Newer samples weigh more: sample i of n (oldest first) has weight i + 1.
    Failed calls count toward latency too, since a slow failure costs the
    same wall-clock time as a slow success.
    """

    def __init__(self, history_size: int = _HISTORY_SIZE) -> None:
        self._history_size = history_size
        self._samples: dict[tuple[str, str], deque[float]] = {}
        self._failures: dict[str, int] = {}

    def record(self, provider: str, operation: str, duration: float, *, success: bool) -> None:
        samples = self._samples.setdefault(
            (provider, operation), deque(maxlen=self._history_size)
        )
        samples.append(duration)
        if not success:
            self._failures[provider] = self._failures.get(provider, 0) + 1

    def average_duration(self, provider: str, operation: str | None = None) -> float | None:
        """Weighted average duration, or None without any history."""
        if operation is not None:
            samples = list(self._samples.get((provider, operation), ()))
        else:
            samples = [
                value
                for (name, _), history in self._samples.items()
                if name == provider
                for value in history
            ]
        if not samples:
            return None
        weights = range(1, len(samples) + 1)
        return sum(w * s for w, s in zip(weights, samples, strict=True)) / sum(weights)

    def failure_count(self, provider: str) -> int:
        return self._failures.get(provider, 0)
