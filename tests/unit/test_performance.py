# ABOUTME: Unit tests for the in-memory performance monitor and the cancellation token.
# ABOUTME: Checks recency-weighted averages, failure counts, and token behaviour.

import pytest

from libris.discovery.cancellation import CancellationToken, QueryCancelledError
from libris.discovery.performance import InMemoryPerformanceMonitor, PerformanceMonitor


class TestInMemoryPerformanceMonitor:
    """Tests for InMemoryPerformanceMonitor."""

    def test_satisfies_protocol(self) -> None:
        """The monitor implements PerformanceMonitor."""
        assert isinstance(InMemoryPerformanceMonitor(), PerformanceMonitor)

    def test_no_history(self) -> None:
        """Unknown providers have no average."""
        assert InMemoryPerformanceMonitor().average_duration("ol") is None

    def test_recent_samples_weigh_more(self) -> None:
        """Sample i of n has weight i + 1."""
        monitor = InMemoryPerformanceMonitor()
        monitor.record("ol", "search_by_title", 1.0, success=True)
        monitor.record("ol", "search_by_title", 4.0, success=True)
        assert monitor.average_duration("ol", "search_by_title") == 3.0

    def test_average_across_operations(self) -> None:
        """Without an operation, every sample for the provider counts."""
        monitor = InMemoryPerformanceMonitor()
        monitor.record("ol", "search_by_title", 2.0, success=True)
        monitor.record("ol", "search_by_isbn", 2.0, success=False)
        assert monitor.average_duration("ol") == 2.0
        assert monitor.failure_count("ol") == 1

    def test_history_is_bounded(self) -> None:
        """Only the newest samples are kept."""
        monitor = InMemoryPerformanceMonitor(history_size=2)
        for duration in (100.0, 1.0, 1.0):
            monitor.record("ol", "op", duration, success=True)
        assert monitor.average_duration("ol", "op") == 1.0


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_not_cancelled_by_default(self) -> None:
        """A fresh token does not raise."""
        token = CancellationToken()
        token.raise_if_cancelled()
        assert not token.cancelled

    def test_cancel_with_reason(self) -> None:
        """The reason is carried by the raised error."""
        token = CancellationToken()
        token.cancel("shutting down")
        with pytest.raises(QueryCancelledError, match="shutting down"):
            token.raise_if_cancelled()
