# ABOUTME: Builders for reconciliation inputs used across reconcile tests.
# ABOUTME: sourced() wraps a raw value with a named MetadataSource of given reliability.

from typing import Any

from libris.reconcile.types import MetadataSource, SourcedValue


def source(name: str = "src", reliability: float = 0.8) -> MetadataSource:
    return MetadataSource(name, reliability)


def sourced(value: Any, name: str = "src", reliability: float = 0.8) -> SourcedValue[Any]:
    """Wrap a raw value as a SourcedValue from a named source."""
    return SourcedValue(value, source(name, reliability))
