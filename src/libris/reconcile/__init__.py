# ABOUTME: Reconciliation package: merges per-source field values into one value with confidence.
# ABOUTME: Exports the engine entry points and the types callers build inputs from.

from libris.reconcile.conflicts import ConflictDetector, ConflictDetectorConfig, ConflictSummary
from libris.reconcile.engine import (
    ReconciliationConfig,
    ReconciliationEngine,
    ReconciliationResult,
    reconcile,
    reconcile_records,
)
from libris.reconcile.types import (
    Conflict,
    ConflictSeverity,
    ConflictType,
    MetadataSource,
    ReconciledField,
    ReconciliationInputError,
    SourcedValue,
)

__all__ = [
    "Conflict",
    "ConflictDetector",
    "ConflictDetectorConfig",
    "ConflictSeverity",
    "ConflictSummary",
    "ConflictType",
    "MetadataSource",
    "ReconciledField",
    "ReconciliationConfig",
    "ReconciliationEngine",
    "ReconciliationInputError",
    "ReconciliationResult",
    "SourcedValue",
    "reconcile",
    "reconcile_records",
]
