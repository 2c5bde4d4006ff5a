# ABOUTME: Discovery-to-reconciliation pipeline: query providers, pick the work, reconcile it.
# ABOUTME: Produces a preview of merged metadata without writing anything.

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from libris.discovery.cancellation import CancellationToken
from libris.discovery.coordinator import QueryCoordinator, QueryResult
from libris.discovery.strategy import SelectionOptions, SelectionStrategy
from libris.metadata.types import MetadataRecord, MultiCriteriaQuery
from libris.reconcile.engine import ReconciliationEngine, ReconciliationResult
from libris.reconcile.similarity import author_similarity, string_similarity

logger = logging.getLogger(__name__)

_CLUSTER_TITLE_SIMILARITY = 0.8


@dataclass(frozen=True)
class DiscoveryReport:
    """Everything one discover-and-reconcile run produced."""

    query: MultiCriteriaQuery
    result: QueryResult
    cluster: tuple[MetadataRecord, ...]
    reconciliation: ReconciliationResult | None


def work_cluster(
    records: Sequence[MetadataRecord],
    *,
    title_similarity: float = _CLUSTER_TITLE_SIMILARITY,
) -> list[MetadataRecord]:
    """Records that describe the same work as the highest-confidence record.

    A record joins when its title is similar to the anchor's and, if both
    name authors, they share at least one.
    """
    if not records:
        return []
    anchor = records[0]
    cluster = [anchor]
    for record in records[1:]:
        if string_similarity(anchor.title, record.title) < title_similarity:
            continue
        if anchor.authors and record.authors:
            if author_similarity(anchor.authors, record.authors) == 0:
                continue
        cluster.append(record)
    return cluster


async def discover_and_reconcile(
    coordinator: QueryCoordinator,
    query: MultiCriteriaQuery,
    *,
    strategy: SelectionStrategy | str = SelectionStrategy.ALL,
    options: SelectionOptions | None = None,
    engine: ReconciliationEngine | None = None,
    token: CancellationToken | None = None,
) -> DiscoveryReport:
    """Query providers, cluster the top work's records, and reconcile them.

    Returns a report whose reconciliation is None when no provider returned
    anything.
    """
    result = await coordinator.query(query, strategy, options, token=token)
    # Reconcile across every provider answer, not just the deduplicated aggregate.
    everything = sorted(
        (record for outcome in result.providers for record in outcome.records),
        key=lambda r: r.confidence,
        reverse=True,
    )
    cluster = work_cluster(everything)
    if not cluster:
        logger.info("No records to reconcile (%d provider(s) failed)", len(result.failed))
        return DiscoveryReport(query=query, result=result, cluster=(), reconciliation=None)

    engine = engine or ReconciliationEngine()
    reconciliation = engine.reconcile_records(cluster)
    logger.info(
        "Reconciled %d record(s) for %r with overall confidence %.2f",
        len(cluster),
        cluster[0].title,
        reconciliation.overall_confidence,
    )
    return DiscoveryReport(
        query=query, result=result, cluster=tuple(cluster), reconciliation=reconciliation
    )
