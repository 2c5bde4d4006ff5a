# ABOUTME: The `libris discover` command: query providers and optionally reconcile the results.
# ABOUTME: Prints per-provider outcomes, aggregated records, and reconciled fields with conflicts.

import asyncio
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from libris.cli.options import (
    build_registry,
    max_providers_option,
    settings_or_exit,
    strategy_option,
)
from libris.config import Settings
from libris.core.pipeline import DiscoveryReport, discover_and_reconcile
from libris.discovery.coordinator import QueryCoordinator, QueryResult
from libris.discovery.rate_limiter import RateLimiterRegistry
from libris.discovery.strategy import SelectionOptions, SelectionStrategy
from libris.metadata.types import MultiCriteriaQuery
from libris.reconcile.engine import ReconciliationResult

console = Console()

_RECORD_LIMIT = 10


@click.command("discover")
@click.option("--title", default=None, help="Title to search for.")
@click.option("--author", "authors", multiple=True, help="Author name (repeatable).")
@click.option("--isbn", default=None, help="ISBN-10 or ISBN-13.")
@click.option("--language", default=None, help="Language code, e.g. en.")
@strategy_option
@max_providers_option
@click.option("--reconcile", is_flag=True, help="Reconcile the top work's records.")
def discover(
    title: str | None,
    authors: tuple[str, ...],
    isbn: str | None,
    language: str | None,
    strategy: str,
    max_providers: int | None,
    reconcile: bool,
) -> None:
    """Search every selected metadata provider concurrently."""
    if not (title or authors or isbn):
        raise click.UsageError("Give at least one of --title, --author, or --isbn.")

    settings = settings_or_exit()
    query = MultiCriteriaQuery(title=title, authors=authors, isbn=isbn, language=language)
    if max_providers is None and strategy == SelectionStrategy.CONSENSUS.value:
        max_providers = settings.max_providers
    options = SelectionOptions(
        max_providers=max_providers,
        preferred_languages=(language,) if language else (),
    )

    report = asyncio.run(_run(settings, query, strategy, options, reconcile))
    result = report.result if isinstance(report, DiscoveryReport) else report

    _print_outcomes(result)
    _print_records(result)
    if isinstance(report, DiscoveryReport):
        if report.reconciliation is None:
            console.print("[yellow]Nothing to reconcile.[/yellow]")
        else:
            _print_reconciliation(report.reconciliation)


async def _run(
    settings: Settings,
    query: MultiCriteriaQuery,
    strategy: str,
    options: SelectionOptions,
    reconcile: bool,
) -> DiscoveryReport | QueryResult:
    limiters = RateLimiterRegistry()
    registry = build_registry(settings, limiters)
    coordinator = QueryCoordinator(registry, limiters=limiters)
    try:
        if reconcile:
            return await discover_and_reconcile(
                coordinator, query, strategy=strategy, options=options
            )
        return await coordinator.query(query, strategy, options)
    finally:
        await registry.close()


def _print_outcomes(result: QueryResult) -> None:
    table = Table(title="Providers")
    table.add_column("Provider", style="bold")
    table.add_column("Status")
    table.add_column("Records", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Error", style="dim")
    for outcome in result.providers:
        status = "[green]ok[/green]" if outcome.success else "[red]failed[/red]"
        table.add_row(
            outcome.name,
            status,
            str(len(outcome.records)),
            f"{outcome.duration:.2f}s",
            outcome.error or "",
        )
    console.print(table)


def _print_records(result: QueryResult) -> None:
    if not result.aggregated_records:
        console.print("[yellow]No records found.[/yellow]")
        return

    table = Table(title="Records")
    table.add_column("#", style="dim", width=3)
    table.add_column("Title", style="bold")
    table.add_column("Author")
    table.add_column("Date")
    table.add_column("ISBN")
    table.add_column("Source")
    table.add_column("Conf", justify="right")
    for i, record in enumerate(result.aggregated_records[:_RECORD_LIMIT], 1):
        table.add_row(
            str(i),
            record.title or "[dim]untitled[/dim]",
            ", ".join(record.authors) or "[dim]unknown[/dim]",
            record.publication_date or "",
            record.isbn[0] if record.isbn else "",
            record.source,
            f"{record.confidence:.0%}",
        )
    console.print(table)
    console.print(
        f"\n[dim]{result.total_records} record(s) from {len(result.succeeded)} provider(s) "
        f"in {result.total_duration:.2f}s[/dim]"
    )


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, tuple):
        return ", ".join(_render(v) for v in value)
    for attribute in ("name", "text", "url"):
        rendered = getattr(value, attribute, None)
        if isinstance(rendered, str):
            return rendered[:80]
    iso = getattr(value, "iso", None)
    if callable(iso):
        return iso()
    normalized = getattr(value, "normalized", None)
    if isinstance(normalized, str):
        return normalized
    return str(value)


def _print_reconciliation(result: ReconciliationResult) -> None:
    table = Table(title="Reconciled")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_column("Conf", justify="right")
    table.add_column("Conflicts", justify="right")
    for name, reconciled in result.fields.items():
        table.add_row(
            name,
            _render(reconciled.value),
            f"{reconciled.confidence:.0%}",
            str(len(reconciled.conflicts)),
        )
    console.print(table)

    summary = result.conflict_summary
    console.print(
        f"Overall confidence [bold]{result.overall_confidence:.0%}[/bold]; "
        f"{summary.total} conflict(s), {len(summary.auto_resolvable_conflicts)} auto-resolvable"
    )
    for recommendation in summary.recommendations:
        console.print(f"  [dim]-[/dim] {recommendation}")
