# ABOUTME: The `libris providers` command listing the configured metadata providers.
# ABOUTME: Shows priority, rate limit, and per-type reliability for each provider.

import click
from rich.console import Console
from rich.table import Table

from libris.cli.options import build_registry, settings_or_exit
from libris.metadata.types import MetadataType

console = Console()


@click.command("providers")
def providers() -> None:
    """List registered metadata providers and what they supply."""
    registry = build_registry(settings_or_exit())

    table = Table()
    table.add_column("Provider", style="bold")
    table.add_column("Priority", justify="right")
    table.add_column("Enabled")
    table.add_column("Rate limit")
    table.add_column("Supplies")
    for provider in registry.get_all_providers():
        limit = registry.rate_limit_for(provider)
        supplied = [
            f"{t.value} ({provider.get_reliability_score(t):.2f})"
            for t in MetadataType
            if provider.supports_data_type(t)
        ]
        table.add_row(
            provider.name,
            str(registry.effective_priority(provider)),
            "yes" if registry.is_enabled(provider.name) else "no",
            f"{limit.max_requests}/{limit.window:g}s",
            ", ".join(supplied),
        )
    console.print(table)
    stats = registry.stats()
    console.print(f"\n[dim]{stats.enabled} of {stats.total} provider(s) enabled[/dim]")
