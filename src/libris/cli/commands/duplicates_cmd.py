# ABOUTME: The `libris duplicates` command screening a candidate entry against a catalog.
# ABOUTME: Reads both from JSON files and prints matches with their recommendation.

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from libris.core.duplicates import (
    CatalogEntry,
    DuplicateDetectionConfig,
    JsonCatalog,
    Recommendation,
    screen_catalog,
)

console = Console()

_RECOMMENDATION_STYLE = {
    Recommendation.SKIP: "red",
    Recommendation.REVIEW_MANUALLY: "yellow",
    Recommendation.ADD_AS_NEW: "green",
}


@click.command("duplicates")
@click.argument("candidate_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("catalog_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--min-similarity",
    type=click.FloatRange(0.0, 1.0),
    default=0.3,
    show_default=True,
    help="Hide matches at or below this similarity.",
)
def duplicates(candidate_json: Path, catalog_json: Path, min_similarity: float) -> None:
    """Check whether CANDIDATE_JSON duplicates an entry in CATALOG_JSON."""
    try:
        candidate = CatalogEntry.from_mapping(
            json.loads(candidate_json.read_text(encoding="utf-8"))
        )
        matches = screen_catalog(
            candidate,
            JsonCatalog(catalog_json),
            DuplicateDetectionConfig(min_similarity=min_similarity),
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise click.ClickException(f"Could not read entries: {exc}") from exc

    if not matches:
        console.print("[green]No duplicates found.[/green]")
        return

    table = Table()
    table.add_column("Title", style="bold")
    table.add_column("Author")
    table.add_column("Similarity", justify="right")
    table.add_column("Match")
    table.add_column("Recommendation")
    for match in matches:
        entry = match.existing_entry
        style = _RECOMMENDATION_STYLE[match.recommendation]
        table.add_row(
            entry.title,
            ", ".join(entry.authors) or "[dim]unknown[/dim]",
            f"{match.similarity:.0%}",
            match.match_type.value,
            f"[{style}]{match.recommendation.value}[/{style}]",
        )
    console.print(table)
    console.print(f"\n[dim]{matches[0].explanation}[/dim]")
