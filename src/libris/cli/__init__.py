# ABOUTME: CLI package for libris, built on Click.
# ABOUTME: Defines the root command group, logging setup, and registers subcommands.

import logging

import click

from libris.cli.commands import discover_cmd, duplicates_cmd, providers_cmd


@click.group()
@click.version_option(package_name="libris")
@click.option("-v", "--verbose", count=True, help="Log progress (-v) or debug detail (-vv).")
def cli(verbose: int) -> None:
    """libris - discover book metadata from several sources and reconcile it."""
    if verbose:
        level = logging.DEBUG if verbose > 1 else logging.INFO
        logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


cli.add_command(discover_cmd.discover)
cli.add_command(providers_cmd.providers)
cli.add_command(duplicates_cmd.duplicates)
