# ABOUTME: End-to-end tests for the libris CLI.
# ABOUTME: Drives discover, providers, and duplicates through Click's CliRunner with fake providers.

import json
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

from libris.cli import cli
from libris.discovery.registry import ProviderRegistry
from tests.fixtures.providers import FakeProvider, make_record

DISCOVER_REGISTRY = "libris.cli.commands.discover_cmd.build_registry"
PROVIDERS_REGISTRY = "libris.cli.commands.providers_cmd.build_registry"


class TestCliDiscover:
    """E2e tests for `libris discover`."""

    def test_lists_records_and_outcomes(self, fake_registry: ProviderRegistry) -> None:
        """Discover shows each provider's outcome and the aggregated records."""
        runner = CliRunner()
        with patch(DISCOVER_REGISTRY, return_value=fake_registry):
            result = runner.invoke(cli, ["discover", "--title", "Dune"])
        assert result.exit_code == 0
        assert "alpha" in result.output
        assert "beta" in result.output
        assert "Dune Messiah" in result.output
        assert "2 record(s) from 2 provider(s)" in result.output

    def test_failed_provider_reported(self) -> None:
        """A failing provider is shown as failed without aborting the command."""
        registry = ProviderRegistry()
        registry.register(FakeProvider("broken", errors=[RuntimeError("service down")]))
        runner = CliRunner()
        with patch(DISCOVER_REGISTRY, return_value=registry):
            result = runner.invoke(cli, ["discover", "--isbn", "9780743273565"])
        assert result.exit_code == 0
        assert "failed" in result.output
        assert "No records found." in result.output

    def test_reconcile(self) -> None:
        """--reconcile prints the merged fields and the conflict summary."""
        first = make_record("a", confidence=0.9, title="Mort", authors=("Pratchett, Terry",))
        second = make_record("b", confidence=0.7, title="Mort", authors=("Terry Pratchett",))
        registry = ProviderRegistry()
        registry.register(FakeProvider("a", records=[first]))
        registry.register(FakeProvider("b", records=[second]))
        runner = CliRunner()
        with patch(DISCOVER_REGISTRY, return_value=registry):
            result = runner.invoke(cli, ["discover", "--title", "Mort", "--reconcile"])
        assert result.exit_code == 0
        assert "Reconciled" in result.output
        assert "Terry Pratchett" in result.output
        assert "Overall confidence" in result.output

    def test_reconcile_without_records(self) -> None:
        """--reconcile with no records says there is nothing to do."""
        registry = ProviderRegistry()
        registry.register(FakeProvider("empty"))
        runner = CliRunner()
        with patch(DISCOVER_REGISTRY, return_value=registry):
            result = runner.invoke(cli, ["discover", "--title", "Mort", "--reconcile"])
        assert result.exit_code == 0
        assert "Nothing to reconcile." in result.output

    def test_closes_registry(self) -> None:
        """Providers are closed after the command runs."""
        provider = FakeProvider("a")
        registry = ProviderRegistry()
        registry.register(provider)
        runner = CliRunner()
        with patch(DISCOVER_REGISTRY, return_value=registry):
            runner.invoke(cli, ["discover", "--author", "Terry Pratchett"])
        assert provider.closed
        assert provider.calls == ["search_by_creator"]

    def test_requires_criteria(self) -> None:
        """Discover without any criteria is a usage error."""
        runner = CliRunner()
        result = runner.invoke(cli, ["discover"])
        assert result.exit_code == 2
        assert "Give at least one of" in result.output

    def test_bad_configuration(self) -> None:
        """Invalid environment settings are reported as an error."""
        runner = CliRunner()
        result = runner.invoke(
            cli, ["discover", "--title", "Mort"], env={"LIBRIS_MAX_PROVIDERS": "0"}
        )
        assert result.exit_code == 1
        assert "LIBRIS_MAX_PROVIDERS must be positive" in result.output

    def test_unknown_strategy_rejected(self) -> None:
        """Strategy names are validated by Click."""
        runner = CliRunner()
        result = runner.invoke(cli, ["discover", "--title", "Mort", "--strategy", "random"])
        assert result.exit_code == 2


class TestCliProviders:
    """E2e tests for `libris providers`."""

    def test_lists_registered_providers(self, fake_registry: ProviderRegistry) -> None:
        """Each provider is listed with its priority and the enabled count."""
        fake_registry.set_enabled("beta", False)
        runner = CliRunner()
        with patch(PROVIDERS_REGISTRY, return_value=fake_registry):
            result = runner.invoke(cli, ["providers"])
        assert result.exit_code == 0
        assert "alpha" in result.output
        assert "90" in result.output
        assert "1 of 2 provider(s) enabled" in result.output

    def test_lists_builtin_providers(self) -> None:
        """Without patching, the built-in providers are listed."""
        runner = CliRunner()
        result = runner.invoke(cli, ["providers"])
        assert result.exit_code == 0
        assert "openlibrary" in result.output
        assert "googlebooks" in result.output


class TestCliDuplicates:
    """E2e tests for `libris duplicates`."""

    def _candidate(self, tmp_path: Path, data: dict) -> Path:
        path = tmp_path / "candidate.json"
        path.write_text(json.dumps(data))
        return path

    def test_exact_duplicate(self, tmp_path: Path, catalog_file: Path) -> None:
        """A book already in the catalog is flagged as an exact duplicate."""
        candidate = self._candidate(
            tmp_path,
            {"title": "The Great Gatsby", "authors": ["F. Scott Fitzgerald"], "isbn": "0743273567"},
        )
        runner = CliRunner()
        result = runner.invoke(cli, ["duplicates", str(candidate), str(catalog_file)])
        assert result.exit_code == 0
        assert "exact" in result.output
        assert "skip" in result.output
        assert "exact duplicate" in result.output

    def test_no_duplicates(self, tmp_path: Path, catalog_file: Path) -> None:
        """An unrelated book has no matches."""
        candidate = self._candidate(tmp_path, {"title": "Mort", "authors": ["Terry Pratchett"]})
        runner = CliRunner()
        result = runner.invoke(cli, ["duplicates", str(candidate), str(catalog_file)])
        assert result.exit_code == 0
        assert "No duplicates found." in result.output

    def test_invalid_candidate(self, tmp_path: Path, catalog_file: Path) -> None:
        """Malformed JSON is reported as an error."""
        candidate = tmp_path / "candidate.json"
        candidate.write_text("{not json")
        runner = CliRunner()
        result = runner.invoke(cli, ["duplicates", str(candidate), str(catalog_file)])
        assert result.exit_code == 1
        assert "Could not read entries" in result.output

    def test_missing_file(self, catalog_file: Path) -> None:
        """A missing candidate file is a usage error."""
        runner = CliRunner()
        result = runner.invoke(cli, ["duplicates", "/nonexistent.json", str(catalog_file)])
        assert result.exit_code == 2
