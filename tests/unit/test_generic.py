# ABOUTME: Unit tests for the weighted-vote reconcilers: title, authors, language, page count.
# ABOUTME: Checks grouping, winner selection, and the agreement confidence rule.

import pytest

from libris.reconcile.generic import (
    display_author,
    normalize_language,
    reconcile_authors,
    reconcile_languages,
    reconcile_page_counts,
    reconcile_titles,
)
from libris.reconcile.types import ReconciliationInputError
from tests.fixtures.sources import sourced


class TestHelpers:
    """Tests for language and author helpers."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("eng", "en"), ("/languages/eng", "en"), ("en-US", "en"), ("French", "fr"), ("de", "de")],
    )
    def test_normalize_language(self, raw: str, expected: str) -> None:
        """Language codes and names reduce to two letters."""
        assert normalize_language(raw) == expected

    def test_display_author(self) -> None:
        """'Last, First' is flipped for display."""
        assert display_author("Fitzgerald, F. Scott") == "F. Scott Fitzgerald"
        assert display_author("Plato") == "Plato"


class TestReconcileTitles:
    """Tests for reconcile_titles."""

    def test_majority_wins(self) -> None:
        """The title backed by more reliability wins; others dissent."""
        result = reconcile_titles(
            [
                sourced("The Great Gatsby", "a", 0.9),
                sourced("The  Great   Gatsby", "b", 0.7),
                sourced("Tender Is the Night", "c", 0.5),
            ]
        )
        assert result.value == "The Great Gatsby"
        assert result.confidence == pytest.approx(0.95 * (1 - 0.3 * 0.5))
        assert "outvoted" in result.reasoning

    def test_rejects_non_strings(self) -> None:
        """Titles must be strings."""
        with pytest.raises(ReconciliationInputError):
            reconcile_titles([sourced(42)])

    def test_empty(self) -> None:
        """Blank titles are ignored."""
        result = reconcile_titles([sourced("  ")])
        assert result.value is None
        assert result.confidence == 0.0


class TestReconcileAuthors:
    """Tests for reconcile_authors."""

    def test_name_forms_agree(self) -> None:
        """'Last, First' and 'First Last' name the same author."""
        result = reconcile_authors(
            [sourced(("Fitzgerald, F. Scott",), "a"), sourced(["F. Scott Fitzgerald"], "b")]
        )
        assert result.value == ("F. Scott Fitzgerald",)
        assert result.confidence == pytest.approx(0.85)

    def test_single_string(self) -> None:
        """A single author string is accepted."""
        assert reconcile_authors([sourced("Plato")]).value == ("Plato",)


class TestReconcileLanguages:
    """Tests for reconcile_languages."""

    def test_codes_normalized_before_voting(self) -> None:
        """eng and en agree."""
        result = reconcile_languages(
            [sourced("eng", "a"), sourced("en", "b"), sourced("fre", "c", 0.5)]
        )
        assert result.value == "en"
        assert len(result.sources) == 2


class TestReconcilePageCounts:
    """Tests for reconcile_page_counts."""

    def test_numeric_strings(self) -> None:
        """Numeric strings are accepted."""
        assert reconcile_page_counts([sourced("218", "a")]).value == 218

    def test_invalid(self) -> None:
        """Non-numeric counts are input errors."""
        with pytest.raises(ReconciliationInputError, match="page count"):
            reconcile_page_counts([sourced("many")])

    def test_non_positive_ignored(self) -> None:
        """Zero pages is treated as missing."""
        assert reconcile_page_counts([sourced(0)]).value is None
