# ABOUTME: Unit tests for publisher and place normalization and publication reconciliation.
# ABOUTME: Covers imprint mapping, suffix stripping, place aliases, and the weighted confidence.

import pytest

from libris.reconcile.publication import (
    PublicationReconciler,
    normalize_place,
    reconcile_places,
)
from libris.reconcile.publishers import (
    is_known_publisher,
    make_publisher,
    normalize_publisher_name,
    reconcile_publishers,
)
from libris.reconcile.types import ReconciliationInputError
from tests.fixtures.sources import sourced


class TestNormalizePublisherName:
    """Tests for publisher normalization."""

    def test_legal_suffix_and_ampersand(self) -> None:
        """Corporate suffixes are dropped and "&" reads as "and"."""
        assert normalize_publisher_name("Simon & Schuster, Inc.") == "simon and schuster"

    def test_imprint_maps_to_group(self) -> None:
        """Known imprints map onto their publisher."""
        assert normalize_publisher_name("Scribner") == "simon and schuster"
        assert normalize_publisher_name("The Penguin Press") == "penguin random house"

    def test_unknown_publisher(self) -> None:
        """Unknown names are only stripped."""
        assert normalize_publisher_name("Tiny Indie Press") == "tiny indie"
        assert not is_known_publisher("tiny indie")

    @pytest.mark.parametrize(
        "name", ["Scribner", "HarperCollins Publishers", "Tiny Indie Press", "The MIT Press"]
    )
    def test_idempotent(self, name: str) -> None:
        """Normalizing twice changes nothing."""
        once = normalize_publisher_name(name)
        assert normalize_publisher_name(once) == once

    def test_make_publisher_rejects_numbers(self) -> None:
        """Non-string publishers are input errors."""
        with pytest.raises(ReconciliationInputError):
            make_publisher(42)


class TestReconcilePublishers:
    """Tests for reconcile_publishers."""

    def test_imprints_agree(self) -> None:
        """Variants of one publisher agree and the canonical name is displayed."""
        result = reconcile_publishers(
            [
                sourced("Scribner", "a", 0.9),
                sourced("Simon & Schuster, Inc.", "b", 0.8),
                sourced("Penguin", "c", 0.5),
            ]
        )
        assert result.value.name == "Simon & Schuster"
        assert [s.name for s in result.sources] == ["a", "b"]
        assert result.confidence == pytest.approx(0.98 * (1 - 0.3 * 0.5))

    def test_unknown_keeps_source_name(self) -> None:
        """An unknown publisher keeps the most reliable source's spelling."""
        result = reconcile_publishers([sourced("Tiny Indie Press", "a", 0.8)])
        assert result.value.name == "Tiny Indie Press"
        assert result.confidence == pytest.approx(0.8)

    def test_empty(self) -> None:
        """No publishers yields no value."""
        result = reconcile_publishers([sourced(None, "a")])
        assert result.value is None
        assert result.confidence == 0.0


class TestPlaces:
    """Tests for place normalization and reconciliation."""

    def test_city_and_region(self) -> None:
        """A US state abbreviation implies the country."""
        place = normalize_place("New York, NY")
        assert place.normalized == "new york"
        assert place.country == "united states"

    def test_alias(self) -> None:
        """City aliases collapse."""
        assert normalize_place("NYC").normalized == "new york"
        assert normalize_place("London, England").country == "united kingdom"

    def test_idempotent(self) -> None:
        """The normalized city normalizes to itself."""
        assert normalize_place("new york").normalized == "new york"

    def test_reconcile(self) -> None:
        """Sources naming the same city agree and lend their country."""
        result = reconcile_places([sourced("NYC", "a", 0.9), sourced("New York, NY", "b", 0.7)])
        assert result.value.normalized == "new york"
        assert result.value.country == "united states"
        assert len(result.sources) == 2


class TestPublicationReconciler:
    """Tests for the combined publication reconciler."""

    def test_weighted_confidence(self) -> None:
        """Date and publisher weigh 0.4 each and place 0.2."""
        info = PublicationReconciler().reconcile(
            dates=[sourced("1925", "a")],
            publishers=[sourced("Scribner", "a")],
            places=[sourced("New York", "a")],
        )
        assert info.date.value.year == 1925
        assert info.publisher.value.name == "Simon & Schuster"
        assert info.confidence == pytest.approx(0.4 * 0.64 + 0.4 * 0.88 + 0.2 * 0.8)

    def test_nothing(self) -> None:
        """No inputs yield zero confidence."""
        assert PublicationReconciler().reconcile().confidence == 0.0
