# ABOUTME: Unit tests for ReconciliationEngine dispatch, validation, and result summaries.
# ABOUTME: Reconciles the shared Gatsby records and hand-built per-field inputs.

import pytest

from libris.reconcile.engine import (
    ReconciliationConfig,
    ReconciliationEngine,
    overall_confidence,
    reconcile,
    reconcile_records,
    record_inputs,
)
from libris.reconcile.types import DatePrecision, ReconciledField, ReconciliationInputError
from tests.fixtures.providers import make_record
from tests.fixtures.sources import sourced


class TestReconcileRecords:
    """Tests for reconciling provider records."""

    def test_gatsby(self, gatsby_records) -> None:
        """Three slightly different answers merge into one consistent record."""
        result = reconcile_records(gatsby_records)
        assert result.value("title") == "The Great Gatsby"
        assert result.value("authors") == ("F. Scott Fitzgerald",)
        assert [i.normalized for i in result.value("identifiers")] == ["9780743273565"]
        assert result.value("publisher").name == "Simon & Schuster"
        assert result.value("publication_date").precision is DatePrecision.DAY
        assert result.value("language") == "en"
        assert result.value("page_count") == 180
        assert "fiction" in [s.normalized for s in result.value("subjects")]
        assert result.stats.total_sources == 3
        assert 0.0 < result.overall_confidence <= 1.0

    def test_accepted_fields(self, gatsby_records) -> None:
        """Fields under the confidence threshold are not accepted."""
        result = reconcile_records(gatsby_records, ReconciliationConfig(min_confidence=0.99))
        assert result.accepted_fields() == {}
        assert "authors" in reconcile_records(gatsby_records).accepted_fields()

    def test_record_inputs(self) -> None:
        """Record fields become per-field inputs with the record's confidence as reliability."""
        record = make_record(
            "ol", confidence=0.7, title="Mort", series="Discworld", series_volume=4.0
        )
        inputs = record_inputs([record])
        assert set(inputs) == {"title", "series"}
        assert inputs["title"][0].source.reliability == 0.7
        assert inputs["series"][0].value == {"name": "Discworld", "volume": 4.0}


class TestReconcile:
    """Tests for per-field input handling."""

    def test_only_given_fields(self) -> None:
        """Only fields present in the input are reconciled."""
        result = reconcile({"title": [sourced("Mort")]})
        assert list(result.fields) == ["title"]
        assert result.value("publisher") is None

    def test_aliases(self) -> None:
        """isbn and date are accepted as field names."""
        result = reconcile({"isbn": [sourced("0743273567")], "date": [sourced("1925")]})
        assert set(result.fields) == {"identifiers", "publication_date"}

    def test_content_fields(self) -> None:
        """Content fields are dispatched to the content reconciler."""
        result = reconcile({"excerpt": [sourced("In my younger and more vulnerable years")]})
        assert result.value("excerpt").startswith("In my younger")
        assert "description" not in result.fields

    def test_disabled_reconciler(self) -> None:
        """Disabled reconcilers skip their fields."""
        engine = ReconciliationEngine(ReconciliationConfig(reconcile_subjects=False))
        result = engine.reconcile({"title": [sourced("Mort")], "subjects": [sourced("Fantasy")]})
        assert list(result.fields) == ["title"]

    def test_conflict_summary(self) -> None:
        """Conflicts from every field are summarized."""
        result = reconcile(
            {
                "title": [sourced("Dune", "a", 0.9), sourced("Emma", "b", 0.5)],
                "language": [sourced("en", "a"), sourced("eng", "b")],
            }
        )
        assert result.conflict_summary.by_field == {"title": 1}
        assert result.stats.conflicts_detected == 1
        assert result.stats.total_sources == 2

    @pytest.mark.parametrize(
        "inputs",
        [
            {"bogus": [sourced("x")]},
            {"title": ["Mort"]},
            {"title": sourced("Mort")},
        ],
    )
    def test_invalid_inputs(self, inputs) -> None:
        """Unknown fields and bare values are rejected."""
        with pytest.raises(ReconciliationInputError):
            reconcile(inputs)

    def test_min_confidence_range(self) -> None:
        """min_confidence must be a probability."""
        with pytest.raises(ValueError, match="min_confidence"):
            ReconciliationConfig(min_confidence=1.5)


class TestOverallConfidence:
    """Tests for overall_confidence."""

    def test_empty(self) -> None:
        """No fields means no confidence."""
        assert overall_confidence({}) == 0.0

    def test_mean_plus_bonus(self) -> None:
        """The mean of non-zero confidences gains 0.02 per field."""
        fields = {
            "a": ReconciledField(value="x", confidence=0.8, sources=(), reasoning=""),
            "b": ReconciledField(value="y", confidence=0.6, sources=(), reasoning=""),
            "c": ReconciledField(value=None, confidence=0.0, sources=(), reasoning=""),
        }
        assert overall_confidence(fields) == pytest.approx(0.74)
