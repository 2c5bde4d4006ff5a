# ABOUTME: Unit tests for publication date parsing, validation, and reconciliation.
# ABOUTME: Covers ISO and text formats, precision preference, and invalid-date handling.

from datetime import date

import pytest

from libris.reconcile.dates import parse_date, reconcile_dates, validate_date
from libris.reconcile.types import ConflictType, DatePrecision
from tests.fixtures.sources import sourced


class TestParseDate:
    """Tests for parse_date."""

    def test_iso_day(self) -> None:
        """YYYY-MM-DD parses at day precision."""
        parsed = parse_date("2004-09-30")
        assert (parsed.year, parsed.month, parsed.day) == (2004, 9, 30)
        assert parsed.precision is DatePrecision.DAY

    def test_iso_with_time(self) -> None:
        """A trailing time part is ignored."""
        assert parse_date("2004-09-30T00:00:00Z").iso() == "2004-09-30"

    def test_iso_month(self) -> None:
        """YYYY-MM parses at month precision."""
        parsed = parse_date("2004-09")
        assert parsed.precision is DatePrecision.MONTH
        assert parsed.iso() == "2004-09"

    def test_bare_year(self) -> None:
        """A four-digit year parses at year precision."""
        assert parse_date("1925").precision is DatePrecision.YEAR

    def test_month_name_day(self) -> None:
        """English month-name dates parse at day precision."""
        assert parse_date("September 30, 2004").iso() == "2004-09-30"
        assert parse_date("30 Sep 2004").iso() == "2004-09-30"

    def test_month_name_month(self) -> None:
        """Month and year parse at month precision."""
        parsed = parse_date("Sep 2004")
        assert parsed.precision is DatePrecision.MONTH
        assert parsed.iso() == "2004-09"

    def test_embedded_year(self) -> None:
        """A year inside free text is recovered."""
        parsed = parse_date("c. 1925")
        assert parsed.year == 1925
        assert parsed.precision is DatePrecision.YEAR

    def test_date_and_int(self) -> None:
        """date objects and ints are accepted."""
        assert parse_date(date(2004, 9, 30)).precision is DatePrecision.DAY
        assert parse_date(1925).iso() == "1925"

    def test_unparseable(self) -> None:
        """Text without a date keeps its raw form at unknown precision."""
        parsed = parse_date("forthcoming")
        assert parsed.year is None
        assert parsed.precision is DatePrecision.UNKNOWN
        assert parsed.iso() == "forthcoming"


class TestValidateDate:
    """Tests for validate_date."""

    def test_valid(self) -> None:
        """A real date has no problems."""
        assert validate_date(parse_date("2004-02-29")) == []

    def test_impossible_day(self) -> None:
        """Days past the end of the month are reported."""
        assert validate_date(parse_date("2003-02-29")) == ["day 29 outside 1..28"]

    def test_bad_month(self) -> None:
        """Months outside 1..12 are reported."""
        assert validate_date(parse_date("2004-13")) == ["month 13 outside 1..12"]

    def test_year_range(self) -> None:
        """Years far in the future are reported."""
        problems = validate_date(parse_date("2090"), today=date(2026, 1, 1))
        assert problems == ["year 2090 outside 1000..2036"]

    def test_unparsed(self) -> None:
        """A date without a year cannot be valid."""
        assert validate_date(parse_date("soon")) == ["date could not be parsed"]


class TestReconcileDates:
    """Tests for reconcile_dates."""

    def test_most_specific_wins(self) -> None:
        """The day-precision date wins and compatible dates agree."""
        result = reconcile_dates(
            [
                sourced("2004", "a", 0.7),
                sourced("2004-09", "b", 0.8),
                sourced("2004-09-30", "c", 0.9),
            ]
        )
        assert result.value.iso() == "2004-09-30"
        assert result.confidence == pytest.approx(0.98)
        assert [c.type for c in result.conflicts] == [ConflictType.PRECISION_DIFFERENCE]
        assert len(result.sources) == 3

    def test_dissent_lowers_confidence(self) -> None:
        """An incompatible year dampens confidence by its reliability."""
        result = reconcile_dates([sourced("2004-09-30", "a", 0.9), sourced("1999", "b", 0.6)])
        assert result.value.iso() == "2004-09-30"
        assert result.confidence == pytest.approx(0.9 * (1 - 0.3 * 0.6))
        assert [s.name for s in result.sources] == ["a"]

    def test_valid_date_preferred(self) -> None:
        """A valid coarse date beats an impossible precise one."""
        result = reconcile_dates([sourced("1999-02-30", "a", 0.9), sourced("1999", "b", 0.5)])
        assert result.value.precision is DatePrecision.YEAR
        assert result.value.year == 1999

    def test_precision_weight(self) -> None:
        """A lone year-precision date is discounted."""
        result = reconcile_dates([sourced("1925", "a", 0.8)])
        assert result.confidence == pytest.approx(0.8 * 0.8)

    def test_all_unknown(self) -> None:
        """Unparseable dates are kept verbatim at minimal confidence."""
        result = reconcile_dates([sourced("forthcoming", "a")])
        assert result.value.raw == "forthcoming"
        assert result.confidence == 0.1

    def test_empty(self) -> None:
        """No dates yields no value."""
        result = reconcile_dates([sourced(None, "a"), sourced("", "b")])
        assert result.value is None
        assert result.confidence == 0.0
        assert result.sources == ()
