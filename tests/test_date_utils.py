"""
Unit tests for date and period normalization (payrecon/utils/date_utils.py).

These tests verify:
1. Month keys from free-form sheet labels
2. Service date parsing (serials, d.m.y text, generic strings)
3. Whole-month tenure arithmetic
4. Strict YYYY-MM-DD validation

Run with: pytest tests/test_date_utils.py -v
"""

from datetime import date, datetime

import pandas as pd
import pytest

from payrecon.utils.date_utils import (
    is_month_key,
    months_between,
    normalize_date,
    normalize_month_key,
    parse_date,
    parse_service_date,
    validate_yyyy_mm_dd,
)


class TestNormalizeMonthKey:
    """Tests for normalize_month_key()."""

    @pytest.mark.parametrize("label,expected", [
        ("2025-09", "2025-09"),
        ("2025_9", "2025-09"),
        ("202509", "2025-09"),
        ("Salary 2024-11 final", "2024-11"),
        ("2025/1", "2025-01"),
    ])
    def test_year_then_month(self, label, expected):
        """A 20xx year followed within two characters by a month gives the key directly."""
        assert normalize_month_key(label) == expected

    @pytest.mark.parametrize("label,expected", [
        ("Nov-24", "2024-11"),
        ("nov 24", "2024-11"),
        ("SEPT 2025", "2025-09"),
        ("September 2025 Salary", "2025-09"),
        ("Jan-25 (revised)", "2025-01"),
        ("25 MAR", "2025-03"),
    ])
    def test_month_name_with_year(self, label, expected):
        """Month names and abbreviations pair with a 2- or 4-digit year; 2-digit years are 20xx."""
        assert normalize_month_key(label) == expected

    @pytest.mark.parametrize("label", [
        "Summary", "Sheet1", "", "   ", "NOV", "2025-13", None, "Marketing 24",
    ])
    def test_unrecognized_labels(self, label):
        """Labels without a recognizable year+month give None."""
        assert normalize_month_key(label) is None

    def test_invalid_direct_month_falls_through_to_name(self):
        """A bad direct month does not stop the month-name rule."""
        assert normalize_month_key("2025-13 OCT") == "2025-10"

    def test_idempotent(self):
        """Re-normalizing a canonical key returns it unchanged."""
        for month in range(1, 13):
            key = f"2025-{month:02d}"
            assert normalize_month_key(normalize_month_key(key)) == key

    def test_non_string_input(self):
        """The function is total over non-string inputs."""
        assert normalize_month_key(202509) == "2025-09"
        assert normalize_month_key(3.5) is None


class TestIsMonthKey:
    def test_valid_and_invalid(self):
        assert is_month_key("2025-09") is True
        assert is_month_key("2025-9") is False
        assert is_month_key("2025-00") is False
        assert is_month_key(None) is False


class TestParseDate:
    """Tests for parse_date() and normalize_date()."""

    def test_parse_string_date(self):
        result = parse_date("2024-10-31")
        assert result == pd.Timestamp("2024-10-31")

    def test_parse_date_objects(self):
        assert parse_date(date(2024, 10, 31)) == pd.Timestamp("2024-10-31")
        assert parse_date(datetime(2024, 10, 31, 14, 30)) == pd.Timestamp("2024-10-31 14:30")

    def test_parse_with_timezone(self):
        result = parse_date("2024-10-31T10:00:00", tz="UTC")
        assert str(result.tz) == "UTC"

    def test_invalid_inputs(self):
        with pytest.raises(ValueError):
            parse_date(None)
        with pytest.raises(ValueError):
            parse_date("")
        with pytest.raises(ValueError):
            parse_date("not a date")
        with pytest.raises(TypeError):
            parse_date(12345)

    def test_normalize_strips_time(self):
        assert normalize_date("2025-10-30 14:30:00") == pd.Timestamp("2025-10-30")


class TestParseServiceDate:
    """Tests for parse_service_date()."""

    def test_spreadsheet_serial(self):
        """Numeric serials count days from 1899-12-30."""
        assert parse_service_date(45292) == pd.Timestamp("2024-01-01")
        assert parse_service_date(45292.75) == pd.Timestamp("2024-01-01")

    def test_serial_as_text(self):
        """CSV exports hand serials over as text."""
        assert parse_service_date("45292") == pd.Timestamp("2024-01-01")

    def test_dotted_dates(self):
        """d.m.y text: 2-digit years below 50 are 20xx, others 19xx."""
        assert parse_service_date("15.03.24") == pd.Timestamp("2024-03-15")
        assert parse_service_date("05.07.98") == pd.Timestamp("1998-07-05")
        assert parse_service_date("1.1.2020") == pd.Timestamp("2020-01-01")

    def test_invalid_dotted_date(self):
        assert parse_service_date("31.02.24") is None

    def test_generic_strings(self):
        assert parse_service_date("2023-06-15") == pd.Timestamp("2023-06-15")
        assert parse_service_date(pd.Timestamp("2023-06-15 09:00")) == pd.Timestamp("2023-06-15")

    def test_empty_and_unreadable(self):
        assert parse_service_date(None) is None
        assert parse_service_date("") is None
        assert parse_service_date("   ") is None
        assert parse_service_date("unknown") is None
        assert parse_service_date(float("nan")) is None
        assert parse_service_date(True) is None


class TestMonthsBetween:
    """Tests for months_between()."""

    def test_whole_months(self):
        assert months_between(pd.Timestamp("2024-10-30"), pd.Timestamp("2025-10-30")) == 12

    def test_day_not_yet_reached(self):
        assert months_between(pd.Timestamp("2024-10-31"), pd.Timestamp("2025-10-30")) == 11

    def test_never_negative(self):
        assert months_between(pd.Timestamp("2026-01-01"), pd.Timestamp("2025-10-30")) == 0

    def test_tier_boundaries(self):
        reference = pd.Timestamp("2025-10-30")
        assert months_between(pd.Timestamp("2024-10-31"), reference) == 11
        assert months_between(pd.Timestamp("2023-10-30"), reference) == 24


class TestValidateYYYYMMDD:
    def test_valid(self):
        validate_yyyy_mm_dd("2025-10-30")

    @pytest.mark.parametrize("value", ["2025-10", "30/10/2025", "2024-02-30", 20251030])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            validate_yyyy_mm_dd(value)
