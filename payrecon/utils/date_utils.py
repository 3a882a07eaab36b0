"""
Date and period normalization utilities for payrecon.

This module provides the centralized API for turning free-form period labels
and dates found in payroll extracts into canonical values. Every component
that needs a month key or a service date goes through these functions so the
parsing rules live in one place.

Key Functions:
    - parse_date(): Parse various date inputs to pd.Timestamp
    - normalize_date(): Normalize to midnight (00:00:00)
    - normalize_month_key(): Map a sheet/period label to a canonical YYYY-MM key
    - is_month_key(): Check that a value already is a canonical YYYY-MM key
    - parse_service_date(): Parse a date-of-joining cell (serial, d.m.y, generic)
    - months_between(): Whole elapsed months between two dates, floored at 0
    - validate_yyyy_mm_dd(): Strict YYYY-MM-DD format validation

Usage Example:
    >>> from payrecon.utils.date_utils import normalize_month_key, months_between
    >>> normalize_month_key("Nov-24")
    '2024-11'
    >>> normalize_month_key("SALARY 2025_09")
    '2025-09'
    >>> months_between(parse_service_date("15.03.24"), normalize_date("2025-10-30"))
    19
"""

from datetime import datetime, date
from typing import Any, Optional, Union
import math
import numbers
import re

import pandas as pd


MONTH_NAME_MAP = {
    "JAN": 1, "JANUARY": 1,
    "FEB": 2, "FEBRUARY": 2,
    "MAR": 3, "MARCH": 3,
    "APR": 4, "APRIL": 4,
    "MAY": 5,
    "JUN": 6, "JUNE": 6,
    "JUL": 7, "JULY": 7,
    "AUG": 8, "AUGUST": 8,
    "SEP": 9, "SEPT": 9, "SEPTEMBER": 9,
    "OCT": 10, "OCTOBER": 10,
    "NOV": 11, "NOVEMBER": 11,
    "DEC": 12, "DECEMBER": 12,
}

# Year followed within two characters by a 1-2 digit month ("2025-09", "2025_9", "202509")
_YEAR_MONTH_RE = re.compile(r"(20\d{2})\D{0,2}(\d{1,2})", re.ASCII)
_MONTH_ABBR_RE = re.compile(
    r"\b(JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|SEP|SEPT|OCT|NOV|DEC)\b", re.ASCII
)
_MONTH_FULL_RE = re.compile(
    r"\b(JANUARY|FEBRUARY|MARCH|APRIL|MAY|JUNE|JULY|AUGUST|SEPTEMBER|OCTOBER|NOVEMBER|DECEMBER)\b",
    re.ASCII,
)
_YEAR_TOKEN_RE = re.compile(r"\b(20\d{2}|\d{2})\b", re.ASCII)
_MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$", re.ASCII)
_DOTTED_DATE_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{2,4})$", re.ASCII)
_SERIAL_TEXT_RE = re.compile(r"^\d+(\.\d+)?$", re.ASCII)

# Spreadsheet date serials count days from this epoch (1900 leap-year bug included)
SPREADSHEET_EPOCH = pd.Timestamp("1899-12-30")


def parse_date(
    value: Union[str, date, datetime, pd.Timestamp],
    *,
    tz: Optional[str] = None
) -> pd.Timestamp:
    """
    Parse various date inputs into a pandas Timestamp.

    Args:
        value: Date value to parse. Can be:
            - String in ISO format (e.g., "2024-10-31", "2024-10-31T14:30:00Z")
            - datetime.date object
            - datetime.datetime object
            - pd.Timestamp object
        tz: Optional timezone string (e.g., "UTC").
            If None (default), the timestamp keeps whatever zone it was given.

    Returns:
        pd.Timestamp: Parsed timestamp

    Raises:
        ValueError: If the input cannot be parsed as a valid date
        TypeError: If the input type is not supported

    Examples:
        >>> parse_date("2024-10-31")
        Timestamp('2024-10-31 00:00:00')

        >>> parse_date("2024-10-31", tz="UTC")
        Timestamp('2024-10-31 00:00:00+0000', tz='UTC')
    """
    if value is None:
        raise ValueError("Date value cannot be None")

    if isinstance(value, pd.Timestamp):
        result = value
    elif isinstance(value, (datetime, date)):
        result = pd.Timestamp(value)
    elif isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("Date string cannot be empty")
        try:
            result = pd.to_datetime(value)
        except Exception as e:
            raise ValueError(f"Unable to parse date string '{value}': {e}")
    else:
        raise TypeError(
            f"Unsupported date type: {type(value).__name__}. "
            f"Expected str, date, datetime, or pd.Timestamp"
        )

    if pd.isna(result):
        raise ValueError(f"Date value '{value}' parsed to NaT")

    if tz is not None:
        if result.tz is None:
            result = result.tz_localize(tz)
        else:
            result = result.tz_convert(tz)

    return result


def normalize_date(
    value: Union[str, date, datetime, pd.Timestamp],
    *,
    tz: Optional[str] = None
) -> pd.Timestamp:
    """
    Parse and normalize a date value to midnight (00:00:00).

    Used for the tenure reference date so month arithmetic never depends
    on a time-of-day component.

    Examples:
        >>> normalize_date("2025-10-30 14:30:00")
        Timestamp('2025-10-30 00:00:00')
    """
    parsed = parse_date(value, tz=tz)
    return parsed.normalize()


def normalize_month_key(label: Any) -> Optional[str]:
    """
    Map a free-form period label (sheet name) to a canonical ``YYYY-MM`` key.

    Rules, first match wins:
    1. A 4-digit year 20xx followed within two characters by a 1-2 digit
       month gives ``YYYY-MM`` directly, if the month is 1-12.
    2. A month name (full or 3-4 letter abbreviation) anywhere in the label
       paired with a 2- or 4-digit year token. Two-digit years are read as 20xx.
    3. Otherwise None.

    The function is total: any input (including None and non-strings)
    returns a key or None, and an existing key maps to itself.

    Examples:
        >>> normalize_month_key("2025-09")
        '2025-09'
        >>> normalize_month_key("Nov-24")
        '2024-11'
        >>> normalize_month_key("September 2025 Salary")
        '2025-09'
        >>> normalize_month_key("Summary") is None
        True
    """
    text = "" if label is None else str(label)
    text = text.strip().upper()
    if not text:
        return None

    direct = _YEAR_MONTH_RE.search(text)
    if direct:
        year = int(direct.group(1))
        month = int(direct.group(2))
        if year >= 2000 and 1 <= month <= 12:
            return f"{year}-{month:02d}"

    full = _MONTH_FULL_RE.search(text)
    abbr = _MONTH_ABBR_RE.search(text)
    year_token = _YEAR_TOKEN_RE.search(text)

    month_token = full.group(1) if full else (abbr.group(1) if abbr else None)
    if month_token and year_token:
        year = int(year_token.group(1))
        if year < 100:
            year += 2000
        month = MONTH_NAME_MAP.get(month_token)
        if month:
            return f"{year}-{month:02d}"

    return None


def is_month_key(value: Any) -> bool:
    """Return True when ``value`` is a canonical ``YYYY-MM`` string."""
    return isinstance(value, str) and bool(_MONTH_KEY_RE.match(value))


def parse_service_date(raw: Any) -> Optional[pd.Timestamp]:
    """
    Parse a start-of-service (date of joining) cell.

    Accepted forms, in priority order:
    1. Spreadsheet date serial (days since 1899-12-30), as a number or
       as plain numeric text (CSV exports)
    2. ``day.month.year`` text; 2-digit years below 50 are 20xx, others 19xx
    3. Any other date string or date object understood by ``parse_date``

    Returns:
        Timezone-naive pd.Timestamp normalized to midnight, or None when the
        value is empty or cannot be read as a date.

    Examples:
        >>> parse_service_date(45292)
        Timestamp('2024-01-01 00:00:00')
        >>> parse_service_date("05.07.98")
        Timestamp('1998-07-05 00:00:00')
        >>> parse_service_date("") is None
        True
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, numbers.Real) and not isinstance(raw, (datetime, date)):
        value = float(raw)
        if math.isnan(value) or math.isinf(value):
            return None
        return (SPREADSHEET_EPOCH + pd.to_timedelta(value, unit="D")).normalize()

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        if _SERIAL_TEXT_RE.match(text):
            return parse_service_date(float(text))
        dotted = _DOTTED_DATE_RE.match(text)
        if dotted:
            day, month, year = (int(part) for part in dotted.groups())
            if year < 100:
                year += 2000 if year < 50 else 1900
            try:
                return pd.Timestamp(year=year, month=month, day=day)
            except ValueError:
                return None
        raw = text

    try:
        parsed = parse_date(raw)
    except (ValueError, TypeError):
        return None

    if parsed.tz is not None:
        parsed = parsed.tz_localize(None)
    return parsed.normalize()


def months_between(start: pd.Timestamp, end: pd.Timestamp) -> int:
    """
    Whole elapsed months from ``start`` to ``end``, floored, never negative.

    A month only counts once the day of month of ``start`` has been reached.

    Examples:
        >>> months_between(pd.Timestamp("2024-10-30"), pd.Timestamp("2025-10-30"))
        12
        >>> months_between(pd.Timestamp("2024-10-31"), pd.Timestamp("2025-10-30"))
        11
    """
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(0, months)


def validate_yyyy_mm_dd(value: str) -> None:
    """
    Validate that a string is in strict YYYY-MM-DD format.

    Raises:
        ValueError: If the string is not in YYYY-MM-DD format or represents
                   an invalid date (e.g., "2024-02-30")
    """
    if not isinstance(value, str):
        raise ValueError(
            f"Expected string, got {type(value).__name__}: {value}"
        )

    value = value.strip()

    if not re.match(r'^\d{4}-\d{2}-\d{2}$', value):
        raise ValueError(
            f"Date string '{value}' does not match YYYY-MM-DD format. "
            f"Expected format: YYYY-MM-DD (e.g., '2025-10-30')"
        )

    try:
        datetime.strptime(value, '%Y-%m-%d')
    except ValueError as e:
        raise ValueError(f"Invalid date value '{value}': {e}")


__all__ = [
    'MONTH_NAME_MAP',
    'parse_date',
    'normalize_date',
    'normalize_month_key',
    'is_month_key',
    'parse_service_date',
    'months_between',
    'validate_yyyy_mm_dd',
]
