"""
Centralized numeric coercion for payroll sheet cells.

Extract cells arrive as whatever the workbook reader produced: floats, ints,
strings with thousand separators, blanks, NaN. These helpers give one tested
place for turning them into amounts and identifiers, and for turning a
header-less DataFrame into the row lists the sheet adapters consume.

Usage:
    from payrecon.utils.pandas_utils import coerce_amount, coerce_identifier

    coerce_amount("1,234.50")     # 1234.5
    coerce_amount("")             # 0.0
    coerce_identifier("1039")     # 1039
    coerce_identifier("N")        # None
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import numpy as np
import pandas as pd


logger = logging.getLogger(__name__)


def _clean_numeric_text(value: Any) -> Any:
    if isinstance(value, str):
        text = value.replace(',', '').replace(' ', '').strip()
        return text if text else np.nan
    return value


def coerce_amount(value: Any, *, default: float = 0.0) -> float:
    """
    Coerce a single cell to a float amount.

    Strings lose commas and spaces before conversion. Blank, missing and
    unparseable cells become ``default``.

    Examples:
        >>> coerce_amount("1,234.56")
        1234.56
        >>> coerce_amount(None)
        0.0
        >>> coerce_amount("n/a")
        0.0
    """
    if value is None or isinstance(value, bool):
        return default
    result = pd.to_numeric(_clean_numeric_text(value), errors='coerce')
    if pd.isna(result):
        return default
    return float(result)


def coerce_identifier(value: Any) -> Optional[int]:
    """
    Coerce a cell to a positive integer employee identifier.

    Returns None for blanks, non-numeric codes, zero, negatives and
    non-integral numbers.

    Examples:
        >>> coerce_identifier(1039.0)
        1039
        >>> coerce_identifier(" 59 ")
        59
        >>> coerce_identifier("EMP CODE") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    number = pd.to_numeric(_clean_numeric_text(value), errors='coerce')
    if pd.isna(number):
        return None
    number = float(number)
    if number <= 0 or not number.is_integer():
        return None
    return int(number)


def frame_to_rows(df: pd.DataFrame) -> List[List[Any]]:
    """
    Convert a header-less DataFrame into a list of row lists.

    NaN cells become None and trailing empty cells are dropped, so rows look
    like what a spreadsheet reader hands over for sparse sheets.

    Examples:
        >>> frame_to_rows(pd.DataFrame([["EMP ID", "SALARY1"], [1, np.nan]]))
        [['EMP ID', 'SALARY1'], [1]]
    """
    rows: List[List[Any]] = []
    for values in df.itertuples(index=False, name=None):
        row = [None if _is_missing(cell) else cell for cell in values]
        while row and row[-1] is None:
            row.pop()
        rows.append(row)
    return rows


def _is_missing(cell: Any) -> bool:
    if cell is None:
        return True
    if isinstance(cell, str):
        return cell.strip() == ''
    try:
        return bool(pd.isna(cell))
    except (TypeError, ValueError):
        return False


__all__ = [
    'coerce_amount',
    'coerce_identifier',
    'frame_to_rows',
]
