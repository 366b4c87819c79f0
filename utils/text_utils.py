"""
Text utilities for spreadsheet cell values.

Workbook cells arrive as str, int, float, datetime or NaN depending on how
the sheet was typed. These helpers turn them into the trimmed strings the
tracking records store.
"""

import re
from datetime import date, datetime
from typing import Any

import pandas as pd

_ALNUM_PATTERN = re.compile(r"^[A-Za-z0-9]+$")


def is_blank(value: Any) -> bool:
    """
    True for cells that carry no value.

    None, NaN/NaT and whitespace-only strings are blank. Zero is not.
    """
    if isinstance(value, str):
        return value.strip() == ""
    return bool(pd.isna(value))


def cell_to_text(value: Any) -> str:
    """
    Convert a cell value to trimmed text.

    - None / NaN / whitespace -> ""
    - 75761365043766.0 -> "75761365043766" (numeric tracking numbers)
    - datetime at midnight -> "2024-05-01", otherwise "2024-05-01 08:30:00"
    - bool -> "True" / "False"

    Args:
        value: Raw cell value

    Returns:
        Trimmed string, never None
    """
    if is_blank(value):
        return ""

    if isinstance(value, bool):
        return str(value)

    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)

    if isinstance(value, datetime):
        if value.hour == value.minute == value.second == 0 and not value.microsecond:
            return value.date().isoformat()
        return value.strftime("%Y-%m-%d %H:%M:%S")

    if isinstance(value, date):
        return value.isoformat()

    return str(value).strip()


def is_tracking_token(text: str, min_length: int = 6) -> bool:
    """
    Check if text looks like a bare tracking number.

    Used when a sheet has no recognizable tracking-number header: letters and
    digits only, at least `min_length` characters.

    "ZT123456X" -> True
    "abc" -> False (too short)
    "YT 1234567" -> False (space)
    """
    return len(text) >= min_length and bool(_ALNUM_PATTERN.match(text))
