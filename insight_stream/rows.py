"""Helpers for untyped dataset rows.

A row is a plain ``dict`` mapping column name to a scalar
(``int | float | str | bool | None``). Dict insertion order is the column
order; list order is the row order. Nothing in this module mutates a row.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Sequence

import numpy as np
import pandas as pd

DataRow = dict[str, Any]


def is_null(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, (float, np.floating)) and math.isnan(value)


def is_missing(value: Any) -> bool:
    return is_null(value) or value == ""


def is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float, np.integer, np.floating)) and math.isfinite(value)


def to_number(value: Any) -> float | None:
    """Return ``value`` as a finite float, or None when it does not parse."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def display_text(value: Any) -> str:
    if is_null(value):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def coerce_value(value: Any) -> Any:
    """Best-effort typing of a parsed cell: numbers, booleans, null."""
    if not isinstance(value, str):
        return None if is_null(value) else value
    text = value.strip()
    if not text:
        return None
    number = to_number(text)
    if number is not None:
        return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number
    if text.lower() == "true":
        return True
    if text.lower() == "false":
        return False
    return text


def column_names(rows: Sequence[DataRow]) -> list[str]:
    """Columns in first-seen order across all rows."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


def rows_from_frame(frame: pd.DataFrame, coerce: bool = True) -> list[DataRow]:
    records = frame.astype(object).where(frame.notna(), None).to_dict(orient="records")
    if not coerce:
        return [{str(key): value for key, value in record.items()} for record in records]
    return [{str(key): coerce_value(value) for key, value in record.items()} for record in records]


def sample_rows(rows: Sequence[DataRow], rate: int) -> list[DataRow]:
    """Uniform stride sample keeping ``rate`` percent of the rows."""
    if rate >= 100 or len(rows) <= 1:
        return list(rows)
    size = (len(rows) * max(rate, 1)) // 100
    if size <= 0:
        return []
    step = len(rows) / size
    return [rows[int(i * step)] for i in range(size)]


def copy_rows(rows: Iterable[DataRow]) -> list[DataRow]:
    return [dict(row) for row in rows]
