from __future__ import annotations

import math
from typing import Sequence

from insight_stream.rows import DataRow

DISPLAY_LIMIT = 100
MIN_ZOOM = 1.0
MAX_ZOOM = 5.0
ZOOM_STEP = 0.5
DEFAULT_ZOOM = 1.0
DEFAULT_PAN = 0.5

UNWINDOWED_CHART_TYPES = frozenset({"scatter"})


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def window_bounds(row_count: int, zoom: float, pan: float) -> tuple[int, int]:
    """Return the ``[start, end)`` slice of a sequential chart at ``zoom``/``pan``.

    At zoom 1 the window is the first ``DISPLAY_LIMIT`` rows (a preview cap);
    above it the window shrinks to ``row_count / zoom`` rows (at least two)
    and ``pan`` slides it from the first row (0) to the last (1).
    """
    if row_count < 2:
        return 0, row_count
    if zoom <= MIN_ZOOM:
        return 0, min(row_count, DISPLAY_LIMIT)

    size = max(2, math.floor(row_count / zoom))
    max_start = row_count - size
    # Half-up rounding, not banker's rounding.
    start = math.floor(max_start * clamp(pan, 0.0, 1.0) + 0.5)
    return start, start + size


def window_rows(rows: Sequence[DataRow], zoom: float, pan: float, chart_type: str) -> list[DataRow]:
    if chart_type in UNWINDOWED_CHART_TYPES or len(rows) < 2:
        return list(rows)
    start, end = window_bounds(len(rows), zoom, pan)
    return list(rows[start:end])
