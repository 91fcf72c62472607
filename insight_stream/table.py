"""
Searchable, sortable, paginated data table.

Sort order is total: nulls first, then numbers (booleans as 0/1), then text
compared case-insensitively. Descending is the exact reverse of ascending,
ties included. Search terms are matched as typed, surrounding spaces and all.
Pagination is a display cap; ``TableView.total`` always reports the full
matched row count.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Literal, Sequence

from insight_stream.rows import DataRow, column_names, display_text, is_null

TABLE_PAGE_SIZE = 50

SortDirection = Literal["asc", "desc"]


@dataclass
class TableView:
    rows: list[DataRow]
    total: int
    columns: list[str]
    sort_key: str | None
    sort_direction: SortDirection
    page: int
    page_count: int


def search_rows(rows: Sequence[DataRow], term: str) -> list[DataRow]:
    needle = (term or "").lower()
    if not needle:
        return list(rows)
    return [row for row in rows if any(needle in display_text(value).lower() for value in row.values())]


def _sort_value(value: Any) -> tuple[int, Any]:
    if is_null(value):
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, display_text(value).lower())


def sort_rows(rows: Sequence[DataRow], key: str | None, direction: SortDirection = "asc") -> list[DataRow]:
    if not key:
        return list(rows)
    ordered = sorted(rows, key=lambda row: _sort_value(row.get(key)))
    return ordered[::-1] if direction == "desc" else ordered


def table_view(
    rows: Sequence[DataRow],
    search: str = "",
    sort_key: str | None = None,
    sort_direction: SortDirection = "asc",
    page: int = 1,
    page_size: int = TABLE_PAGE_SIZE,
) -> TableView:
    matched = sort_rows(search_rows(rows, search), sort_key, sort_direction)
    page_count = max(1, math.ceil(len(matched) / page_size))
    page = min(max(page, 1), page_count)
    start = (page - 1) * page_size
    return TableView(
        rows=matched[start : start + page_size],
        total=len(matched),
        columns=column_names(rows[:1]) if rows else [],
        sort_key=sort_key,
        sort_direction=sort_direction,
        page=page,
        page_count=page_count,
    )
