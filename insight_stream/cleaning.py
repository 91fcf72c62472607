"""
Dataset cleaning before re-analysis.

The pipeline order is fixed: standardize text, handle missing values, remove
duplicates. Disabled steps are skipped, never reordered. Every step returns
new row dicts; the input rows are never modified.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import numpy as np

from insight_stream.logger import get_logger
from insight_stream.models import DataCleaningOptions
from insight_stream.rows import DataRow, column_names, is_missing, is_number

logger = get_logger(__name__)

CleanedCallback = Callable[[list[DataRow], DataCleaningOptions], Any]


@dataclass
class DatasetDiagnostics:
    rows: int
    columns: int
    missing_by_column: dict[str, int] = field(default_factory=dict)
    duplicate_rows: int = 0
    padded_text_cells: int = 0

    @property
    def missing_cells(self) -> int:
        return sum(self.missing_by_column.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": self.rows,
            "columns": self.columns,
            "missing_by_column": dict(self.missing_by_column),
            "missing_cells": self.missing_cells,
            "duplicate_rows": self.duplicate_rows,
            "padded_text_cells": self.padded_text_cells,
        }


@dataclass
class CleaningResult:
    rows: list[DataRow]
    rows_before: int
    options: DataCleaningOptions
    dispatched: Any = None

    @property
    def rows_after(self) -> int:
        return len(self.rows)

    @property
    def rows_removed(self) -> int:
        return self.rows_before - self.rows_after


def _row_signature(row: DataRow) -> str:
    return json.dumps(row, sort_keys=True, default=str)


def standardize_text(rows: Sequence[DataRow]) -> list[DataRow]:
    return [{key: value.strip() if isinstance(value, str) else value for key, value in row.items()} for row in rows]


def column_means(rows: Sequence[DataRow]) -> dict[str, float]:
    """Mean of the numeric cells of every column holding at least one number."""
    values: dict[str, list[float]] = {}
    for row in rows:
        for key, value in row.items():
            if is_number(value):
                values.setdefault(key, []).append(float(value))
    return {key: float(np.mean(numbers)) for key, numbers in values.items()}


def handle_missing(
    rows: Sequence[DataRow],
    policy: str,
    means: dict[str, float] | None = None,
    impute_text_with_zero: bool = True,
) -> list[DataRow]:
    if policy == "none":
        return [dict(row) for row in rows]

    columns = column_names(rows)
    if policy == "drop":
        return [dict(row) for row in rows if not any(is_missing(row.get(column)) for column in columns)]

    if policy == "impute_mean":
        fill = means if means is not None else column_means(rows)
    elif policy == "impute_zero":
        targets = columns if impute_text_with_zero else list(column_means(rows))
        fill = {column: 0 for column in targets}
    else:
        raise ValueError(f"Unknown missing-value policy: {policy}")

    cleaned = []
    for row in rows:
        patched = dict(row)
        for column, value in fill.items():
            if is_missing(patched.get(column)):
                patched[column] = value
        cleaned.append(patched)
    return cleaned


def remove_duplicates(rows: Sequence[DataRow]) -> list[DataRow]:
    seen: set[str] = set()
    unique = []
    for row in rows:
        signature = _row_signature(row)
        if signature in seen:
            continue
        seen.add(signature)
        unique.append(dict(row))
    return unique


def clean_rows(rows: Sequence[DataRow], options: DataCleaningOptions) -> list[DataRow]:
    # Means come from the dataset as uploaded, before any step ran.
    means = column_means(rows)
    cleaned = standardize_text(rows) if options.standardize_text else [dict(row) for row in rows]
    cleaned = handle_missing(cleaned, options.handle_missing, means, options.impute_text_with_zero)
    if options.remove_duplicates:
        cleaned = remove_duplicates(cleaned)
    return cleaned


def diagnose(rows: Sequence[DataRow]) -> DatasetDiagnostics:
    columns = column_names(rows)
    missing = {column: sum(1 for row in rows if is_missing(row.get(column))) for column in columns}
    padded = sum(
        1 for row in rows for value in row.values() if isinstance(value, str) and value != value.strip()
    )
    return DatasetDiagnostics(
        rows=len(rows),
        columns=len(columns),
        missing_by_column={column: count for column, count in missing.items() if count},
        duplicate_rows=len(rows) - len({_row_signature(row) for row in rows}),
        padded_text_cells=padded,
    )


class CleaningPipeline:
    """Runs ``clean_rows`` and hands the result to the re-analysis callback.

    The callback is expected to dispatch and return immediately (a queued job,
    for instance); its return value is kept on the result untouched.
    """

    def __init__(self, on_cleaned: CleanedCallback | None = None) -> None:
        self.on_cleaned = on_cleaned

    def run(self, rows: Sequence[DataRow], options: DataCleaningOptions) -> CleaningResult:
        cleaned = clean_rows(rows, options)
        logger.info(
            "Cleaned dataset: %s -> %s rows (missing=%s, dedupe=%s, trim=%s)",
            len(rows),
            len(cleaned),
            options.handle_missing,
            options.remove_duplicates,
            options.standardize_text,
        )
        dispatched = self.on_cleaned(cleaned, options) if self.on_cleaned else None
        return CleaningResult(rows=cleaned, rows_before=len(rows), options=options, dispatched=dispatched)
