from __future__ import annotations

from typing import Any, Iterable

from jsonschema import ValidationError, validate


class SchemaValidationError(ValueError):
    pass


class ChartReferenceError(ValueError):
    pass


def validate_schema(output: dict[str, Any], schema: dict[str, Any]) -> None:
    try:
        validate(instance=output, schema=schema)
    except ValidationError as exc:
        raise SchemaValidationError(str(exc)) from exc


def _chart_columns(chart: dict[str, Any]) -> list[str]:
    columns = [chart.get("x_axis"), chart.get("y_axis"), *(chart.get("additional_keys") or [])]
    if chart.get("category"):
        columns.append(chart["category"])
    return [column for column in columns if isinstance(column, str)]


def validate_chart_references(chart: dict[str, Any], columns: Iterable[str]) -> None:
    allowed = set(columns)
    missing = sorted({column for column in _chart_columns(chart) if column not in allowed})
    if missing:
        raise ChartReferenceError(f"Chart '{chart.get('title', '')}' references unknown columns: {missing}")


def split_valid_charts(
    charts: list[dict[str, Any]], columns: Iterable[str]
) -> tuple[list[dict[str, Any]], list[tuple[dict[str, Any], str]]]:
    """Partition suggested charts into those whose columns exist and the rejected rest."""
    allowed = set(columns)
    valid: list[dict[str, Any]] = []
    rejected: list[tuple[dict[str, Any], str]] = []
    for chart in charts:
        try:
            validate_chart_references(chart, allowed)
        except ChartReferenceError as exc:
            rejected.append((chart, str(exc)))
            continue
        valid.append(chart)
    return valid, rejected
