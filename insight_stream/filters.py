"""
Row filtering for the dashboard view.

A rule set is a conjunction: a row survives only if every rule matches.
A null cell never matches, whatever the operator (``not_equals`` included).
String operators compare case-insensitively on the cell's display text;
numeric operators need both sides to parse as finite numbers.
"""

from __future__ import annotations

import operator
from typing import Callable, Sequence

from insight_stream.models import FilterRule
from insight_stream.rows import DataRow, display_text, is_null, to_number

_NUMERIC_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "gt": operator.gt,
    "lt": operator.lt,
    "gte": operator.ge,
    "lte": operator.le,
}

_TEXT_OPERATORS: dict[str, Callable[[str, str], bool]] = {
    "equals": lambda cell, needle: cell == needle,
    "not_equals": lambda cell, needle: cell != needle,
    "contains": lambda cell, needle: needle in cell,
    "starts_with": lambda cell, needle: cell.startswith(needle),
}


def rule_matches(row: DataRow, rule: FilterRule) -> bool:
    cell = row.get(rule.column)
    if is_null(cell):
        return False

    numeric = _NUMERIC_OPERATORS.get(rule.operator)
    if numeric is not None:
        left = to_number(cell)
        right = to_number(rule.value)
        if left is None or right is None:
            return False
        return numeric(left, right)

    compare = _TEXT_OPERATORS[rule.operator]
    return compare(display_text(cell).lower(), rule.value.lower())


def apply_filters(rows: Sequence[DataRow], rules: Sequence[FilterRule]) -> list[DataRow]:
    if not rules:
        return list(rows)
    return [row for row in rows if all(rule_matches(row, rule) for rule in rules)]


def rules_key(rules: Sequence[FilterRule]) -> tuple[tuple[str, str, str], ...]:
    """Hashable identity of a rule set, for memoizing filtered views."""
    return tuple((rule.column, rule.operator, rule.value) for rule in rules)
