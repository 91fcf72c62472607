from insight_stream.filters import apply_filters, rule_matches
from insight_stream.models import FilterRule


ROWS = [
    {"region": "East", "sales": 10},
    {"region": "West", "sales": 20},
    {"region": "East", "sales": 30},
]


def _rule(column: str, operator: str, value: str) -> FilterRule:
    return FilterRule(column=column, operator=operator, value=value)


def test_equals_is_case_insensitive() -> None:
    result = apply_filters(ROWS, [_rule("region", "equals", "east")])
    assert result == [ROWS[0], ROWS[2]]


def test_empty_rule_set_returns_rows_in_order() -> None:
    result = apply_filters(ROWS, [])
    assert result == ROWS
    assert result is not ROWS


def test_all_rules_must_match() -> None:
    rules = [_rule("region", "equals", "East"), _rule("sales", "gt", "15")]
    assert apply_filters(ROWS, rules) == [ROWS[2]]


def test_null_never_matches_not_equals() -> None:
    rows = [{"region": None}, {"region": "East"}, {}]
    result = apply_filters(rows, [_rule("region", "not_equals", "west")])
    assert result == [{"region": "East"}]


def test_null_never_matches_any_operator() -> None:
    row = {"value": None}
    for operator in ("equals", "not_equals", "contains", "starts_with", "gt", "lt", "gte", "lte"):
        assert not rule_matches(row, _rule("value", operator, ""))


def test_numeric_operators_need_numbers_on_both_sides() -> None:
    rows = [{"v": "12"}, {"v": "abc"}, {"v": 3}, {"v": True}]
    assert apply_filters(rows, [_rule("v", "gte", "3")]) == [{"v": "12"}, {"v": 3}]
    assert apply_filters(rows, [_rule("v", "gt", "not-a-number")]) == []


def test_contains_and_starts_with_use_display_text() -> None:
    rows = [{"flag": True}, {"flag": False}, {"price": 4.0}]
    assert apply_filters(rows, [_rule("flag", "starts_with", "TR")]) == [{"flag": True}]
    assert apply_filters(rows, [_rule("price", "equals", "4")]) == [{"price": 4.0}]
    assert apply_filters(ROWS, [_rule("region", "contains", "AS")]) == [ROWS[0], ROWS[2]]


def test_filtering_is_idempotent_and_monotonic() -> None:
    rules = [_rule("sales", "lte", "20")]
    once = apply_filters(ROWS, rules)
    assert apply_filters(once, rules) == once
    assert len(once) <= len(ROWS)


def test_filtering_leaves_source_rows_untouched() -> None:
    rows = [dict(row) for row in ROWS]
    apply_filters(rows, [_rule("region", "equals", "west")])
    assert rows == ROWS
