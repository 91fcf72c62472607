import math

import pandas as pd

from insight_stream.rows import coerce_value, column_names, display_text, is_missing, rows_from_frame, sample_rows, to_number


def test_coerce_value_types_parsed_cells() -> None:
    assert coerce_value("42") == 42
    assert coerce_value("4.50") == 4.5
    assert coerce_value("TRUE") is True
    assert coerce_value(" false ") is False
    assert coerce_value("") is None
    assert coerce_value("East") == "East"


def test_to_number_rejects_non_finite_and_booleans() -> None:
    assert to_number(" 3.5 ") == 3.5
    assert to_number("inf") is None
    assert to_number(float("nan")) is None
    assert to_number(True) is None


def test_display_text_mirrors_string_conversion() -> None:
    assert display_text(4.0) == "4"
    assert display_text(4.25) == "4.25"
    assert display_text(False) == "false"
    assert display_text(None) == ""


def test_missing_values() -> None:
    assert is_missing(None) and is_missing("") and is_missing(math.nan)
    assert not is_missing(0) and not is_missing(" ")


def test_rows_from_frame_uses_none_for_missing_cells() -> None:
    frame = pd.DataFrame({"a": ["1", "", "x"], "b": [1.5, None, 2.0]})
    rows = rows_from_frame(frame)
    assert rows == [{"a": 1, "b": 1.5}, {"a": None, "b": None}, {"a": "x", "b": 2.0}]
    assert column_names([{"a": 1}, {"b": 2, "a": 3}]) == ["a", "b"]


def test_sample_rows_keeps_a_uniform_stride() -> None:
    rows = [{"i": index} for index in range(10)]
    assert sample_rows(rows, 100) == rows
    assert sample_rows(rows, 50) == [{"i": index} for index in (0, 2, 4, 6, 8)]
    assert len(sample_rows(rows, 1)) == 0
