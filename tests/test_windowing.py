from insight_stream.windowing import DISPLAY_LIMIT, window_bounds, window_rows


def _rows(count: int) -> list[dict]:
    return [{"i": index} for index in range(count)]


def test_zoom_two_over_250_rows() -> None:
    rows = _rows(250)
    assert window_bounds(250, 2, 0) == (0, 125)
    assert window_bounds(250, 2, 1) == (125, 250)
    assert window_rows(rows, 2, 1, "line") == rows[125:]


def test_zoom_one_caps_the_preview() -> None:
    rows = _rows(250)
    assert window_rows(rows, 1, 0.9, "bar") == rows[:DISPLAY_LIMIT]
    assert window_rows(_rows(40), 1, 0.5, "area") == _rows(40)


def test_scatter_is_never_windowed() -> None:
    rows = _rows(250)
    assert window_rows(rows, 4, 0.3, "scatter") == rows


def test_tiny_inputs_are_returned_unchanged() -> None:
    assert window_rows([], 3, 0.5, "bar") == []
    assert window_rows(_rows(1), 5, 1, "line") == _rows(1)


def test_pan_rounds_half_up() -> None:
    # 11 rows at zoom 2: size 5, max start 6, pan 0.25 -> 1.5 -> 2
    assert window_bounds(11, 2, 0.25) == (2, 7)


def test_pan_is_clamped() -> None:
    assert window_bounds(100, 2, -1) == (0, 50)
    assert window_bounds(100, 2, 7) == (50, 100)


def test_window_size_stays_within_bounds() -> None:
    for count in (2, 3, 7, 50, 101, 250):
        rows = _rows(count)
        for zoom in (1, 1.5, 2, 2.5, 3, 4, 5):
            for pan in (0, 0.2, 0.5, 0.77, 1):
                window = window_rows(rows, zoom, pan, "line")
                assert min(2, count) <= len(window) <= count
                start = rows.index(window[0])
                assert window == rows[start : start + len(window)]
