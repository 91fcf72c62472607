"""
Chart rendering for the interactive dashboard.

``build_figure`` is a pure function of (config, rows, hidden series, palette)
and returns a plotly figure. ``ChartView`` binds a config to a
``ViewStateSource`` and a ``Palette``: it windows the filtered rows, renders,
and exports snapshots of its own figure with the interactive-only chrome
(anything tagged ``no-export``) removed.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence

import plotly.graph_objects as go
import plotly.io as pio
from plotly.subplots import make_subplots

from insight_stream.logger import get_logger
from insight_stream.models import ChartConfig
from insight_stream.palette import DEFAULT_PALETTE, Palette
from insight_stream.rows import DataRow, display_text, is_null, to_number
from insight_stream.view_state import ViewState, ViewStateSource, is_series_visible
from insight_stream.windowing import window_bounds, window_rows

logger = get_logger(__name__)

CHART_HEIGHT = 360
EXPORT_WIDTH = 1100
NO_EXPORT = "no-export"
EMPTY_MESSAGE = "No rows match the current filters."
IMAGE_FORMATS = ("png", "svg")
SEQUENTIAL_CHART_TYPES = frozenset({"bar", "line", "area"})
ZOOMABLE_CHART_TYPES = frozenset({"bar", "line", "area", "radar"})


@dataclass(frozen=True)
class LegendEntry:
    key: str
    color: str
    visible: bool


@dataclass
class RenderedChart:
    figure: go.Figure
    legend: list[LegendEntry]
    total_rows: int
    visible_rows: int
    window: tuple[int, int]
    empty: bool = False
    missing_columns: list[str] = field(default_factory=list)


class CaptureGuard:
    """Non-blocking in-flight flag so one region is never captured twice at once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def attempt(self) -> Iterator[bool]:
        acquired = self._lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()


def observed_columns(rows: Sequence[DataRow]) -> set[str]:
    columns: set[str] = set()
    for row in rows:
        columns.update(row.keys())
    return columns


def missing_columns(config: ChartConfig, rows: Sequence[DataRow]) -> list[str]:
    if not rows:
        return []
    present = observed_columns(rows)
    return [column for column in config.referenced_columns() if column not in present]


def _distinct_text(rows: Sequence[DataRow], column: str) -> list[str]:
    seen: dict[str, None] = {}
    for row in rows:
        value = row.get(column)
        if not is_null(value):
            seen.setdefault(display_text(value), None)
    return list(seen)


def series_keys(config: ChartConfig, rows: Sequence[DataRow]) -> list[str]:
    """Series of a chart in palette order.

    Pie slices are the distinct x values; a ``category`` column splits the
    y column into one series per category value; otherwise the series are
    the y column followed by ``additional_keys``.
    """
    if config.type == "pie":
        return _distinct_text(rows, config.x_axis)
    if config.category:
        return _distinct_text(rows, config.category)
    return list(dict.fromkeys([config.y_axis, *config.additional_keys]))


def _numbers(rows: Sequence[DataRow], column: str) -> list[float | None]:
    return [to_number(row.get(column)) for row in rows]


def _series_rows(config: ChartConfig, rows: Sequence[DataRow], key: str) -> tuple[list[DataRow], str]:
    """Rows and value column plotted for one series."""
    if config.category:
        return [row for row in rows if display_text(row.get(config.category)) == key], config.y_axis
    return list(rows), key


def _sequential_trace(chart_type: str, name: str, x: list[Any], y: list[float | None], color: str) -> Any:
    if chart_type == "bar":
        return go.Bar(x=x, y=y, name=name, marker_color=color)
    if chart_type == "area":
        return go.Scatter(
            x=x, y=y, name=name, mode="lines", fill="tozeroy", line={"color": color, "width": 2}, connectgaps=False
        )
    return go.Scatter(
        x=x, y=y, name=name, mode="lines+markers", line={"color": color, "width": 3}, marker={"size": 6}, connectgaps=False
    )


def _add_xy_series(
    figure: go.Figure,
    config: ChartConfig,
    rows: Sequence[DataRow],
    keys: Sequence[str],
    hidden: frozenset[str],
    palette: Palette,
    present: set[str],
) -> None:
    for index, key in enumerate(keys):
        series_rows, value_column = _series_rows(config, rows, key)
        if value_column not in present:
            continue
        x = [row.get(config.x_axis) for row in series_rows]
        y = _numbers(series_rows, value_column)
        color = palette.color_for(index)
        if config.type == "scatter":
            trace = go.Scatter(x=x, y=y, name=key, mode="markers", marker={"color": color, "size": 9, "opacity": 0.8})
        else:
            trace = _sequential_trace(config.type, key, x, y, color)
        if not is_series_visible(hidden, key):
            trace.visible = "legendonly"
        figure.add_trace(trace)


def _add_pie(
    figure: go.Figure,
    config: ChartConfig,
    rows: Sequence[DataRow],
    keys: Sequence[str],
    hidden: frozenset[str],
    palette: Palette,
) -> None:
    totals = {key: 0.0 for key in keys}
    for row in rows:
        label = row.get(config.x_axis)
        value = to_number(row.get(config.y_axis))
        if is_null(label) or value is None:
            continue
        text = display_text(label)
        if text in totals:
            totals[text] += value
    figure.add_trace(
        go.Pie(
            labels=list(totals),
            values=list(totals.values()),
            marker={"colors": [palette.color_for(index) for index in range(len(keys))]},
            hole=0.45,
            sort=False,
        )
    )
    figure.update_layout(hiddenlabels=[key for key in keys if key in hidden])


def _add_radar(
    figure: go.Figure,
    config: ChartConfig,
    rows: Sequence[DataRow],
    keys: Sequence[str],
    hidden: frozenset[str],
    palette: Palette,
    present: set[str],
) -> None:
    for index, key in enumerate(keys):
        series_rows, value_column = _series_rows(config, rows, key)
        if value_column not in present or not series_rows:
            continue
        theta = [display_text(row.get(config.x_axis)) for row in series_rows]
        r = _numbers(series_rows, value_column)
        color = palette.color_for(index)
        trace = go.Scatterpolar(
            r=r + r[:1], theta=theta + theta[:1], name=key, fill="toself", line={"color": color}, opacity=0.75
        )
        if not is_series_visible(hidden, key):
            trace.visible = "legendonly"
        figure.add_trace(trace)


def _message_figure(title: str, message: str) -> go.Figure:
    figure = go.Figure()
    figure.add_annotation(
        text=message, xref="paper", yref="paper", x=0.5, y=0.5, showarrow=False, font={"size": 15, "color": "#64748b"}
    )
    figure.update_xaxes(visible=False)
    figure.update_yaxes(visible=False)
    _apply_layout(figure, title)
    return figure


def _apply_layout(figure: go.Figure, title: str) -> None:
    figure.update_layout(
        title_text=title,
        template="plotly_white",
        height=CHART_HEIGHT,
        # Series visibility belongs to the view state, not to plotly.
        legend={
            "orientation": "h",
            "yanchor": "bottom",
            "y": 1.02,
            "x": 0,
            "itemclick": False,
            "itemdoubleclick": False,
        },
        margin={"l": 50, "r": 30, "t": 70, "b": 40},
        uirevision=title,
    )


def build_figure(
    config: ChartConfig,
    rows: Sequence[DataRow],
    hidden: frozenset[str] = frozenset(),
    palette: Palette = DEFAULT_PALETTE,
    keys: Sequence[str] | None = None,
) -> go.Figure:
    """Render ``rows`` (already filtered and windowed) as a plotly figure.

    Never raises on bad column references: missing series are skipped and a
    missing x column renders an explanatory empty chart.
    """
    if not rows:
        return _message_figure(config.title, EMPTY_MESSAGE)

    present = observed_columns(rows)
    if config.x_axis not in present:
        return _message_figure(config.title, f"Column '{config.x_axis}' is not in this dataset.")

    keys = list(keys) if keys is not None else series_keys(config, rows)
    figure = go.Figure()
    if config.type == "pie":
        _add_pie(figure, config, rows, keys, hidden, palette)
    elif config.type == "radar":
        _add_radar(figure, config, rows, keys, hidden, palette, present)
    else:
        _add_xy_series(figure, config, rows, keys, hidden, palette, present)
        figure.update_xaxes(title=config.x_axis)
        figure.update_yaxes(title=config.y_axis if len(keys) == 1 or config.category else None)
        if config.type == "bar" and len(keys) > 1:
            figure.update_layout(barmode="group")
    _apply_layout(figure, config.title)
    return figure


def strip_interactive_chrome(figure: go.Figure) -> go.Figure:
    """Copy of ``figure`` without controls or annotations tagged ``no-export``."""
    snapshot = go.Figure(figure)
    snapshot.layout.annotations = [item for item in snapshot.layout.annotations if item.name != NO_EXPORT]
    snapshot.layout.shapes = [item for item in snapshot.layout.shapes if item.name != NO_EXPORT]
    snapshot.layout.updatemenus = []
    snapshot.layout.sliders = []
    if snapshot.layout.xaxis.rangeslider.visible:
        snapshot.layout.xaxis.rangeslider.visible = False
    return snapshot


def _subplot_kind(figure: go.Figure) -> str:
    if not figure.data:
        return "xy"
    trace_type = figure.data[0].type
    if trace_type == "pie":
        return "domain"
    if trace_type == "scatterpolar":
        return "polar"
    return "xy"


def compose_dashboard(figures: Sequence[go.Figure], titles: Sequence[str]) -> go.Figure:
    """Stack chart figures into one tall figure, one chart per row."""
    count = max(len(figures), 1)
    specs = [[{"type": _subplot_kind(figure)}] for figure in figures] or [[{"type": "xy"}]]
    composite = make_subplots(
        rows=count,
        cols=1,
        specs=specs,
        subplot_titles=list(titles) or None,
        vertical_spacing=min(0.08, 0.4 / count),
    )
    hidden_labels: list[str] = []
    for row_index, figure in enumerate(figures, start=1):
        snapshot = strip_interactive_chrome(figure)
        for trace in snapshot.data:
            composite.add_trace(trace.to_plotly_json(), row=row_index, col=1)
        hidden_labels.extend(snapshot.layout.hiddenlabels or [])
    composite.update_layout(
        template="plotly_white",
        height=CHART_HEIGHT * count,
        width=EXPORT_WIDTH,
        showlegend=False,
        hiddenlabels=hidden_labels,
        margin={"l": 50, "r": 30, "t": 60, "b": 40},
    )
    return composite


class ChartView:
    def __init__(self, config: ChartConfig, source: ViewStateSource, palette: Palette = DEFAULT_PALETTE) -> None:
        self.config = config
        self.source = source
        self.palette = palette
        self.capture = CaptureGuard()

    @property
    def state(self) -> ViewState:
        return self.source.get()

    @property
    def zoomable(self) -> bool:
        return self.config.type in ZOOMABLE_CHART_TYPES

    def visible_rows(self, rows: Sequence[DataRow]) -> list[DataRow]:
        if self.config.type == "pie":
            return list(rows)
        state = self.state
        return window_rows(rows, state.zoom, state.pan, self.config.type)

    def legend(self, rows: Sequence[DataRow]) -> list[LegendEntry]:
        hidden = self.state.hidden
        return [
            LegendEntry(key=key, color=self.palette.color_for(index), visible=is_series_visible(hidden, key))
            for index, key in enumerate(series_keys(self.config, rows))
        ]

    def toggle_series(self, key: str) -> ViewState:
        return self.source.toggle_series(key)

    def render(self, rows: Sequence[DataRow]) -> RenderedChart:
        """Render the filtered ``rows``; colors are keyed on the full filtered set."""
        state = self.state
        keys = series_keys(self.config, rows)
        visible = self.visible_rows(rows)
        if self.zoomable:
            window = window_bounds(len(rows), state.zoom, state.pan)
        else:
            window = (0, len(rows))
        figure = build_figure(self.config, visible, state.hidden, self.palette, keys=keys)
        if rows and self.zoomable:
            figure.add_annotation(
                name=NO_EXPORT,
                text=f"rows {window[0] + 1}-{window[1]} of {len(rows)} | zoom {state.zoom:g}x",
                xref="paper",
                yref="paper",
                x=1,
                y=1.18,
                xanchor="right",
                showarrow=False,
                font={"size": 11, "color": "#94a3b8"},
            )
        return RenderedChart(
            figure=figure,
            legend=self.legend(rows),
            total_rows=len(rows),
            visible_rows=len(visible),
            window=window,
            empty=not rows,
            missing_columns=missing_columns(self.config, rows),
        )

    def export_image(self, figure: go.Figure, fmt: str = "png", scale: float = 2.0) -> bytes | None:
        """Snapshot ``figure`` as PNG or SVG bytes.

        Returns None (and logs) when a capture is already running for this chart
        or the renderer fails; export problems never propagate to rendering.
        """
        if fmt not in IMAGE_FORMATS:
            raise ValueError(f"Unsupported image format: {fmt}")
        with self.capture.attempt() as acquired:
            if not acquired:
                logger.warning("Export already in progress for chart '%s'", self.config.title)
                return None
            try:
                snapshot = strip_interactive_chrome(figure)
                return pio.to_image(snapshot, format=fmt, width=EXPORT_WIDTH, height=CHART_HEIGHT, scale=scale)
            except Exception:
                logger.exception("Could not export chart '%s' as %s", self.config.title, fmt)
                return None
