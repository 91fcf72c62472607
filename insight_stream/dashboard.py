from __future__ import annotations

from typing import Sequence

import plotly.graph_objects as go

from insight_stream.charts import CaptureGuard, ChartView
from insight_stream.comparison import ComparisonCoordinator
from insight_stream.exporters import dashboard_png
from insight_stream.filters import apply_filters, rules_key
from insight_stream.logger import get_logger
from insight_stream.models import ChartConfig, FilterRule, Report
from insight_stream.palette import DEFAULT_PALETTE, Palette
from insight_stream.rows import DataRow
from insight_stream.view_state import LocalViewState

logger = get_logger(__name__)


class DashboardSession:
    """Live view engine for one report.

    Owns the filter rules, one ``LocalViewState`` per suggested chart and the
    ``ComparisonCoordinator``. Charts are handed out already bound to the
    state source they should read: their own outside a comparison, the
    coordinator's shared tuple inside one.
    """

    def __init__(self, report: Report, palette: Palette = DEFAULT_PALETTE) -> None:
        self.report = report
        self.palette = palette
        self.rules: list[FilterRule] = []
        self.local_states = [LocalViewState() for _ in report.analysis.suggested_charts]
        self.coordinator = ComparisonCoordinator()
        self._memo: dict[tuple, list[DataRow]] = {}
        self.capture = CaptureGuard()

    @property
    def charts(self) -> list[ChartConfig]:
        return self.report.analysis.suggested_charts

    def set_palette(self, palette: Palette) -> None:
        self.palette = palette

    def add_rule(self, rule: FilterRule) -> list[FilterRule]:
        self.rules = [*self.rules, rule]
        return self.rules

    def remove_rule(self, rule_id: str) -> list[FilterRule]:
        self.rules = [rule for rule in self.rules if rule.id != rule_id]
        return self.rules

    def clear_rules(self) -> None:
        self.rules = []

    def _filtered(self, rows: Sequence[DataRow]) -> list[DataRow]:
        key = (id(rows), len(rows), rules_key(self.rules))
        cached = self._memo.get(key)
        if cached is None:
            cached = apply_filters(rows, self.rules)
            self._memo = {key: cached} if len(self._memo) > 32 else {**self._memo, key: cached}
        return cached

    def filtered_rows(self) -> list[DataRow]:
        return self._filtered(self.report.data)

    def chart_rows(self, index: int) -> list[DataRow]:
        chart = self.charts[index]
        return self._filtered(chart.data or self.report.data)

    def chart_view(self, index: int) -> ChartView:
        return ChartView(self.charts[index], self.local_states[index], self.palette)

    def comparison_views(self) -> list[tuple[int, ChartView]]:
        source = self.coordinator.source()
        return [(index, ChartView(self.charts[index], source, self.palette)) for index in self.coordinator.selection]

    def table_rows(self) -> list[DataRow]:
        """The full dataset; filter rules only narrow the charts."""
        return list(self.report.data)

    def dashboard_snapshot(self, figures: Sequence[go.Figure]) -> bytes | None:
        """PNG of every chart, or None while another dashboard capture is in flight."""
        with self.capture.attempt() as acquired:
            if not acquired:
                logger.warning("Dashboard capture already running for report %s", self.report.id)
                return None
            return dashboard_png(figures, [chart.title for chart in self.charts])
