import plotly.io as pio

from insight_stream.dashboard import DashboardSession
from insight_stream.models import AnalysisResult, ChartConfig, FilterRule, Report
from insight_stream.palette import PALETTES


def _session(rows: list[dict]) -> DashboardSession:
    charts = [
        ChartConfig(type="line", title="Sales", x_axis="month", y_axis="sales", data=rows),
        ChartConfig(type="bar", title="Profit", x_axis="month", y_axis="profit"),
        ChartConfig(type="area", title="Both", x_axis="month", y_axis="sales", additional_keys=["profit"]),
    ]
    report = Report(
        id="1", name="sales", date="2026-01-05", analysis=AnalysisResult(summary="s", suggested_charts=charts), data=rows
    )
    return DashboardSession(report)


def test_filters_apply_to_every_chart(sales_rows) -> None:
    session = _session(sales_rows)
    rule = FilterRule(column="region", operator="equals", value="west")
    session.add_rule(rule)
    assert [row["month"] for row in session.filtered_rows()] == ["Feb", "Apr"]
    assert session.chart_rows(0) == session.chart_rows(1) == session.filtered_rows()
    session.remove_rule(rule.id)
    assert session.filtered_rows() == sales_rows


def test_charts_own_local_state_outside_comparison(sales_rows) -> None:
    session = _session(sales_rows)
    session.chart_view(0).source.set_zoom(3)
    assert session.chart_view(0).state.zoom == 3
    assert session.chart_view(1).state.zoom == 1


def test_comparison_views_share_one_state(sales_rows) -> None:
    session = _session(sales_rows)
    session.chart_view(0).source.set_zoom(2)
    coordinator = session.coordinator
    coordinator.start_selecting()
    for index in (0, 1, 2):
        coordinator.toggle_chart(index)
    coordinator.synthesize()

    views = session.comparison_views()
    views[0][1].source.set_zoom(4)
    views[2][1].toggle_series("profit")
    assert {view.state.zoom for _, view in views} == {4}
    assert all(view.state.hidden == frozenset({"profit"}) for _, view in views)

    coordinator.close()
    assert session.chart_view(0).state.zoom == 2
    assert session.chart_view(2).state.hidden == frozenset()


def test_palette_is_passed_to_new_views(sales_rows) -> None:
    session = _session(sales_rows)
    session.set_palette(PALETTES["forest"])
    assert session.chart_view(0).palette is PALETTES["forest"]


def test_table_reads_the_full_dataset_whatever_the_rules(sales_rows) -> None:
    session = _session(sales_rows)
    session.add_rule(FilterRule(column="region", operator="equals", value="west"))
    assert len(session.filtered_rows()) == 2
    assert session.table_rows() == sales_rows
    assert session.table_rows() is not session.report.data


def test_dashboard_capture_is_refused_while_one_is_running(monkeypatch, sales_rows) -> None:
    monkeypatch.setattr(pio, "to_image", lambda figure, format, **kwargs: b"png")
    session = _session(sales_rows)
    figures = [session.chart_view(index).render(session.chart_rows(index)).figure for index in range(3)]
    with session.capture.attempt() as acquired:
        assert acquired
        assert session.dashboard_snapshot(figures) is None
    assert session.dashboard_snapshot(figures) == b"png"
    assert not session.capture.busy
