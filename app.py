from __future__ import annotations

import io
import json
import os
import time
from typing import Any

import pandas as pd
import requests
import streamlit as st

from insight_stream.charts import ChartView
from insight_stream.cleaning import diagnose
from insight_stream.comparison import ComparisonError, ComparisonPhase
from insight_stream.dashboard import DashboardSession
from insight_stream.exporters import (
    dashboard_pdf,
    export_filename,
    report_to_markdown,
    rows_to_csv,
)
from insight_stream.logger import get_logger, setup_logging
from insight_stream.models import (
    FILTER_OPERATORS,
    MISSING_POLICIES,
    AnalysisConfig,
    AnalysisFeatures,
    DataCleaningOptions,
    FilterRule,
    Report,
)
from insight_stream.palette import PALETTES, get_palette
from insight_stream.rows import column_names, rows_from_frame, sample_rows
from insight_stream.table import table_view
from insight_stream.view_state import ViewStateSource
from insight_stream.windowing import MAX_ZOOM, MIN_ZOOM, ZOOM_STEP

API_BASE_URL = os.getenv("BACKEND_API_URL", "http://localhost:8000").rstrip("/")
REQUEST_TIMEOUT = 120

setup_logging(os.getenv("INSIGHT_LOG_LEVEL", "INFO"))
logger = get_logger("insight_stream.app")

st.set_page_config(page_title="InsightStream", layout="wide")
st.markdown(
    """
    <style>
      :root {
        --bg: #f8fafc;
        --card: #ffffff;
        --ink: #0f172a;
        --muted: #64748b;
        --accent: #6366f1;
        --accent-soft: #eef2ff;
        --border: #e2e8f0;
      }
      .block-container { padding-top: 1.2rem; padding-bottom: 2.5rem; }
      .stApp { background: var(--bg); color: var(--ink); }
      .app-title { font-size: 2.0rem; font-weight: 700; letter-spacing: -0.02em; margin-bottom: 0.2rem; }
      .app-subtitle { color: var(--muted); margin-bottom: 1.2rem; }
      .section-card {
        background: var(--card);
        border: 1px solid var(--border);
        border-radius: 16px;
        padding: 1rem 1.2rem;
        box-shadow: 0 8px 24px rgba(15, 23, 42, 0.06);
        margin-bottom: 1rem;
      }
      .section-header { font-weight: 600; font-size: 1.1rem; margin-bottom: 0.6rem; }
      .compare-tray {
        background: var(--accent-soft);
        border: 1px solid #c7d2fe;
        border-radius: 999px;
        padding: 0.4rem 1rem;
        color: var(--accent);
        font-weight: 600;
      }
      div[data-testid="stMetricValue"] { font-size: 1.6rem; }
    </style>
    """,
    unsafe_allow_html=True,
)


def _api_request(method: str, path: str, **kwargs: Any) -> dict[str, Any]:
    url = f"{API_BASE_URL}{path}"
    response = requests.request(method=method, url=url, timeout=REQUEST_TIMEOUT, **kwargs)
    if response.status_code >= 400:
        detail = response.text
        try:
            detail = response.json().get("detail", detail)
        except ValueError:
            pass
        raise RuntimeError(f"{response.status_code}: {detail}")
    if response.content:
        return response.json()
    return {}


def _read_upload(uploaded: Any) -> list[dict[str, Any]]:
    content = uploaded.getvalue()
    if uploaded.name.lower().endswith(".json"):
        records = json.loads(content.decode("utf-8"))
        if isinstance(records, dict):
            records = [records]
        return rows_from_frame(pd.DataFrame(records), coerce=False)
    frame = pd.read_csv(io.BytesIO(content), dtype=str, keep_default_na=False)
    return rows_from_frame(frame)


def _open_report(report: Report) -> None:
    st.session_state.report = report
    st.session_state.dashboard = DashboardSession(report, get_palette(st.session_state.get("palette")))


def _session() -> DashboardSession | None:
    return st.session_state.get("dashboard")


def _sync_slider(key: str, source: ViewStateSource, attribute: str) -> None:
    value = st.session_state[key]
    if attribute == "zoom":
        source.set_zoom(value)
    else:
        source.set_pan(value)


def _view_controls(prefix: str, source: ViewStateSource, zoomable: bool) -> None:
    if not zoomable:
        return
    state = source.get()
    zoom_key, pan_key = f"{prefix}_zoom", f"{prefix}_pan"
    # Widgets mirror the state source; the source stays the single owner.
    st.session_state[zoom_key] = state.zoom
    st.session_state[pan_key] = state.pan
    left, right = st.columns(2)
    left.slider(
        "Zoom", MIN_ZOOM, MAX_ZOOM, step=ZOOM_STEP, key=zoom_key, on_change=_sync_slider, args=(zoom_key, source, "zoom")
    )
    right.slider(
        "Pan", 0.0, 1.0, step=0.05, key=pan_key, on_change=_sync_slider, args=(pan_key, source, "pan"),
        disabled=state.zoom <= MIN_ZOOM,
    )


def _render_chart_card(prefix: str, view: ChartView, rows: list[dict[str, Any]], show_controls: bool = True) -> Any:
    rendered = view.render(rows)
    st.markdown(f"**{view.config.title}** · {view.config.type}")
    if rendered.missing_columns:
        st.warning(f"Columns not found in this dataset: {', '.join(rendered.missing_columns)}")
    st.plotly_chart(rendered.figure, use_container_width=True, key=f"{prefix}_figure")

    if rendered.legend:
        legend_columns = st.columns(min(len(rendered.legend), 6))
        for position, entry in enumerate(rendered.legend):
            label = entry.key if entry.visible else f"~~{entry.key}~~"
            if legend_columns[position % len(legend_columns)].button(label, key=f"{prefix}_legend_{position}"):
                view.toggle_series(entry.key)
                st.rerun()

    if show_controls:
        _view_controls(prefix, view.source, view.zoomable)

    png_col, svg_col = st.columns(2)
    for column, fmt in ((png_col, "png"), (svg_col, "svg")):
        if column.button(f"Export {fmt.upper()}", key=f"{prefix}_export_{fmt}"):
            image = view.export_image(rendered.figure, fmt)
            if image is None:
                st.error(f"Could not export '{view.config.title}' as {fmt.upper()}.")
            else:
                column.download_button(
                    label=f"Save {fmt.upper()}",
                    data=image,
                    file_name=export_filename(view.config.title, fmt),
                    mime="image/png" if fmt == "png" else "image/svg+xml",
                    key=f"{prefix}_save_{fmt}",
                )
    return rendered


st.markdown('<div class="app-title">InsightStream</div>', unsafe_allow_html=True)
st.markdown(
    '<div class="app-subtitle">Upload a dataset, get an AI report, then filter, zoom, compare and export it.</div>',
    unsafe_allow_html=True,
)

with st.sidebar:
    st.subheader("Theme")
    palette_name = st.selectbox("Palette", list(PALETTES), key="palette")
    if _session() is not None:
        _session().set_palette(get_palette(palette_name))

    st.subheader("History")
    try:
        history = _api_request("GET", "/reports")
    except Exception as exc:
        history = {"reports": [], "storage_error": False}
        st.error(f"Could not load report history: {exc}")
    if history.get("storage_error"):
        st.warning("Report history is too large to save; older reports will not persist.")
    for item in history.get("reports", []):
        st.caption(f"{item['name']} · {item['date']} · {item['rows']} rows")
        open_col, delete_col = st.columns(2)
        if open_col.button("Open", key=f"open_{item['id']}"):
            try:
                _open_report(Report.model_validate(_api_request("GET", f"/reports/{item['id']}")))
                st.rerun()
            except Exception as exc:
                st.error(f"Could not open report: {exc}")
        if delete_col.button("Delete", key=f"delete_{item['id']}"):
            try:
                _api_request("DELETE", f"/reports/{item['id']}")
                if st.session_state.get("report") and st.session_state.report.id == item["id"]:
                    st.session_state.pop("report", None)
                    st.session_state.pop("dashboard", None)
                st.rerun()
            except Exception as exc:
                st.error(f"Could not delete report: {exc}")

st.markdown('<div class="section-card">', unsafe_allow_html=True)
st.markdown('<div class="section-header">1) Upload and analyze</div>', unsafe_allow_html=True)
uploaded_file = st.file_uploader("Dataset (.csv or .json)", type=["csv", "json"])
sampling_rate = st.slider("Sampling rate (%)", 1, 100, 100)
detail_level = st.selectbox("Detail level", ["brief", "standard", "deep"], index=1)
feature_columns = st.columns(4)
features = AnalysisFeatures(
    trend_prediction=feature_columns[0].checkbox("Trend prediction", value=True),
    anomaly_detection=feature_columns[1].checkbox("Anomaly detection", value=False),
    correlation_analysis=feature_columns[2].checkbox("Correlation analysis", value=True),
    strategic_forecasting=feature_columns[3].checkbox("Strategic forecasting", value=False),
)
if st.button("Analyze", disabled=uploaded_file is None):
    with st.spinner("Analyzing dataset..."):
        try:
            rows = sample_rows(_read_upload(uploaded_file), sampling_rate)
            config = AnalysisConfig(detail_level=detail_level, features=features)
            payload = {"file_name": uploaded_file.name, "rows": rows, "config": config.model_dump()}
            report = Report.model_validate(_api_request("POST", "/analyze", json=payload))
            _open_report(report)
            st.success(f"Report ready: {report.name}")
        except Exception as exc:
            st.error(f"Analysis failed: {exc}")
st.markdown("</div>", unsafe_allow_html=True)

session = _session()
if session is None:
    st.stop()

report = session.report
analysis = report.analysis

st.markdown('<div class="section-card">', unsafe_allow_html=True)
st.markdown(f'<div class="section-header">2) {report.name} <small>{report.date}</small></div>', unsafe_allow_html=True)
if analysis.statistics:
    metric_columns = st.columns(min(len(analysis.statistics), 4))
    for position, stat in enumerate(analysis.statistics):
        metric_columns[position % len(metric_columns)].metric(stat.label, stat.value)
st.write(analysis.summary)
for insight in analysis.insights:
    st.markdown(f"- {insight}")
strengths_col, risks_col = st.columns(2)
with strengths_col:
    st.markdown("**Strengths**")
    for item in analysis.performance_pulse.strengths:
        st.markdown(f"- {item}")
with risks_col:
    st.markdown("**Risks**")
    for item in analysis.performance_pulse.risks:
        st.markdown(f"- {item}")
st.markdown("</div>", unsafe_allow_html=True)

st.markdown('<div class="section-card">', unsafe_allow_html=True)
st.markdown('<div class="section-header">3) Filters</div>', unsafe_allow_html=True)
columns = column_names(report.data)
filter_cols = st.columns([2, 2, 2, 1])
filter_column = filter_cols[0].selectbox("Column", columns, key="filter_column")
filter_operator = filter_cols[1].selectbox("Operator", FILTER_OPERATORS, key="filter_operator")
filter_value = filter_cols[2].text_input("Value", key="filter_value")
if filter_cols[3].button("Add filter", disabled=not columns):
    session.add_rule(FilterRule(column=filter_column, operator=filter_operator, value=filter_value))
    st.rerun()
for rule in session.rules:
    rule_col, remove_col = st.columns([6, 1])
    rule_col.caption(f"{rule.column} {rule.operator} '{rule.value}'")
    if remove_col.button("Remove", key=f"remove_rule_{rule.id}"):
        session.remove_rule(rule.id)
        st.rerun()
if session.rules and st.button("Clear filters"):
    session.clear_rules()
    st.rerun()
st.caption(f"{len(session.filtered_rows())} of {len(report.data)} rows match.")
st.markdown("</div>", unsafe_allow_html=True)

st.markdown('<div class="section-card">', unsafe_allow_html=True)
st.markdown('<div class="section-header">4) Charts</div>', unsafe_allow_html=True)
coordinator = session.coordinator
if coordinator.phase is ComparisonPhase.IDLE:
    if len(session.charts) >= 2 and st.button("Compare charts"):
        coordinator.start_selecting()
        st.rerun()
elif coordinator.phase is ComparisonPhase.SELECTING:
    tray_col, synth_col, cancel_col = st.columns([3, 1, 1])
    tray_col.markdown(f'<div class="compare-tray">{len(coordinator.selection)} charts selected</div>', unsafe_allow_html=True)
    if synth_col.button("Synthesize"):
        try:
            coordinator.synthesize()
            st.rerun()
        except ComparisonError as exc:
            st.warning(str(exc))
    if cancel_col.button("Cancel"):
        coordinator.cancel()
        st.rerun()

if coordinator.is_synced:
    st.markdown("**Synchronized comparison**")
    views = session.comparison_views()
    _view_controls(f"compare_{report.id}", coordinator.source(), any(view.zoomable for _, view in views))
    reset_col, close_col = st.columns(2)
    if reset_col.button("Reset comparison"):
        coordinator.reset()
        st.rerun()
    if close_col.button("Close comparison"):
        coordinator.close()
        st.rerun()
    compare_columns = st.columns(min(len(views), 3))
    for position, (index, view) in enumerate(views):
        with compare_columns[position % len(compare_columns)]:
            _render_chart_card(f"compare_{report.id}_{index}", view, session.chart_rows(index), show_controls=False)

rendered_figures = []
for index, chart in enumerate(session.charts):
    with st.container(border=True):
        if coordinator.phase is ComparisonPhase.SELECTING:
            picked = st.checkbox("Select for comparison", value=coordinator.is_selected(index), key=f"pick_{report.id}_{index}")
            if picked != coordinator.is_selected(index):
                coordinator.toggle_chart(index)
                st.rerun()
        rendered = _render_chart_card(f"chart_{report.id}_{index}", session.chart_view(index), session.chart_rows(index))
        rendered_figures.append(rendered.figure)
st.markdown("</div>", unsafe_allow_html=True)

st.markdown('<div class="section-card">', unsafe_allow_html=True)
st.markdown('<div class="section-header">5) Data table</div>', unsafe_allow_html=True)
table_cols = st.columns([3, 2, 1, 1])
search = table_cols[0].text_input("Search", key="table_search")
sort_key = table_cols[1].selectbox("Sort by", [None, *columns], key="table_sort")
sort_direction = table_cols[2].radio("Order", ["asc", "desc"], key="table_direction", horizontal=True)
page = table_cols[3].number_input("Page", min_value=1, value=1, step=1, key="table_page")
view = table_view(session.table_rows(), search, sort_key, sort_direction, int(page))
st.dataframe(pd.DataFrame(view.rows, columns=view.columns or None), use_container_width=True)
st.caption(f"Showing {len(view.rows)} of {view.total} rows · page {view.page} of {view.page_count}")
st.markdown("</div>", unsafe_allow_html=True)

st.markdown('<div class="section-card">', unsafe_allow_html=True)
st.markdown('<div class="section-header">6) Clean and re-analyze</div>', unsafe_allow_html=True)
diagnostics = diagnose(report.data)
diag_cols = st.columns(4)
diag_cols[0].metric("Rows", diagnostics.rows)
diag_cols[1].metric("Missing cells", diagnostics.missing_cells)
diag_cols[2].metric("Duplicate rows", diagnostics.duplicate_rows)
diag_cols[3].metric("Padded text cells", diagnostics.padded_text_cells)
handle_missing = st.selectbox("Missing values", MISSING_POLICIES, key="clean_missing")
option_cols = st.columns(3)
remove_duplicates = option_cols[0].checkbox("Remove duplicates", key="clean_dedupe")
standardize = option_cols[1].checkbox("Trim text", key="clean_trim")
impute_text = option_cols[2].checkbox("Zero-fill text columns too", value=True, key="clean_impute_text")
if st.button("Clean and re-analyze"):
    options = DataCleaningOptions(
        handle_missing=handle_missing,
        remove_duplicates=remove_duplicates,
        standardize_text=standardize,
        impute_text_with_zero=impute_text,
    )
    payload = {"file_name": f"{report.name}.csv", "rows": report.data, "options": options.model_dump()}
    with st.spinner("Queueing re-analysis..."):
        try:
            queued = _api_request("POST", "/clean", json=payload)
            st.session_state.clean_job_id = queued["job_id"]
            st.success(f"Cleaned {queued['rows_before']} -> {queued['rows_after']} rows; job {queued['job_id']} queued.")
        except Exception as exc:
            st.error(f"Cleaning failed: {exc}")

clean_job_id = st.session_state.get("clean_job_id")
auto_refresh = st.toggle("Auto-refresh job status (every 5s)", value=False, key="auto_refresh_job")
if clean_job_id and (st.button("Check re-analysis status") or auto_refresh):
    try:
        status = _api_request("GET", f"/jobs/{clean_job_id}")
        st.caption(f"Job status: {status.get('status')} | Updated: {status.get('updated_at')}")
        st.progress(int(status.get("progress") or 0))
        if status.get("status") == "succeeded":
            _open_report(Report.model_validate(_api_request("GET", f"/reports/{status['result']['report_id']}")))
            st.session_state.pop("clean_job_id", None)
            st.rerun()
        elif status.get("status") == "failed":
            st.error(f"Re-analysis failed: {(status.get('error') or {}).get('message')}")
            st.session_state.pop("clean_job_id", None)
        elif auto_refresh:
            time.sleep(5)
            st.rerun()
    except Exception as exc:
        st.error(f"Job status failed: {exc}")
st.markdown("</div>", unsafe_allow_html=True)

st.markdown('<div class="section-card">', unsafe_allow_html=True)
st.markdown('<div class="section-header">7) Export</div>', unsafe_allow_html=True)
export_cols = st.columns(4)
export_cols[0].download_button(
    "Data (.csv)", rows_to_csv(report.data), file_name=export_filename(report.name, "csv"), mime="text/csv"
)
export_cols[1].download_button(
    "Report (.md)", report_to_markdown(report), file_name=export_filename(report.name, "markdown"), mime="text/markdown"
)
if export_cols[2].button("Report (.pdf)"):
    try:
        response = requests.get(f"{API_BASE_URL}/reports/{report.id}/export/pdf", timeout=REQUEST_TIMEOUT)
        if response.status_code >= 400:
            raise RuntimeError(response.text)
        export_cols[2].download_button(
            "Save PDF", response.content, file_name=export_filename(report.name, "pdf"), mime="application/pdf"
        )
    except Exception as exc:
        st.error(f"PDF export failed: {exc}")
if export_cols[3].button("Dashboard (.png / .pdf)", disabled=not rendered_figures):
    try:
        snapshot = session.dashboard_snapshot(rendered_figures)
        if snapshot is None:
            st.warning("A dashboard capture is already running.")
        else:
            export_cols[3].download_button(
                "Save PNG", snapshot, file_name=export_filename(report.name, "png", "dashboard"), mime="image/png"
            )
            export_cols[3].download_button(
                "Save PDF",
                dashboard_pdf(snapshot, report.name),
                file_name=export_filename(report.name, "pdf", "dashboard"),
                mime="application/pdf",
                key="save_dashboard_pdf",
            )
    except Exception as exc:
        logger.exception("Dashboard export failed for report %s", report.id)
        st.error(f"Dashboard export failed: {exc}")
st.markdown("</div>", unsafe_allow_html=True)
