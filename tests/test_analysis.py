from datetime import datetime
from pathlib import Path

import pytest

from insight_stream.analysis import (
    AnalysisFailedError,
    analyze_dataset,
    build_analysis_prompt,
    build_report,
    report_name_from_file,
)
from insight_stream.cache import CacheManager
from insight_stream.llm_gate import SchemaValidationError
from insight_stream.models import AnalysisConfig, AnalysisFeatures

from conftest import FakeLLM, analysis_payload


def test_charts_are_bound_to_the_full_dataset(sales_rows) -> None:
    result = analyze_dataset(sales_rows, "sales.csv", llm=FakeLLM())
    assert len(result.suggested_charts) == 3
    assert all(chart.data == sales_rows for chart in result.suggested_charts)
    assert result.statistics[0].value == 85


def test_charts_with_unknown_columns_are_dropped(sales_rows) -> None:
    payload = analysis_payload()
    payload["suggested_charts"].append({"type": "bar", "title": "Ghost", "x_axis": "week", "y_axis": "sales"})
    result = analyze_dataset(sales_rows, "sales.csv", llm=FakeLLM(payload))
    assert "Ghost" not in [chart.title for chart in result.suggested_charts]


def test_prompt_samples_rows_and_reflects_config() -> None:
    rows = [{"n": index} for index in range(200)]
    config = AnalysisConfig(detail_level="brief", features=AnalysisFeatures(anomaly_detection=True))
    prompt = build_analysis_prompt(rows, "big.csv", config)
    assert "200 rows" in prompt
    assert "(50 rows)" in prompt
    assert '{"n": 49}' in prompt and '{"n": 50}' not in prompt
    assert "outliers" in prompt
    assert "two sentences" in prompt


def test_invalid_answers_are_not_retried(sales_rows) -> None:
    llm = FakeLLM(error=SchemaValidationError("missing summary"))
    with pytest.raises(SchemaValidationError):
        analyze_dataset(sales_rows, "sales.csv", llm=llm)
    assert llm.calls == 1


def test_service_errors_become_analysis_failures(sales_rows) -> None:
    with pytest.raises(AnalysisFailedError):
        analyze_dataset(sales_rows, "sales.csv", llm=FakeLLM(error=ConnectionError("down")))
    with pytest.raises(AnalysisFailedError):
        analyze_dataset([], "empty.csv", llm=FakeLLM())


def test_cache_reuses_identical_requests(sales_rows, tmp_path: Path) -> None:
    cache = CacheManager(cache_dir=tmp_path)
    llm = FakeLLM()
    first = analyze_dataset(sales_rows, "sales.csv", llm=llm, cache=cache)
    second = analyze_dataset(sales_rows, "sales.csv", llm=llm, cache=cache)
    assert llm.calls == 1
    assert second == first


def test_report_identity(sales_rows) -> None:
    analysis = analyze_dataset(sales_rows, "sales.2024.csv", llm=FakeLLM())
    now = datetime(2026, 3, 1, 12, 0, 0)
    report = build_report("sales.2024.csv", sales_rows, analysis, now=now)
    assert report.id == str(int(now.timestamp() * 1000))
    assert report.name == "sales.2024"
    assert report.date == "2026-03-01"
    assert report_name_from_file("notes") == "notes"
