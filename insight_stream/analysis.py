"""
Boundary to the report-generating LLM.

``analyze_dataset`` turns rows into an ``AnalysisResult``: it samples the
rows into a prompt, validates the JSON answer against
``ANALYSIS_RESULT_SCHEMA``, drops suggested charts that reference unknown
columns, and binds every surviving chart to the full dataset. Failures are
terminal for the request; nothing here retries a bad answer.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Sequence

from insight_stream import settings
from insight_stream.cache import CacheManager, analysis_cache_key
from insight_stream.llm_client import LLMCircuitOpenError, LLMClient, create_llm_client_from_env
from insight_stream.llm_gate import SchemaValidationError, split_valid_charts
from insight_stream.llm_schemas import ANALYSIS_RESULT_SCHEMA
from insight_stream.logger import get_logger
from insight_stream.models import AnalysisConfig, AnalysisResult, Report
from insight_stream.rows import DataRow, column_names

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a senior data analyst. You read a tabular dataset sample and write a concise, "
    "factual report for business users. Only reference columns that exist in the sample."
)

_DETAIL_GUIDANCE = {
    "brief": "Keep the summary to two sentences and return at most 3 insights and 2 charts.",
    "standard": "Write a one-paragraph summary with 4 to 6 insights and 3 to 4 charts.",
    "deep": "Write a thorough summary with 6 to 10 insights, 4 to 6 charts and detailed statistics.",
}

_FEATURE_GUIDANCE = {
    "trend_prediction": "Describe the direction of the main trends and where they are likely heading.",
    "anomaly_detection": "Call out outliers and unusual values explicitly.",
    "correlation_analysis": "Point out relationships between numeric columns.",
    "strategic_forecasting": "Close with forward-looking recommendations.",
}


class AnalysisFailedError(RuntimeError):
    pass


def build_analysis_prompt(rows: Sequence[DataRow], file_name: str, config: AnalysisConfig) -> str:
    sample = list(rows[: settings.ANALYSIS_SAMPLE_ROWS])
    enabled = [text for name, text in _FEATURE_GUIDANCE.items() if getattr(config.features, name)]
    lines = [
        f'Analyze the dataset from a file named "{file_name}".',
        f"It has {len(rows)} rows and these columns: {', '.join(column_names(rows))}.",
        _DETAIL_GUIDANCE[config.detail_level],
        *enabled,
        "Return: a summary, key insights, top-level statistics (counts, averages of numeric columns), "
        "a performance pulse with strengths and risks, and suggested charts "
        "(bar, line, area, pie, scatter or radar) with x_axis/y_axis mapped to real columns. "
        "Use category to split a chart by a grouping column and additional_keys for extra series.",
        f"Dataset sample ({len(sample)} rows): {json.dumps(sample, ensure_ascii=False, default=str)}",
    ]
    return "\n".join(lines)


def _bind_charts(payload: dict[str, Any], rows: Sequence[DataRow]) -> dict[str, Any]:
    charts, rejected = split_valid_charts(payload.get("suggested_charts", []), column_names(rows))
    for chart, reason in rejected:
        logger.warning("Dropping suggested chart: %s", reason)
    return {**payload, "suggested_charts": [{**chart, "data": list(rows)} for chart in charts]}


def analyze_dataset(
    rows: Sequence[DataRow],
    file_name: str,
    config: AnalysisConfig | None = None,
    llm: LLMClient | None = None,
    cache: CacheManager | None = None,
) -> AnalysisResult:
    config = config or AnalysisConfig()
    if not rows:
        raise AnalysisFailedError("Cannot analyze an empty dataset.")

    key = analysis_cache_key(list(rows), file_name, config.model_dump())
    if cache is not None:
        cached = cache.get(key)
        if cached:
            logger.info("Analysis cache hit for %s", file_name)
            return AnalysisResult.model_validate(_bind_charts(cached, rows))

    try:
        client = llm or create_llm_client_from_env()
        payload = client.generate_json(
            schema=ANALYSIS_RESULT_SCHEMA,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_analysis_prompt(rows, file_name, config),
        )
    except (SchemaValidationError, LLMCircuitOpenError):
        raise
    except Exception as exc:
        raise AnalysisFailedError(f"Analysis service failed: {exc}") from exc

    if cache is not None:
        cache.set(key, payload)
    result = AnalysisResult.model_validate(_bind_charts(payload, rows))
    logger.info("Analyzed %s: %s insights, %s charts", file_name, len(result.insights), len(result.suggested_charts))
    return result


def report_name_from_file(file_name: str) -> str:
    stem, dot, extension = file_name.rpartition(".")
    if not dot or not stem or "/" in extension:
        return file_name
    return stem


def build_report(file_name: str, rows: Sequence[DataRow], analysis: AnalysisResult, now: datetime | None = None) -> Report:
    now = now or datetime.now()
    return Report(
        id=str(int(now.timestamp() * 1000)),
        name=report_name_from_file(file_name),
        date=now.date().isoformat(),
        analysis=analysis,
        data=list(rows),
    )
