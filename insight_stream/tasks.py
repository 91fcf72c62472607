from __future__ import annotations

from typing import Any

from insight_stream.analysis import analyze_dataset, build_report
from insight_stream.cache import CacheManager
from insight_stream.celery_app import celery_app
from insight_stream.jobs import update_job
from insight_stream.logger import get_logger
from insight_stream.models import AnalysisConfig
from insight_stream.report_store import get_report_store

logger = get_logger(__name__)


# A failed analysis is terminal for the request, so no retries.
@celery_app.task(name="reanalyze_task", bind=True, max_retries=0, soft_time_limit=300, time_limit=360)
def reanalyze_task(self, job_id: str, file_name: str, rows: list[dict[str, Any]], config: dict[str, Any] | None = None) -> dict:
    try:
        update_job(job_id, status="running", progress=10)
        analysis = analyze_dataset(rows, file_name, AnalysisConfig.model_validate(config or {}), cache=CacheManager())
        update_job(job_id, status="running", progress=80)

        report = build_report(file_name, rows, analysis)
        store = get_report_store()
        store.add(report)

        result = {"report_id": report.id, "report_name": report.name, "storage_error": store.storage_error}
        update_job(job_id, status="succeeded", result=result, progress=100)
        logger.info("Re-analysis job %s stored report %s", job_id, report.id)
        return result
    except Exception as exc:
        logger.exception("Re-analysis job %s failed", job_id)
        update_job(job_id, status="failed", error={"code": type(exc).__name__, "message": str(exc)}, progress=100)
        raise
