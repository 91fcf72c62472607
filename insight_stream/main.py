from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from insight_stream import settings
from insight_stream.analysis import analyze_dataset, build_report
from insight_stream.cache import CacheManager
from insight_stream.cleaning import CleaningPipeline, diagnose
from insight_stream.exporters import EXPORT_MEDIA_TYPES, export_filename, report_pdf, report_to_markdown, rows_to_csv
from insight_stream.jobs import create_job, get_job, list_jobs
from insight_stream.llm_client import LLMClient, create_llm_client_from_env
from insight_stream.llm_gate import SchemaValidationError
from insight_stream.logger import get_logger, setup_logging
from insight_stream.models import AnalysisConfig, DataCleaningOptions, Report
from insight_stream.report_store import ReportStore, get_report_store

setup_logging(settings.LOG_LEVEL)
logger = get_logger(__name__)

app = FastAPI(title="InsightStream Backend", version="0.1.0")
_llm_client: LLMClient | None = None
_cache: CacheManager | None = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten this in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AnalyzeRequest(BaseModel):
    file_name: str = Field(min_length=1)
    rows: list[dict[str, Any]]
    config: AnalysisConfig = Field(default_factory=AnalysisConfig)


class CleanRequest(BaseModel):
    file_name: str = Field(min_length=1)
    rows: list[dict[str, Any]]
    options: DataCleaningOptions = Field(default_factory=DataCleaningOptions)
    config: AnalysisConfig = Field(default_factory=AnalysisConfig)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _get_llm_client() -> LLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = create_llm_client_from_env()
    return _llm_client


def _get_cache() -> CacheManager:
    global _cache
    if _cache is None:
        _cache = CacheManager()
    return _cache


def _store() -> ReportStore:
    return get_report_store()


def _require_report(report_id: str) -> Report:
    report = _store().get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found.")
    return report


def _dispatch_reanalysis(job_id: str, file_name: str, rows: list[dict[str, Any]], config: AnalysisConfig) -> str:
    from insight_stream.tasks import reanalyze_task

    try:
        reanalyze_task.delay(job_id, file_name, rows, config.model_dump())
        return "queued"
    except Exception as exc:
        logger.warning("Queue unavailable for job %s, running inline: %s", job_id, exc)
        try:
            reanalyze_task(job_id, file_name, rows, config.model_dump())
        except Exception as inner_exc:
            raise HTTPException(
                status_code=503, detail=f"Failed to run re-analysis job: {exc}; {inner_exc}"
            ) from inner_exc
        return "succeeded"


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok", "timestamp": _utc_now_iso()}


@app.post("/analyze", response_model=Report)
def analyze(payload: AnalyzeRequest) -> Report:
    if not payload.rows:
        raise HTTPException(status_code=400, detail="Dataset has no rows.")
    try:
        analysis = analyze_dataset(
            payload.rows, payload.file_name, payload.config, llm=_get_llm_client(), cache=_get_cache()
        )
    except SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid analysis from LLM: {exc}") from exc
    except RuntimeError as exc:
        # AnalysisFailedError, LLMCircuitOpenError or a missing provider configuration.
        raise HTTPException(status_code=503, detail=f"Analysis service unavailable: {exc}") from exc

    report = build_report(payload.file_name, payload.rows, analysis)
    _store().add(report)
    return report


@app.get("/reports")
def list_reports() -> dict[str, Any]:
    store = _store()
    return {"reports": [report.summary() for report in store.reports()], "storage_error": store.storage_error}


@app.get("/reports/{report_id}", response_model=Report)
def get_report(report_id: str) -> Report:
    return _require_report(report_id)


@app.delete("/reports/{report_id}")
def delete_report(report_id: str) -> dict[str, Any]:
    if not _store().delete(report_id):
        raise HTTPException(status_code=404, detail="Report not found.")
    return {"deleted": report_id, "storage_error": _store().storage_error}


@app.post("/clean", status_code=202)
def clean_and_reanalyze(payload: CleanRequest) -> dict[str, Any]:
    diagnostics = diagnose(payload.rows).to_dict()
    jobs: list[dict[str, Any]] = []

    def _queue(rows: list[dict[str, Any]], options: DataCleaningOptions) -> str:
        if not rows:
            raise HTTPException(status_code=409, detail="Cleaning removed every row; nothing to re-analyze.")
        job = create_job(
            job_type="reanalyze",
            report_name=payload.file_name,
            payload={"rows": len(rows), "options": options.model_dump()},
        )
        jobs.append(job)
        return _dispatch_reanalysis(job["job_id"], payload.file_name, rows, payload.config)

    result = CleaningPipeline(on_cleaned=_queue).run(payload.rows, payload.options)
    return {
        "job_id": jobs[0]["job_id"],
        "status": result.dispatched,
        "rows_before": result.rows_before,
        "rows_after": result.rows_after,
        "diagnostics": diagnostics,
    }


@app.get("/jobs")
def list_all_jobs(report_name: str | None = Query(default=None)) -> dict[str, Any]:
    return {"jobs": list_jobs(report_name=report_name)}


@app.get("/jobs/{job_id}")
def get_job_status(job_id: str) -> dict[str, Any]:
    job = get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found.")
    return job


@app.get("/reports/{report_id}/export/{format}")
def export_report(report_id: str, format: str) -> Response:
    report = _require_report(report_id)
    format = format.lower()
    if format == "csv":
        content: str | bytes = rows_to_csv(report.data)
    elif format in {"markdown", "md"}:
        format = "markdown"
        content = report_to_markdown(report)
    elif format == "pdf":
        try:
            content = report_pdf(report)
        except Exception as exc:
            logger.exception("PDF export failed for report %s", report_id)
            raise HTTPException(status_code=503, detail=f"PDF renderer unavailable: {exc}") from exc
    else:
        raise HTTPException(status_code=400, detail="Unsupported export format. Use csv, markdown, or pdf.")

    filename = export_filename(report.name, format)
    return Response(
        content=content,
        media_type=EXPORT_MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

