"""Re-analysis job records, kept in one JSON file next to the report store."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from insight_stream import settings

JOB_STATUSES = ("queued", "running", "succeeded", "failed")
FINISHED_STATUSES = frozenset({"succeeded", "failed"})


def _timestamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _read(path: Path) -> dict[str, dict[str, Any]]:
    if not path.exists():
        return {}
    return json.loads(path.read_text(encoding="utf-8"))


def _write(path: Path, jobs: dict[str, dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(jobs, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp_path.replace(path)


def _error_record(error: str | dict[str, Any]) -> dict[str, str]:
    if isinstance(error, str):
        error = {"message": error}
    return {
        "code": str(error.get("code", "job_error")),
        "message": str(error.get("message", "Unknown job failure")),
    }


def create_job(job_type: str, report_name: str, payload: dict[str, Any], path: Path | None = None) -> dict[str, Any]:
    path = path or settings.JOBS_PATH
    jobs = _read(path)
    created = _timestamp()
    job = {
        "job_id": str(uuid.uuid4()),
        "type": job_type,
        "report_name": report_name,
        "status": "queued",
        "progress": 0,
        "payload": payload,
        "result": None,
        "error": None,
        "created_at": created,
        "updated_at": created,
        "started_at": None,
        "finished_at": None,
    }
    jobs[job["job_id"]] = job
    _write(path, jobs)
    return job


def update_job(
    job_id: str,
    status: str,
    result: dict[str, Any] | None = None,
    error: str | dict[str, Any] | None = None,
    progress: float | int | None = None,
    path: Path | None = None,
) -> dict[str, Any]:
    """Move a job to ``status``. A succeeded or failed job is final and cannot be updated again."""
    if status not in JOB_STATUSES:
        raise ValueError(f"Unknown job status: {status}")
    path = path or settings.JOBS_PATH
    jobs = _read(path)
    job = jobs.get(job_id)
    if job is None:
        raise KeyError(f"Job not found: {job_id}")
    if job["status"] in FINISHED_STATUSES:
        raise ValueError(f"Job {job_id} already {job['status']}")

    now = _timestamp()
    job["status"] = status
    job["updated_at"] = now
    if status == "running" and job.get("started_at") is None:
        job["started_at"] = now
    if status in FINISHED_STATUSES:
        job["finished_at"] = now
    if status == "succeeded":
        progress = 100
    if progress is not None:
        job["progress"] = int(min(100.0, max(0.0, float(progress))))
    if result is not None:
        job["result"] = result
    if error is not None:
        job["error"] = _error_record(error)
    _write(path, jobs)
    return job


def get_job(job_id: str, path: Path | None = None) -> dict[str, Any] | None:
    return _read(path or settings.JOBS_PATH).get(job_id)


def list_jobs(report_name: str | None = None, path: Path | None = None) -> list[dict[str, Any]]:
    """Newest first, optionally only the jobs of one report."""
    jobs = _read(path or settings.JOBS_PATH).values()
    selected = [job for job in jobs if not report_name or job.get("report_name") == report_name]
    return sorted(selected, key=lambda job: job.get("created_at", ""), reverse=True)
