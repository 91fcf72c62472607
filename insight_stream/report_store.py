from __future__ import annotations

import json
import os
import tempfile
import threading
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from insight_stream import settings
from insight_stream.logger import get_logger
from insight_stream.models import Report

logger = get_logger(__name__)


class StorageQuotaExceeded(RuntimeError):
    pass


class ReportStore:
    """Newest-first report history persisted as one JSON list.

    Persisted copies keep only the first ``preview_rows`` data rows. When the
    serialized list exceeds ``max_bytes`` the oldest reports are dropped until
    it fits. If even one report does not fit, or the file cannot be written,
    ``storage_error`` is set and the in-memory list keeps serving the full
    history. Every write goes through its own temporary file.
    """

    def __init__(
        self,
        path: Path = settings.REPORTS_PATH,
        max_bytes: int = settings.REPORT_STORE_MAX_BYTES,
        preview_rows: int = settings.PREVIEW_ROWS,
    ) -> None:
        self.path = Path(path)
        self.max_bytes = max_bytes
        self.preview_rows = preview_rows
        self.storage_error = False
        # add, delete and save may run concurrently from the API threadpool.
        self._lock = threading.RLock()
        self._reports: list[Report] = self._load()

    def _load(self) -> list[Report]:
        if not self.path.exists():
            return []
        try:
            items = json.loads(self.path.read_text(encoding="utf-8"))
            return [Report.model_validate(item) for item in items]
        except (json.JSONDecodeError, ValidationError, TypeError) as exc:
            logger.warning("Discarding unreadable report store %s: %s", self.path, exc)
            self.path.unlink(missing_ok=True)
            return []

    def _compact(self, report: Report) -> dict[str, Any]:
        payload = report.model_dump(mode="json")
        payload["data"] = payload["data"][: self.preview_rows]
        for chart in payload["analysis"]["suggested_charts"]:
            chart["data"] = chart["data"][: self.preview_rows]
        return payload

    def _write(self, payload: list[dict[str, Any]]) -> None:
        encoded = json.dumps(payload, ensure_ascii=False)
        if len(encoded.encode("utf-8")) > self.max_bytes:
            raise StorageQuotaExceeded(f"{len(payload)} reports exceed {self.max_bytes} bytes")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.path.parent, prefix=self.path.name, suffix=".tmp", delete=False
        ) as handle:
            handle.write(encoded)
        try:
            Path(handle.name).replace(self.path)
        except OSError:
            os.unlink(handle.name)
            raise

    def save(self) -> bool:
        with self._lock:
            payload = [self._compact(report) for report in self._reports]
            while True:
                try:
                    self._write(payload)
                    self.storage_error = False
                    return True
                except StorageQuotaExceeded:
                    if len(payload) <= 1:
                        logger.error("Report store quota exceeded by a single report; history not saved")
                        self.storage_error = True
                        return False
                    dropped = payload.pop()
                    logger.warning("Report store quota exceeded; dropped oldest report %s", dropped["id"])
                except OSError:
                    logger.exception("Could not write report store %s", self.path)
                    self.storage_error = True
                    return False

    def reports(self) -> list[Report]:
        return list(self._reports)

    def get(self, report_id: str) -> Report | None:
        return next((report for report in self._reports if report.id == report_id), None)

    def add(self, report: Report) -> Report:
        with self._lock:
            self._reports = [report, *(item for item in self._reports if item.name != report.name)]
            self.save()
        return report

    def delete(self, report_id: str) -> bool:
        with self._lock:
            remaining = [report for report in self._reports if report.id != report_id]
            if len(remaining) == len(self._reports):
                return False
            self._reports = remaining
            self.save()
        return True


@lru_cache(maxsize=1)
def get_report_store() -> ReportStore:
    return ReportStore()
