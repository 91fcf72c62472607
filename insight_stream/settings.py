from __future__ import annotations

import os
from pathlib import Path

DATA_DIR = Path(os.getenv("INSIGHT_DATA_DIR", "data_store"))
REPORTS_PATH = DATA_DIR / "insight_stream_reports.json"
JOBS_PATH = DATA_DIR / "jobs.json"
CACHE_DIR = DATA_DIR / "cache"

LOG_LEVEL = os.getenv("INSIGHT_LOG_LEVEL", "INFO")

# Size budget for the serialized report list.
REPORT_STORE_MAX_BYTES = int(os.getenv("INSIGHT_REPORT_STORE_MAX_BYTES", str(5 * 1024 * 1024)))
PREVIEW_ROWS = int(os.getenv("INSIGHT_PREVIEW_ROWS", "100"))
ANALYSIS_SAMPLE_ROWS = int(os.getenv("INSIGHT_ANALYSIS_SAMPLE_ROWS", "50"))

LLM_TIMEOUT_SECONDS = int(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
CACHE_VERSION = "v1"
