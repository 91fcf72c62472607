import asyncio
import os
import tempfile

import pytest
import uvloop


# Keep Celery queue calls local for tests (no Redis dependency).
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
# Reports, jobs and cache files land in a throwaway directory.
os.environ.setdefault("INSIGHT_DATA_DIR", tempfile.mkdtemp(prefix="insight_stream_"))

# This environment blocks writes to the default asyncio selector wakeup socket.
# uvloop uses a different mechanism that keeps TestClient responsive.
asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())


SALES_ROWS = [
    {"month": "Jan", "region": "East", "sales": 10, "profit": 2},
    {"month": "Feb", "region": "West", "sales": 20, "profit": 5},
    {"month": "Mar", "region": "East", "sales": 30, "profit": None},
    {"month": "Apr", "region": "West", "sales": 25, "profit": 7},
]


def analysis_payload() -> dict:
    return {
        "summary": "Monthly sales by region.",
        "insights": ["Sales peak in March.", "West is more profitable."],
        "statistics": [{"label": "Total sales", "value": 85}, {"label": "Regions", "value": "2"}],
        "performance_pulse": {"strengths": ["Steady growth"], "risks": ["Missing profit data"]},
        "suggested_charts": [
            {"type": "bar", "title": "Sales by month", "x_axis": "month", "y_axis": "sales"},
            {"type": "line", "title": "Sales and profit", "x_axis": "month", "y_axis": "sales", "additional_keys": ["profit"]},
            {"type": "pie", "title": "Sales share", "x_axis": "region", "y_axis": "sales"},
        ],
    }


class FakeLLM:
    def __init__(self, payload: dict | None = None, error: Exception | None = None) -> None:
        self.payload = payload if payload is not None else analysis_payload()
        self.error = error
        self.calls = 0

    def generate_json(self, schema, system_prompt, user_prompt, timeout=60):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.fixture
def sales_rows() -> list[dict]:
    return [dict(row) for row in SALES_ROWS]
