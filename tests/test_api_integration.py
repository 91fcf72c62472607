import csv
import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import insight_stream.exporters as exporters
import insight_stream.main as main
import insight_stream.tasks as tasks
from insight_stream.cache import CacheManager
from insight_stream.llm_gate import SchemaValidationError
from insight_stream.report_store import ReportStore

from conftest import FakeLLM


client = TestClient(main.app)


@pytest.fixture
def store(monkeypatch, tmp_path: Path) -> ReportStore:
    report_store = ReportStore(tmp_path / "reports.json")
    monkeypatch.setattr(main, "_store", lambda: report_store)
    monkeypatch.setattr(tasks, "get_report_store", lambda: report_store)
    cache = CacheManager(cache_dir=tmp_path / "cache")
    monkeypatch.setattr(main, "_get_cache", lambda: cache)
    return report_store


@pytest.fixture
def llm(monkeypatch) -> FakeLLM:
    fake = FakeLLM()
    monkeypatch.setattr(main, "_llm_client", fake)
    return fake


def _analyze(rows: list[dict], file_name: str = "sales.csv") -> dict:
    resp = client.post("/analyze", json={"file_name": file_name, "rows": rows})
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_health() -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_analyze_persists_and_lists_reports(store, llm, sales_rows) -> None:
    report = _analyze(sales_rows)
    assert report["name"] == "sales"
    assert len(report["analysis"]["suggested_charts"]) == 3

    listing = client.get("/reports").json()
    assert listing["storage_error"] is False
    assert [item["id"] for item in listing["reports"]] == [report["id"]]

    fetched = client.get(f"/reports/{report['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"] == sales_rows


def test_invalid_llm_output_maps_to_422(store, monkeypatch, sales_rows) -> None:
    monkeypatch.setattr(main, "_llm_client", FakeLLM(error=SchemaValidationError("bad")))
    resp = client.post("/analyze", json={"file_name": "sales.csv", "rows": sales_rows})
    assert resp.status_code == 422


def test_llm_failure_maps_to_503(store, monkeypatch, sales_rows) -> None:
    monkeypatch.setattr(main, "_llm_client", FakeLLM(error=TimeoutError("slow")))
    resp = client.post("/analyze", json={"file_name": "sales.csv", "rows": sales_rows})
    assert resp.status_code == 503
    assert store.reports() == []


def test_unknown_reports_and_jobs_are_404(store) -> None:
    assert client.get("/reports/nope").status_code == 404
    assert client.delete("/reports/nope").status_code == 404
    assert client.get("/jobs/nope").status_code == 404


def test_delete_report(store, llm, sales_rows) -> None:
    report = _analyze(sales_rows)
    assert client.delete(f"/reports/{report['id']}").status_code == 200
    assert client.get("/reports").json()["reports"] == []


def test_exports(store, llm, monkeypatch, sales_rows) -> None:
    report = _analyze(sales_rows, "Q1 Sales.csv")

    csv_resp = client.get(f"/reports/{report['id']}/export/csv")
    assert csv_resp.status_code == 200
    assert csv_resp.headers["content-type"].startswith("text/csv")
    assert 'filename="q1-sales.csv"' in csv_resp.headers["content-disposition"]
    parsed = list(csv.reader(io.StringIO(csv_resp.text, newline="")))
    assert parsed[0] == ["month", "region", "sales", "profit"]
    assert parsed[3] == ["Mar", "East", "30", ""]

    md_resp = client.get(f"/reports/{report['id']}/export/markdown")
    assert md_resp.status_code == 200
    assert md_resp.text.startswith("# Q1 Sales")

    monkeypatch.setattr(exporters, "_html_to_pdf", lambda document: b"%PDF-fake")
    pdf_resp = client.get(f"/reports/{report['id']}/export/pdf")
    assert pdf_resp.status_code == 200
    assert pdf_resp.content == b"%PDF-fake"

    assert client.get(f"/reports/{report['id']}/export/xlsx").status_code == 400


def test_clean_queues_reanalysis_and_job_completes(store, llm, monkeypatch, sales_rows) -> None:
    monkeypatch.setattr(tasks, "analyze_dataset", lambda rows, file_name, config, cache=None: main.analyze_dataset(rows, file_name, config, llm=llm))
    dispatched: list[tuple] = []
    monkeypatch.setattr(tasks.reanalyze_task, "delay", lambda *args: dispatched.append(args))
    rows = sales_rows + [dict(sales_rows[0])]
    payload = {"file_name": "sales.csv", "rows": rows, "options": {"handle_missing": "drop", "remove_duplicates": True}}
    resp = client.post("/clean", json=payload)
    assert resp.status_code == 202, resp.text
    body = resp.json()
    assert body["rows_before"] == 5
    assert body["rows_after"] == 3
    assert body["diagnostics"]["duplicate_rows"] == 1
    assert body["status"] == "queued"

    job_id = body["job_id"]
    assert client.get(f"/jobs/{job_id}").json()["status"] == "queued"

    cleaned = [row for row in sales_rows if row["profit"] is not None]
    assert len(dispatched) == 1
    assert dispatched[0][0] == job_id
    assert dispatched[0][2] == cleaned

    result = tasks.reanalyze_task(*dispatched[0])
    job = client.get(f"/jobs/{job_id}").json()
    assert job["status"] == "succeeded"
    assert job["result"]["report_id"] == result["report_id"]
    assert store.get(result["report_id"]).data == cleaned


def test_clean_that_removes_every_row_is_409(store, llm) -> None:
    payload = {"file_name": "sales.csv", "rows": [{"a": None}], "options": {"handle_missing": "drop"}}
    assert client.post("/clean", json=payload).status_code == 409


def test_failed_reanalysis_marks_job_failed(store, monkeypatch) -> None:
    def broken(*args, **kwargs):
        raise RuntimeError("analysis down")

    monkeypatch.setattr(tasks, "analyze_dataset", broken)
    job = main.create_job(job_type="reanalyze", report_name="sales.csv", payload={})
    with pytest.raises(RuntimeError):
        tasks.reanalyze_task(job["job_id"], "sales.csv", [{"a": 1}], {})
    failed = client.get(f"/jobs/{job['job_id']}").json()
    assert failed["status"] == "failed"
    assert failed["error"]["message"] == "analysis down"
