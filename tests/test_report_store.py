import threading
from pathlib import Path

from insight_stream.models import AnalysisResult, Report
from insight_stream.report_store import ReportStore


def _report(report_id: str, name: str, rows: int = 3) -> Report:
    return Report(
        id=report_id,
        name=name,
        date="2026-01-05",
        analysis=AnalysisResult(summary=f"About {name}"),
        data=[{"i": index, "text": "x" * 50} for index in range(rows)],
    )


def test_newest_first_and_dedupe_by_name(tmp_path: Path) -> None:
    store = ReportStore(tmp_path / "reports.json")
    store.add(_report("1", "sales"))
    store.add(_report("2", "costs"))
    store.add(_report("3", "sales"))
    assert [report.id for report in store.reports()] == ["3", "2"]

    reloaded = ReportStore(tmp_path / "reports.json")
    assert [report.id for report in reloaded.reports()] == ["3", "2"]


def test_persisted_copies_keep_a_row_preview(tmp_path: Path) -> None:
    store = ReportStore(tmp_path / "reports.json", preview_rows=5)
    store.add(_report("1", "sales", rows=40))
    assert len(store.get("1").data) == 40
    assert len(ReportStore(tmp_path / "reports.json").get("1").data) == 5


def test_quota_drops_oldest_reports_first(tmp_path: Path) -> None:
    store = ReportStore(tmp_path / "reports.json", max_bytes=2500, preview_rows=10)
    for index in range(5):
        store.add(_report(str(index), f"report-{index}", rows=10))
    assert not store.storage_error
    persisted = [report.id for report in ReportStore(tmp_path / "reports.json").reports()]
    assert persisted == ["4", "3"]
    assert len(store.reports()) == 5


def test_single_oversized_report_sets_storage_error(tmp_path: Path) -> None:
    store = ReportStore(tmp_path / "reports.json", max_bytes=200)
    store.add(_report("1", "huge", rows=50))
    assert store.storage_error
    assert store.get("1") is not None
    assert not (tmp_path / "reports.json").exists()


def test_delete_and_unknown_ids(tmp_path: Path) -> None:
    store = ReportStore(tmp_path / "reports.json")
    store.add(_report("1", "sales"))
    assert store.delete("1")
    assert not store.delete("1")
    assert store.get("1") is None


def test_corrupt_store_is_discarded(tmp_path: Path) -> None:
    path = tmp_path / "reports.json"
    path.write_text("{not json", encoding="utf-8")
    store = ReportStore(path)
    assert store.reports() == []
    assert not path.exists()


def test_concurrent_adds_never_raise(tmp_path: Path) -> None:
    store = ReportStore(tmp_path / "reports.json")
    errors: list[Exception] = []

    def add_many(worker: int) -> None:
        try:
            for index in range(40):
                store.add(_report(f"{worker}-{index}", f"report-{worker}-{index}", rows=1))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=add_many, args=(worker,)) for worker in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(store.reports()) == 240
    assert store.storage_error is False
    assert len(ReportStore(tmp_path / "reports.json").reports()) == 240
    assert list(tmp_path.glob("*.tmp")) == []


def test_unwritable_store_sets_storage_error(tmp_path: Path, monkeypatch) -> None:
    store = ReportStore(tmp_path / "reports.json")

    def fail(self, target):
        raise PermissionError("read-only disk")

    monkeypatch.setattr(Path, "replace", fail)
    store.add(_report("1", "sales"))
    assert store.storage_error is True
    assert [report.id for report in store.reports()] == ["1"]
    assert list(tmp_path.glob("*.tmp")) == []
