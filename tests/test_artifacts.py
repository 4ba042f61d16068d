from __future__ import annotations

import json
from pathlib import Path

from csv_sheet_sync.artifacts import write_merge_report, write_run_manifest
from csv_sheet_sync.models import MergeReport, RunManifest


def test_write_merge_report_writes_expected_contract(tmp_path: Path) -> None:
    report = MergeReport(
        files_in=2, rows_in=3, rows_out=2, rejected_rows=1,
        rejected_by_reason={"filter": 1}, warnings=["warn"],
    )

    out = write_merge_report(tmp_path, report)

    assert out == tmp_path / "merge_report.json"
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data == {
        "files_in": 2,
        "rejected_by_reason": {"filter": 1},
        "rejected_rows": 1,
        "rows_in": 3,
        "rows_out": 2,
        "warnings": ["warn"],
    }


def test_write_run_manifest(tmp_path: Path) -> None:
    out = write_run_manifest(tmp_path, RunManifest(status="failed", error_message="boom"))

    assert out == tmp_path / "run_manifest.json"
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["status"] == "failed"
    assert data["error_message"] == "boom"
    assert data["rows_written"] is None
