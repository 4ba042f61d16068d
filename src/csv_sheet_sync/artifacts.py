"""Run artifact persistence — merge report and manifest JSON."""

from __future__ import annotations

from pathlib import Path

from csv_sheet_sync.io import write_json
from csv_sheet_sync.models import MergeReport, RunManifest


def write_merge_report(out_dir: Path, report: MergeReport) -> Path:
    """Write ``merge_report.json`` into *out_dir* and return the path."""
    return write_json(out_dir / "merge_report.json", report.to_dict())


def write_run_manifest(out_dir: Path, manifest: RunManifest) -> Path:
    """Write ``run_manifest.json`` into *out_dir* and return the path."""
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())
