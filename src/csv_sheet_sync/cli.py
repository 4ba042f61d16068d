"""CLI entry point for csv-sheet-sync."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from csv_sheet_sync import LOGICAL_FIELDS, MAX_FILE_BYTES, __version__
from csv_sheet_sync.artifacts import write_merge_report, write_run_manifest
from csv_sheet_sync.config import (
    ENV_MAX_FILE_MB,
    ENV_SPREADSHEET_ID,
    ENV_TAB_NAME,
    Settings,
    load_settings,
)
from csv_sheet_sync.errors import CLIENT_ERROR, PAYLOAD_TOO_LARGE, ConfigError, CsvSyncError
from csv_sheet_sync.io import load_archive, write_dataset_csv
from csv_sheet_sync.models import MergeReport, RunManifest
from csv_sheet_sync.service import merge_archive, process_upload
from csv_sheet_sync.sheets import SheetsWriter, get_service
from csv_sheet_sync.utils import sha256_bytes, utcnow_iso

app = typer.Typer(
    name="csvsync",
    help="csv-sheet-sync — Merge a ZIP of CSV exports into one Google Sheets tab.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


def _exit_code(status: int) -> int:
    return 2 if status in (CLIENT_ERROR, PAYLOAD_TOO_LARGE) else 1


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"csv-sheet-sync v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _parse_column_map(raw: list[str] | None) -> dict[str, str]:
    """Parse ``--map field=Header`` pairs into ``{field: header}``."""
    if not raw:
        return {}
    mapping: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --map value: {item!r}  (expected field=Header)")
        field_name, header = item.split("=", 1)
        field_name = field_name.strip()
        if not field_name or not header.strip():
            raise ValueError("--map entries must have non-empty field and header (field=Header)")
        mapping[field_name] = header.strip()
    return mapping


def _load_mapping_file(path: Path | None) -> dict[str, Any]:
    if not path:
        return {}
    if not path.exists():
        raise ValueError(f"Mapping file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot read mapping file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Mapping file must contain a JSON object: {path}")
    return data


def _resolve_mapping(mapping_file: Path | None, col_map: list[str] | None) -> dict[str, Any]:
    mapping = _load_mapping_file(mapping_file)
    mapping.update(_parse_column_map(col_map))
    return mapping


def _progress_printer(echo: Callable[..., None]) -> Callable[[str, int, int], None]:
    def _report(stage: str, done: int, total: int) -> None:
        if stage == "parse":
            echo(f"  parsed {done}/{total} file(s)")
        else:
            echo("  rows sorted by date")

    return _report


def _print_summary(report: MergeReport, rows_written: int | None) -> None:
    tbl = RichTable(title="Merge Summary", show_lines=True)
    tbl.add_column("Check", style="bold")
    tbl.add_column("Result")
    tbl.add_row("Files", str(report.files_in))
    tbl.add_row("Rows in", str(report.rows_in))
    tbl.add_row("Rows out", str(report.rows_out))
    for reason, count in sorted(report.rejected_by_reason.items()):
        tbl.add_row(f"Rejected ({reason})", str(count))
    if rows_written is not None:
        tbl.add_row("Rows written", str(rows_written))
    for w in report.warnings:
        tbl.add_row("Warning", f"[yellow]{w}[/yellow]")
    console.print(tbl)


def _write_artifacts(
    out_dir: Path,
    archive_path: Path,
    archive: bytes,
    created_at: str,
    report: MergeReport | None,
    *,
    rows_written: int | None = None,
    status: str = "success",
    error_message: str = "",
) -> tuple[Path | None, Path]:
    report_path = write_merge_report(out_dir, report) if report is not None else None
    manifest = RunManifest(
        version=__version__,
        archive_path=str(archive_path.resolve()),
        created_at_utc=created_at,
        sha256=sha256_bytes(archive),
        rows_in=report.rows_in if report else 0,
        rows_out=report.rows_out if report else 0,
        rows_written=rows_written,
        status=status,
        error_message=error_message,
    )
    return report_path, write_run_manifest(out_dir, manifest)


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """csv-sheet-sync CLI."""


# ── run command ──────────────────────────────────────────────────


@app.command()
def run(
    archive_path: Path = typer.Option(
        ..., "--archive", "-a",
        help="ZIP archive containing the CSV files.",
        exists=True, readable=True, dir_okay=False,
    ),
    mapping_file: Path | None = typer.Option(
        None, "--mapping",
        help="JSON file mapping logical fields to source headers.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help=(
            "Column mapping: field=Header. Fields: " + ", ".join(LOGICAL_FIELDS)
            + ". E.g. --map station_name=Station --map date_column=Date"
        ),
    ),
    require_mapping: bool = typer.Option(
        False, "--require-mapping",
        help="Fail instead of using the positional layout when no mapping is given.",
    ),
    spreadsheet_id: str | None = typer.Option(
        None, "--spreadsheet-id",
        envvar=ENV_SPREADSHEET_ID,
        help="Destination spreadsheet id.",
    ),
    tab: str | None = typer.Option(
        None, "--tab",
        envvar=ENV_TAB_NAME,
        help="Destination tab name.",
    ),
    out_dir: Path | None = typer.Option(
        None, "--out-dir", "-o",
        help="Optional directory for merge_report.json + run_manifest.json.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Enable debug logging.",
    ),
) -> None:
    """Merge the CSV files of an archive and overwrite the destination tab."""
    _configure_logging(verbose)
    echo = _printer(quiet)
    created_at = utcnow_iso()

    try:
        settings: Settings = load_settings(spreadsheet_id=spreadsheet_id, tab_name=tab)
        mapping = _resolve_mapping(mapping_file, col_map)
        writer = SheetsWriter(get_service(settings))
    except (ConfigError, ValueError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    archive = load_archive(archive_path)
    target = settings.target()
    if not quiet:
        console.print(Panel(
            f"[bold]csv-sheet-sync[/bold] v{__version__}\n"
            f"Archive: {archive_path}\n"
            f"Target:  {target.spreadsheet_id} / {target.tab_name}",
            title="Sync Start", border_style="blue",
        ))
        console.print(
            f"  Strategy: {'named-mapping' if mapping else 'positional'}"
        )

    echo("[blue]>[/blue] Merging + publishing …")
    outcome = process_upload(
        archive,
        mapping or None,
        writer=writer,
        target=target,
        require_mapping=require_mapping,
        max_bytes=settings.max_file_bytes,
        on_progress=_progress_printer(echo),
    )

    if out_dir is not None:
        out_dir.mkdir(parents=True, exist_ok=True)
        report_path, manifest_path = _write_artifacts(
            out_dir,
            archive_path,
            archive,
            created_at,
            outcome.report,
            rows_written=outcome.rows_written if outcome.ok else None,
            status="success" if outcome.ok else "failed",
            error_message=outcome.message,
        )
        if report_path is not None:
            echo(f"  Report   -> {report_path}")
        echo(f"  Manifest -> {manifest_path}")

    if not outcome.ok:
        _err(outcome.message)
        raise typer.Exit(code=_exit_code(outcome.status))

    if not quiet and outcome.report is not None:
        _print_summary(outcome.report, outcome.rows_written)
        console.print(Panel(
            f"[green]Done[/green] — {outcome.rows_written} rows -> {target.tab_name}",
            title="Sync Complete", border_style="green",
        ))


# ── merge command ────────────────────────────────────────────────


@app.command()
def merge(
    archive_path: Path = typer.Option(
        ..., "--archive", "-a",
        help="ZIP archive containing the CSV files.",
        exists=True, readable=True, dir_okay=False,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for merged.csv + report + manifest.",
    ),
    mapping_file: Path | None = typer.Option(
        None, "--mapping",
        help="JSON file mapping logical fields to source headers.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Column mapping: field=Header.",
    ),
    require_mapping: bool = typer.Option(
        False, "--require-mapping",
        help="Fail instead of using the positional layout when no mapping is given.",
    ),
    max_file_mb: float = typer.Option(
        MAX_FILE_BYTES / (1024 * 1024), "--max-file-mb",
        envvar=ENV_MAX_FILE_MB,
        click_type=click.FloatRange(min=0, min_open=True),
        help="Per-file size ceiling in MB.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Enable debug logging.",
    ),
) -> None:
    """Merge the CSV files of an archive into a local CSV, without publishing."""
    _configure_logging(verbose)
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        mapping = _resolve_mapping(mapping_file, col_map)
    except ValueError as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    archive = load_archive(archive_path)
    echo("[blue]>[/blue] Merging …")
    try:
        dataset, report = merge_archive(
            archive,
            mapping or None,
            require_mapping=require_mapping,
            max_bytes=int(max_file_mb * 1024 * 1024),
            on_progress=_progress_printer(echo),
        )
    except CsvSyncError as exc:
        _, manifest_path = _write_artifacts(
            out_dir, archive_path, archive, created_at, None,
            status="failed", error_message=str(exc),
        )
        _err(str(exc))
        console.print(f"  Manifest -> {manifest_path}")
        raise typer.Exit(code=_exit_code(exc.status))

    csv_path = write_dataset_csv(out_dir / "merged.csv", dataset)
    report_path, manifest_path = _write_artifacts(
        out_dir, archive_path, archive, created_at, report,
    )
    echo(f"  Merged   -> {csv_path}")
    echo(f"  Report   -> {report_path}")
    echo(f"  Manifest -> {manifest_path}")
    if not quiet:
        _print_summary(report, None)
