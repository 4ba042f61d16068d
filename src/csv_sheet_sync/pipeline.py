"""Merge + sort pipeline — pure functions, no network."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from csv_sheet_sync import MAX_FILE_BYTES
from csv_sheet_sync.dates import sort_key
from csv_sheet_sync.errors import MissingInput, NoHeaderResolved, OversizedSource
from csv_sheet_sync.io import parse_rows
from csv_sheet_sync.models import MergedDataset, MergeReport, OutputRow, Rejected, SourceFile
from csv_sheet_sync.strategies import ExtractionStrategy

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]

STAGE_PARSE = "parse"
STAGE_SORT = "sort"


def _noop_progress(stage: str, done: int, total: int) -> None:
    return None


# ── Guards ───────────────────────────────────────────────────────


def check_sizes(sources: Sequence[SourceFile], max_bytes: int = MAX_FILE_BYTES) -> None:
    """Raise ``OversizedSource`` for the first file above *max_bytes*."""
    for source in sources:
        if source.size > max_bytes:
            raise OversizedSource(source.name, source.size, max_bytes)


def fit_width(cells: list[str], width: int) -> list[str]:
    """Pad short rows with ``""`` and cut long rows to *width*."""
    if len(cells) < width:
        return cells + [""] * (width - len(cells))
    return cells[:width]


# ── Sorting ──────────────────────────────────────────────────────


def sort_rows(rows: Sequence[OutputRow]) -> list[OutputRow]:
    """Stable ascending sort by timestamp.

    Rows without a timestamp keep their arrival order after the dated rows.
    """
    return sorted(
        rows,
        key=lambda row: (
            (0, sort_key(row.timestamp)) if row.timestamp is not None else (1, None)
        ),
    )


# ── Main merge function ──────────────────────────────────────────


def merge_sources(
    sources: Sequence[SourceFile],
    strategy: ExtractionStrategy,
    *,
    encoding: str = "utf-8-sig",
    max_bytes: int = MAX_FILE_BYTES,
    on_progress: ProgressCallback | None = None,
) -> tuple[MergedDataset, MergeReport]:
    """Parse, extract, concatenate and sort *sources*.

    Returns ``(dataset, report)``. Files are processed strictly in the given
    order; the header comes from the strategy and the first file only.
    """
    if not sources:
        raise MissingInput("No CSV files found in ZIP")
    progress = on_progress or _noop_progress

    # 1. Size ceiling, before any parsing
    check_sizes(sources, max_bytes)

    header: list[str] | None = None
    merged: list[OutputRow] = []
    report = MergeReport(files_in=len(sources))
    total = len(sources)

    # 2. Parse + extract, per file in arrival order
    for i, source in enumerate(sources):
        is_first = i == 0
        rows = parse_rows(source, encoding=encoding)
        if not rows:
            if is_first and strategy.requires_header_from_first_file:
                raise NoHeaderResolved(f"No header found: first file {source.name} has no rows")
            logger.warning("Skipping %s: no rows", source.name)
            report.warnings.append(f"{source.name}: no rows")
            progress(STAGE_PARSE, i + 1, total)
            continue

        if header is None:
            header = strategy.output_header(rows)
        width = len(header)

        file_header, data_rows = strategy.split_file(rows, is_first=is_first)
        kept = 0
        for raw_row in data_rows:
            report.rows_in += 1
            result = strategy.extract(raw_row, file_header)
            if isinstance(result, Rejected):
                report.record_rejection(result.reason)
                continue
            result.cells = fit_width(result.cells, width)
            merged.append(result)
            kept += 1
        logger.info(
            "%s: %d data row(s), %d kept", source.name, len(data_rows), kept
        )
        progress(STAGE_PARSE, i + 1, total)

    if header is None:
        header = strategy.output_header([[]])

    # 3. Stable sort by resolved timestamp
    ordered = sort_rows(merged)
    progress(STAGE_SORT, 1, 1)

    report.rows_out = len(ordered)
    report.rejected_rows = report.rows_in - report.rows_out
    if report.rejected_rows:
        logger.debug("Rejected rows by reason: %s", report.rejected_by_reason)
    if not ordered:
        report.warnings.append("Merged dataset is empty — no rows survived extraction")

    return MergedDataset(header=header, rows=ordered), report
