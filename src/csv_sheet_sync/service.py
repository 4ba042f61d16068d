"""Upload boundary — archive in, ``UploadOutcome`` out."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from csv_sheet_sync.errors import SERVER_ERROR, CsvSyncError, InvalidMapping
from csv_sheet_sync.io import collect_sources
from csv_sheet_sync.models import ColumnMapping, MergedDataset, MergeReport, SheetTarget, UploadOutcome
from csv_sheet_sync.pipeline import ProgressCallback, merge_sources
from csv_sheet_sync.sheets import SheetsWriter
from csv_sheet_sync.strategies import build_strategy

logger = logging.getLogger(__name__)


def parse_mapping(raw: str | Mapping[str, Any] | None) -> ColumnMapping | None:
    """Accept a JSON string or a dict; ``None``/blank means no mapping."""
    if raw is None:
        return None
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InvalidMapping("Invalid column mapping format") from exc
    if not isinstance(raw, Mapping):
        raise InvalidMapping("Invalid column mapping format")
    if not raw:
        return None
    return ColumnMapping.from_dict(raw)


def merge_archive(
    archive: bytes | None,
    mapping: str | Mapping[str, Any] | None = None,
    *,
    require_mapping: bool = False,
    max_bytes: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> tuple[MergedDataset, MergeReport]:
    """Collect, parse and merge an archive without publishing."""
    sources = collect_sources(archive)
    strategy = build_strategy(parse_mapping(mapping), require_mapping=require_mapping)
    kwargs: dict[str, Any] = {"on_progress": on_progress}
    if max_bytes is not None:
        kwargs["max_bytes"] = max_bytes
    return merge_sources(sources, strategy, **kwargs)


def process_upload(
    archive: bytes | None,
    mapping: str | Mapping[str, Any] | None,
    *,
    writer: SheetsWriter,
    target: SheetTarget,
    require_mapping: bool = False,
    max_bytes: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> UploadOutcome:
    """Merge *archive* and publish it to *target*.

    Never raises for engine or publish errors; they come back as an outcome
    carrying the error's status class.
    """
    report: MergeReport | None = None
    try:
        dataset, report = merge_archive(
            archive,
            mapping,
            require_mapping=require_mapping,
            max_bytes=max_bytes,
            on_progress=on_progress,
        )
        result = writer.publish(dataset, target)
    except CsvSyncError as exc:
        logger.debug("Upload failed (%s): %s", type(exc).__name__, exc)
        return UploadOutcome(
            ok=False, status=exc.status, message=str(exc), report=report
        )
    except Exception as exc:
        logger.exception("Upload failed unexpectedly")
        return UploadOutcome(
            ok=False,
            status=SERVER_ERROR,
            message=str(exc) or "Processing failed",
            report=report,
        )

    logger.info(
        "Published %d row(s) to %s (%d rejected)",
        result.rows_written, target.tab_name, report.rejected_rows,
    )
    return UploadOutcome(
        ok=True, status=200, rows_written=result.rows_written, report=report
    )
