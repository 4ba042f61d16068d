"""I/O helpers — read the archive, tokenize CSV bytes, write artifacts."""

from __future__ import annotations

import csv
import io
import json
import logging
import re
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from csv_sheet_sync.errors import MalformedArchive, MalformedSource, MissingInput
from csv_sheet_sync.models import MergedDataset, RawRow, SourceFile

logger = logging.getLogger(__name__)

CSV_SUFFIX = ".csv"
_BOM = "\ufeff"

# ── Loading ──────────────────────────────────────────────────────


def collect_sources(archive: bytes | None) -> list[SourceFile]:
    """Return every ``.csv`` entry of a ZIP archive, in archive order.

    Raises
    ------
    MissingInput
        If *archive* is empty or contains no CSV entries.
    MalformedArchive
        If *archive* is not a readable ZIP file.
    """
    if not archive:
        raise MissingInput("No ZIP file uploaded")
    try:
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            sources = [
                SourceFile(name=info.filename, data=zf.read(info))
                for info in zf.infolist()
                if not info.is_dir() and info.filename.lower().endswith(CSV_SUFFIX)
            ]
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        raise MalformedArchive(f"Could not read ZIP archive: {exc}") from exc
    if not sources:
        raise MissingInput("No CSV files found in ZIP")
    logger.info("Collected %d CSV file(s) from archive", len(sources))
    return sources


def load_archive(path: Path) -> bytes:
    path = Path(path)
    if not path.exists():
        raise MissingInput(f"Archive not found: {path}")
    return path.read_bytes()


def parse_rows(source: SourceFile, encoding: str = "utf-8-sig") -> list[RawRow]:
    """Tokenize *source* into rows of strings.

    Fully empty lines are skipped; rows may differ in length.
    """
    try:
        text = source.data.decode(encoding)
    except (UnicodeDecodeError, LookupError) as exc:
        raise MalformedSource(source.name, f"cannot decode as {encoding}") from exc
    if text.startswith(_BOM):
        text = text[1:]

    try:
        rows = [row for row in csv.reader(io.StringIO(text, newline="")) if row]
    except csv.Error as exc:
        raise MalformedSource(source.name, str(exc)) from exc
    logger.debug("Parsed %d row(s) from %s", len(rows), source.name)
    return rows


def cell_at(row: RawRow, index: int) -> str:
    """Return ``row[index]``, or ``""`` past the end of a short row."""
    if 0 <= index < len(row):
        value = row[index]
        return "" if value is None else str(value)
    return ""


# Plain numeric literals; "inf" and digit separators do not count.
_NUMBER_RE = re.compile(
    r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+"
)


def _is_plain_number(cell: str) -> bool:
    token = str(cell).strip()
    if not token:
        return True
    return _NUMBER_RE.fullmatch(token) is not None


def looks_like_header(row: RawRow) -> bool:
    """A row is a header when at least one cell is not a plain number.

    Numeric-only header rows are indistinguishable from data.
    """
    return any(not _is_plain_number(cell) for cell in row)


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _atomic_write_text(path: Path, payload: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    return _atomic_write_text(path, payload)


def write_dataset_csv(path: Path, dataset: MergedDataset) -> Path:
    """Write the merged header + rows to *path* as CSV (timestamps excluded)."""
    frame = pd.DataFrame(
        [row.cells for row in dataset.rows],
        columns=pd.RangeIndex(len(dataset.header)),
        dtype="string",
    )
    frame.columns = pd.Index(dataset.header)
    return _atomic_write_text(path, frame.to_csv(index=False))
