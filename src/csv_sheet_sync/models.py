"""Data models used across the package."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from numbers import Integral
from typing import Any

from csv_sheet_sync import LOGICAL_FIELDS
from csv_sheet_sync.errors import InvalidMapping

RawRow = list[str]


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


# ── Sources and rows ─────────────────────────────────────────────


@dataclass(frozen=True)
class SourceFile:
    name: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class OutputRow:
    """Output cells plus the timestamp used for ordering (never published)."""

    cells: list[str]
    timestamp: datetime | None = None


@dataclass(frozen=True)
class Rejected:
    reason: str


@dataclass
class MergedDataset:
    """Header plus ordered rows.

    Contract invariant: every row has exactly ``len(header)`` cells.
    """

    header: list[str]
    rows: list[OutputRow] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.header = _to_string_list(self.header, "header")
        width = len(self.header)
        for idx, row in enumerate(self.rows):
            if len(row.cells) != width:
                raise ValueError(
                    f"row {idx} has {len(row.cells)} cells, header has {width}"
                )


@dataclass(frozen=True)
class SheetTarget:
    spreadsheet_id: str
    tab_name: str


# ── Strategy configuration ───────────────────────────────────────


@dataclass(frozen=True)
class ColumnSpec:
    """Positional layout: inclusive drop ranges, substring filters, date column."""

    drop_ranges: tuple[tuple[int, int], ...]
    filters: tuple[tuple[int, str], ...]
    date_index: int

    def __post_init__(self) -> None:
        for start, end in self.drop_ranges:
            if start < 0 or end < start:
                raise ValueError(f"Invalid drop range: ({start}, {end})")
        if self.date_index < 0:
            raise ValueError("date_index must be >= 0")

    def is_dropped(self, index: int) -> bool:
        return any(start <= index <= end for start, end in self.drop_ranges)


_WIRE_KEYS: dict[str, str] = {
    "stationName": "station_name",
    "dateColumn": "date_column",
}


@dataclass(frozen=True)
class ColumnMapping:
    """Logical field -> source header name. ``None`` means unmapped."""

    station_name: str | None = None
    cluster: str | None = None
    type: str | None = None
    region: str | None = None
    remark: str | None = None
    date_column: str | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> ColumnMapping:
        """Build a mapping from snake_case or camelCase keys.

        Blank header names are treated as unmapped.
        """
        if not isinstance(raw, Mapping):
            raise InvalidMapping("Column mapping must be an object")
        values: dict[str, str | None] = {}
        for key, value in raw.items():
            field_name = _WIRE_KEYS.get(key, key)
            if field_name not in LOGICAL_FIELDS:
                raise InvalidMapping(f"Unknown mapping field: {key!r}")
            if value is None:
                values[field_name] = None
                continue
            if not isinstance(value, str):
                raise InvalidMapping(f"Mapping for {key!r} must be a string")
            values[field_name] = value.strip() or None
        return cls(**values)

    def get(self, field_name: str) -> str | None:
        return getattr(self, field_name)

    def to_dict(self) -> dict[str, str | None]:
        return {name: self.get(name) for name in LOGICAL_FIELDS}


# ── Reports ──────────────────────────────────────────────────────


@dataclass
class MergeReport:
    """Counts for one merge.

    Contract invariant: ``rejected_rows == rows_in - rows_out``.
    """

    files_in: int = 0
    rows_in: int = 0
    rows_out: int = 0
    rejected_rows: int = 0
    rejected_by_reason: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.files_in = _to_non_negative_int(self.files_in, "files_in")
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.rejected_rows = _to_non_negative_int(self.rejected_rows, "rejected_rows")
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.rows_out > self.rows_in:
            raise ValueError("rows_out must be <= rows_in")
        if self.rejected_rows != self.rows_in - self.rows_out:
            raise ValueError("rejected_rows must equal rows_in - rows_out")

    def record_rejection(self, reason: str) -> None:
        self.rejected_by_reason[reason] = self.rejected_by_reason.get(reason, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_in": self.files_in,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "rejected_rows": self.rejected_rows,
            "rejected_by_reason": dict(self.rejected_by_reason),
            "warnings": list(self.warnings),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "csv-sheet-sync"
    version: str = ""
    archive_path: str = ""
    created_at_utc: str = ""
    sha256: str = ""
    rows_in: int = 0
    rows_out: int = 0
    rows_written: int | None = None
    status: str = "success"
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        if self.rows_written is not None:
            self.rows_written = _to_non_negative_int(self.rows_written, "rows_written")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "archive_path": self.archive_path,
            "created_at_utc": self.created_at_utc,
            "sha256": self.sha256,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "rows_written": self.rows_written,
            "status": self.status,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class UploadOutcome:
    ok: bool
    status: int
    rows_written: int = 0
    message: str = ""
    report: MergeReport | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "rowsWritten": self.rows_written}
        return {"ok": False, "message": self.message}
