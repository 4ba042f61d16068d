"""Extraction strategies — turn raw rows into output rows.

Two interchangeable variants share one interface:

``PositionalStrategy``
    Fixed upstream report layout. Columns are addressed by spreadsheet
    letter; configured ranges are dropped and substring filters applied to
    the original cells.

``NamedMappingStrategy``
    Heterogeneous uploads. Each logical field is looked up by header name in
    every file's own header row, so column order may differ between files.

The merge engine only talks to ``ExtractionStrategy``; which variant runs is
decided by the caller's configuration, never by file content.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence

from csv_sheet_sync import LOGICAL_FIELD_LABELS, LOGICAL_FIELDS
from csv_sheet_sync.dates import resolve_date
from csv_sheet_sync.errors import InvalidMapping, MissingInput
from csv_sheet_sync.io import cell_at, looks_like_header
from csv_sheet_sync.models import ColumnMapping, ColumnSpec, OutputRow, RawRow, Rejected

HeaderPredicate = Callable[[RawRow], bool]

REJECT_FILTER = "filter"
REJECT_DATE = "date"

REQUIRED_MAPPING_FIELDS: tuple[str, ...] = ("station_name",)

_COLUMN_LETTERS_RE = re.compile(r"^[A-Z]+$")
_WHITESPACE_RE = re.compile(r"\s+")


def letter_to_index(letters: str) -> int:
    """Convert a spreadsheet column label to a 0-based index (``A`` -> 0, ``AA`` -> 26)."""
    label = str(letters).strip().upper()
    if not _COLUMN_LETTERS_RE.fullmatch(label):
        raise ValueError(f"Invalid column letters: {letters!r}")
    n = 0
    for ch in label:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


def column_spec(
    drop: Sequence[tuple[str, str]],
    filters: Sequence[tuple[str, str]],
    date_column: str,
) -> ColumnSpec:
    """Build a ``ColumnSpec`` from letter-addressed ranges and filters."""
    return ColumnSpec(
        drop_ranges=tuple((letter_to_index(a), letter_to_index(b)) for a, b in drop),
        filters=tuple((letter_to_index(col), text) for col, text in filters),
        date_index=letter_to_index(date_column),
    )


DEFAULT_DROP_RANGES: tuple[tuple[str, str], ...] = (
    ("C", "I"),
    ("K", "M"),
    ("O", "U"),
    ("Y", "AA"),
    ("AE", "AH"),
)
DEFAULT_FILTERS: tuple[tuple[str, str], ...] = (
    ("K", "Station"),
    ("M", "SOC 5"),
)
DEFAULT_DATE_COLUMN = "X"

DEFAULT_COLUMN_SPEC = column_spec(DEFAULT_DROP_RANGES, DEFAULT_FILTERS, DEFAULT_DATE_COLUMN)


def _squash(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


class ExtractionStrategy(ABC):
    """Per-file header handling plus per-row extraction."""

    name: str = ""

    def __init__(self, header_predicate: HeaderPredicate = looks_like_header) -> None:
        self.header_predicate = header_predicate

    @property
    def requires_header_from_first_file(self) -> bool:
        return False

    @abstractmethod
    def output_header(self, first_file_rows: Sequence[RawRow]) -> list[str]:
        """Return the single header of the merged dataset."""

    @abstractmethod
    def split_file(
        self, rows: Sequence[RawRow], *, is_first: bool
    ) -> tuple[RawRow | None, Sequence[RawRow]]:
        """Return ``(file_header, data_rows)`` for one parsed file."""

    @abstractmethod
    def extract(self, raw_row: RawRow, header: RawRow | None = None) -> OutputRow | Rejected:
        """Return the output row for *raw_row*, or ``Rejected``."""


class PositionalStrategy(ExtractionStrategy):
    name = "positional"

    def __init__(
        self,
        spec: ColumnSpec = DEFAULT_COLUMN_SPEC,
        header_predicate: HeaderPredicate = looks_like_header,
    ) -> None:
        super().__init__(header_predicate)
        self.spec = spec

    @property
    def requires_header_from_first_file(self) -> bool:
        return True

    def _drop(self, row: RawRow) -> list[str]:
        return [
            "" if cell is None else str(cell)
            for idx, cell in enumerate(row)
            if not self.spec.is_dropped(idx)
        ]

    def passes_filters(self, raw_row: RawRow) -> bool:
        return all(text in cell_at(raw_row, idx) for idx, text in self.spec.filters)

    def output_header(self, first_file_rows: Sequence[RawRow]) -> list[str]:
        return self._drop(first_file_rows[0])

    def split_file(
        self, rows: Sequence[RawRow], *, is_first: bool
    ) -> tuple[RawRow | None, Sequence[RawRow]]:
        if not rows:
            return None, []
        if is_first or self.header_predicate(rows[0]):
            return rows[0], rows[1:]
        return None, rows

    def extract(self, raw_row: RawRow, header: RawRow | None = None) -> OutputRow | Rejected:
        if not self.passes_filters(raw_row):
            return Rejected(REJECT_FILTER)
        ts = resolve_date(cell_at(raw_row, self.spec.date_index))
        if ts is None:
            return Rejected(REJECT_DATE)
        return OutputRow(cells=self._drop(raw_row), timestamp=ts)


class NamedMappingStrategy(ExtractionStrategy):
    name = "named-mapping"

    def __init__(
        self,
        mapping: ColumnMapping,
        header_predicate: HeaderPredicate = looks_like_header,
    ) -> None:
        super().__init__(header_predicate)
        missing = [f for f in REQUIRED_MAPPING_FIELDS if not mapping.get(f)]
        if missing:
            raise InvalidMapping(
                "Missing required mapping field(s): " + ", ".join(missing)
            )
        self.mapping = mapping
        self._index_cache: tuple[tuple[str, ...], dict[str, int | None]] | None = None

    @property
    def has_date(self) -> bool:
        return bool(self.mapping.date_column)

    def output_header(self, first_file_rows: Sequence[RawRow]) -> list[str]:
        return [LOGICAL_FIELD_LABELS[f] for f in LOGICAL_FIELDS]

    def split_file(
        self, rows: Sequence[RawRow], *, is_first: bool
    ) -> tuple[RawRow | None, Sequence[RawRow]]:
        if not rows:
            return None, []
        return [_squash(h) for h in rows[0]], rows[1:]

    def _field_indexes(self, header: RawRow) -> dict[str, int | None]:
        key = tuple(header)
        if self._index_cache is not None and self._index_cache[0] == key:
            return self._index_cache[1]
        positions: dict[str, int] = {}
        for idx, name in enumerate(header):
            # first occurrence wins on duplicate header names
            positions.setdefault(_squash(name), idx)
        indexes: dict[str, int | None] = {}
        for field_name in LOGICAL_FIELDS:
            source = self.mapping.get(field_name)
            indexes[field_name] = positions.get(_squash(source)) if source else None
        self._index_cache = (key, indexes)
        return indexes

    def extract(self, raw_row: RawRow, header: RawRow | None = None) -> OutputRow | Rejected:
        if header is None:
            raise ValueError("NamedMappingStrategy.extract requires the file header")
        indexes = self._field_indexes(header)
        cells: list[str] = []
        for field_name in LOGICAL_FIELDS:
            idx = indexes[field_name]
            cells.append("" if idx is None else _squash(cell_at(raw_row, idx)))
        ts = None
        if self.has_date:
            date_idx = indexes["date_column"]
            ts = resolve_date(cell_at(raw_row, date_idx)) if date_idx is not None else None
            if ts is None:
                return Rejected(REJECT_DATE)
        return OutputRow(cells=cells, timestamp=ts)


def build_strategy(
    mapping: ColumnMapping | dict | None,
    *,
    require_mapping: bool = False,
    spec: ColumnSpec = DEFAULT_COLUMN_SPEC,
) -> ExtractionStrategy:
    """Select the strategy from caller configuration.

    No mapping selects the positional layout unless *require_mapping* is set,
    in which case ``MissingInput`` is raised.
    """
    if mapping is None or (isinstance(mapping, dict) and not mapping):
        if require_mapping:
            raise MissingInput("No column mapping provided")
        return PositionalStrategy(spec)
    if not isinstance(mapping, ColumnMapping):
        mapping = ColumnMapping.from_dict(mapping)
    return NamedMappingStrategy(mapping)
