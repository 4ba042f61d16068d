from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest
from conftest import make_zip

from csv_sheet_sync.errors import MalformedArchive, MalformedSource, MissingInput
from csv_sheet_sync.io import (
    cell_at,
    collect_sources,
    load_archive,
    looks_like_header,
    parse_rows,
    write_dataset_csv,
    write_json,
)
from csv_sheet_sync.models import MergedDataset, OutputRow, SourceFile


def test_collect_sources_keeps_csv_entries_in_archive_order() -> None:
    archive = make_zip(
        {
            "b.csv": "x\n1\n",
            "notes.txt": "ignore me",
            "nested/": b"",
            "nested/A.CSV": "y\n2\n",
        }
    )

    sources = collect_sources(archive)

    assert [s.name for s in sources] == ["b.csv", "nested/A.CSV"]
    assert sources[0].data == b"x\n1\n"


def test_collect_sources_without_csv_entries_is_missing_input() -> None:
    archive = make_zip({"readme.md": "hello"})

    with pytest.raises(MissingInput, match="No CSV files"):
        collect_sources(archive)


def test_collect_sources_rejects_empty_and_non_zip_payloads() -> None:
    with pytest.raises(MissingInput):
        collect_sources(b"")
    with pytest.raises(MalformedArchive):
        collect_sources(b"definitely not a zip")


def test_load_archive_missing_path_raises(tmp_path: Path) -> None:
    with pytest.raises(MissingInput, match="Archive not found"):
        load_archive(tmp_path / "nope.zip")


def test_parse_rows_strips_bom_and_skips_blank_lines() -> None:
    source = SourceFile("a.csv", "\ufeffDate,Station\n\n1/2/2024 9:00,A\r\n\r\n".encode("utf-8"))

    rows = parse_rows(source)

    assert rows == [["Date", "Station"], ["1/2/2024 9:00", "A"]]


def test_parse_rows_tolerates_bom_with_plain_utf8_encoding() -> None:
    source = SourceFile("a.csv", "\ufeffh1,h2\n1,2\n".encode("utf-8"))

    assert parse_rows(source, encoding="utf-8")[0] == ["h1", "h2"]


def test_parse_rows_allows_ragged_rows_and_quoted_commas() -> None:
    source = SourceFile("r.csv", b'a,b,c\n1\n2,"x, y",3,4\n')

    rows = parse_rows(source)

    assert rows == [["a", "b", "c"], ["1"], ["2", "x, y", "3", "4"]]
    assert cell_at(rows[1], 2) == ""


def test_parse_rows_undecodable_bytes_names_the_file() -> None:
    source = SourceFile("broken.csv", b"\xff\xfe\xfa,\x80\n")

    with pytest.raises(MalformedSource, match="broken.csv") as excinfo:
        parse_rows(source)

    assert excinfo.value.name == "broken.csv"


def test_cell_at_handles_negative_and_out_of_range_indexes() -> None:
    assert cell_at(["a", "b"], 1) == "b"
    assert cell_at(["a", "b"], 5) == ""
    assert cell_at(["a", "b"], -1) == ""


@pytest.mark.parametrize(
    ("row", "expected"),
    [
        (["Date", "Station"], True),
        (["1", "2.5", "-3"], False),
        (["1", "", " 4 "], False),
        (["1", "abc"], True),
        (["NaN"], True),
        (["inf"], True),
        (["1_000"], True),
        (["1e3", ".5", "-Infinity", "0x1F"], False),
    ],
)
def test_looks_like_header(row: list[str], expected: bool) -> None:
    assert looks_like_header(row) is expected


def test_write_json_is_sorted_and_serialises_dates(tmp_path: Path) -> None:
    out = write_json(tmp_path / "nested" / "x.json", {"b": datetime(2024, 1, 2), "a": tmp_path})

    text = out.read_text(encoding="utf-8")
    assert text.index('"a"') < text.index('"b"')
    data = json.loads(text)
    assert data["b"] == "2024-01-02T00:00:00"
    assert data["a"] == str(tmp_path)
    assert not (tmp_path / "nested" / "x.json.tmp").exists()


def test_write_json_rejects_unknown_objects(tmp_path: Path) -> None:
    with pytest.raises(TypeError, match="not JSON serializable"):
        write_json(tmp_path / "x.json", {"bad": object()})


def test_write_dataset_csv_writes_header_and_cells_only(tmp_path: Path) -> None:
    dataset = MergedDataset(
        header=["Station Name", "Date"],
        rows=[OutputRow(["A", "1/2/2024 9:00"], datetime(2024, 1, 2, 9))],
    )

    out = write_dataset_csv(tmp_path / "merged.csv", dataset)

    assert out.read_text(encoding="utf-8").splitlines() == [
        "Station Name,Date",
        "A,1/2/2024 9:00",
    ]


def test_write_dataset_csv_handles_empty_dataset(tmp_path: Path) -> None:
    out = write_dataset_csv(tmp_path / "merged.csv", MergedDataset(header=["a", "b"]))

    assert out.read_text(encoding="utf-8").splitlines() == ["a,b"]
