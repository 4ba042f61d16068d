from __future__ import annotations

import io
import json
import zipfile
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest
from googleapiclient.errors import HttpError


def http_error(status: int, message: str) -> HttpError:
    resp = SimpleNamespace(status=status, reason="Bad Request")
    content = json.dumps({"error": {"code": status, "message": message}}).encode("utf-8")
    return HttpError(resp, content)  # type: ignore[arg-type]


def make_zip(files: dict[str, str | bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            if name.endswith("/"):
                zf.writestr(name, b"")
            else:
                zf.writestr(name, content)
    return buf.getvalue()


def _unquote(title: str) -> str:
    if title.startswith("'") and title.endswith("'"):
        return title[1:-1].replace("''", "'")
    return title


class _Request:
    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn

    def execute(self) -> Any:
        return self._fn()


class FakeSheetsService:
    """In-memory stand-in for the ``spreadsheets()`` / ``values()`` chain."""

    def __init__(self) -> None:
        self.tabs: dict[str, list[list[str]]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}

    def spreadsheets(self) -> FakeSheetsService:
        return self

    def values(self) -> FakeSheetsService:
        return self

    def _maybe_fail(self, op: str) -> None:
        if op in self.failures:
            raise self.failures[op]

    def batchUpdate(self, spreadsheetId: str, body: dict[str, Any]) -> _Request:
        def _run() -> dict[str, Any]:
            self.calls.append(("create", {"spreadsheetId": spreadsheetId, "body": body}))
            self._maybe_fail("create")
            title = body["requests"][0]["addSheet"]["properties"]["title"]
            if title in self.tabs:
                raise http_error(
                    400,
                    f'Invalid requests[0].addSheet: A sheet with the name "{title}" '
                    "already exists. Please enter another name.",
                )
            self.tabs[title] = []
            return {}

        return _Request(_run)

    def clear(self, spreadsheetId: str, range: str, body: dict[str, Any]) -> _Request:
        def _run() -> dict[str, Any]:
            self.calls.append(("clear", {"spreadsheetId": spreadsheetId, "range": range}))
            self._maybe_fail("clear")
            self.tabs[_unquote(range)] = []
            return {}

        return _Request(_run)

    def update(
        self,
        spreadsheetId: str,
        range: str,
        valueInputOption: str,
        body: dict[str, Any],
    ) -> _Request:
        def _run() -> dict[str, Any]:
            self.calls.append((
                "update",
                {
                    "spreadsheetId": spreadsheetId,
                    "range": range,
                    "valueInputOption": valueInputOption,
                    "body": body,
                },
            ))
            self._maybe_fail("update")
            title, _, start = range.rpartition("!")
            assert start == "A1"
            self.tabs[_unquote(title)] = [list(row) for row in body["values"]]
            return {}

        return _Request(_run)


@pytest.fixture
def fake_service() -> FakeSheetsService:
    return FakeSheetsService()


@pytest.fixture
def zip_factory() -> Callable[[dict[str, str | bytes]], bytes]:
    return make_zip


def positional_row(
    *,
    station: str = "Station North",
    soc: str = "SOC 5 hub",
    date: str = "1/2/2024 9:00",
    tag: str = "",
    width: int = 35,
) -> list[str]:
    """A row of the fixed report layout (K=station, M=SOC, X=date)."""
    row = [f"{tag}c{i}" for i in range(width)]
    if width > 10:
        row[10] = station
    if width > 12:
        row[12] = soc
    if width > 23:
        row[23] = date
    return row


def positional_header(width: int = 35) -> list[str]:
    return [f"h{i}" for i in range(width)]


def to_csv(rows: list[list[str]]) -> str:
    return "\n".join(",".join(row) for row in rows) + "\n"
