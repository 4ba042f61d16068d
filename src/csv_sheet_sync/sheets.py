"""Google Sheets writer — full overwrite of one tab.

Publishing is two-phase and not transactional:

1. ``ensure_tab`` adds the tab; an existing tab is fine.
2. ``clear_tab`` wipes the whole tab.
3. ``write_values`` writes header + rows from ``A1``.

If step 3 fails after step 2, the tab is left empty and ``PublishFailure``
reports ``destination_cleared=True``. Callers retry the full publish.
"""

from __future__ import annotations

import enum
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from csv_sheet_sync.config import Settings
from csv_sheet_sync.errors import ConfigError, PublishFailure
from csv_sheet_sync.models import MergedDataset, SheetTarget

logger = logging.getLogger(__name__)

SCOPES: Iterable[str] = ("https://www.googleapis.com/auth/spreadsheets",)

_SIMPLE_TITLE_RE = re.compile(r"^[A-Za-z0-9_]+$")
_ALREADY_EXISTS_RE = re.compile(r"already exists", re.IGNORECASE)

# API errors plus transport and token-refresh failures from execute().
PUBLISH_ERRORS = (HttpError, OSError, GoogleAuthError)


class TabStatus(enum.Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class PublishResult:
    rows_written: int
    tab_status: TabStatus


def get_service(settings: Settings) -> Any:
    """Return an authenticated Sheets API client for the configured service account."""
    info = {
        "type": "service_account",
        "client_email": settings.client_email,
        "private_key": settings.private_key,
        "token_uri": "https://oauth2.googleapis.com/token",
    }
    try:
        credentials = service_account.Credentials.from_service_account_info(
            info, scopes=list(SCOPES)
        )
    except ValueError as exc:
        raise ConfigError(f"Invalid service account credentials: {exc}") from exc
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


def _quote_title(title: str) -> str:
    """Return a tab title safely formatted for A1 notation."""
    normalised = (title or "").strip()
    if not normalised:
        return "''"
    if _SIMPLE_TITLE_RE.fullmatch(normalised):
        return normalised
    escaped = normalised.replace("'", "''")
    return f"'{escaped}'"


def _a1_range(title: str, range_spec: str) -> str:
    return f"{_quote_title(title)}!{range_spec}"


def _http_status(exc: HttpError) -> int:
    status = getattr(exc, "status_code", None)
    if status is not None:
        try:
            return int(status)
        except (TypeError, ValueError):
            return 0
    resp = getattr(exc, "resp", None)
    if resp is not None:
        try:
            return int(getattr(resp, "status", 0))
        except (TypeError, ValueError):
            return 0
    return 0


def _is_already_exists(exc: Exception) -> bool:
    if not isinstance(exc, HttpError) or _http_status(exc) != 400:
        return False
    detail = f"{getattr(exc, 'reason', '')} {exc}"
    content = getattr(exc, "content", b"")
    if isinstance(content, bytes):
        detail += content.decode("utf-8", errors="replace")
    return bool(_ALREADY_EXISTS_RE.search(detail))


def to_cell(value: object) -> str:
    return "" if value is None else str(value)


def build_values(header: Sequence[object], rows: Iterable[Sequence[object]]) -> list[list[str]]:
    """Header first, then each row coerced to strings at the header width."""
    width = len(header)
    values = [[to_cell(h) for h in header]]
    for row in rows:
        cells = [to_cell(row[i]) if i < len(row) else "" for i in range(width)]
        values.append(cells)
    return values


class SheetsWriter:
    """Publishes a ``MergedDataset`` through a Sheets v4 ``service`` object."""

    def __init__(self, service: Any) -> None:
        self.service = service

    def ensure_tab(self, target: SheetTarget) -> TabStatus:
        request = self.service.spreadsheets().batchUpdate(
            spreadsheetId=target.spreadsheet_id,
            body={"requests": [{"addSheet": {"properties": {"title": target.tab_name}}}]},
        )
        try:
            request.execute()
        except PUBLISH_ERRORS as exc:
            if _is_already_exists(exc):
                logger.debug("Tab %r already exists", target.tab_name)
                return TabStatus.ALREADY_EXISTS
            raise PublishFailure(
                f"Could not create tab {target.tab_name!r}: {exc}",
                phase="create",
                destination_cleared=False,
            ) from exc
        logger.info("Created tab %r", target.tab_name)
        return TabStatus.CREATED

    def clear_tab(self, target: SheetTarget) -> None:
        request = self.service.spreadsheets().values().clear(
            spreadsheetId=target.spreadsheet_id,
            range=_quote_title(target.tab_name),
            body={},
        )
        try:
            request.execute()
        except PUBLISH_ERRORS as exc:
            raise PublishFailure(
                f"Could not clear tab {target.tab_name!r}: {exc}",
                phase="clear",
                destination_cleared=False,
            ) from exc
        logger.info("Cleared tab %r", target.tab_name)

    def write_values(self, target: SheetTarget, values: list[list[str]]) -> None:
        range_spec = _a1_range(target.tab_name, "A1")
        request = self.service.spreadsheets().values().update(
            spreadsheetId=target.spreadsheet_id,
            range=range_spec,
            valueInputOption="RAW",
            body={"range": range_spec, "majorDimension": "ROWS", "values": values},
        )
        try:
            request.execute()
        except PUBLISH_ERRORS as exc:
            raise PublishFailure(
                f"Could not write tab {target.tab_name!r}; destination may now be empty: {exc}",
                phase="write",
                destination_cleared=True,
            ) from exc
        logger.info("Wrote %d row(s) to tab %r", len(values), target.tab_name)

    def publish(self, dataset: MergedDataset, target: SheetTarget) -> PublishResult:
        """Overwrite *target* with *dataset*; returns the data-row count."""
        values = build_values(dataset.header, [row.cells for row in dataset.rows])
        status = self.ensure_tab(target)
        self.clear_tab(target)
        self.write_values(target, values)
        return PublishResult(rows_written=len(values) - 1, tab_status=status)
