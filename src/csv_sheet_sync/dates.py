"""Date resolution for the designated date cell of a row."""

from __future__ import annotations

import re
import warnings
from datetime import datetime, timezone

import pandas as pd

# strptime's %H accepts both "9:00" and "09:00".
DATE_FORMATS: tuple[str, ...] = (
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
)

# pandas resolves these against the wall clock.
_RELATIVE_WORDS = frozenset({"now", "today", "tomorrow", "yesterday"})
_WORD_RE = re.compile(r"[A-Za-z]+")


def _parse_exact(value: str) -> datetime | None:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def _is_absolute(value: str) -> bool:
    if not any(ch.isdigit() for ch in value):
        return False
    return not any(w.lower() in _RELATIVE_WORDS for w in _WORD_RE.findall(value))


def _parse_permissive(value: str) -> datetime | None:
    if not _is_absolute(value):
        return None
    with warnings.catch_warnings():
        # format guessing and nanosecond truncation both warn
        warnings.simplefilter("ignore", UserWarning)
        try:
            parsed = pd.to_datetime(value, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
        if parsed is None or pd.isna(parsed):
            return None
        return parsed.to_pydatetime()


def resolve_date(value: object) -> datetime | None:
    """Return the timestamp encoded in *value*, or ``None``.

    Explicit month/day/year formats are tried first, then a permissive
    parse. Any offset present in the input is kept on the result.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return _parse_exact(text) or _parse_permissive(text)


def sort_key(ts: datetime) -> datetime:
    """Comparable key for *ts*: aware values by UTC instant, naive as UTC."""
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)
