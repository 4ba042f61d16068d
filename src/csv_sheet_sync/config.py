"""Publish configuration, read once at startup."""

from __future__ import annotations

import base64
import binascii
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass

from csv_sheet_sync import MAX_FILE_BYTES
from csv_sheet_sync.errors import ConfigError
from csv_sheet_sync.models import SheetTarget

DEFAULT_TAB_NAME = "data_integration"

ENV_SPREADSHEET_ID = "GOOGLE_SHEETS_SPREADSHEET_ID"
ENV_TAB_NAME = "TARGET_SHEET_NAME"
ENV_CLIENT_EMAIL = "GOOGLE_SERVICE_ACCOUNT_EMAIL"
ENV_PRIVATE_KEY = "GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY"
ENV_SERVICE_ACCOUNT_B64 = "SHEETS_SERVICE_ACCOUNT"
ENV_MAX_FILE_MB = "CSVSYNC_MAX_FILE_MB"


@dataclass(frozen=True)
class Settings:
    spreadsheet_id: str
    tab_name: str
    client_email: str
    private_key: str
    max_file_bytes: int = MAX_FILE_BYTES

    def target(self) -> SheetTarget:
        return SheetTarget(spreadsheet_id=self.spreadsheet_id, tab_name=self.tab_name)


def normalize_private_key(key: str) -> str:
    """Unescape literal ``\\n`` sequences as found in env files."""
    return key.replace("\\n", "\n").replace("\r\n", "\n").strip()


def decode_service_account(b64: str) -> dict[str, str]:
    """Decode a base64-encoded service-account JSON document."""
    try:
        data = json.loads(base64.b64decode(b64, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ConfigError(
            f"Failed to decode or parse {ENV_SERVICE_ACCOUNT_B64} (base64 JSON)"
        ) from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{ENV_SERVICE_ACCOUNT_B64} must encode a JSON object")
    return data


def _parse_max_mb(raw: str | None) -> int:
    if raw is None or not raw.strip():
        return MAX_FILE_BYTES
    try:
        mb = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{ENV_MAX_FILE_MB} must be a number, got {raw!r}") from exc
    if mb <= 0:
        raise ConfigError(f"{ENV_MAX_FILE_MB} must be > 0")
    return int(mb * 1024 * 1024)


def load_settings(
    environ: Mapping[str, str] | None = None,
    *,
    spreadsheet_id: str | None = None,
    tab_name: str | None = None,
) -> Settings:
    """Build ``Settings`` from *environ*; explicit arguments win.

    Raises ``ConfigError`` when the spreadsheet id or credentials are missing.
    """
    env = os.environ if environ is None else environ

    sheet_id = spreadsheet_id or env.get(ENV_SPREADSHEET_ID, "")
    if not sheet_id:
        raise ConfigError(f"Missing environment variable: {ENV_SPREADSHEET_ID}")
    tab = tab_name or env.get(ENV_TAB_NAME) or DEFAULT_TAB_NAME

    email = env.get(ENV_CLIENT_EMAIL, "")
    key = env.get(ENV_PRIVATE_KEY, "")
    if not (email and key) and env.get(ENV_SERVICE_ACCOUNT_B64):
        creds = decode_service_account(env[ENV_SERVICE_ACCOUNT_B64])
        email = str(creds.get("client_email") or "")
        key = str(creds.get("private_key") or "")
        if not (email and key):
            raise ConfigError("Service account JSON missing fields: client_email, private_key")
    if not email:
        raise ConfigError(f"Missing environment variable: {ENV_CLIENT_EMAIL}")
    if not key:
        raise ConfigError(f"Missing environment variable: {ENV_PRIVATE_KEY}")

    return Settings(
        spreadsheet_id=sheet_id,
        tab_name=tab,
        client_email=email,
        private_key=normalize_private_key(key),
        max_file_bytes=_parse_max_mb(env.get(ENV_MAX_FILE_MB)),
    )
