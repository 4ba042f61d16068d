"""Error taxonomy shared by the merge engine, the writer and the upload boundary."""

from __future__ import annotations

CLIENT_ERROR = 400
PAYLOAD_TOO_LARGE = 413
SERVER_ERROR = 500


class CsvSyncError(Exception):
    """Base class; ``status`` is the HTTP-like class reported to callers."""

    status: int = SERVER_ERROR


class ConfigError(CsvSyncError):
    """Publish configuration is missing or unreadable."""


class MissingInput(CsvSyncError):
    """No archive, no CSV entries in it, or no mapping where one is required."""

    status = CLIENT_ERROR


class InvalidMapping(CsvSyncError):
    status = CLIENT_ERROR


class OversizedSource(CsvSyncError):
    status = PAYLOAD_TOO_LARGE

    def __init__(self, name: str, size: int, limit: int) -> None:
        self.name = name
        self.size = size
        self.limit = limit
        limit_mb = limit / (1024 * 1024)
        super().__init__(f"{name} exceeds {limit_mb:g} MB limit ({size} bytes)")


class MalformedArchive(CsvSyncError):
    """The upload could not be opened as a ZIP archive."""


class MalformedSource(CsvSyncError):
    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Could not parse {name}: {reason}")


class NoHeaderResolved(CsvSyncError):
    pass


class PublishFailure(CsvSyncError):
    """Publishing stopped part-way.

    When ``destination_cleared`` is true the clear step already ran, so the
    destination tab may now be empty. Retry the full publish.
    """

    def __init__(self, message: str, *, phase: str, destination_cleared: bool) -> None:
        self.phase = phase
        self.destination_cleared = destination_cleared
        super().__init__(message)
