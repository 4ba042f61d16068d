"""csv-sheet-sync — Merge a ZIP of CSV exports and publish them to Google Sheets."""

__version__ = "0.2.0"

LOGICAL_FIELDS: list[str] = [
    "station_name",
    "cluster",
    "type",
    "region",
    "remark",
    "date_column",
]

LOGICAL_FIELD_LABELS: dict[str, str] = {
    "station_name": "Station Name",
    "cluster": "Cluster",
    "type": "Type",
    "region": "Region",
    "remark": "Remark",
    "date_column": "Date",
}

MAX_FILE_BYTES = 25 * 1024 * 1024
