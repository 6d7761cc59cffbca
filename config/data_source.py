"""
Data source configuration.

Where the catalog comes from (a Google Sheet exposed through the GViz query
endpoint), how long a downloaded snapshot stays fresh, and where the snapshot is
kept on disk.

The spreadsheet id and sheet gid can be overridden through the
SPREADSHEET_ID / SHEET_GID environment variables or Streamlit secrets;
blank values fall back to the defaults below.
"""

import os
from dataclasses import dataclass
from collections.abc import Mapping

DEFAULT_SPREADSHEET_ID: str = "1ZDO0G2YTgxcXrK-Zw4sBofPXtcdsvirrSs4fKdnZIQI"
DEFAULT_GID: str = "0"

SPREADSHEET_ID_ENV_VAR: str = "SPREADSHEET_ID"
GID_ENV_VAR: str = "SHEET_GID"

GVIZ_URL_TEMPLATE: str = (
    "https://docs.google.com/spreadsheets/d/{spreadsheet_id}/gviz/tq"
    "?tqx=out:json&gid={gid}"
)

# JSONP callback the GViz endpoint wraps its payload in.
GVIZ_WRAPPER: str = "google.visualization.Query.setResponse"

# Snapshots older than this are refetched on startup.
CACHE_TTL_SECONDS: int = 60 * 60

CACHE_PATH: str = "pharma_medicines_cache.json"

REQUEST_TIMEOUT_SECONDS: float = 15.0


@dataclass(frozen=True)
class DataSource:
    """Resolved location of the catalog sheet."""

    spreadsheet_id: str = DEFAULT_SPREADSHEET_ID
    gid: str = DEFAULT_GID
    timeout_seconds: float = REQUEST_TIMEOUT_SECONDS


def load_data_source(overrides: Mapping[str, str] | None = None) -> DataSource:
    """
    Resolve the data source from overrides, then the environment, then defaults.

    Args:
        overrides: Optional mapping (e.g. Streamlit secrets) checked before
                   the environment, keyed by the environment variable names.

    Returns:
        DataSource with every field populated.
    """
    overrides = overrides or {}

    def _lookup(key: str, default: str) -> str:
        value = overrides.get(key) or os.environ.get(key) or ""
        value = str(value).strip()
        return value or default

    return DataSource(
        spreadsheet_id=_lookup(SPREADSHEET_ID_ENV_VAR, DEFAULT_SPREADSHEET_ID),
        gid=_lookup(GID_ENV_VAR, DEFAULT_GID),
    )
