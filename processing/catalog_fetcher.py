"""
Catalog fetcher — downloads the raw GViz text for the configured sheet.

Blocking by design (plain requests); the cache manager runs it off the
event loop. Every transport problem surfaces as NetworkError.

Public API:
    build_sheet_url(source)  → str
    fetch_sheet_text(source) → str
"""

import logging

import requests

from config.data_source import GVIZ_URL_TEMPLATE, DataSource
from processing.errors import NetworkError

logger = logging.getLogger(__name__)


def build_sheet_url(source: DataSource) -> str:
    """GViz JSON query URL for the sheet identified by *source*."""
    return GVIZ_URL_TEMPLATE.format(
        spreadsheet_id=source.spreadsheet_id,
        gid=source.gid,
    )


def fetch_sheet_text(source: DataSource) -> str:
    """
    Download the GViz response body for *source*.

    Args:
        source: Spreadsheet id, sheet gid and request timeout.

    Returns:
        The raw response text (still wrapped in the JSONP envelope).

    Raises:
        NetworkError: On connection failure, timeout or a non-2xx status.
    """
    url = build_sheet_url(source)
    logger.info(f"Fetching catalog sheet {source.spreadsheet_id} (gid={source.gid})")

    try:
        response = requests.get(url, timeout=source.timeout_seconds)
        response.raise_for_status()
    except requests.Timeout as exc:
        logger.error(f"Catalog fetch timed out after {source.timeout_seconds}s")
        raise NetworkError(
            f"Network request timed out after {source.timeout_seconds:g} seconds."
        ) from exc
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else "?"
        reason = exc.response.reason if exc.response is not None else ""
        logger.error(f"Catalog fetch failed with HTTP {status} {reason}")
        raise NetworkError(
            f"Network response was not ok: {status} {reason}".rstrip()
        ) from exc
    except requests.RequestException as exc:
        logger.error(f"Catalog fetch failed: {exc}")
        raise NetworkError(f"Network request failed: {exc}") from exc

    logger.debug(f"Fetched {len(response.text)} characters from {url}")
    return response.text
