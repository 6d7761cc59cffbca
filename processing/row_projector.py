"""
Row projector — turns a decoded GViz table into generic header-keyed rows.

Each column contributes its label as the header, falling back to its id.
Columns with neither stay in place as an unaddressable slot, so cell *i*
always lines up with column *i*. Each cell contributes its formatted value
("f") when present, otherwise its raw value ("v"). Null cells and cells
with no value at all are left out of the row rather than stored as None.

Public API:
    extract_headers(payload) → list[str | None]
    project_rows(payload)    → list[dict]
"""

import logging
from typing import Any

from processing.errors import SchemaError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def extract_headers(payload: dict[str, Any]) -> list[str | None]:
    """
    Resolve one header per column, preserving column positions.

    Args:
        payload: Decoded GViz payload (output of parse_gviz_text).

    Returns:
        List aligned with table.cols: the label, else the id, else None.

    Raises:
        SchemaError: If the payload does not carry an "ok" table, or its
                     cols are not a list.
    """
    table = _require_table(payload)
    columns = _require_list(table, "cols")
    return [_column_header(column) for column in columns]


def project_rows(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Convert the payload's table rows into header → value dicts.

    Args:
        payload: Decoded GViz payload (output of parse_gviz_text).

    Returns:
        One dict per table row, in source order. Keys follow column order.

    Raises:
        SchemaError: If status is not "ok", the table is missing, or its
                     cols / rows / cells are not lists.
    """
    table = _require_table(payload)
    headers = extract_headers(payload)
    _warn_on_duplicate_headers(headers)

    rows = _require_list(table, "rows")
    projected: list[dict[str, Any]] = []

    for index, raw_row in enumerate(rows, start=1):
        projected.append(_project_cells(_row_cells(raw_row, index), headers))

    logger.info(
        f"Projected {len(projected)} rows across "
        f"{sum(1 for h in headers if h)} addressable columns"
    )
    return projected


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _require_table(payload: dict[str, Any]) -> dict[str, Any]:
    """Return payload["table"], or raise SchemaError if the response is unusable."""
    if not isinstance(payload, dict):
        raise SchemaError("GViz response indicates an error or contains no table.")

    status = payload.get("status")
    table = payload.get("table")

    if status != "ok":
        reason = _first_error_reason(payload)
        detail = f" ({reason})" if reason else ""
        raise SchemaError(
            f"GViz response indicates an error or contains no table: "
            f"status={status!r}{detail}"
        )

    if not isinstance(table, dict):
        raise SchemaError("GViz response indicates an error or contains no table.")

    return table


def _require_list(table: dict[str, Any], key: str) -> list[Any]:
    """table[key] as a list; absent or null counts as empty."""
    value = table.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise SchemaError(
            f"GViz table has malformed \"{key}\": expected a list, got {type(value).__name__}."
        )
    return value


def _row_cells(raw_row: Any, row_index: int) -> list[Any]:
    """The cell list of one table row. A null row or missing "c" has no cells."""
    if raw_row is None:
        return []
    if not isinstance(raw_row, dict):
        raise SchemaError(
            f"GViz table row {row_index} is malformed: expected an object, "
            f"got {type(raw_row).__name__}."
        )
    cells = raw_row.get("c")
    if cells is None:
        return []
    if not isinstance(cells, list):
        raise SchemaError(
            f"GViz table row {row_index} is malformed: \"c\" is a "
            f"{type(cells).__name__}, not a list."
        )
    return cells


def _first_error_reason(payload: dict[str, Any]) -> str:
    """Pull a readable reason out of a GViz error response, if there is one."""
    errors = payload.get("errors")
    if not isinstance(errors, list) or not errors:
        return ""
    first = errors[0]
    if not isinstance(first, dict):
        return ""
    return str(
        first.get("detailed_message") or first.get("message") or first.get("reason") or ""
    )


def _column_header(column: Any) -> str | None:
    """Pick the label, then the id, for one column definition."""
    if not isinstance(column, dict):
        return None
    for key in ("label", "id"):
        value = column.get(key)
        if value is not None and str(value) != "":
            return str(value)
    return None


def _project_cells(cells: list[Any], headers: list[str | None]) -> dict[str, Any]:
    """
    Build one generic row from a positional list of cells.

    Args:
        cells: The row's "c" list; entries may be None.
        headers: Column headers aligned with *cells*.

    Returns:
        Dict of header → value for every cell that has a header and a value.
    """
    row: dict[str, Any] = {}

    for index, cell in enumerate(cells):
        if index >= len(headers):
            break
        header = headers[index]
        if header is None or not isinstance(cell, dict):
            continue

        formatted = cell.get("f")
        value = formatted if formatted is not None else cell.get("v")
        if value is None:
            continue

        row[header] = value

    return row


def _warn_on_duplicate_headers(headers: list[str | None]) -> None:
    """Log once when two columns share a header (the later column wins)."""
    seen: set[str] = set()
    duplicates: list[str] = []
    for header in headers:
        if header is None:
            continue
        if header in seen and header not in duplicates:
            duplicates.append(header)
        seen.add(header)

    if duplicates:
        logger.warning(
            f"Duplicate column headers {duplicates}, later columns overwrite earlier ones"
        )
