"""
Tests for processing/row_projector.py

Covers: header resolution (label → id → unaddressable slot), formatted vs
raw cell values, null cells, positional alignment, duplicate headers, and
SchemaError for error responses.
"""

import logging

import pytest

from processing.errors import SchemaError
from processing.row_projector import extract_headers, project_rows


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------

def _make_payload(cols: list, rows: list, status: str = "ok") -> dict:
    """Build a decoded GViz payload."""
    return {"status": status, "table": {"cols": cols, "rows": rows}}


# ═══════════════════════════════════════════════════════════════════════════
# Headers
# ═══════════════════════════════════════════════════════════════════════════

class TestExtractHeaders:
    def test_label_preferred(self):
        payload = _make_payload([{"id": "A", "label": "Product Name"}], [])
        assert extract_headers(payload) == ["Product Name"]

    def test_id_when_label_blank(self):
        payload = _make_payload([{"id": "B", "label": ""}], [])
        assert extract_headers(payload) == ["B"]

    def test_neither_label_nor_id(self):
        payload = _make_payload([{"label": "Name"}, {"type": "string"}], [])
        assert extract_headers(payload) == ["Name", None]

    def test_no_columns(self):
        assert extract_headers(_make_payload([], [])) == []


# ═══════════════════════════════════════════════════════════════════════════
# Rows
# ═══════════════════════════════════════════════════════════════════════════

class TestProjectRows:
    def test_formatted_value_preferred(self):
        payload = _make_payload(
            [{"label": "MRP"}],
            [{"c": [{"v": 15.5, "f": "₹15.50"}]}],
        )
        assert project_rows(payload) == [{"MRP": "₹15.50"}]

    def test_raw_value_when_unformatted(self):
        payload = _make_payload([{"label": "Stock"}], [{"c": [{"v": 25}]}])
        assert project_rows(payload) == [{"Stock": 25}]

    def test_null_cells_omitted(self):
        payload = _make_payload(
            [{"label": "Name"}, {"label": "Stock"}, {"label": "MRP"}],
            [{"c": [{"v": "Cetirizine"}, None, {"v": None}]}],
        )
        assert project_rows(payload) == [{"Name": "Cetirizine"}]

    def test_unlabeled_column_keeps_alignment(self):
        payload = _make_payload(
            [{"label": "Name"}, {}, {"label": "MRP"}],
            [{"c": [{"v": "Ibuprofen"}, {"v": "ignored"}, {"v": 42}]}],
        )
        assert project_rows(payload) == [{"Name": "Ibuprofen", "MRP": 42}]

    def test_row_without_cells(self):
        payload = _make_payload([{"label": "Name"}], [{}, {"c": None}])
        assert project_rows(payload) == [{}, {}]

    def test_extra_cells_ignored(self):
        payload = _make_payload([{"label": "Name"}], [{"c": [{"v": "A"}, {"v": "B"}]}])
        assert project_rows(payload) == [{"Name": "A"}]

    def test_row_order_preserved(self):
        payload = _make_payload(
            [{"label": "Name"}],
            [{"c": [{"v": name}]} for name in ("C", "A", "B")],
        )
        assert [row["Name"] for row in project_rows(payload)] == ["C", "A", "B"]

    def test_duplicate_header_later_column_wins(self, caplog):
        payload = _make_payload(
            [{"label": "Name"}, {"label": "Name"}],
            [{"c": [{"v": "first"}, {"v": "second"}]}],
        )
        with caplog.at_level(logging.WARNING, logger="processing.row_projector"):
            rows = project_rows(payload)
        assert rows == [{"Name": "second"}]
        assert "Duplicate column headers" in caplog.text

    def test_empty_table(self):
        assert project_rows(_make_payload([{"label": "Name"}], [])) == []


# ═══════════════════════════════════════════════════════════════════════════
# Error responses
# ═══════════════════════════════════════════════════════════════════════════

class TestSchemaErrors:
    def test_error_status(self):
        payload = {
            "status": "error",
            "errors": [{"reason": "access_denied", "detailed_message": "Access denied"}],
        }
        with pytest.raises(SchemaError, match="Access denied"):
            project_rows(payload)

    def test_missing_table(self):
        with pytest.raises(SchemaError):
            project_rows({"status": "ok"})

    def test_headers_also_require_table(self):
        with pytest.raises(SchemaError):
            extract_headers({"status": "warning", "table": {"cols": [], "rows": []}})

    def test_rows_not_a_list(self):
        payload = {"status": "ok", "table": {"cols": [{"label": "Name"}], "rows": {"c": []}}}
        with pytest.raises(SchemaError, match='malformed "rows"'):
            project_rows(payload)

    def test_cols_not_a_list(self):
        payload = {"status": "ok", "table": {"cols": 3, "rows": []}}
        with pytest.raises(SchemaError, match='malformed "cols"'):
            extract_headers(payload)

    def test_cells_not_a_list(self):
        payload = _make_payload([{"label": "Name"}], [{"c": [{"v": "ok"}]}, {"c": 5}])
        with pytest.raises(SchemaError, match="row 2 is malformed"):
            project_rows(payload)

    def test_row_not_an_object(self):
        payload = _make_payload([{"label": "Name"}], ["Paracetamol"])
        with pytest.raises(SchemaError, match="row 1 is malformed"):
            project_rows(payload)

    def test_null_row_has_no_cells(self):
        payload = _make_payload([{"label": "Name"}], [None])
        assert project_rows(payload) == [{}]
