"""
Tests for processing/catalog_cache.py

Covers: cold start, TTL-based adoption of the persisted snapshot, fallback
to the last good catalog on failure, refresh / invalidate, header mapping
rebuilt from cached rows, single-flight fetching, timeout, cancellation,
and status listeners.

The network boundary (fetch_sheet_text) is always mocked; async methods
are driven with asyncio.run().
"""

import asyncio
import json
import threading
import time
from unittest.mock import patch

import pytest

from config.data_source import DataSource
from config.field_aliases import FIELD_ALIASES
from processing.catalog_cache import (
    CANCELLED_MESSAGE,
    CatalogCacheManager,
    CatalogState,
)
from processing.entity_normalizer import normalize_rows
from processing.errors import NetworkError
from processing.header_reconciler import reconcile_headers
from processing.snapshot_store import CatalogSnapshot, SnapshotStore

_FETCH = "processing.catalog_cache.fetch_sheet_text"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_gviz_text(rows: list[tuple[str, str, str]]) -> str:
    """GViz response body for a (Product Name, MRP, Stock) sheet."""
    payload = {
        "version": "0.6",
        "status": "ok",
        "table": {
            "cols": [
                {"id": "A", "label": "Product Name", "type": "string"},
                {"id": "B", "label": "MRP", "type": "number"},
                {"id": "C", "label": "Stock", "type": "number"},
            ],
            "rows": [
                {"c": [{"v": name}, {"v": price}, {"v": stock}]}
                for name, price, stock in rows
            ],
        },
    }
    return f"/*O_o*/\ngoogle.visualization.Query.setResponse({json.dumps(payload)});"


_SHEET_TEXT = _make_gviz_text([("Paracetamol", "15.50", "25"), ("Cetirizine", "18", "4")])


def _make_store(tmp_path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "cache.json")


def _make_manager(store: SnapshotStore, timeout_seconds: float = 15.0) -> CatalogCacheManager:
    source = DataSource(spreadsheet_id="sheet-123", gid="0", timeout_seconds=timeout_seconds)
    return CatalogCacheManager(source=source, store=store)


def _persist_snapshot(store: SnapshotStore, age_minutes: float, names: list[str]) -> None:
    """Write a snapshot *age_minutes* old holding one medicine per name."""
    rows = [{"Product Name": name, "MRP": "10", "Stock": "30"} for name in names]
    medicines = normalize_rows(rows, reconcile_headers(["Product Name", "MRP", "Stock"])).medicines
    timestamp_ms = int((time.time() - age_minutes * 60) * 1000)
    store.save(CatalogSnapshot(timestamp_ms=timestamp_ms, medicines=medicines))


def _names(manager: CatalogCacheManager) -> list[str]:
    return [medicine.name for medicine in manager.medicines]


# ═══════════════════════════════════════════════════════════════════════════
# Startup
# ═══════════════════════════════════════════════════════════════════════════

class TestStart:
    @patch(_FETCH, return_value=_SHEET_TEXT)
    def test_cold_start_fetches(self, mock_fetch, tmp_path):
        store = _make_store(tmp_path)
        manager = _make_manager(store)
        asyncio.run(manager.start())

        assert mock_fetch.call_count == 1
        assert manager.status.state is CatalogState.READY
        assert manager.status.error is None
        assert manager.status.last_updated is not None
        assert _names(manager) == ["Paracetamol", "Cetirizine"]
        assert manager.medicines[0].price == 15.5
        assert store.exists()

    @patch(_FETCH)
    def test_recent_snapshot_adopted_without_network(self, mock_fetch, tmp_path):
        store = _make_store(tmp_path)
        _persist_snapshot(store, age_minutes=30, names=["Cached A"])
        manager = _make_manager(store)
        asyncio.run(manager.start())

        mock_fetch.assert_not_called()
        assert manager.status.state is CatalogState.READY
        assert _names(manager) == ["Cached A"]

    @patch(_FETCH, return_value=_SHEET_TEXT)
    def test_old_snapshot_triggers_fetch(self, mock_fetch, tmp_path):
        store = _make_store(tmp_path)
        _persist_snapshot(store, age_minutes=90, names=["Cached A"])
        manager = _make_manager(store)
        asyncio.run(manager.start())

        assert mock_fetch.call_count == 1
        assert _names(manager) == ["Paracetamol", "Cetirizine"]

    @patch(_FETCH)
    def test_adopted_snapshot_rebuilds_header_mapping(self, mock_fetch, tmp_path):
        store = _make_store(tmp_path)
        _persist_snapshot(store, age_minutes=5, names=["Cached A"])
        manager = _make_manager(store)
        asyncio.run(manager.start())

        assert manager.header_mapping.header_for("price") == "MRP"
        assert manager.header_mapping.header_for("name") == "Product Name"


# ═══════════════════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════════════════

class TestFailure:
    def test_decode_failure_keeps_previous_catalog(self, tmp_path):
        store = _make_store(tmp_path)
        manager = _make_manager(store)

        with patch(_FETCH, return_value=_SHEET_TEXT):
            asyncio.run(manager.start())
        with patch(_FETCH, return_value="/*O_o*/\ngoogle.visualization.Query.setResponse({broken);"):
            asyncio.run(manager.fetch_now())

        assert manager.status.state is CatalogState.FAILED
        assert "Invalid GViz response format" in manager.status.error
        assert _names(manager) == ["Paracetamol", "Cetirizine"]

    def test_failure_without_disk_snapshot_keeps_memory(self, tmp_path):
        store = _make_store(tmp_path)
        manager = _make_manager(store)

        with patch(_FETCH, return_value=_SHEET_TEXT):
            asyncio.run(manager.start())
        store.clear()
        with patch(_FETCH, side_effect=NetworkError("Network response was not ok: 500")):
            asyncio.run(manager.fetch_now())

        assert manager.status.state is CatalogState.FAILED
        assert manager.status.error == "Network response was not ok: 500"
        assert _names(manager) == ["Paracetamol", "Cetirizine"]

    @patch(_FETCH, side_effect=NetworkError("Network request failed: offline"))
    def test_cold_start_failure_stays_empty(self, mock_fetch, tmp_path):
        manager = _make_manager(_make_store(tmp_path))
        asyncio.run(manager.start())

        assert manager.status.state is CatalogState.FAILED
        assert manager.medicines == []
        assert manager.current_snapshot() is None

    @patch(_FETCH, side_effect=NetworkError("Network request failed: offline"))
    def test_failure_falls_back_to_stale_snapshot(self, mock_fetch, tmp_path):
        store = _make_store(tmp_path)
        _persist_snapshot(store, age_minutes=180, names=["Stale A", "Stale B"])
        manager = _make_manager(store)
        asyncio.run(manager.start())

        assert manager.status.state is CatalogState.FAILED
        assert manager.status.error == "Network request failed: offline"
        assert _names(manager) == ["Stale A", "Stale B"]

    @patch(_FETCH, return_value='{"status": "error", "errors": [{"reason": "access_denied"}]}')
    def test_error_status_reported(self, mock_fetch, tmp_path):
        manager = _make_manager(_make_store(tmp_path))
        asyncio.run(manager.start())

        assert manager.status.state is CatalogState.FAILED
        assert "access_denied" in manager.status.error

    def test_malformed_table_keeps_previous_catalog(self, tmp_path):
        store = _make_store(tmp_path)
        manager = _make_manager(store)
        malformed = json.dumps({
            "status": "ok",
            "table": {"cols": [{"label": "Product Name"}], "rows": [{"c": 5}]},
        })

        with patch(_FETCH, return_value=_SHEET_TEXT):
            asyncio.run(manager.start())
        with patch(_FETCH, return_value=malformed):
            asyncio.run(manager.fetch_now())

        assert manager.status.state is CatalogState.FAILED
        assert "malformed" in manager.status.error
        assert _names(manager) == ["Paracetamol", "Cetirizine"]

    @patch(_FETCH, return_value='{"status": "ok", "table": {"cols": 7, "rows": []}}')
    def test_malformed_columns_on_cold_start(self, mock_fetch, tmp_path):
        manager = _make_manager(_make_store(tmp_path))
        asyncio.run(manager.start())

        assert manager.status.state is CatalogState.FAILED
        assert manager.medicines == []

    def test_timeout(self, tmp_path):
        release = threading.Event()

        def _slow_fetch(source):
            release.wait(0.5)
            return _SHEET_TEXT

        manager = _make_manager(_make_store(tmp_path), timeout_seconds=0.05)
        try:
            with patch(_FETCH, side_effect=_slow_fetch), \
                    patch("processing.catalog_cache.FETCH_GRACE_SECONDS", 0.0):
                asyncio.run(manager.fetch_now())
        finally:
            release.set()

        assert manager.status.state is CatalogState.FAILED
        assert "timed out" in manager.status.error

    def test_cancellation_keeps_previous_catalog(self, tmp_path):
        store = _make_store(tmp_path)
        _persist_snapshot(store, age_minutes=5, names=["Cached A"])
        manager = _make_manager(store)
        release = threading.Event()

        def _blocking_fetch(source):
            release.wait(2)
            return _SHEET_TEXT

        async def _run():
            await manager.start()
            task = asyncio.ensure_future(manager.fetch_now())
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            release.set()

        with patch(_FETCH, side_effect=_blocking_fetch):
            asyncio.run(_run())

        assert manager.status.state is CatalogState.FAILED
        assert manager.status.error == CANCELLED_MESSAGE
        assert _names(manager) == ["Cached A"]


# ═══════════════════════════════════════════════════════════════════════════
# Refresh and invalidate
# ═══════════════════════════════════════════════════════════════════════════

class TestRefresh:
    @patch(_FETCH, return_value=_SHEET_TEXT)
    def test_refresh_ignores_fresh_cache(self, mock_fetch, tmp_path):
        store = _make_store(tmp_path)
        _persist_snapshot(store, age_minutes=1, names=["Cached A"])
        manager = _make_manager(store)

        asyncio.run(manager.start())
        asyncio.run(manager.refresh())

        assert mock_fetch.call_count == 1
        assert _names(manager) == ["Paracetamol", "Cetirizine"]
        assert manager.status.state is CatalogState.READY

    def test_failed_refresh_has_no_disk_fallback(self, tmp_path):
        store = _make_store(tmp_path)
        manager = _make_manager(store)

        with patch(_FETCH, return_value=_SHEET_TEXT):
            asyncio.run(manager.start())
        with patch(_FETCH, side_effect=NetworkError("Network request failed: offline")):
            asyncio.run(manager.refresh())

        assert not store.exists()
        assert manager.status.state is CatalogState.FAILED
        assert _names(manager) == ["Paracetamol", "Cetirizine"]

    @patch(_FETCH)
    def test_invalidate_does_not_fetch(self, mock_fetch, tmp_path):
        store = _make_store(tmp_path)
        _persist_snapshot(store, age_minutes=1, names=["Cached A"])
        manager = _make_manager(store)
        manager.invalidate()

        mock_fetch.assert_not_called()
        assert not store.exists()

    def test_concurrent_calls_share_one_fetch(self, tmp_path):
        calls: list[str] = []

        def _counting_fetch(source):
            calls.append(source.spreadsheet_id)
            time.sleep(0.05)
            return _SHEET_TEXT

        manager = _make_manager(_make_store(tmp_path))

        async def _run():
            await asyncio.gather(manager.fetch_now(), manager.fetch_now(), manager.refresh())

        with patch(_FETCH, side_effect=_counting_fetch):
            asyncio.run(_run())

        assert calls == ["sheet-123"]
        assert manager.status.state is CatalogState.READY


# ═══════════════════════════════════════════════════════════════════════════
# Observers and admin views
# ═══════════════════════════════════════════════════════════════════════════

class TestListenersAndReports:
    @patch(_FETCH, return_value=_SHEET_TEXT)
    def test_listener_sees_transitions(self, mock_fetch, tmp_path):
        manager = _make_manager(_make_store(tmp_path))
        states: list[CatalogState] = []
        manager.add_listener(lambda status: states.append(status.state))
        asyncio.run(manager.start())

        assert states == [CatalogState.LOADING, CatalogState.READY]

    @patch(_FETCH, return_value=_SHEET_TEXT)
    def test_loading_flag(self, mock_fetch, tmp_path):
        manager = _make_manager(_make_store(tmp_path))
        seen: list[bool] = []
        manager.add_listener(lambda status: seen.append(status.loading))
        asyncio.run(manager.start())

        assert seen == [True, False]

    @patch(_FETCH, return_value=_SHEET_TEXT)
    def test_failing_listener_does_not_break_fetch(self, mock_fetch, tmp_path):
        manager = _make_manager(_make_store(tmp_path))

        def _broken(status):
            raise RuntimeError("boom")

        manager.add_listener(_broken)
        asyncio.run(manager.start())
        assert manager.status.state is CatalogState.READY

    @patch(_FETCH, return_value=_make_gviz_text([("Paracetamol", "call us", "25")]))
    def test_warnings_exposed(self, mock_fetch, tmp_path):
        manager = _make_manager(_make_store(tmp_path))
        asyncio.run(manager.start())

        assert [w.field_name for w in manager.warnings] == ["price"]

    @patch(_FETCH, return_value=_SHEET_TEXT)
    def test_mapping_report(self, mock_fetch, tmp_path):
        manager = _make_manager(_make_store(tmp_path))
        asyncio.run(manager.start())

        report = {line.field_name: line for line in manager.mapping_report()}
        assert len(report) == len(FIELD_ALIASES)
        assert report["stock"].header == "Stock"
        assert report["prescription"].status == "Missing"

    def test_idle_before_start(self, tmp_path):
        manager = _make_manager(_make_store(tmp_path))
        assert manager.status.state is CatalogState.IDLE
        assert manager.medicines == []
