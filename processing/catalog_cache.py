"""
Catalog cache manager — decides between the cached snapshot and a fresh fetch.

State machine:

    IDLE ──start()──► READY                   (fresh snapshot on disk)
    IDLE ──start()──► LOADING ─► READY | FAILED
    READY / FAILED ──fetch_now() / refresh()──► LOADING ─► READY | FAILED

A fetch runs the whole pipeline (download → parse → project → reconcile
headers once → normalize every row) before anything visible changes; the
snapshot, header mapping and warnings are then swapped together and the
snapshot is persisted. Consumers therefore only ever see the previous
complete catalog or the next one.

On failure the error message is recorded, the state becomes FAILED, and the
persisted snapshot (even a stale one) is adopted so the storefront can keep
showing the last known good catalog. With nothing on disk, whatever was
already in memory stays; a cold start stays empty.

Only one fetch runs at a time: a fetch_now() / refresh() issued while one is
in flight waits for that fetch instead of starting another.

Public API:
    CatalogCacheManager(source, store, ttl_seconds)
        .start() / .fetch_now() / .refresh()      (async)
        .invalidate()
        .current_snapshot() / .medicines / .status / .header_mapping
        .warnings / .mapping_report() / .add_listener(callback)
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from config.data_source import CACHE_TTL_SECONDS, DataSource, load_data_source
from processing.catalog_fetcher import fetch_sheet_text
from processing.entity_normalizer import Medicine, NormalizationWarning, normalize_rows
from processing.errors import CatalogError
from processing.gviz_parser import parse_gviz_text
from processing.header_reconciler import (
    FieldMappingStatus,
    HeaderMapping,
    mapping_report,
    observed_headers,
    reconcile_headers,
)
from processing.row_projector import extract_headers, project_rows
from processing.snapshot_store import CatalogSnapshot, SnapshotStore

logger = logging.getLogger(__name__)

# Extra time allowed on top of the request timeout before the fetch is abandoned.
FETCH_GRACE_SECONDS: float = 5.0

CANCELLED_MESSAGE: str = "Catalog refresh was cancelled"


# ═══════════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════════

class CatalogState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class CatalogStatus:
    """What the storefront shows about the data source."""

    state: CatalogState = CatalogState.IDLE
    error: str | None = None
    last_updated: datetime | None = None

    @property
    def loading(self) -> bool:
        return self.state is CatalogState.LOADING


StatusListener = Callable[[CatalogStatus], None]


# ═══════════════════════════════════════════════════════════════════════════
# Manager
# ═══════════════════════════════════════════════════════════════════════════

class CatalogCacheManager:
    """Owns the current catalog snapshot and its refresh policy."""

    def __init__(
        self,
        source: DataSource | None = None,
        store: SnapshotStore | None = None,
        ttl_seconds: float = CACHE_TTL_SECONDS,
    ) -> None:
        self._source = source or load_data_source()
        self._store = store or SnapshotStore()
        self._ttl_seconds = ttl_seconds

        self._snapshot: CatalogSnapshot | None = None
        self._mapping = HeaderMapping()
        self._warnings: list[NormalizationWarning] = []

        self._state = CatalogState.IDLE
        self._error: str | None = None
        self._listeners: list[StatusListener] = []
        self._inflight: asyncio.Task | None = None

    # ── Read side ────────────────────────────────────────────────

    @property
    def status(self) -> CatalogStatus:
        return CatalogStatus(
            state=self._state,
            error=self._error,
            last_updated=self._snapshot.last_updated if self._snapshot else None,
        )

    @property
    def medicines(self) -> list[Medicine]:
        return list(self._snapshot.medicines) if self._snapshot else []

    @property
    def header_mapping(self) -> HeaderMapping:
        return self._mapping

    @property
    def warnings(self) -> list[NormalizationWarning]:
        return list(self._warnings)

    def current_snapshot(self) -> CatalogSnapshot | None:
        return self._snapshot

    def mapping_report(self) -> list[FieldMappingStatus]:
        return mapping_report(self._mapping)

    def add_listener(self, callback: StatusListener) -> None:
        """Call *callback* with the new status after every state change."""
        self._listeners.append(callback)

    # ── Commands ─────────────────────────────────────────────────

    async def start(self) -> None:
        """Adopt a fresh persisted snapshot, or fetch if there is none."""
        if self._adopt_persisted(allow_stale=False):
            self._transition(CatalogState.READY)
            return
        await self.fetch_now()

    async def fetch_now(self) -> None:
        """Fetch and process the sheet, joining a fetch already in flight."""
        if self._inflight is not None and not self._inflight.done():
            logger.info("Catalog fetch already in flight, waiting for it")
            await asyncio.shield(self._inflight)
            return

        self._inflight = asyncio.ensure_future(self._fetch_and_swap())
        await self._inflight

    async def refresh(self) -> None:
        """Drop the persisted snapshot and fetch again (admin "force reload")."""
        if self._inflight is not None and not self._inflight.done():
            logger.info("Catalog fetch already in flight, waiting for it")
            await asyncio.shield(self._inflight)
            return

        self.invalidate()
        await self.fetch_now()

    def invalidate(self) -> None:
        """Discard the persisted snapshot. Does not fetch."""
        self._store.clear()

    # ── Internals ────────────────────────────────────────────────

    async def _fetch_and_swap(self) -> None:
        self._transition(CatalogState.LOADING)

        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(fetch_sheet_text, self._source),
                timeout=self._source.timeout_seconds + FETCH_GRACE_SECONDS,
            )
            snapshot, mapping, warnings = _process_sheet_text(text)
        except asyncio.CancelledError:
            logger.warning(CANCELLED_MESSAGE)
            self._transition(CatalogState.FAILED, error=CANCELLED_MESSAGE)
            raise
        except asyncio.TimeoutError:
            self._fail(
                f"Catalog fetch timed out after "
                f"{self._source.timeout_seconds + FETCH_GRACE_SECONDS:g} seconds."
            )
            return
        except CatalogError as exc:
            self._fail(str(exc) or type(exc).__name__)
            return

        self._snapshot = snapshot
        self._mapping = mapping
        self._warnings = warnings
        self._store.save(snapshot)
        self._transition(CatalogState.READY)

        logger.info(f"Catalog ready: {len(snapshot.medicines)} medicines")

    def _fail(self, message: str) -> None:
        """Record a failed fetch, then fall back to whatever is on disk."""
        logger.error(f"Failed to fetch or process medicines data: {message}")
        self._transition(CatalogState.FAILED, error=message)

        if self._adopt_persisted(allow_stale=True):
            logger.info("Showing the last cached catalog alongside the error")
            self._notify()
        elif self._snapshot is not None:
            logger.info("No cached catalog on disk, keeping the catalog already loaded")
        else:
            logger.info("No cached catalog available, catalog stays empty")

    def _adopt_persisted(self, allow_stale: bool) -> bool:
        """
        Make the persisted snapshot current.

        Args:
            allow_stale: Adopt the snapshot even if it is older than the TTL.

        Returns:
            True if a snapshot was adopted.
        """
        snapshot = self._store.load()
        if snapshot is None:
            return False

        if not allow_stale and not snapshot.is_fresh(self._ttl_seconds):
            logger.info(
                f"Cached catalog is {snapshot.age_seconds():.0f}s old "
                f"(ttl {self._ttl_seconds:g}s), refetching"
            )
            return False

        self._snapshot = snapshot
        self._mapping = reconcile_headers(
            observed_headers(medicine.raw for medicine in snapshot.medicines)
        )
        self._warnings = []

        logger.info(
            f"Adopted cached catalog: {len(snapshot.medicines)} medicines "
            f"from {snapshot.last_updated.isoformat()}"
        )
        return True

    def _transition(self, state: CatalogState, error: str | None = None) -> None:
        logger.debug(f"Catalog state {self._state.value} → {state.value}")
        self._state = state
        self._error = error
        self._notify()

    def _notify(self) -> None:
        status = self.status
        for callback in list(self._listeners):
            try:
                callback(status)
            except Exception:
                logger.exception("Catalog status listener failed")


def _process_sheet_text(
    text: str,
) -> tuple[CatalogSnapshot, HeaderMapping, list[NormalizationWarning]]:
    """
    Run the ingestion pipeline over one GViz response body.

    Raises:
        ParseError: If the envelope cannot be decoded.
        SchemaError: If the payload has no usable table.
    """
    payload = parse_gviz_text(text)
    rows = project_rows(payload)
    mapping = reconcile_headers(extract_headers(payload))
    result = normalize_rows(rows, mapping)
    return CatalogSnapshot.taken_now(result.medicines), mapping, result.warnings
