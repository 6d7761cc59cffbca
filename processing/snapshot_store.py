"""
Snapshot store — persists the last good catalog to a JSON file.

File layout:

    {"timestamp": <epoch millis, UTC>, "data": [<Medicine.to_dict()>, ...]}

Writes go to a temporary file in the same directory which then replaces
the target in one os.replace(), so a reader sees either the old snapshot
or the new one, never a half-written file. The cache is best-effort:
unreadable files load as "no snapshot" and failed writes are logged.

Public API:
    CatalogSnapshot
    SnapshotStore(path).load() / .save(snapshot) / .clear() / .exists()
"""

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from config.data_source import CACHE_PATH
from processing.entity_normalizer import Medicine

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Data class
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class CatalogSnapshot:
    """A complete catalog as of one moment."""

    timestamp_ms: int
    medicines: list[Medicine] = field(default_factory=list)

    @classmethod
    def taken_now(cls, medicines: list[Medicine]) -> "CatalogSnapshot":
        return cls(timestamp_ms=int(time.time() * 1000), medicines=list(medicines))

    @property
    def last_updated(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_ms / 1000, tz=timezone.utc)

    def age_seconds(self, now: float | None = None) -> float:
        """Seconds since the snapshot was taken (*now* defaults to time.time())."""
        current = time.time() if now is None else now
        return current - self.timestamp_ms / 1000

    def is_fresh(self, ttl_seconds: float, now: float | None = None) -> bool:
        return self.age_seconds(now) < ttl_seconds


# ═══════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════

class SnapshotStore:
    """JSON-file persistence for CatalogSnapshot."""

    def __init__(self, path: str | Path = CACHE_PATH) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> CatalogSnapshot | None:
        """
        Read the persisted snapshot.

        Returns:
            The snapshot, or None if the file is missing, unreadable, or
            not in the expected layout.
        """
        if not self.path.exists():
            return None

        try:
            with self.path.open("r", encoding="utf-8") as file_handle:
                payload = json.load(file_handle)
        except (OSError, ValueError) as exc:
            logger.warning(f"Failed to read catalog cache {self.path}: {exc}, ignoring it")
            return None

        if not isinstance(payload, dict):
            logger.warning(f"Catalog cache {self.path} is not a JSON object, ignoring it")
            return None

        timestamp = payload.get("timestamp")
        data = payload.get("data")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) or not isinstance(data, list):
            logger.warning(f"Catalog cache {self.path} has an unexpected layout, ignoring it")
            return None

        try:
            medicines = [Medicine.from_dict(item) for item in data if isinstance(item, dict)]
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning(f"Catalog cache {self.path} holds malformed entries: {exc}, ignoring it")
            return None

        logger.debug(f"Loaded {len(medicines)} medicines from {self.path}")
        return CatalogSnapshot(timestamp_ms=int(timestamp), medicines=medicines)

    def save(self, snapshot: CatalogSnapshot) -> bool:
        """
        Atomically replace the persisted snapshot.

        Args:
            snapshot: The snapshot to write.

        Returns:
            True if the file was written, False if writing failed.
        """
        payload = {
            "timestamp": snapshot.timestamp_ms,
            "data": [medicine.to_dict() for medicine in snapshot.medicines],
        }

        directory = self.path.parent if str(self.path.parent) else Path(".")
        temp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as file_handle:
                temp_name = file_handle.name
                json.dump(payload, file_handle, ensure_ascii=False, default=str)
            os.replace(temp_name, self.path)
        except (OSError, TypeError, ValueError) as exc:
            logger.error(f"Failed to save catalog cache to {self.path}: {exc}")
            if temp_name is not None:
                Path(temp_name).unlink(missing_ok=True)
            return False

        logger.info(f"Saved {len(snapshot.medicines)} medicines to {self.path}")
        return True

    def clear(self) -> None:
        """Delete the persisted snapshot. Missing files are fine."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error(f"Failed to clear catalog cache {self.path}: {exc}")
            return
        logger.info(f"Cleared catalog cache {self.path}")
