"""
Enquiry list — the shopper's saved medicines.

Each shopper gets their own list: the storefront keeps one EnquiryList per
browser session, in memory. A list given a *path* is also mirrored to a
JSON file (a list of Medicine.to_dict() records), rewritten after every
change and read once on construction. That file is best-effort: a missing
or unreadable file means an empty list.

Public API:
    EnquiryList(path=None)
        .add(medicine) / .remove(medicine_id) / .contains(medicine_id)
        .clear() / .items / len()
"""

import json
import logging
from pathlib import Path

from processing.entity_normalizer import Medicine

logger = logging.getLogger(__name__)


class EnquiryList:
    """Ordered, duplicate-free list of medicines the shopper is asking about."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else None
        self._items: list[Medicine] = _load_items(self.path) if self.path else []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[Medicine]:
        return list(self._items)

    def contains(self, medicine_id: str) -> bool:
        return any(item.id == medicine_id for item in self._items)

    def add(self, medicine: Medicine) -> bool:
        """
        Append *medicine* unless one with the same id is already listed.

        Returns:
            True if the list changed.
        """
        if self.contains(medicine.id):
            logger.debug(f"Enquiry list already has {medicine.id}")
            return False
        self._items.append(medicine)
        self._persist()
        logger.info(f"Added {medicine.id} to enquiry list ({len(self._items)} items)")
        return True

    def remove(self, medicine_id: str) -> bool:
        """Drop the medicine with *medicine_id*. Returns True if it was listed."""
        remaining = [item for item in self._items if item.id != medicine_id]
        if len(remaining) == len(self._items):
            return False
        self._items = remaining
        self._persist()
        logger.info(f"Removed {medicine_id} from enquiry list ({len(self._items)} items)")
        return True

    def clear(self) -> None:
        self._items = []
        self._persist()
        logger.info("Cleared enquiry list")

    def _persist(self) -> None:
        if self.path is not None:
            _save_items(self.path, self._items)


# ═══════════════════════════════════════════════════════════════════════════
# Persistence
# ═══════════════════════════════════════════════════════════════════════════

def _load_items(path: Path) -> list[Medicine]:
    """
    Load the enquiry list from disk.

    Returns an empty list if the file does not exist or cannot be parsed.
    """
    if not path.exists():
        return []
    try:
        with path.open("r", encoding="utf-8") as file_handle:
            data = json.load(file_handle)
        if not isinstance(data, list):
            logger.warning(f"Enquiry list {path} is not a JSON list, starting empty")
            return []
        return [Medicine.from_dict(item) for item in data if isinstance(item, dict)]
    except (OSError, TypeError, ValueError, AttributeError) as exc:
        logger.warning(f"Failed to load enquiry list from {path}: {exc}, starting empty")
        return []


def _save_items(path: Path, items: list[Medicine]) -> None:
    """Persist the enquiry list as pretty-printed JSON."""
    try:
        with path.open("w", encoding="utf-8") as file_handle:
            json.dump(
                [item.to_dict() for item in items],
                file_handle,
                ensure_ascii=False,
                indent=2,
            )
    except (OSError, TypeError, ValueError) as exc:
        logger.error(f"Failed to save enquiry list to {path}: {exc}")
