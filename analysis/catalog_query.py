"""
Pure query helpers for the storefront pages.

Search, filter, sort and paginate the medicine list, and shape it into
DataFrames for the admin tables. No side effects, no I/O; every function
takes the current medicine list and returns a new value.

Edge cases:
- Empty catalog → empty results, one (empty) page
- Page numbers out of range → clamped to the nearest valid page
- Unknown sort key → name A–Z
"""

import logging
import math
from dataclasses import dataclass, field

import pandas as pd

from processing.entity_normalizer import Availability, Medicine

logger = logging.getLogger(__name__)

ITEMS_PER_PAGE: int = 24

ALL: str = "all"

SORT_OPTIONS: dict[str, str] = {
    "name-asc": "Name (A–Z)",
    "name-desc": "Name (Z–A)",
    "price-asc": "Price: Low → High",
    "price-desc": "Price: High → Low",
    "availability": "Availability",
}

# Columns shown in the catalog table, in display order.
_CATALOG_COLUMNS: list[str] = [
    "id",
    "name",
    "generic_name",
    "brand",
    "category",
    "manufacturer",
    "form",
    "dosage",
    "price",
    "stock",
    "availability",
    "prescription",
]


# ═══════════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class CatalogFilter:
    """The catalog page's filter bar."""

    search: str = ""
    category: str = ALL
    manufacturer: str = ALL
    prescription_only: bool = False
    sort: str = "name-asc"

    @property
    def is_default(self) -> bool:
        return self == CatalogFilter()


@dataclass
class Page:
    """One page of results."""

    items: list[Medicine] = field(default_factory=list)
    page: int = 1
    total_pages: int = 1
    total_items: int = 0


# ═══════════════════════════════════════════════════════════════════════════
# Filtering, sorting, pagination
# ═══════════════════════════════════════════════════════════════════════════

def filter_medicines(medicines: list[Medicine], flt: CatalogFilter) -> list[Medicine]:
    """
    Apply the filter bar to *medicines*.

    Search is a case-insensitive substring match on name, generic name or
    brand. Category and manufacturer match exactly unless set to "all".

    Args:
        medicines: The full catalog.
        flt: Current filter settings.

    Returns:
        The matching medicines, sorted per flt.sort.
    """
    needle = flt.search.strip().lower()

    def _matches(medicine: Medicine) -> bool:
        if needle and not any(
            needle in text.lower()
            for text in (medicine.name, medicine.generic_name, medicine.brand)
        ):
            return False
        if flt.category != ALL and medicine.category != flt.category:
            return False
        if flt.manufacturer != ALL and medicine.manufacturer != flt.manufacturer:
            return False
        if flt.prescription_only and not medicine.prescription:
            return False
        return True

    matched = [medicine for medicine in medicines if _matches(medicine)]
    return sort_medicines(matched, flt.sort)


def sort_medicines(medicines: list[Medicine], sort: str) -> list[Medicine]:
    """Sort by one of SORT_OPTIONS; "availability" puts the most stock first."""
    if sort == "price-asc":
        return sorted(medicines, key=lambda m: m.price)
    if sort == "price-desc":
        return sorted(medicines, key=lambda m: m.price, reverse=True)
    if sort == "availability":
        return sorted(medicines, key=lambda m: m.stock, reverse=True)
    if sort == "name-desc":
        return sorted(medicines, key=lambda m: m.name.casefold(), reverse=True)
    return sorted(medicines, key=lambda m: m.name.casefold())


def facet_values(medicines: list[Medicine], attribute: str) -> list[str]:
    """Distinct non-blank values of *attribute*, sorted (for filter dropdowns)."""
    values = {
        str(getattr(medicine, attribute, "") or "").strip()
        for medicine in medicines
    }
    return sorted((value for value in values if value), key=str.casefold)


def paginate(items: list[Medicine], page: int, per_page: int = ITEMS_PER_PAGE) -> Page:
    """
    Slice *items* into one page.

    Args:
        items: Filtered, sorted medicines.
        page: Requested 1-based page number (clamped into range).
        per_page: Page size.

    Returns:
        Page with the slice and paging totals. There is always at least
        one page.
    """
    total_pages = max(1, math.ceil(len(items) / per_page))
    current = min(max(1, page), total_pages)
    start = (current - 1) * per_page
    return Page(
        items=items[start:start + per_page],
        page=current,
        total_pages=total_pages,
        total_items=len(items),
    )


def find_medicine(medicines: list[Medicine], medicine_id: str) -> Medicine | None:
    """The first medicine with *medicine_id*, or None."""
    return next((m for m in medicines if m.id == medicine_id), None)


# ═══════════════════════════════════════════════════════════════════════════
# Admin tables
# ═══════════════════════════════════════════════════════════════════════════

def catalog_frame(medicines: list[Medicine]) -> pd.DataFrame:
    """One row per medicine with the main display columns."""
    records = []
    for medicine in medicines:
        record = medicine.to_dict()
        records.append({column: record[column] for column in _CATALOG_COLUMNS})
    return pd.DataFrame(records, columns=_CATALOG_COLUMNS)


def raw_preview_frame(medicines: list[Medicine], limit: int = 10) -> pd.DataFrame:
    """
    The first *limit* raw sheet rows, as the sheet delivered them.

    Columns follow first appearance across the previewed rows; cells a row
    did not have are left empty.
    """
    rows = [medicine.raw for medicine in medicines[:max(0, limit)]]
    columns: dict[str, None] = {}
    for row in rows:
        for header in row:
            columns.setdefault(header, None)
    return pd.DataFrame(rows, columns=list(columns))


def availability_summary(medicines: list[Medicine]) -> pd.DataFrame:
    """
    Count medicines per availability tier.

    Returns:
        DataFrame with columns ["Availability", "Count"], one row per tier
        in tier order, zero counts included.
    """
    tiers = [tier.value for tier in Availability]
    counts = (
        pd.Series([medicine.availability.value for medicine in medicines], dtype="object")
        .value_counts()
        .reindex(tiers, fill_value=0)
    )
    return pd.DataFrame({"Availability": tiers, "Count": counts.astype(int).tolist()})
