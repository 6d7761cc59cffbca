"""
Entity normalizer — turns one generic sheet row into a typed Medicine.

For each header in the row, the header mapping says which Medicine field
(if any) it feeds. The collected values are then coerced field by field:

  - id: the mapped id as text; else a slug of the name; else "med-<row>"
  - text fields: the mapped value, else a fixed default
    (manufacturer falls back to brand before its default)
  - price / stock: numeric parse, clamped to >= 0; junk becomes 0.
    Values are kept as parsed (no rounding), so availability sees the
    same number the sheet holds
  - availability: derived from stock, never stored
  - prescription: y / yes / true / 1 (case-insensitive) or literal True
  - uses / side effects / contraindications: comma-separated lists
  - image_url: the mapped value if truthy, else None

Normalization never fails. Values that had to be replaced by a default are
reported as NormalizationWarning records (for the admin view), never raised.
normalize_row() does not de-duplicate ids. normalize_rows() does: a repeated
id gets the first free "-2", "-3", ... suffix, in row order.

Public API:
    normalize_row(row, mapping, row_index, warnings) → Medicine
    normalize_rows(rows, mapping)                    → NormalizationResult
    availability_for(stock)                          → Availability
    placeholder_image_url(name)                      → str
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any
from urllib.parse import quote

from config.schema import (
    CANONICAL_FIELDS,
    DEFAULT_MEDICINE_NAME,
    LOW_STOCK_THRESHOLD,
    PLACEHOLDER_IMAGE_TEMPLATE,
    SYNTHETIC_ID_PREFIX,
    TEXT_DEFAULTS,
)
from processing.coercion import (
    parse_number,
    to_boolean,
    to_safe_number,
    to_split_list,
    to_text,
)
from processing.header_reconciler import HeaderMapping, normalize_header

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════════

class Availability(str, Enum):
    """Three-level stock indicator shown on every product card."""

    IN_STOCK = "In Stock"
    LOW_STOCK = "Low Stock"
    OUT_OF_STOCK = "Out of Stock"


@dataclass(frozen=True)
class Medicine:
    """One catalog entry, fully typed. Immutable; use dataclasses.replace()."""

    id: str
    name: str = DEFAULT_MEDICINE_NAME
    generic_name: str = "N/A"
    brand: str = "N/A"
    category: str = "Uncategorized"
    manufacturer: str = "N/A"
    description: str = ""
    dosage: str = ""
    form: str = ""
    price: float = 0.0
    stock: float = 0.0
    prescription: bool = False
    image_url: str | None = None
    uses: list[str] = field(default_factory=list)
    side_effects: list[str] = field(default_factory=list)
    contraindications: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)
    """The sheet row this entry was built from (admin / debugging only)."""

    def __post_init__(self) -> None:
        if self.price < 0 or self.stock < 0:
            raise ValueError(
                f"Medicine {self.id!r}: price and stock must be >= 0 "
                f"(got price={self.price}, stock={self.stock})"
            )

    @property
    def availability(self) -> Availability:
        return availability_for(self.stock)

    @property
    def display_image_url(self) -> str:
        """The image reference, or a lettered placeholder derived from the name."""
        return self.image_url or placeholder_image_url(self.name)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the snapshot file (availability included for readers)."""
        record: dict[str, Any] = {}
        for field_name in CANONICAL_FIELDS:
            value = getattr(self, field_name)
            record[field_name] = list(value) if isinstance(value, list) else value
        record["availability"] = self.availability.value
        record["raw"] = dict(self.raw)
        return record

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Medicine":
        """
        Rebuild a Medicine from to_dict() output.

        Stored availability is ignored (it is re-derived from stock), and
        numbers go back through the same coercion so a hand-edited file
        cannot break the price / stock invariants.
        """
        raw = data.get("raw")
        return cls(
            id=to_text(data.get("id")) or SYNTHETIC_ID_PREFIX + "0",
            name=to_text(data.get("name")) or TEXT_DEFAULTS["name"],
            generic_name=to_text(data.get("generic_name")) or TEXT_DEFAULTS["generic_name"],
            brand=to_text(data.get("brand")) or TEXT_DEFAULTS["brand"],
            category=to_text(data.get("category")) or TEXT_DEFAULTS["category"],
            manufacturer=to_text(data.get("manufacturer")) or TEXT_DEFAULTS["manufacturer"],
            description=to_text(data.get("description")),
            dosage=to_text(data.get("dosage")),
            form=to_text(data.get("form")),
            price=to_safe_number(data.get("price")),
            stock=to_safe_number(data.get("stock")),
            prescription=to_boolean(data.get("prescription")),
            image_url=to_text(data.get("image_url")) or None,
            uses=to_split_list(data.get("uses")),
            side_effects=to_split_list(data.get("side_effects")),
            contraindications=to_split_list(data.get("contraindications")),
            raw=dict(raw) if isinstance(raw, dict) else {},
        )


@dataclass
class NormalizationWarning:
    """A cell whose value could not be used and was replaced by a default."""

    row_index: int
    field_name: str
    header: str
    original_value: str
    reason: str = ""


@dataclass
class NormalizationResult:
    """Output of the normalize_rows() function."""

    medicines: list[Medicine] = field(default_factory=list)
    warnings: list[NormalizationWarning] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def availability_for(stock: float) -> Availability:
    """
    Derive the availability tier from a stock count.

    > LOW_STOCK_THRESHOLD → In Stock; above 0 up to LOW_STOCK_THRESHOLD →
    Low Stock (fractional stock included); anything else → Out of Stock.
    """
    if stock > LOW_STOCK_THRESHOLD:
        return Availability.IN_STOCK
    if stock > 0:
        return Availability.LOW_STOCK
    return Availability.OUT_OF_STOCK


def placeholder_image_url(name: str) -> str:
    """Placeholder image showing the first letter of *name* (or "M")."""
    initial = (name or "").strip()[:1] or "M"
    return PLACEHOLDER_IMAGE_TEMPLATE.format(initial=quote(initial))


def normalize_row(
    row: dict[str, Any],
    mapping: HeaderMapping,
    row_index: int,
    warnings: list[NormalizationWarning] | None = None,
) -> Medicine:
    """
    Build one Medicine from one generic sheet row.

    Args:
        row: Header → cell value, as produced by the row projector.
        mapping: Header mapping for the fetch this row came from.
        row_index: 1-based position of the row, used for synthetic ids.
        warnings: Optional list to append NormalizationWarning records to.

    Returns:
        A Medicine. Never raises; missing or malformed values fall back to
        defaults.
    """
    values: dict[str, Any] = {}
    headers: dict[str, str] = {}

    for header, value in row.items():
        field_name = mapping.field_for(header)
        if field_name is None:
            continue
        values[field_name] = value
        headers[field_name] = header

    row_warnings = _numeric_warnings(values, headers, row_index)
    for warning in row_warnings:
        logger.debug(
            f"Row {row_index}: {warning.field_name} '{warning.original_value}' "
            f"({warning.header}) {warning.reason}"
        )
    if warnings is not None:
        warnings.extend(row_warnings)

    name = to_text(values.get("name"))
    brand = to_text(values.get("brand"))

    return Medicine(
        id=_resolve_id(values.get("id"), name, row_index),
        name=name or TEXT_DEFAULTS["name"],
        generic_name=_text_or_default(values, "generic_name"),
        brand=brand or TEXT_DEFAULTS["brand"],
        category=_text_or_default(values, "category"),
        manufacturer=to_text(values.get("manufacturer")) or brand or TEXT_DEFAULTS["manufacturer"],
        description=_text_or_default(values, "description"),
        dosage=_text_or_default(values, "dosage"),
        form=_text_or_default(values, "form"),
        price=to_safe_number(values.get("price")),
        stock=to_safe_number(values.get("stock")),
        prescription=to_boolean(values.get("prescription")),
        image_url=_optional_text(values.get("image_url")),
        uses=to_split_list(values.get("uses")),
        side_effects=to_split_list(values.get("side_effects")),
        contraindications=to_split_list(values.get("contraindications")),
        raw=dict(row),
    )


def normalize_rows(
    rows: list[dict[str, Any]],
    mapping: HeaderMapping,
) -> NormalizationResult:
    """
    Normalize every row of a fetch, in order.

    Args:
        rows: Generic rows from the row projector.
        mapping: Header mapping computed once for this fetch.

    Returns:
        NormalizationResult with one Medicine per row (row indices start
        at 1), ids unique across the batch, and every warning raised
        along the way.
    """
    result = NormalizationResult()
    taken_ids: set[str] = set()

    for index, row in enumerate(rows, start=1):
        medicine = normalize_row(row, mapping, index, warnings=result.warnings)
        unique_id = _unique_id(medicine.id, taken_ids)
        if unique_id != medicine.id:
            logger.warning(
                f"Row {index}: duplicate id '{medicine.id}', renamed to '{unique_id}'"
            )
            medicine = replace(medicine, id=unique_id)
        taken_ids.add(unique_id)
        result.medicines.append(medicine)

    logger.info(
        f"Normalization complete: {len(result.medicines)} medicines, "
        f"{len(result.warnings)} values defaulted"
    )
    return result


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _resolve_id(raw_id: Any, name: str, row_index: int) -> str:
    """Mapped id, else a slug of the name, else a row-based id."""
    text_id = to_text(raw_id)
    if text_id:
        return text_id

    slug = normalize_header(name)
    if slug:
        return slug

    return f"{SYNTHETIC_ID_PREFIX}{row_index}"


def _unique_id(medicine_id: str, taken_ids: set[str]) -> str:
    """*medicine_id*, or the first "<id>-<n>" (n >= 2) not in *taken_ids*."""
    if medicine_id not in taken_ids:
        return medicine_id
    suffix = 2
    while f"{medicine_id}-{suffix}" in taken_ids:
        suffix += 1
    return f"{medicine_id}-{suffix}"


def _text_or_default(values: dict[str, Any], field_name: str) -> str:
    return to_text(values.get(field_name)) or TEXT_DEFAULTS[field_name]


def _optional_text(value: Any) -> str | None:
    return to_text(value) or None


def _numeric_warnings(
    values: dict[str, Any],
    headers: dict[str, str],
    row_index: int,
) -> list[NormalizationWarning]:
    """
    Report price / stock values that were present but had to become 0.

    Args:
        values: Field → mapped raw value for one row.
        headers: Field → the header the value came from.
        row_index: 1-based row position.

    Returns:
        One NormalizationWarning per unusable numeric value.
    """
    found: list[NormalizationWarning] = []

    for field_name in ("price", "stock"):
        if field_name not in values:
            continue
        raw_value = values[field_name]
        if to_text(raw_value) == "":
            continue

        number = parse_number(raw_value)
        if number is None:
            reason = "is not a number, defaulted to 0"
        elif number < 0:
            reason = "is negative, clamped to 0"
        else:
            continue

        found.append(NormalizationWarning(
            row_index=row_index,
            field_name=field_name,
            header=headers[field_name],
            original_value=str(raw_value),
            reason=reason,
        ))

    return found
