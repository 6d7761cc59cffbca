"""
Catalog schema definitions for the medicine entity.

Defines the canonical field order, the text defaults and the stock threshold
behind the derived availability tier.
"""

# Canonical Medicine fields in declaration order. Medicine.to_dict() writes
# them in this order, and FIELD_ALIASES lists its fields in the same order
# (reconciliation walks that table, so earlier fields get first pick of an
# ambiguous header).
CANONICAL_FIELDS: list[str] = [
    "id",
    "name",
    "generic_name",
    "brand",
    "category",
    "manufacturer",
    "description",
    "dosage",
    "form",
    "price",
    "stock",
    "prescription",
    "image_url",
    "uses",
    "side_effects",
    "contraindications",
]

DEFAULT_MEDICINE_NAME: str = "Unknown Medicine"

# Fallback literal for each text field when the sheet has no usable value.
# Manufacturer is special-cased: it falls back to brand before "N/A".
TEXT_DEFAULTS: dict[str, str] = {
    "name": DEFAULT_MEDICINE_NAME,
    "generic_name": "N/A",
    "brand": "N/A",
    "category": "Uncategorized",
    "manufacturer": "N/A",
    "description": "",
    "dosage": "",
    "form": "",
}

# Prefix for identifiers synthesized from the row position.
SYNTHETIC_ID_PREFIX: str = "med-"

# Stock above this is "In Stock"; above 0 up to this is "Low Stock".
LOW_STOCK_THRESHOLD: int = 20

# Strings that count as "prescription required" (compared lowercase).
TRUTHY_STRINGS: set[str] = {"y", "yes", "true", "1"}

# Placeholder image for medicines without an image reference.
PLACEHOLDER_IMAGE_TEMPLATE: str = "https://placehold.co/400x400/0D9488/FFFFFF?text={initial}"
