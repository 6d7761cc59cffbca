"""
Header alias configuration.

Maps each canonical Medicine field to the spreadsheet headers that may carry
it. Aliases are stored in normalized form (lowercase, letters and digits
only), so "Product Name", "PRODUCT_NAME" and "product-name" all hit the
"productname" alias.

Within a field the list is in priority order: the first alias found in the
sheet wins. The table is static for a given release.
"""

# ---------------------------------------------------------------------------
# Canonical field → normalized header aliases (priority order)
# ---------------------------------------------------------------------------
FIELD_ALIASES: dict[str, list[str]] = {
    "id": ["sl", "id", "serialnumber"],
    "name": ["productname", "medicinename", "name"],
    "generic_name": ["genericname", "composition"],
    "brand": ["marketer", "brand"],
    "category": ["category", "group"],
    "manufacturer": ["manufacturer", "mfg"],
    "description": ["description"],
    "dosage": ["dosage"],
    "form": ["form", "packtype"],
    "price": ["mrp", "rate", "price"],
    "stock": ["stock", "quantity", "qty"],
    "prescription": ["prescription", "rx"],
    "image_url": ["imageurl", "image", "img"],
    "uses": ["uses", "indications"],
    "side_effects": ["sideeffects"],
    "contraindications": ["contraindications"],
}
