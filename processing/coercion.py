"""
Coercion helpers — turn loosely-typed spreadsheet cells into Python values.

Every function here is total: any input (None, NaN, numbers-as-strings,
typos, blank cells, lists) produces a usable value and nothing raises.
The entity normalizer builds on these; they are also usable on their own.

Numbers tolerate the noise people type into price and stock columns:
currency symbols (₹ $ € £, "Rs", "INR"), thousands separators and
surrounding whitespace.

Public API:
    parse_number(value)   → float | None
    to_safe_number(value) → float   (never negative, never NaN)
    to_boolean(value)     → bool
    to_split_list(value)  → list[str]
    to_text(value)        → str
"""

import math
import re
from typing import Any

from config.schema import TRUTHY_STRINGS

# Currency markers and thousands separators stripped before float()
_CURRENCY_PATTERN = re.compile(r"[₹£€$]|\b(?:rs\.?|inr)(?=[\s\d.]|$)", re.IGNORECASE)
_THOUSANDS_SEP_PATTERN = re.compile(r"(?<=\d),(?=\d{3})")


# ═══════════════════════════════════════════════════════════════════════════
# Numbers
# ═══════════════════════════════════════════════════════════════════════════

def parse_number(value: Any) -> float | None:
    """
    Parse *value* as a finite number.

    Booleans are not numbers here: a TRUE checkbox in a price column is
    a data-entry error, not 1.

    Args:
        value: Raw cell value (str, int, float, or anything else).

    Returns:
        The parsed float, or None if the value is missing or not numeric.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    if not isinstance(value, str):
        return None

    cleaned = _clean_numeric_string(value)
    if cleaned == "":
        return None

    try:
        number = float(cleaned)
    except ValueError:
        return None

    return number if math.isfinite(number) else None


def to_safe_number(value: Any) -> float:
    """
    Coerce *value* to a non-negative number.

    Missing, non-numeric and negative input all become 0.0.
    """
    number = parse_number(value)
    if number is None or number < 0:
        return 0.0
    return number


def _clean_numeric_string(raw_str: str) -> str:
    """
    Strip non-numeric noise from a string before conversion.

    Removes: currency symbols and codes, thousands-separator commas
    (e.g. "1,250" → "1250"), and surrounding whitespace.

    Args:
        raw_str: The raw string value.

    Returns:
        Cleaned string ready for float() conversion.
    """
    cleaned = _CURRENCY_PATTERN.sub("", raw_str)
    cleaned = _THOUSANDS_SEP_PATTERN.sub("", cleaned)
    return cleaned.strip()


# ═══════════════════════════════════════════════════════════════════════════
# Booleans, lists, text
# ═══════════════════════════════════════════════════════════════════════════

def to_boolean(value: Any) -> bool:
    """
    True for a literal True or a "y" / "yes" / "true" / "1" string.

    Comparison is case-insensitive and ignores surrounding whitespace.
    Everything else, including numbers and None, is False.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return False


def to_split_list(value: Any) -> list[str]:
    """
    Coerce a free-text or list cell into a list of strings.

    Lists pass through unchanged; a non-blank string is split on commas
    with each part trimmed and empty parts dropped; anything else is [].
    """
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str) and value.strip():
        return [part.strip() for part in value.split(",") if part.strip()]
    return []


def to_text(value: Any) -> str:
    """
    Render a cell value as display text.

    None and NaN become "", whole floats lose their ".0" (3.0 → "3"),
    and strings are stripped.
    """
    if value is None or isinstance(value, (list, tuple, dict)):
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return str(value)
    return str(value).strip()
