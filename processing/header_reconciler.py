"""
Header reconciler — maps human-authored sheet headers onto Medicine fields.

Headers are compared in normalized form (lowercase, only [a-z0-9] kept),
so "Product Name", "product_name" and "PRODUCT-NAME" are the same header.

Matching walks canonical fields in declaration order, each field's aliases
in priority order, and the observed headers left to right; the first exact
match wins. A header claimed by one field is never handed to another.
Fields with no match are simply absent from the mapping.

The mapping is a pure function of the header set: it is recomputed (never
merged) whenever a fetch brings a different set of headers.

Public API:
    normalize_header(header)         → str
    reconcile_headers(headers)       → HeaderMapping
    observed_headers(rows)           → list[str]
    mapping_report(mapping)          → list[FieldMappingStatus]
    unmapped_headers(mapping)        → list[str]
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from config.field_aliases import FIELD_ALIASES
from utils.fuzzy_match import best_match_any

logger = logging.getLogger(__name__)

_NON_ALPHANUMERIC_PATTERN = re.compile(r"[^a-z0-9]")

# Minimum fuzzy score for an unmapped field's header suggestion.
SUGGESTION_THRESHOLD: int = 80


# ═══════════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class HeaderMapping:
    """Bidirectional field ↔ header mapping computed for one header set."""

    headers: tuple[str, ...] = ()
    """Observed headers, in sheet order."""

    field_to_header: dict[str, str] = field(default_factory=dict)
    """canonical field → observed header (admin display)."""

    header_to_field: dict[str, str] = field(default_factory=dict)
    """observed header → canonical field (per-row lookup)."""

    def field_for(self, header: str) -> str | None:
        return self.header_to_field.get(header)

    def header_for(self, field_name: str) -> str | None:
        return self.field_to_header.get(field_name)


@dataclass
class FieldMappingStatus:
    """One line of the admin mapping table."""

    field_name: str
    header: str | None
    aliases: list[str] = field(default_factory=list)
    suggestion: str | None = None
    suggestion_score: int = 0

    @property
    def is_mapped(self) -> bool:
        return self.header is not None

    @property
    def status(self) -> str:
        return "Mapped" if self.is_mapped else "Missing"


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def normalize_header(header: Any) -> str:
    """Lowercase *header* and drop every character outside [a-z0-9]."""
    if header is None:
        return ""
    return _NON_ALPHANUMERIC_PATTERN.sub("", str(header).lower())


def reconcile_headers(
    headers: Iterable[str | None],
    aliases: dict[str, list[str]] | None = None,
) -> HeaderMapping:
    """
    Build the field ↔ header mapping for a set of observed headers.

    Args:
        headers: Observed headers in sheet order. None, empty and repeated
                 headers are ignored.
        aliases: Canonical field → normalized aliases. Defaults to
                 FIELD_ALIASES.

    Returns:
        HeaderMapping in which every header maps to at most one field and
        every field to at most one header.
    """
    alias_table = FIELD_ALIASES if aliases is None else aliases

    ordered_headers: list[str] = []
    for header in headers:
        if header is None or header == "" or header in ordered_headers:
            continue
        ordered_headers.append(header)

    normalized = [(header, normalize_header(header)) for header in ordered_headers]

    field_to_header: dict[str, str] = {}
    header_to_field: dict[str, str] = {}
    claimed: set[str] = set()

    for field_name, field_aliases in alias_table.items():
        match = _first_unclaimed_match(field_aliases, normalized, claimed)
        if match is None:
            continue

        claimed.add(match)
        field_to_header[field_name] = match
        header_to_field[match] = field_name
        logger.debug(f"Mapped header '{match}' → '{field_name}'")

    logger.info(
        f"Header reconciliation complete: {len(field_to_header)} of "
        f"{len(alias_table)} fields mapped from {len(ordered_headers)} headers"
    )

    return HeaderMapping(
        headers=tuple(ordered_headers),
        field_to_header=field_to_header,
        header_to_field=header_to_field,
    )


def observed_headers(rows: Iterable[dict[str, Any]]) -> list[str]:
    """
    Ordered union of the keys across *rows* (first appearance wins).

    Used to rebuild a mapping from the raw rows retained in a cached
    snapshot, where column definitions are no longer available.
    """
    seen: dict[str, None] = {}
    for row in rows:
        for header in row:
            seen.setdefault(header, None)
    return list(seen)


def mapping_report(
    mapping: HeaderMapping,
    aliases: dict[str, list[str]] | None = None,
) -> list[FieldMappingStatus]:
    """
    Describe, field by field, how the sheet headers were mapped.

    Unmapped fields carry a fuzzy suggestion: the closest header no other
    field claimed, if it scores at least SUGGESTION_THRESHOLD against one of
    the field's aliases.

    Args:
        mapping: Result of reconcile_headers().
        aliases: Alias table used to build *mapping*. Defaults to FIELD_ALIASES.

    Returns:
        One FieldMappingStatus per canonical field, in declaration order.
    """
    alias_table = FIELD_ALIASES if aliases is None else aliases

    free_candidates: dict[str, str] = {}
    for header in unmapped_headers(mapping):
        key = normalize_header(header)
        if key:
            free_candidates.setdefault(key, header)

    report: list[FieldMappingStatus] = []
    for field_name, field_aliases in alias_table.items():
        line = FieldMappingStatus(
            field_name=field_name,
            header=mapping.header_for(field_name),
            aliases=list(field_aliases),
        )
        if not line.is_mapped:
            line.suggestion, line.suggestion_score = best_match_any(
                field_aliases, free_candidates, threshold=SUGGESTION_THRESHOLD
            )
        report.append(line)

    return report


def unmapped_headers(mapping: HeaderMapping) -> list[str]:
    """Observed headers that no canonical field claimed, in sheet order."""
    return [h for h in mapping.headers if h not in mapping.header_to_field]


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _first_unclaimed_match(
    field_aliases: list[str],
    normalized_headers: list[tuple[str, str]],
    claimed: set[str],
) -> str | None:
    """
    Return the first header matching the field's aliases, in alias priority.

    Args:
        field_aliases: Normalized aliases for one field, highest priority first.
        normalized_headers: (original, normalized) pairs in sheet order.
        claimed: Headers already assigned to earlier fields.

    Returns:
        The original header text, or None if nothing matches.
    """
    for alias in field_aliases:
        for original, normalized in normalized_headers:
            if original in claimed:
                continue
            if normalized and normalized == alias:
                return original
    return None
