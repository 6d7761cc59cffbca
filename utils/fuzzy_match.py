"""
Fuzzy string matching utilities.

Wraps the thefuzz library to suggest the closest sheet header for a
canonical field that found no exact alias match. Suggestions are purely
diagnostic (shown on the admin page); they never change the mapping.
"""

import logging
from collections.abc import Iterable

from thefuzz import fuzz, process

logger = logging.getLogger(__name__)


def best_match(
    value: str,
    candidates: dict[str, str],
    threshold: int = 80,
) -> tuple[str | None, int]:
    """
    Closest candidate key to *value* by plain ratio, if it clears *threshold*.

    Keys are normalized headers and are scored as-is; *value* is only
    trimmed and lowercased. Returns (display_value, score) or (None, 0).
    """
    if not value or not candidates:
        return None, 0

    match = process.extractOne(
        value.strip().lower(),
        list(candidates),
        processor=None,
        scorer=fuzz.ratio,
        score_cutoff=threshold,
    )
    if match is None:
        return None, 0

    key, score = match[0], int(round(match[1]))
    logger.debug(f"'{value}' is closest to header '{key}' (score={score})")
    return candidates[key], score


def best_match_any(
    values: Iterable[str],
    candidates: dict[str, str],
    threshold: int = 80,
) -> tuple[str | None, int]:
    """
    Best fuzzy match for any of several *values* (e.g. all aliases of a field).

    Ties keep the earlier value's match, so alias priority still counts.

    Args:
        values: Strings to try, in priority order.
        candidates: Dict of candidate_key (normalized) → display value.
        threshold: Minimum score (0-100) to accept a match.

    Returns:
        (display_value, score) of the highest-scoring match, or (None, 0).
    """
    best_display: str | None = None
    best_score: int = 0

    for value in values:
        display, score = best_match(value, candidates, threshold=threshold)
        if display is not None and score > best_score:
            best_display, best_score = display, score

    return best_display, best_score
