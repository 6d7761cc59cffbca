"""
GViz parser — unwraps the JSONP envelope returned by the Sheets query endpoint.

The endpoint answers with text shaped like:

    /*O_o*/
    google.visualization.Query.setResponse({...json...});

The parser drops the leading comment, the wrapper call prefix, and
everything from the wrapper's closing parenthesis onward, then decodes the
JSON body. The closing parenthesis is located rather than assuming a fixed
two-character suffix, so a missing semicolon or trailing newline is fine.

Public API:
    parse_gviz_text(text, wrapper) → dict
"""

import json
import logging
import re
from typing import Any

from config.data_source import GVIZ_WRAPPER
from processing.errors import ParseError

logger = logging.getLogger(__name__)

# A leading /* ... */ comment (GViz uses "/*O_o*/" as an anti-XSSI prefix)
_LEADING_COMMENT_PATTERN = re.compile(r"^\s*/\*.*?\*/", re.DOTALL)


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def parse_gviz_text(text: str, wrapper: str = GVIZ_WRAPPER) -> dict[str, Any]:
    """
    Strip the GViz JSONP envelope from *text* and decode the payload.

    Text that carries no wrapper call is decoded as-is, so a plain JSON
    response is accepted too.

    Args:
        text: Raw response body from the GViz endpoint.
        wrapper: Name of the JSONP callback wrapping the payload.

    Returns:
        The decoded payload (a dict with status / table / ... keys).

    Raises:
        ParseError: If the stripped text is empty, is not valid JSON, or
                    does not decode to a JSON object.
    """
    body = _strip_envelope(text or "", wrapper)

    if not body:
        logger.error("Failed to parse GViz response: body is empty")
        raise ParseError("Invalid GViz response format: empty body.")

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        logger.error(f"Failed to parse GViz response: {exc}")
        raise ParseError(f"Invalid GViz response format: {exc.msg}.") from exc

    if not isinstance(payload, dict):
        logger.error(
            f"Failed to parse GViz response: expected an object, got "
            f"{type(payload).__name__}"
        )
        raise ParseError("Invalid GViz response format: payload is not an object.")

    return payload


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _strip_envelope(text: str, wrapper: str) -> str:
    """
    Remove the comment, wrapper prefix and wrapper suffix around the JSON body.

    Args:
        text: Raw response text.
        wrapper: JSONP callback name.

    Returns:
        The JSON text between the wrapper's parentheses, or the stripped
        input when no wrapper call is present.
    """
    stripped = _LEADING_COMMENT_PATTERN.sub("", text, count=1).strip()

    prefix = f"{wrapper}("
    if not stripped.startswith(prefix):
        return stripped

    inner = stripped[len(prefix):]
    closing = inner.rfind(")")
    if closing == -1:
        # Unterminated call; let the JSON decoder report what is left.
        return inner.strip()
    return inner[:closing].strip()
