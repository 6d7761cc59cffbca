"""
Exceptions raised by the catalog ingestion pipeline.

All three collapse into the cache manager's single error status; none of
them reach the storefront UI. Row-level coercion problems are not
exceptions at all (see entity_normalizer.NormalizationWarning).
"""


class CatalogError(Exception):
    """Base class for catalog ingestion failures."""


class ParseError(CatalogError):
    """The GViz envelope was malformed or its payload could not be decoded."""


class SchemaError(CatalogError):
    """The decoded payload is missing the expected table structure."""


class NetworkError(CatalogError):
    """The sheet could not be downloaded (transport, HTTP status, timeout)."""
