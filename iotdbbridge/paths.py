"""Schema and path rewriting for IoTDB's tree-structured names.

IoTDB addresses series as ``root.<database>.<device>.<measurement>``. The
generic query layer thinks in ``schema.table`` terms, so short paths are
widened with the ``**`` wildcard to match everything beneath them.
"""

from __future__ import annotations

MATCH_ALL = "**"
PATH_SEPARATOR = "."
QUALIFIED_DEPTH = 3


def normalize_schema(schema: str | None, default_schema: str | None, store_enabled: bool = True) -> str | None:
    """Fall back to ``default_schema`` when no schema was requested."""

    if store_enabled and (schema is None or not schema.strip()):
        return default_schema
    return schema


def normalize_sql_schema(schema: str | None, store_enabled: bool = True) -> str | None:
    """Schema as it appears in statements; IoTDB needs no rewriting yet."""

    return schema


def normalize_table_path(path: str | None, store_enabled: bool = True) -> str | None:
    """Widen a partial path so it matches the series below it."""

    if not store_enabled:
        return path
    segments = path.strip().split(PATH_SEPARATOR) if path and path.strip() else []
    while segments and not segments[-1]:
        segments.pop()
    if not segments:
        return MATCH_ALL
    if len(segments) >= QUALIFIED_DEPTH:
        return path
    return f"{path}{PATH_SEPARATOR}{MATCH_ALL}"


__all__ = [
    "MATCH_ALL",
    "normalize_schema",
    "normalize_sql_schema",
    "normalize_table_path",
]
