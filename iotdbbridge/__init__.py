"""Session cache and statement adapter for Apache IoTDB."""

from __future__ import annotations

__version__ = "0.1.0"

from .connections import (
    DemoSessionFactory,
    Endpoint,
    IoTDBSessionFactory,
    SessionAcquisitionError,
    SessionFactory,
    parse_endpoint,
)
from .models import KEY_COUNT, KEY_RAW_LIST, RequestConfig, RequestMethod, StatementRequest
from .paths import normalize_schema, normalize_sql_schema, normalize_table_path
from .query import QueryExecutionError, StatementExecutor, materialize_rows
from .session import SessionRegistry, session_key

__all__ = [
    "DemoSessionFactory",
    "Endpoint",
    "IoTDBSessionFactory",
    "KEY_COUNT",
    "KEY_RAW_LIST",
    "QueryExecutionError",
    "RequestConfig",
    "RequestMethod",
    "SessionAcquisitionError",
    "SessionFactory",
    "SessionRegistry",
    "StatementExecutor",
    "StatementRequest",
    "__version__",
    "materialize_rows",
    "normalize_schema",
    "normalize_sql_schema",
    "normalize_table_path",
    "parse_endpoint",
    "session_key",
]
