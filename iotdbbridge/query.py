"""Statement execution and result shaping for IoTDB sessions."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Iterable, Iterator, Sequence, cast

from .connections import StoreSession
from .models import (
    KEY_COUNT,
    KEY_RAW_LIST,
    RequestConfig,
    RequestMethod,
    ResultDocument,
    collection_size,
    new_success_result,
)
from .session import SessionRegistry

LOG = logging.getLogger(__name__)


class QueryExecutionError(RuntimeError):
    """Raised when the store rejects or fails to run a statement."""


class StatementExecutor:
    """Runs generic update/query requests against cached store sessions."""

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    def execute(self, config: RequestConfig, statement: str, loose_typing: bool = False) -> ResultDocument:
        """Dispatch on the request method: queries fold into one document."""

        if config.method.is_query:
            return self.exec_query(config, statement, loose_typing)
        return self.execute_update(config, statement)

    def exec_update(self, config: RequestConfig, statement: str, session: StoreSession | None = None) -> int:
        result = self.execute_update(config, statement, session=session)
        return int(result[KEY_COUNT])

    def execute_update(
        self,
        config: RequestConfig,
        statement: str,
        session: StoreSession | None = None,
    ) -> ResultDocument:
        """Run a mutation and report how many records it addressed."""

        sql = _require_statement(statement)
        session = self._resolve(config, session)
        LOG.debug("Executing update", extra={"method": config.method.value, "statement": sql})
        try:
            session.execute_non_query_statement(sql)
        except Exception as exc:
            raise QueryExecutionError(f"Update failed: {exc}") from exc

        result = new_success_result()
        id_value = config.id
        id_in = config.id_in
        if id_value is not None:
            result[config.id_key] = id_value
        if id_in is not None:
            result[f"{config.id_key}[]"] = id_in

        if config.method is RequestMethod.POST:
            result[KEY_COUNT] = len(config.values) if config.values is not None else 0
        elif config.method is RequestMethod.PUT:
            result[KEY_COUNT] = len(config.content) if config.content is not None else 0
        else:
            # Statement-driven bulk mutations carry no affected-row count; 1 is a placeholder.
            size = collection_size(id_in)
            result[KEY_COUNT] = size if id_value is None and size is not None else 1
        return result

    def exec_query(
        self,
        config: RequestConfig,
        statement: str,
        loose_typing: bool = False,
        session: StoreSession | None = None,
    ) -> ResultDocument:
        """Return the first row, carrying every row under the raw-list key."""

        rows = self.execute_query(config, statement, loose_typing, session=session)
        result: ResultDocument = dict(rows[0]) if rows else {}
        if rows is not None and len(rows) > 1:
            result[KEY_RAW_LIST] = rows
        return result

    def execute_query(
        self,
        config: RequestConfig,
        statement: str,
        loose_typing: bool = False,
        session: StoreSession | None = None,
    ) -> list[ResultDocument] | None:
        """Run a query; ``None`` when the store reports no columns."""

        sql = _require_statement(statement)
        session = self._resolve(config, session)
        LOG.debug("Executing query", extra={"method": config.method.value, "statement": sql})
        try:
            data_set = session.execute_query_statement(sql)
        except Exception as exc:
            raise QueryExecutionError(f"Query failed: {exc}") from exc
        if data_set is None:
            return None

        try:
            names = data_set.get_column_names()
            if not names:
                return None
            prefix = f"{config.sql_schema}.{config.sql_table}."
            columns = strip_column_prefix(names, prefix)
            return materialize_rows(columns, _iter_rows(data_set), loose_typing)
        except Exception as exc:
            raise QueryExecutionError(f"Failed to read query results: {exc}") from exc
        finally:
            _close_data_set(data_set)

    def _resolve(self, config: RequestConfig, session: StoreSession | None) -> StoreSession:
        if session is not None:
            return session
        return cast(StoreSession, self._registry.get_session(config))


def strip_column_prefix(names: Iterable[str], prefix: str) -> list[str]:
    """Collapse store-qualified column names to local field names."""

    return [name[len(prefix):] if name.startswith(prefix) else name for name in names]


def materialize_rows(columns: Sequence[str], rows: Iterable[Any], loose_typing: bool = False) -> list[ResultDocument]:
    """Build one ordered document per row, timestamp first."""

    if not columns:
        return []
    documents: list[ResultDocument] = []
    for row in rows:
        fields = list(row.get_fields() or ())
        document: ResultDocument = {columns[0]: row.get_timestamp()}
        for index, name in enumerate(columns[1:]):
            field = fields[index] if index < len(fields) else None
            document[name] = _field_value(field, loose_typing)
        documents.append(document)
    return documents


def _field_value(field: Any, loose_typing: bool) -> object:
    if field is None:
        return None
    value = field.get_object_value(field.get_data_type())
    return value if loose_typing else _to_scalar(value)


def _to_scalar(value: object) -> object:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    item = getattr(value, "item", None)
    if callable(item):
        return item()
    return str(value)


def _iter_rows(data_set: Any) -> Iterator[Any]:
    while data_set.has_next():
        yield data_set.next()


def _close_data_set(data_set: Any) -> None:
    closer = getattr(data_set, "close_operation_handle", None)
    if closer is None:
        return
    try:
        closer()
    except Exception:
        LOG.warning("Failed to close query result cursor", exc_info=True)


def _require_statement(statement: str) -> str:
    sql = (statement or "").strip()
    if not sql:
        raise QueryExecutionError("Provide a statement to execute.")
    return sql


__all__ = [
    "QueryExecutionError",
    "StatementExecutor",
    "materialize_rows",
    "strip_column_prefix",
]
