"""Shared request/result types used by the registry and executor."""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence

from .paths import normalize_sql_schema

KEY_OK = "ok"
KEY_CODE = "code"
KEY_MSG = "msg"
KEY_COUNT = "count"
KEY_RAW_LIST = "@RAW@LIST"

CODE_SUCCESS = 200
MSG_SUCCESS = "success"

ResultDocument = dict[str, Any]


class RequestMethod(str, Enum):
    """Request methods understood by the generic query layer."""

    GET = "GET"
    HEAD = "HEAD"
    GETS = "GETS"
    HEADS = "HEADS"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"

    @property
    def is_query(self) -> bool:
        return self in _QUERY_METHODS


_QUERY_METHODS = frozenset({RequestMethod.GET, RequestMethod.HEAD, RequestMethod.GETS, RequestMethod.HEADS})


class RequestConfig(Protocol):
    """Read-only view of a generic request as seen by the executor."""

    @property
    def uri(self) -> str: ...

    @property
    def account(self) -> str: ...

    @property
    def password(self) -> str | None: ...

    @property
    def method(self) -> RequestMethod: ...

    @property
    def sql_schema(self) -> str: ...

    @property
    def sql_table(self) -> str: ...

    @property
    def id_key(self) -> str: ...

    @property
    def id(self) -> Any: ...

    @property
    def id_in(self) -> Any: ...

    @property
    def content(self) -> Mapping[str, Any] | None: ...

    @property
    def values(self) -> Sequence[Sequence[Any]] | None: ...


@dataclass(frozen=True, slots=True)
class StatementRequest:
    """Concrete request used by the CLI and by callers without their own model."""

    uri: str
    account: str
    password: str | None = None
    method: RequestMethod = RequestMethod.GET
    schema: str = ""
    table: str = ""
    id_key: str = "id"
    id: Any = None
    id_in: Any = None
    content: Mapping[str, Any] | None = None
    values: Sequence[Sequence[Any]] | None = None

    @property
    def sql_schema(self) -> str:
        return normalize_sql_schema(self.schema)

    @property
    def sql_table(self) -> str:
        return self.table


def new_success_result() -> ResultDocument:
    """Envelope returned for successful mutations."""

    return {KEY_OK: True, KEY_CODE: CODE_SUCCESS, KEY_MSG: MSG_SUCCESS}


def collection_size(value: Any) -> int | None:
    """Length of a list-like id value, ``None`` for scalars and strings."""

    if isinstance(value, (str, bytes)) or not isinstance(value, Collection):
        return None
    return len(value)


__all__ = [
    "CODE_SUCCESS",
    "KEY_CODE",
    "KEY_COUNT",
    "KEY_MSG",
    "KEY_OK",
    "KEY_RAW_LIST",
    "MSG_SUCCESS",
    "RequestConfig",
    "RequestMethod",
    "ResultDocument",
    "StatementRequest",
    "collection_size",
    "new_success_result",
]
