"""Session factories used by the registry to reach IoTDB."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol, Sequence, runtime_checkable

from iotdb.Session import Session

DEFAULT_PORT = 6667
SCHEME_SEPARATOR = "://"


class SessionAcquisitionError(RuntimeError):
    """Raised when a session cannot be opened for a connection URI."""


@dataclass(frozen=True, slots=True)
class Endpoint:
    """Host/port pair extracted from a connection URI."""

    host: str
    port: int = DEFAULT_PORT


def parse_endpoint(uri: str) -> Endpoint:
    """Extract host and port from ``[scheme://]host[:port][?query]``."""

    if not uri or not uri.strip():
        raise SessionAcquisitionError("Connection URI is empty.")
    _, sep, rest = uri.partition(SCHEME_SEPARATOR)
    address = rest if sep else uri
    address = address.split("?", 1)[0]
    host, _, port_text = address.partition(":")
    host = host.strip()
    if not host:
        raise SessionAcquisitionError(f"Connection URI '{uri}' has no host.")
    port_text = port_text.strip().rstrip("/")
    if not port_text:
        return Endpoint(host=host)
    try:
        port = int(port_text)
    except ValueError as exc:
        raise SessionAcquisitionError(f"Connection URI '{uri}' has an invalid port '{port_text}'.") from exc
    return Endpoint(host=host, port=port)


@runtime_checkable
class StoreSession(Protocol):
    """Subset of the IoTDB session API the executor relies on."""

    def execute_non_query_statement(self, sql: str) -> Any: ...

    def execute_query_statement(self, sql: str) -> Any: ...

    def close(self) -> None: ...


class SessionFactory(Protocol):
    """Opens authenticated sessions for the registry."""

    def open(self, endpoint: Endpoint, account: str, password: str | None) -> StoreSession: ...


class IoTDBSessionFactory:
    """Opens sessions with the official ``apache-iotdb`` client."""

    def __init__(
        self,
        *,
        fetch_size: int | None = None,
        zone_id: str | None = None,
        enable_rpc_compression: bool = False,
    ) -> None:
        self._fetch_size = fetch_size
        self._zone_id = zone_id
        self._enable_rpc_compression = enable_rpc_compression

    def open(self, endpoint: Endpoint, account: str, password: str | None) -> StoreSession:
        session = Session(endpoint.host, endpoint.port, **self._session_kwargs(account, password))
        try:
            session.open(self._enable_rpc_compression)
        except Exception as exc:
            raise SessionAcquisitionError(
                f"Failed to open session to {endpoint.host}:{endpoint.port} as '{account}': {exc}"
            ) from exc
        return session

    def _session_kwargs(self, account: str, password: str | None) -> dict[str, object]:
        kwargs: dict[str, object] = {"user": account}
        if password is not None:
            kwargs["password"] = password
        if self._fetch_size is not None:
            kwargs["fetch_size"] = self._fetch_size
        if self._zone_id:
            kwargs["zone_id"] = self._zone_id
        return kwargs


DEMO_SERIES: Mapping[str, tuple[tuple[str, ...], tuple[tuple[object, ...], ...]]] = {
    "root.demo.sensor1": (
        ("temperature", "humidity"),
        (
            (1700000000000, 21.5, 40.1),
            (1700000060000, 21.7, 39.8),
            (1700000120000, 22.0, None),
        ),
    ),
    "root.demo.sensor2": (
        ("status",),
        (
            (1700000000000, "online"),
            (1700000060000, "offline"),
        ),
    ),
}


@dataclass(frozen=True, slots=True)
class DemoField:
    """Field stub mirroring ``iotdb.utils.Field``."""

    value: object

    def get_data_type(self) -> None:
        return None

    def get_object_value(self, data_type: object) -> object:
        return self.value


@dataclass(frozen=True, slots=True)
class DemoRowRecord:
    """Row stub mirroring ``iotdb.utils.RowRecord``."""

    timestamp: int
    fields: tuple[DemoField | None, ...]

    def get_timestamp(self) -> int:
        return self.timestamp

    def get_fields(self) -> list[DemoField | None]:
        return list(self.fields)


class DemoDataSet:
    """In-memory cursor with the ``SessionDataSet`` pull API."""

    def __init__(self, column_names: Sequence[str], rows: Iterable[DemoRowRecord]) -> None:
        self._column_names = list(column_names)
        self._rows = list(rows)
        self._cursor = 0
        self.closed = False

    def get_column_names(self) -> list[str]:
        return list(self._column_names)

    def has_next(self) -> bool:
        return not self.closed and self._cursor < len(self._rows)

    def next(self) -> DemoRowRecord:
        row = self._rows[self._cursor]
        self._cursor += 1
        return row

    def close_operation_handle(self) -> None:
        self.closed = True


class DemoSession:
    """Session stub that serves preset series and records mutations."""

    def __init__(self, series: Mapping[str, tuple[Sequence[str], Sequence[Sequence[object]]]] | None = None) -> None:
        self._series = dict(series or DEMO_SERIES)
        self.statements: list[str] = []
        self.closed = False

    def execute_non_query_statement(self, sql: str) -> None:
        self._ensure_open()
        self.statements.append(sql)

    def execute_query_statement(self, sql: str) -> DemoDataSet:
        self._ensure_open()
        self.statements.append(sql)
        device = next((name for name in self._series if name in sql), None)
        if device is None:
            return DemoDataSet((), ())
        measurements, rows = self._series[device]
        columns = ["Time", *(f"{device}.{name}" for name in measurements)]
        records = (
            DemoRowRecord(
                timestamp=int(row[0]),  # type: ignore[call-overload]
                fields=tuple(None if value is None else DemoField(value) for value in row[1:]),
            )
            for row in rows
        )
        return DemoDataSet(columns, records)

    def close(self) -> None:
        self.closed = True

    def _ensure_open(self) -> None:
        if self.closed:
            raise RuntimeError("Demo session is closed.")


class DemoSessionFactory:
    """Factory returning :class:`DemoSession` objects (no network)."""

    def __init__(self, series: Mapping[str, tuple[Sequence[str], Sequence[Sequence[object]]]] | None = None) -> None:
        self._series = series
        self.opened: list[tuple[Endpoint, str]] = []

    def open(self, endpoint: Endpoint, account: str, password: str | None) -> DemoSession:
        self.opened.append((endpoint, account))
        return DemoSession(self._series)


__all__ = [
    "DEFAULT_PORT",
    "DEMO_SERIES",
    "DemoDataSet",
    "DemoField",
    "DemoRowRecord",
    "DemoSession",
    "DemoSessionFactory",
    "Endpoint",
    "IoTDBSessionFactory",
    "SessionAcquisitionError",
    "SessionFactory",
    "StoreSession",
    "parse_endpoint",
]
