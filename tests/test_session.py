"""Tests for the session registry."""

from __future__ import annotations

import logging
import threading
import time

import pytest

from iotdbbridge.connections import Endpoint, SessionAcquisitionError
from iotdbbridge.models import StatementRequest
from iotdbbridge.session import SessionRegistry, session_key


class _FakeSession:
    def __init__(self, endpoint: Endpoint, account: str, *, fail_close: bool = False) -> None:
        self.endpoint = endpoint
        self.account = account
        self.fail_close = fail_close
        self.close_calls = 0

    def execute_non_query_statement(self, sql: str) -> None:
        return None

    def execute_query_statement(self, sql: str) -> None:
        return None

    def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise ConnectionError("already closed")


class _RecordingFactory:
    def __init__(self, *, delay: float = 0.0, fail_close: bool = False) -> None:
        self.delay = delay
        self.started = threading.Event()
        self.fail_close = fail_close
        self.opened: list[_FakeSession] = []
        self._lock = threading.Lock()

    def open(self, endpoint: Endpoint, account: str, password: str | None) -> _FakeSession:
        self.started.set()
        if self.delay:
            time.sleep(self.delay)
        session = _FakeSession(endpoint, account, fail_close=self.fail_close)
        with self._lock:
            self.opened.append(session)
        return session


def _request(uri: str = "iotdb://localhost:6667", account: str = "root") -> StatementRequest:
    return StatementRequest(uri=uri, account=account, password="root")


def test_session_key_appends_account() -> None:
    assert session_key(_request()) == "iotdb://localhost:6667?username=root"
    assert session_key(_request("iotdb://localhost:6667?a=1")) == "iotdb://localhost:6667?a=1&username=root"


def test_session_key_is_stable_and_identity_sensitive() -> None:
    assert session_key(_request()) == session_key(_request())
    assert session_key(_request(account="reader")) != session_key(_request())
    assert session_key(_request("iotdb://LOCALHOST:6667")) != session_key(_request())


def test_get_session_opens_once_and_reuses() -> None:
    factory = _RecordingFactory()
    registry = SessionRegistry(factory)

    first = registry.get_session(_request())
    second = registry.get_session(_request())

    assert first is second
    assert len(factory.opened) == 1
    assert factory.opened[0].endpoint == Endpoint("localhost", 6667)
    assert factory.opened[0].account == "root"
    assert _request() in registry
    assert len(registry) == 1


def test_get_session_without_auto_create_returns_none() -> None:
    factory = _RecordingFactory()
    registry = SessionRegistry(factory)

    assert registry.get_session(_request(), auto_create=False) is None
    assert not factory.opened


def test_get_session_rejects_malformed_uri() -> None:
    registry = SessionRegistry(_RecordingFactory())

    with pytest.raises(SessionAcquisitionError):
        registry.get_session(_request("iotdb://host:notaport"))
    assert len(registry) == 0


def test_concurrent_get_session_opens_single_session() -> None:
    factory = _RecordingFactory(delay=0.05)
    registry = SessionRegistry(factory)
    barrier = threading.Barrier(8)
    results: list[object] = []
    results_lock = threading.Lock()

    def _worker() -> None:
        barrier.wait()
        session = registry.get_session(_request())
        with results_lock:
            results.append(session)

    threads = [threading.Thread(target=_worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(factory.opened) == 1
    assert all(session is factory.opened[0] for session in results)


def test_distinct_identities_get_distinct_sessions() -> None:
    factory = _RecordingFactory()
    registry = SessionRegistry(factory)

    admin = registry.get_session(_request())
    reader = registry.get_session(_request(account="reader"))

    assert admin is not reader
    assert len(registry) == 2


def test_close_session_for_unknown_identity_is_noop() -> None:
    registry = SessionRegistry(_RecordingFactory())

    registry.close_session(_request())

    assert len(registry) == 0


def test_close_session_removes_and_closes() -> None:
    factory = _RecordingFactory()
    registry = SessionRegistry(factory)
    session = registry.get_session(_request())

    registry.close_session(_request())

    assert session.close_calls == 1  # type: ignore[union-attr]
    assert registry.get_session(_request(), auto_create=False) is None
    assert registry.get_session(_request()) is not session


def test_close_failures_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    registry = SessionRegistry(_RecordingFactory(fail_close=True))
    registry.get_session(_request())

    with caplog.at_level(logging.WARNING, logger="iotdbbridge.session"):
        registry.close_session(_request())

    assert len(registry) == 0
    assert "Failed to close store session" in caplog.text


def test_close_all_closes_every_session_despite_failures() -> None:
    factory = _RecordingFactory(fail_close=True)
    registry = SessionRegistry(factory)
    registry.get_session(_request())
    registry.get_session(_request(account="reader"))

    registry.close_all()

    assert len(registry) == 0
    assert [session.close_calls for session in factory.opened] == [1, 1]


def test_context_manager_closes_sessions() -> None:
    factory = _RecordingFactory()

    with SessionRegistry(factory) as registry:
        registry.get_session(_request())

    assert len(registry) == 0
    assert factory.opened[0].close_calls == 1


def test_install_exit_hook_registers_once(monkeypatch: pytest.MonkeyPatch) -> None:
    registered: list[object] = []
    monkeypatch.setattr("iotdbbridge.session.atexit.register", registered.append)
    registry = SessionRegistry(_RecordingFactory())

    registry.install_exit_hook()
    registry.install_exit_hook()

    assert registered == [registry.close_all]


def test_close_session_waits_for_in_flight_open() -> None:
    factory = _RecordingFactory(delay=0.1)
    registry = SessionRegistry(factory)
    opener = threading.Thread(target=registry.get_session, args=(_request(),))

    opener.start()
    assert factory.started.wait(timeout=1)
    registry.close_session(_request())
    opener.join()

    assert len(factory.opened) == 1
    assert factory.opened[0].close_calls == 1
    assert len(registry) == 0


def test_close_all_during_open_keeps_new_session_reachable() -> None:
    factory = _RecordingFactory(delay=0.1)
    registry = SessionRegistry(factory)
    opener = threading.Thread(target=registry.get_session, args=(_request(),))

    opener.start()
    assert factory.started.wait(timeout=1)
    registry.close_all()
    opener.join()

    assert registry.get_session(_request(), auto_create=False) is factory.opened[0]
    assert factory.opened[0].close_calls == 0
    registry.close_all()
    assert factory.opened[0].close_calls == 1


def test_identity_locks_are_released_after_use() -> None:
    registry = SessionRegistry(_RecordingFactory())

    registry.get_session(_request())
    registry.get_session(_request(account="reader"))
    registry.close_session(_request())
    registry.close_session(_request("iotdb://unknown:6667"))

    assert registry._identity_locks == {}  # noqa: SLF001


def test_identity_lock_released_when_open_fails() -> None:
    class _FailingFactory(_RecordingFactory):
        def open(self, endpoint: Endpoint, account: str, password: str | None) -> _FakeSession:
            raise SessionAcquisitionError("refused")

    registry = SessionRegistry(_FailingFactory())

    with pytest.raises(SessionAcquisitionError):
        registry.get_session(_request())
    assert registry._identity_locks == {}  # noqa: SLF001
