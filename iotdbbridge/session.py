"""Process-wide cache of open IoTDB sessions keyed by connection identity."""

from __future__ import annotations

import atexit
import logging
import threading
from contextlib import contextmanager
from types import TracebackType
from typing import Iterator

from .connections import IoTDBSessionFactory, SessionFactory, StoreSession, parse_endpoint
from .models import RequestConfig

LOG = logging.getLogger(__name__)


def session_key(config: RequestConfig) -> str:
    """Identity of the session serving ``config`` (URI plus account)."""

    uri = config.uri
    separator = "&" if "?" in uri else "?"
    return f"{uri}{separator}username={config.account}"


class SessionRegistry:
    """Opens sessions on first use and keeps one live session per identity.

    The registry is meant to be created once at service startup and passed to
    every executor. Call :meth:`close_all` (or use the registry as a context
    manager) during shutdown; :meth:`install_exit_hook` registers that call
    with :mod:`atexit` for hosts without their own shutdown sequence.
    """

    def __init__(self, factory: SessionFactory | None = None) -> None:
        self._factory = factory or IoTDBSessionFactory()
        self._sessions: dict[str, StoreSession] = {}
        self._identity_locks: dict[str, tuple[threading.Lock, int]] = {}
        self._lock = threading.Lock()
        self._exit_hook_installed = False

    def get_session(self, config: RequestConfig, auto_create: bool = True) -> StoreSession | None:
        """Return the cached session, opening one when ``auto_create`` is set."""

        key = session_key(config)
        with self._lock:
            session = self._sessions.get(key)
        if session is not None or not auto_create:
            return session

        with self._identity_lock(key):
            with self._lock:
                session = self._sessions.get(key)
            if session is not None:
                return session
            endpoint = parse_endpoint(config.uri)
            LOG.debug(
                "Opening store session",
                extra={"host": endpoint.host, "port": endpoint.port, "account": config.account},
            )
            session = self._factory.open(endpoint, config.account, config.password)
            with self._lock:
                self._sessions[key] = session
        return session

    def close_session(self, config: RequestConfig) -> None:
        """Drop and close the session for ``config``; a miss is a no-op."""

        key = session_key(config)
        with self._identity_lock(key):
            with self._lock:
                session = self._sessions.pop(key, None)
        if session is None:
            return
        error = _close_quietly(session)
        if error is not None:
            LOG.warning("Failed to close store session", extra={"session_key": key}, exc_info=error)

    def close_all(self) -> None:
        """Close every cached session and empty the cache."""

        with self._lock:
            sessions = list(self._sessions.items())
            self._sessions.clear()
        for key, session in sessions:
            error = _close_quietly(session)
            if error is not None:
                LOG.warning("Failed to close store session", extra={"session_key": key}, exc_info=error)

    def install_exit_hook(self) -> None:
        """Close all sessions at interpreter exit (registered once)."""

        with self._lock:
            if self._exit_hook_installed:
                return
            self._exit_hook_installed = True
        atexit.register(self.close_all)

    def __contains__(self, config: object) -> bool:
        key = session_key(config)  # type: ignore[arg-type]
        with self._lock:
            return key in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __enter__(self) -> SessionRegistry:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close_all()

    @contextmanager
    def _identity_lock(self, key: str) -> Iterator[None]:
        # Reference counted: an entry lives while a caller holds or waits on its lock.
        with self._lock:
            lock, users = self._identity_locks.get(key, (threading.Lock(), 0))
            self._identity_locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._lock:
                lock, users = self._identity_locks[key]
                if users <= 1:
                    del self._identity_locks[key]
                else:
                    self._identity_locks[key] = (lock, users - 1)


def _close_quietly(session: StoreSession) -> BaseException | None:
    try:
        session.close()
    except Exception as exc:
        return exc
    return None


__all__ = ["SessionRegistry", "session_key"]
