"""
Abortable requests sessions.

requests has no per-request abort, and closing a Session only drops idle
pooled connections: the connection serving an in-flight request is checked
out of the pool and keeps reading. The adapter here installs connection
pools that remember their checked-out connections. Closing such a pool
(which Session.close() does) shuts down the sockets of in-flight requests,
so the blocked worker thread wakes with a connection error and the server
sees the client disconnect.

Usage:
    session = new_session()
    # in a worker thread
    session.request("POST", url, timeout=30)
    # from anywhere else
    session.close()     # aborts the request above
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Any, Set

import requests
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.exceptions import ClosedPoolError

logger = logging.getLogger(__name__)


def _shutdown(conn: Any) -> None:
    """Mark conn aborted and shut down its socket, if connected."""
    conn.aborted = True
    sock = getattr(conn, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        logger.debug(f"Socket shutdown failed: {e}")


# =============================================================================
# Connections
# =============================================================================


class _AbortableConnectionMixin:
    """Refuses to finish connecting once the connection was aborted."""

    aborted = False

    def connect(self) -> None:
        super().connect()
        # Set by _shutdown() before it reads self.sock
        if self.aborted:
            self.close()
            raise ConnectionAbortedError("Request aborted")


class AbortableHTTPConnection(_AbortableConnectionMixin, HTTPConnection):
    pass


class AbortableHTTPSConnection(_AbortableConnectionMixin, HTTPSConnection):
    pass


# =============================================================================
# Pools
# =============================================================================


class _AbortablePoolMixin:
    """Tracks checked-out connections and shuts them down on close()."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._in_flight: Set[Any] = set()
        self._in_flight_lock = threading.Lock()
        self._aborted = False

    def _get_conn(self, timeout: Any = None) -> Any:
        conn = super()._get_conn(timeout)
        with self._in_flight_lock:
            if self._aborted:
                conn.close()
                raise ClosedPoolError(self, "Pool is closed.")
            self._in_flight.add(conn)
        return conn

    def _put_conn(self, conn: Any) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(conn)
        super()._put_conn(conn)

    def close(self) -> None:
        with self._in_flight_lock:
            self._aborted = True
            in_flight = list(self._in_flight)
            self._in_flight.clear()
        for conn in in_flight:
            _shutdown(conn)
        if in_flight:
            logger.debug(f"Aborted {len(in_flight)} in-flight connection(s) to {self.host}")
        super().close()


class AbortableHTTPConnectionPool(_AbortablePoolMixin, HTTPConnectionPool):
    ConnectionCls = AbortableHTTPConnection


class AbortableHTTPSConnectionPool(_AbortablePoolMixin, HTTPSConnectionPool):
    ConnectionCls = AbortableHTTPSConnection


POOL_CLASSES_BY_SCHEME = {
    "http": AbortableHTTPConnectionPool,
    "https": AbortableHTTPSConnectionPool,
}


# =============================================================================
# Adapter and session
# =============================================================================


class AbortableAdapter(HTTPAdapter):
    """HTTPAdapter whose pools abort in-flight requests when closed."""

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = POOL_CLASSES_BY_SCHEME

    def proxy_manager_for(self, proxy: str, **proxy_kwargs: Any) -> Any:
        manager = super().proxy_manager_for(proxy, **proxy_kwargs)
        manager.pool_classes_by_scheme = POOL_CLASSES_BY_SCHEME
        return manager


def new_session() -> requests.Session:
    """Create a Session whose close() aborts its in-flight requests."""
    session = requests.Session()
    adapter = AbortableAdapter()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
