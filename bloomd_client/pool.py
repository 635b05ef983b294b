"""Bounded, thread-safe pool of daemon connections."""

import logging
import threading
import time
from collections import deque
from typing import Callable, Optional

from .errors import BloomdConnectionError, BloomdTimeoutError, PoolClosedError
from .transport import Connection

logger = logging.getLogger(__name__)


class ConnectionPool:
    """Hands out connections exclusively, one command at a time.

    At most ``max_connections`` connections are live (idle plus in use).
    ``acquire`` reuses an idle connection, dials a new one while under the
    limit, and otherwise waits for a release or discard. After ``close``
    every ``acquire`` fails with :class:`PoolClosedError`.
    """

    def __init__(
        self,
        factory: Callable[[], Connection],
        initial_connections: int = 5,
        max_connections: int = 10,
    ):
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        if not 0 <= initial_connections <= max_connections:
            raise ValueError("initial_connections must be between 0 and max_connections")
        self._factory = factory
        self._max_connections = max_connections
        self._idle: deque[Connection] = deque()
        self._live: set[Connection] = set()
        self._pending = 0  # slots reserved for dials in progress
        self._closed = False
        self._cond = threading.Condition()

        for _ in range(initial_connections):
            try:
                conn = self._dial()
            except BloomdConnectionError:
                self.close()
                raise
            self._live.add(conn)
            self._idle.append(conn)

    @property
    def max_connections(self) -> int:
        return self._max_connections

    @property
    def live_count(self) -> int:
        with self._cond:
            return len(self._live) + self._pending

    @property
    def idle_count(self) -> int:
        with self._cond:
            return len(self._idle)

    @property
    def closed(self) -> bool:
        return self._closed

    def _dial(self) -> Connection:
        try:
            conn = self._factory()
        except BloomdConnectionError:
            raise
        except OSError as e:
            raise BloomdConnectionError(f"unable to establish a connection: {e}") from e
        logger.debug("Dialed %r", conn)
        return conn

    def acquire(self, timeout: Optional[float] = None) -> Connection:
        """Take a connection, waiting at most ``timeout`` seconds for one to free up."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._closed:
                    raise PoolClosedError()
                if self._idle:
                    return self._idle.popleft()
                if len(self._live) + self._pending < self._max_connections:
                    self._pending += 1
                    break
                if deadline is None:
                    self._cond.wait()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise BloomdTimeoutError("timed out waiting for a pooled connection")
                    self._cond.wait(remaining)

        try:
            conn = self._dial()
        except BloomdConnectionError:
            with self._cond:
                self._pending -= 1
                self._cond.notify()
            raise

        with self._cond:
            self._pending -= 1
            if self._closed:
                self._cond.notify()
                conn.close()
                raise PoolClosedError()
            self._live.add(conn)
        return conn

    def release(self, conn: Connection) -> None:
        """Return a connection for reuse; unusable ones are discarded."""
        if not conn.usable:
            self.discard(conn)
            return
        with self._cond:
            if conn not in self._live or conn in self._idle:
                return
            self._idle.append(conn)
            self._cond.notify()

    def discard(self, conn: Connection) -> None:
        """Close a connection and free its slot. It is never handed out again."""
        with self._cond:
            # closed before the slot is freed so a waiter never dials past the limit
            conn.close()
            if conn not in self._live:
                return
            self._live.discard(conn)
            if conn in self._idle:
                self._idle.remove(conn)
            self._cond.notify()
        logger.warning("Discarding %r", conn)

    def close(self) -> None:
        """Close every connection, idle or in use. Idempotent."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            conns = list(self._live)
            self._live.clear()
            self._idle.clear()
            self._cond.notify_all()
        for conn in conns:
            conn.close()
        logger.debug("Closed pool (%d connections)", len(conns))
