"""Thread-safe client for a bloomd daemon over pooled TCP connections.

Each request borrows one connection from the pool, writes one command line
and reads one reply, then hands the connection back. The request runs on a
worker thread so the caller can stop waiting when its deadline passes or
its cancel event fires; the connection is then discarded because the reply
may still be in flight.
"""

import logging
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, Protocol, TypeVar

from . import parser, protocol
from .config import DEFAULT_PORT, ClientConfig
from .errors import (
    BloomdTimeoutError,
    DeleteInProgressError,
    InvalidParametersError,
    PoolClosedError,
    RequestCancelledError,
)
from .pool import ConnectionPool
from .transport import Connection, receive, send
from .types import BloomFilter, VerboseBloomFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How often a waiting caller looks at its cancel event.
_CANCEL_POLL_INTERVAL = 0.05


class FilterClient(Protocol):
    """Operations offered by a bloomd client."""

    def create(self, name: str, capacity: int = 0, probability: float = 0.0, in_memory: bool = False) -> None: ...
    def set(self, name: str, key: str) -> bool: ...
    def check(self, name: str, key: str) -> bool: ...
    def bulk(self, name: str, *keys: str) -> list[bool]: ...
    def multi(self, name: str, *keys: str) -> list[bool]: ...
    def info(self, name: str) -> VerboseBloomFilter: ...
    def list_filters(self, prefix: Optional[str] = None) -> list[BloomFilter]: ...
    def drop(self, name: str) -> None: ...
    def clear(self, name: str) -> None: ...
    def close(self, name: str) -> None: ...
    def flush(self, name: Optional[str] = None) -> None: ...
    def ping(self) -> None: ...
    def shutdown(self) -> None: ...


class _Call:
    """Shared state between a waiting caller and the worker running its command."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.abandoned = False


class BloomdClient:
    """Client for bloomd.

    Methods: create, set, check, bulk, multi, info, list_filters, drop,
    clear, close, flush, ping, shutdown. Every method also takes keyword-only
    ``timeout`` (seconds, capped by the configured timeout) and ``cancel``
    (a ``threading.Event``).
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = DEFAULT_PORT,
        config: Optional[ClientConfig] = None,
        *,
        pool: Optional[ConnectionPool] = None,
    ):
        self._host = host
        self._port = port
        self._config = config or ClientConfig()
        if pool is None:
            pool = ConnectionPool(
                self._connect,
                initial_connections=self._config.initial_connections,
                max_connections=self._config.max_connections,
            )
        self._pool = pool
        self._executor = ThreadPoolExecutor(
            max_workers=pool.max_connections,
            thread_name_prefix="bloomd",
        )
        self._shutdown_lock = threading.Lock()
        self._is_shutdown = False

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    def _connect(self) -> Connection:
        return Connection.dial(self._host, self._port, timeout=self._config.timeout)

    def __enter__(self) -> "BloomdClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    # Dispatch

    def _execute(self, call: _Call, line: str, deadline: float) -> str:
        """Worker side: acquire, send, receive, then release or discard."""
        conn = self._pool.acquire(timeout=max(0.0, deadline - time.monotonic()))
        try:
            send(conn, line, self._config.max_attempts)
            resp = receive(conn)
        except BaseException:
            self._pool.discard(conn)
            raise
        with call.lock:
            if call.abandoned:
                self._pool.discard(conn)
            else:
                self._pool.release(conn)
        return resp

    def _abandon(self, call: _Call, future: Future) -> None:
        with call.lock:
            call.abandoned = True
        future.cancel()

    def _wait(
        self,
        future: Future,
        deadline: float,
        cancel: Optional[threading.Event],
    ) -> str:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise FutureTimeoutError()
            if cancel is not None and cancel.is_set():
                raise CancelledError()
            step = remaining if cancel is None else min(remaining, _CANCEL_POLL_INTERVAL)
            done, _ = wait([future], timeout=step)
            if done:
                return future.result()

    def _dispatch(
        self,
        line: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Send ``line`` and return the raw reply, honouring the call deadline."""
        if self._is_shutdown:
            raise PoolClosedError("client has been shut down")
        limit = self._config.timeout if timeout is None else min(timeout, self._config.timeout)
        deadline = time.monotonic() + limit

        call = _Call()
        try:
            future = self._executor.submit(self._execute, call, line, deadline)
        except RuntimeError as e:
            raise PoolClosedError("client has been shut down") from e

        logger.debug("Dispatched %r", line)
        try:
            return self._wait(future, deadline, cancel)
        except BloomdTimeoutError:
            # raised by the worker itself while waiting for a pooled connection
            raise
        except FutureTimeoutError:
            self._abandon(call, future)
            logger.warning("Command %r timed out after %.3fs", line, limit)
            raise BloomdTimeoutError(f"command {line!r} timed out after {limit}s") from None
        except CancelledError:
            self._abandon(call, future)
            if self._is_shutdown:
                raise PoolClosedError("client has been shut down") from None
            logger.warning("Command %r cancelled", line)
            raise RequestCancelledError(f"command {line!r} cancelled") from None

    def _dispatch_and_parse(
        self,
        line: str,
        parse: Callable[..., T],
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> T:
        resp = self._dispatch(line, timeout=timeout, cancel=cancel)
        return parse(resp, command=line)

    def _dispatch_for_confirmation(
        self,
        verb: str,
        name: Optional[str],
        parse: Callable[..., None] = parser.parse_confirmation,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        line = protocol.encode_command(verb, name)
        self._dispatch_and_parse(line, parse, timeout, cancel)

    def _dispatch_for_bool(
        self,
        verb: str,
        name: str,
        key: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        line = protocol.encode_command(verb, name, [key], hash_keys=self._config.hash_keys)
        return self._dispatch_and_parse(line, parser.parse_bool, timeout, cancel)

    def _dispatch_for_bool_list(
        self,
        verb: str,
        name: str,
        keys: tuple[str, ...],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> list[bool]:
        if not keys:
            raise InvalidParametersError("at least one key is required")
        line = protocol.encode_command(verb, name, keys, hash_keys=self._config.hash_keys)
        resp = self._dispatch(line, timeout=timeout, cancel=cancel)
        return parser.parse_bool_list(len(keys), resp, command=line)

    # Operations

    def create(
        self,
        name: str,
        capacity: int = 0,
        probability: float = 0.0,
        in_memory: bool = False,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Create a filter. An existing filter with the same name is not an error.

        Zero capacity and probability leave the daemon defaults in place. A
        probability without a positive capacity is rejected before anything
        is sent.
        """
        line = protocol.encode_create(name, capacity, probability, in_memory)
        self._dispatch_and_parse(line, parser.parse_create_confirmation, timeout, cancel)

    def create_when_ready(
        self,
        name: str,
        capacity: int = 0,
        probability: float = 0.0,
        in_memory: bool = False,
        *,
        attempts: int = 5,
        delay: float = 0.1,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Like :meth:`create`, retrying while a previous delete is still running."""
        attempts = max(1, attempts)
        for attempt in range(1, attempts + 1):
            try:
                self.create(name, capacity, probability, in_memory, timeout=timeout, cancel=cancel)
                return
            except DeleteInProgressError:
                if attempt == attempts:
                    raise
                logger.debug("Delete of %r in progress, retrying create (%d/%d)", name, attempt, attempts)
                time.sleep(delay)

    def set(self, name: str, key: str, *, timeout: Optional[float] = None,
            cancel: Optional[threading.Event] = None) -> bool:
        """Add ``key``. Returns True if it was not already present."""
        return self._dispatch_for_bool(protocol.SET, name, key, timeout, cancel)

    def check(self, name: str, key: str, *, timeout: Optional[float] = None,
              cancel: Optional[threading.Event] = None) -> bool:
        """Return whether ``key`` is (probably) in the filter."""
        return self._dispatch_for_bool(protocol.CHECK, name, key, timeout, cancel)

    def bulk(self, name: str, *keys: str, timeout: Optional[float] = None,
             cancel: Optional[threading.Event] = None) -> list[bool]:
        """Add several keys; one result per key, in order."""
        return self._dispatch_for_bool_list(protocol.BULK, name, keys, timeout, cancel)

    def multi(self, name: str, *keys: str, timeout: Optional[float] = None,
              cancel: Optional[threading.Event] = None) -> list[bool]:
        """Check several keys; one result per key, in order."""
        return self._dispatch_for_bool_list(protocol.MULTI, name, keys, timeout, cancel)

    def info(self, name: str, *, timeout: Optional[float] = None,
             cancel: Optional[threading.Event] = None) -> VerboseBloomFilter:
        """Return the filter's settings and counters."""
        line = protocol.encode_command(protocol.INFO, name)
        resp = self._dispatch(line, timeout=timeout, cancel=cancel)
        return parser.parse_info(name, resp, command=line)

    def list_filters(self, prefix: Optional[str] = None, *, timeout: Optional[float] = None,
                     cancel: Optional[threading.Event] = None) -> list[BloomFilter]:
        """List filters, optionally only those whose name starts with ``prefix``."""
        line = protocol.encode_command(protocol.LIST, prefix or None)
        return self._dispatch_and_parse(line, parser.parse_filter_list, timeout, cancel)

    def drop(self, name: str, *, timeout: Optional[float] = None,
             cancel: Optional[threading.Event] = None) -> None:
        """Delete the filter permanently. Dropping a missing filter succeeds."""
        self._dispatch_for_confirmation(protocol.DROP, name, parser.parse_drop_confirmation, timeout, cancel)

    def clear(self, name: str, *, timeout: Optional[float] = None,
              cancel: Optional[threading.Event] = None) -> None:
        """Remove the filter from the daemon's management without deleting it."""
        self._dispatch_for_confirmation(protocol.CLEAR, name, parser.parse_clear_confirmation, timeout, cancel)

    def close(self, name: str, *, timeout: Optional[float] = None,
              cancel: Optional[threading.Event] = None) -> None:
        """Page the filter out of the daemon's memory."""
        self._dispatch_for_confirmation(protocol.CLOSE, name, parser.parse_confirmation, timeout, cancel)

    def flush(self, name: Optional[str] = None, *, timeout: Optional[float] = None,
              cancel: Optional[threading.Event] = None) -> None:
        """Flush one filter, or all of them, to disk."""
        self._dispatch_for_confirmation(protocol.FLUSH, name, parser.parse_confirmation, timeout, cancel)

    def ping(self, *, timeout: Optional[float] = None, cancel: Optional[threading.Event] = None) -> None:
        """Raise if the daemon does not answer a ``list``."""
        self.list_filters(timeout=timeout, cancel=cancel)

    def shutdown(self) -> None:
        """Close the pool. Later calls fail with :class:`PoolClosedError`. Idempotent."""
        with self._shutdown_lock:
            if self._is_shutdown:
                return
            self._is_shutdown = True
        self._pool.close()
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug("Client for %s:%d shut down", self._host, self._port)
