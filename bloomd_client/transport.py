"""Blocking socket transport: one command line out, one line or block back."""

import itertools
import logging
import socket
from typing import Optional

from .errors import BloomdConnectionError
from .protocol import BLOCK_END, BLOCK_START, encode_request

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


class Connection:
    """A TCP connection to the daemon with a buffered reader.

    Owned by one command at a time. Once an I/O error is seen ``usable``
    flips to False and the pool drops the connection instead of reusing it.
    """

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self._reader = sock.makefile("rb")
        self.id = next(_ids)
        self.usable = True
        self.closed = False

    @classmethod
    def dial(cls, host: str, port: int, timeout: Optional[float] = None) -> "Connection":
        """Open a new connection to ``host:port``."""
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise BloomdConnectionError(f"unable to connect to {host}:{port}: {e}") from e
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return cls(sock)

    def write(self, data: bytes) -> None:
        self._sock.sendall(data)

    def readline(self) -> bytes:
        return self._reader.readline()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.usable = False
        try:
            self._reader.close()
        except OSError:
            pass
        try:
            self._sock.close()
        except OSError:
            pass

    def __repr__(self) -> str:
        return f"<Connection id={self.id} usable={self.usable}>"


def send(conn: Connection, line: str, max_attempts: int) -> None:
    """Write ``line`` plus newline, retrying failed writes up to ``max_attempts`` times."""
    data = encode_request(line)
    attempts = max(1, max_attempts)
    last_error: Optional[OSError] = None
    for attempt in range(1, attempts + 1):
        try:
            conn.write(data)
            return
        except OSError as e:
            last_error = e
            logger.warning("Write to %r failed (attempt %d/%d): %s", conn, attempt, attempts, e)
    conn.usable = False
    raise BloomdConnectionError(f"unable to write to connection: {last_error}") from last_error


def _read_line(conn: Connection) -> str:
    try:
        raw = conn.readline()
    except OSError as e:
        conn.usable = False
        raise BloomdConnectionError(f"unable to read from connection: {e}") from e
    if not raw:
        conn.usable = False
        raise BloomdConnectionError("connection closed by daemon")
    try:
        return raw.decode("utf-8").rstrip("\r\n")
    except UnicodeDecodeError as e:
        conn.usable = False
        raise BloomdConnectionError(f"undecodable reply {raw!r}: {e}") from e


def receive(conn: Connection) -> str:
    """Read one reply.

    A first line starting with ``START`` switches to block mode: lines are
    collected until one starting with ``END`` and joined with newlines,
    without the markers. Anything else is a single-line reply.
    """
    line = _read_line(conn)
    if not line.startswith(BLOCK_START):
        return line

    lines = []
    while True:
        line = _read_line(conn)
        if line.startswith(BLOCK_END):
            break
        lines.append(line)
    return "\n".join(lines)
