"""Line-based bloomd protocol: command verbs, reply literals, request encoding."""

import hashlib
from typing import Iterable, Optional

from .errors import InvalidParametersError

CREATE = "create"
DROP = "drop"
CLOSE = "close"
CLEAR = "clear"
SET = "s"
CHECK = "c"
BULK = "b"
MULTI = "m"
INFO = "info"
LIST = "list"
FLUSH = "flush"

BLOCK_START = "START"
BLOCK_END = "END"

RESPONSE_DONE = "Done"
RESPONSE_EXISTS = "Exists"
RESPONSE_YES = "Yes"
RESPONSE_NO = "No"
RESPONSE_DELETE_IN_PROGRESS = "Delete in progress"
RESPONSE_FILTER_NOT_EXIST = "Filter does not exist"
RESPONSE_FILTER_NOT_PROXIED = "Filter is not proxied. Close it first."


def hash_key(key: str) -> str:
    """Return the hex SHA-1 digest sent in place of ``key``."""
    return hashlib.sha1(key.encode("utf-8")).hexdigest()


def _check_token(kind: str, value: str) -> str:
    if not value:
        raise InvalidParametersError(f"{kind} must not be empty")
    if any(ch.isspace() for ch in value):
        raise InvalidParametersError(f"{kind} must not contain whitespace: {value!r}")
    return value


def encode_command(
    verb: str,
    name: Optional[str] = None,
    keys: Iterable[str] = (),
    hash_keys: bool = False,
) -> str:
    """Build one command line (without the newline)."""
    parts = [verb]
    if name is not None:
        parts.append(_check_token("filter name", name))
    for key in keys:
        _check_token("key", key)
        parts.append(hash_key(key) if hash_keys else key)
    return " ".join(parts)


def encode_create(
    name: str,
    capacity: int = 0,
    probability: float = 0.0,
    in_memory: bool = False,
) -> str:
    """Build a ``create`` line. Zero capacity/probability leave the daemon defaults."""
    if capacity < 0:
        raise InvalidParametersError("capacity must not be negative")
    if not 0 <= probability < 1:
        raise InvalidParametersError("probability must be in [0, 1)")
    if probability > 0 and capacity < 1:
        raise InvalidParametersError("a probability requires a positive capacity")
    if probability > 0 and f"{probability:f}" == "0.000000":
        raise InvalidParametersError("probability is too small to send, the wire format keeps 6 decimals")

    line = encode_command(CREATE, name)
    if capacity > 0:
        line += f" capacity={capacity:d}"
    if probability > 0:
        line += f" prob={probability:f}"
    if in_memory:
        line += " in_memory=1"
    return line


def encode_request(line: str) -> bytes:
    """Encode a command line for the wire."""
    return (line + "\n").encode("utf-8")
