"""Turn bloomd replies into Python values or classified errors.

Every function here is pure. ``command`` is only carried into raised errors
so a failure can be traced back to the line that caused it.
"""

import struct
from typing import Optional

from .errors import (
    DeleteInProgressError,
    FilterNotExistError,
    FilterNotProxiedError,
    ProtocolError,
)
from .protocol import (
    RESPONSE_DELETE_IN_PROGRESS,
    RESPONSE_DONE,
    RESPONSE_EXISTS,
    RESPONSE_FILTER_NOT_EXIST,
    RESPONSE_FILTER_NOT_PROXIED,
    RESPONSE_NO,
    RESPONSE_YES,
)
from .types import BloomFilter, VerboseBloomFilter

_INFO_FIELDS = (
    "capacity",
    "size",
    "storage",
    "checks",
    "check_hits",
    "check_misses",
    "page_ins",
    "page_outs",
    "sets",
    "set_hits",
    "set_misses",
)


def _float32(text: str) -> float:
    # bloomd keeps probabilities as 32-bit floats
    return struct.unpack("f", struct.pack("f", float(text)))[0]


def _raise_if_missing(resp: str, command: Optional[str]) -> None:
    if resp == RESPONSE_FILTER_NOT_EXIST:
        raise FilterNotExistError(resp, command)


def parse_bool(resp: str, command: Optional[str] = None) -> bool:
    """Parse a ``Yes``/``No`` reply."""
    if resp == RESPONSE_YES:
        return True
    if resp == RESPONSE_NO:
        return False
    _raise_if_missing(resp, command)
    raise ProtocolError(resp, command)


def parse_bool_list(expected_count: int, resp: str, command: Optional[str] = None) -> list[bool]:
    """Parse a space separated ``Yes``/``No`` list, one entry per key sent."""
    _raise_if_missing(resp, command)
    if not (resp.startswith(RESPONSE_YES) or resp.startswith(RESPONSE_NO)):
        raise ProtocolError(resp, command)

    results = []
    for token in resp.split(" "):
        if token == RESPONSE_YES:
            results.append(True)
        elif token == RESPONSE_NO:
            results.append(False)
        else:
            raise ProtocolError(resp, command)

    if len(results) != expected_count:
        raise ProtocolError(
            resp, command, message=f"expected {expected_count} results, got {len(results)}"
        )
    return results


def parse_confirmation(resp: str, command: Optional[str] = None) -> None:
    """Accept ``Done``."""
    if resp == RESPONSE_DONE:
        return
    _raise_if_missing(resp, command)
    raise ProtocolError(resp, command)


def parse_clear_confirmation(resp: str, command: Optional[str] = None) -> None:
    """Accept ``Done``; a filter still in memory cannot be cleared."""
    if resp == RESPONSE_FILTER_NOT_PROXIED:
        raise FilterNotProxiedError(resp, command)
    parse_confirmation(resp, command)


def parse_drop_confirmation(resp: str, command: Optional[str] = None) -> None:
    """Accept ``Done``; dropping a missing filter is not an error."""
    if resp in (RESPONSE_DONE, RESPONSE_FILTER_NOT_EXIST):
        return
    raise ProtocolError(resp, command)


def parse_create_confirmation(resp: str, command: Optional[str] = None) -> None:
    """Accept ``Done`` and ``Exists``.

    ``Delete in progress`` means a filter with the same name was dropped and
    the daemon has not finished removing it yet. It is raised as
    :class:`DeleteInProgressError` so callers can retry.
    """
    if resp in (RESPONSE_DONE, RESPONSE_EXISTS):
        return
    if resp == RESPONSE_DELETE_IN_PROGRESS:
        raise DeleteInProgressError(resp, command)
    raise ProtocolError(resp, command)


def parse_info(name: str, resp: str, command: Optional[str] = None) -> VerboseBloomFilter:
    """Parse an ``info`` block of ``key value`` lines."""
    _raise_if_missing(resp, command)

    properties: dict[str, int] = {}
    probability = 0.0
    for line in resp.split("\n"):
        parts = line.split(" ")
        if len(parts) != 2:
            raise ProtocolError(resp, command)
        key, value = parts
        try:
            if key == "probability":
                probability = _float32(value)
            else:
                properties[key] = int(value)
        except ValueError as e:
            raise ProtocolError(resp, command) from e

    fields = {field: properties.get(field, 0) for field in _INFO_FIELDS}
    return VerboseBloomFilter(name=name, probability=probability, **fields)


def parse_filter_list(resp: str, command: Optional[str] = None) -> list[BloomFilter]:
    """Parse a ``list`` block of ``name probability storage capacity size`` rows."""
    if resp == "":
        return []

    filters = []
    for line in resp.split("\n"):
        parts = line.split(" ")
        if len(parts) != 5:
            raise ProtocolError(resp, command)
        name, probability, storage, capacity, size = parts
        try:
            filters.append(
                BloomFilter(
                    name=name,
                    probability=_float32(probability),
                    storage=int(storage),
                    capacity=int(capacity),
                    size=int(size),
                )
            )
        except ValueError as e:
            raise ProtocolError(resp, command) from e
    return filters
