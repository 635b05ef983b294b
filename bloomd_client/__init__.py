"""Thread-safe client for the bloomd bloom filter daemon."""

from .client import BloomdClient, FilterClient
from .config import DEFAULT_PORT, ClientConfig
from .errors import (
    BloomdConnectionError,
    BloomdError,
    BloomdTimeoutError,
    DeleteInProgressError,
    FilterNotExistError,
    FilterNotProxiedError,
    InvalidParametersError,
    PoolClosedError,
    ProtocolError,
    RequestCancelledError,
    ResponseError,
)
from .pool import ConnectionPool
from .types import BloomFilter, VerboseBloomFilter

__version__ = "0.1.0"

__all__ = [
    "BloomdClient",
    "FilterClient",
    "ClientConfig",
    "DEFAULT_PORT",
    "ConnectionPool",
    "BloomFilter",
    "VerboseBloomFilter",
    "BloomdError",
    "BloomdConnectionError",
    "BloomdTimeoutError",
    "PoolClosedError",
    "RequestCancelledError",
    "InvalidParametersError",
    "ResponseError",
    "ProtocolError",
    "FilterNotExistError",
    "DeleteInProgressError",
    "FilterNotProxiedError",
]
