"""Client configuration.

Built once when a client is constructed and never mutated afterwards.
"""

from dataclasses import dataclass

from .errors import InvalidParametersError

DEFAULT_PORT = 8673


@dataclass(frozen=True)
class ClientConfig:
    """Settings for a bloomd client.

    Attributes:
        hash_keys: Send the SHA-1 hex digest of each key instead of the key
        initial_connections: Connections opened when the pool is created
        max_connections: Upper bound on live connections in the pool
        max_attempts: Write attempts per command before giving up
        timeout: Per-call deadline in seconds, also used as the socket timeout
    """

    hash_keys: bool = False
    initial_connections: int = 5
    max_connections: int = 10
    max_attempts: int = 3
    timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.max_connections < 1:
            raise InvalidParametersError("max_connections must be at least 1")
        if not 0 <= self.initial_connections <= self.max_connections:
            raise InvalidParametersError("initial_connections must be between 0 and max_connections")
        if self.max_attempts < 1:
            raise InvalidParametersError("max_attempts must be at least 1")
        if self.timeout <= 0:
            raise InvalidParametersError("timeout must be positive")
