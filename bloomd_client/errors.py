"""Exception hierarchy for the bloomd client.

Transport problems subclass the builtin ``ConnectionError``/``TimeoutError``
so callers that already catch those keep working. Everything the daemon
answers with that is not a success lands under ``ResponseError`` and keeps
the command line and raw response for diagnosis.
"""

from typing import Optional


class BloomdError(Exception):
    """Base exception for all bloomd client errors."""
    pass


class BloomdConnectionError(BloomdError, ConnectionError):
    """Raised when dialing, writing to or reading from the daemon fails."""
    pass


class PoolClosedError(BloomdConnectionError):
    """Raised when a connection is requested from a closed pool."""

    def __init__(self, message: str = "connection pool is closed"):
        super().__init__(message)


class BloomdTimeoutError(BloomdError, TimeoutError):
    """Raised when a call's deadline elapses before a response was parsed."""
    pass


class RequestCancelledError(BloomdError):
    """Raised when the caller's cancel event fires before a response was parsed."""
    pass


class InvalidParametersError(BloomdError, ValueError):
    """Raised for caller errors detected before anything is sent."""
    pass


class ResponseError(BloomdError):
    """The daemon answered, but not with a success for the issued command."""

    retryable = False

    def __init__(self, response: str, command: Optional[str] = None, message: Optional[str] = None):
        self.response = response
        self.command = command
        if message is None:
            message = f"unexpected response {response!r}"
        if command:
            message = f"{message} to command {command!r}"
        super().__init__(message)


class ProtocolError(ResponseError):
    """Response text matched no known grammar for the issued command."""
    pass


class FilterNotExistError(ResponseError):
    """The named filter does not exist on the daemon."""

    def __init__(self, response: str, command: Optional[str] = None):
        super().__init__(response, command, message="filter does not exist")


class DeleteInProgressError(ResponseError):
    """A same-named filter is still being deleted; retry the create later."""

    retryable = True

    def __init__(self, response: str, command: Optional[str] = None):
        super().__init__(response, command, message="delete in progress")


class FilterNotProxiedError(ResponseError):
    """``clear`` refused because the filter is still in memory; close it first."""

    def __init__(self, response: str, command: Optional[str] = None):
        super().__init__(response, command, message="filter is not proxied, close it first")
