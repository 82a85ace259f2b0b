from typing import Optional


class BackendError(Exception):
    """Base class for failures talking to the persistence backend."""

    def __init__(self, action: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{action}: {message}")
        self.action = action
        self.message = message
        self.cause = cause


class TransportFailure(BackendError):
    """Backend unreachable: network error, timeout or non-2xx HTTP status."""


class BackendLogicFailure(BackendError):
    """Backend answered with ok=false (domain error on its side)."""


class MalformedResponseFailure(BackendError):
    """Backend answered with something that breaks the response contract."""
