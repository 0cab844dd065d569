import enum

import httpx

# Fallback substrings for error sources without a structured kind
NETWORK_ERROR_PATTERNS = ("fetch", "network", "timeout", "ECONNREFUSED", "ERR_NETWORK", "Failed to fetch")
# Gateway statuses mean the database itself was unreachable
UNREACHABLE_STATUSES = (502, 503, 504)


class ErrorKind(str, enum.Enum):
    NETWORK = "network"
    REMOTE = "remote"
    ITEMS = "items"
    STORAGE = "storage"
    UNEXPECTED = "unexpected"


class RemoteError(Exception):
    """Error returned by the hosted database for a single request."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.REMOTE, status: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status = status
        self.code = code

    def __repr__(self) -> str:
        return f"RemoteError(kind={self.kind.value!r}, status={self.status!r}, message={self.message!r})"


class StorageError(Exception):
    """The local pending-submission store could not complete an operation."""


def is_network_error(error) -> bool:
    """Classifies an error as transient (connectivity) or not.

    Structured signals win: a RemoteError carries its kind (and an HTTP status
    when the database answered), httpx transport errors are always network
    failures. Anything else falls back to matching
    the message against NETWORK_ERROR_PATTERNS, case-insensitively.
    """
    if error is None:
        return False
    if isinstance(error, RemoteError):
        if error.kind == ErrorKind.NETWORK:
            return True
        if error.status is not None:
            return error.status in UNREACHABLE_STATUSES
        message = error.message
    elif isinstance(error, httpx.RequestError):
        return True
    else:
        message = str(error)

    lowered = (message or "").lower()
    return any(pattern.lower() in lowered for pattern in NETWORK_ERROR_PATTERNS)
