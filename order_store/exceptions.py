"""
Custom exceptions for the order store.

Remote failures are raised inside the gateway and converted into
result objects at its public boundary, so callers of OrderStore
only ever see ValidationError or StorageIOError.
"""


class OrderStoreError(Exception):
    """Base exception for all order store errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(OrderStoreError):
    """Raised when an order record or argument fails validation."""

    def __init__(self, field: str, reason: str, value: object | None = None):
        details: dict = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = repr(value)
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class StorageIOError(OrderStoreError):
    """Raised when the local storage medium fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class RemoteError(OrderStoreError):
    """Base class for failures talking to the remote datastore."""

    def __init__(self, message: str, action: str | None = None, cause: Exception | None = None):
        details: dict = {}
        if action:
            details["action"] = action
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.action = action
        self.cause = cause


class TransportError(RemoteError):
    """The remote could not be reached (network failure or timeout)."""


class RemoteRejectedError(RemoteError):
    """The remote answered but refused the request.

    Covers both a non-2xx HTTP status and a decoded payload
    carrying an explicit falsy ``success`` flag.
    """

    def __init__(
        self,
        message: str,
        action: str | None = None,
        status: int | None = None,
    ):
        super().__init__(message, action)
        if status is not None:
            self.details["status"] = status
        self.status = status
