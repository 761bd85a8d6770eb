"""Error taxonomy for the relay.

Only ``AuthError`` is fatal to a session. Every other error is reported to the
caller as an ``error`` frame while the connection stays open.
"""


class RelayError(Exception):
    """Base class for all relay errors. ``message`` is safe to show to clients."""

    error_type = "RelayError"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthError(RelayError):
    """Raised when a connection cannot be authenticated."""
    error_type = "AuthError"


class ValidationError(RelayError):
    """Raised for missing or empty fields and malformed frames."""
    error_type = "ValidationError"


class NotFoundError(RelayError):
    """Raised when a referenced group or user does not exist."""
    error_type = "NotFoundError"


class AuthorizationError(RelayError):
    """Raised when the caller is not a member of the target group."""
    error_type = "AuthorizationError"


class PersistenceError(RelayError):
    """Raised when the store fails. The triggering action did not complete."""
    error_type = "PersistenceError"


class TransportError(RelayError):
    """Raised when sending to a single socket fails."""
    error_type = "TransportError"
