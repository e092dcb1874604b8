"""Typed failures raised by the ledger and lifecycle services.

Each failure carries the HTTP status the transport layer is expected to map
it to, so callers never have to inspect messages.
"""


class SavingsGroupError(Exception):
    """Base exception for savings group operations."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(SavingsGroupError):
    """Referenced entity does not exist."""
    status_code = 404


class AccessDeniedError(SavingsGroupError):
    """Entity belongs to another group or member than the actor's."""
    status_code = 403


class ConflictError(SavingsGroupError):
    """Operation violates a uniqueness or idempotency invariant."""
    status_code = 409


class ValidationError(SavingsGroupError, ValueError):
    """Malformed or out-of-range input."""
    status_code = 400
