"""
Exception hierarchy for the SIAKAD client.

Only user-initiated operations (login, register, change password, sending a
message directly) raise these to the caller. Background paths log and
degrade instead.
"""

from __future__ import annotations


class SiakadError(Exception):
    """Base class for all SIAKAD client errors."""


class ApiError(SiakadError):
    """Raised when the REST API rejects a user-initiated request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthError(ApiError):
    """Raised when login, registration or a password change fails."""


class ValidationError(SiakadError):
    """Raised when a required field is missing before dispatch."""


class StorageError(SiakadError):
    """Raised by strict storage reads; the default store API never raises it."""


class SchedulingError(SiakadError):
    """Raised by a notifier that cannot schedule a reminder."""
