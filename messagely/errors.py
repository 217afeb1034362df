"""
Error taxonomy for the Messagely API.

Every error carries the HTTP status it maps to; main.py renders them as
``{"detail": message}``.
"""

from fastapi import status


class MessagelyError(Exception):
    """Base class for errors surfaced to the API boundary."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(MessagelyError):
    """Missing or malformed input."""
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(MessagelyError):
    """Duplicate unique key, e.g. a username that is already taken."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(MessagelyError):
    status_code = status.HTTP_404_NOT_FOUND


class AuthError(MessagelyError):
    """Missing, malformed, forged or expired bearer token."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(MessagelyError):
    """Valid identity without rights to the requested resource."""
    status_code = status.HTTP_401_UNAUTHORIZED


class StorageError(MessagelyError):
    """
    Unexpected storage failure. The underlying exception is chained as
    ``__cause__`` for the logs and never shown to the client.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
