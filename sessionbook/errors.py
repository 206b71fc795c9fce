"""
Error taxonomy for the booking engine.
Raised in the domain services and rendered by the exception handler in main.py.
"""

from typing import Optional


class SessionBookError(Exception):
    """Base exception. `code` is stable and safe to show to API callers."""

    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(SessionBookError):
    """Malformed or missing input."""

    status_code = 422
    default_code = "validation_error"


class NotFoundError(SessionBookError):
    """Unknown provider, client or booking."""

    status_code = 404
    default_code = "not_found"


class ConflictError(SessionBookError):
    """Slot unavailable, invalid state transition or identity-creation race."""

    status_code = 409
    default_code = "conflict"


class AuthorizationError(SessionBookError):
    """Caller does not own the resource."""

    status_code = 403
    default_code = "forbidden"


class DependencyError(SessionBookError):
    """Store, calendar or notification failure."""

    status_code = 503
    default_code = "dependency_error"
