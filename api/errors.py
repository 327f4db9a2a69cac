"""
Error taxonomy for API failures.

Every failure the API reports to a client is one of the VidShareError
subclasses below. Each carries its HTTP status and a stable error code so
handlers never have to guess. Internal details (paths, SQL, driver messages)
are logged but never returned.
"""
from typing import Optional


class VidShareError(Exception):
    """Base class for errors that map onto an API response."""

    status_code = 500
    error_code = "server_error"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.error_code}


class BadRequestError(VidShareError):
    """Malformed or missing required fields."""

    status_code = 400
    error_code = "bad_request"
    default_message = "Bad request"


class UnauthorizedError(VidShareError):
    """No caller identity, bad credentials, or admin-only call without admin capability."""

    status_code = 401
    error_code = "unauthorized"
    default_message = "Authentication required"


class ForbiddenError(VidShareError):
    """Caller is identified but does not own the resource."""

    status_code = 403
    error_code = "forbidden"
    default_message = "You do not own this resource"


class NotFoundError(VidShareError):
    status_code = 404
    error_code = "not_found"
    default_message = "Not found"


class ConflictError(VidShareError):
    """Duplicate unique key."""

    status_code = 409
    error_code = "already_exists"
    default_message = "Already exists"


class ServerError(VidShareError):
    """Unexpected store or internal failure."""


def is_unique_violation(exc: Exception) -> bool:
    """
    Check whether an exception is a unique-constraint violation.

    Works across SQLite ("UNIQUE constraint failed") and PostgreSQL
    ("duplicate key value violates unique constraint", sqlstate 23505).
    """
    if getattr(exc, "sqlstate", None) == "23505":
        return True
    error_str = str(exc).lower()
    if "unique constraint" in error_str or "duplicate key" in error_str:
        return True
    if exc.__cause__ is not None:
        return is_unique_violation(exc.__cause__)
    return False


def truncate_string(value: Optional[str], max_length: int, suffix: str = "...") -> Optional[str]:
    """Truncate a string to max_length characters, marking the cut with suffix."""
    if value is None or len(value) <= max_length:
        return value
    if max_length <= len(suffix):
        return value[:max_length]
    return value[: max_length - len(suffix)] + suffix
