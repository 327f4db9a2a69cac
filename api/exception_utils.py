"""
Standardized exception handling utilities.

This module provides consistent patterns for exception handling across the API,
ensuring expected errors propagate with their status codes and everything else
is logged and collapsed into a ServerError.
"""

import functools
import logging
from typing import Any, Callable, TypeVar

from fastapi import HTTPException

from api.db_retry import DatabaseRetryableError
from api.errors import ServerError, VidShareError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def handle_api_exceptions(
    operation_name: str,
    error_detail: str = "Internal server error",
    log_errors: bool = True,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for standardized exception handling in API endpoints.

    This ensures:
    1. HTTPExceptions and VidShareErrors are always re-raised (never masked)
    2. DatabaseRetryableError passes through to its 503 handler
    3. Generic exceptions are logged and converted to ServerError with a
       sanitized message

    Args:
        operation_name: Name of the operation for logging context
        error_detail: Message returned to the client for unexpected errors
        log_errors: Whether to log exceptions (default: True)

    Example:
        @handle_api_exceptions("create_video", "Failed to create video")
        async def create_video(...):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except (HTTPException, VidShareError, DatabaseRetryableError):
                raise
            except Exception as e:
                if log_errors:
                    logger.exception(f"Unexpected error in {operation_name}: {e}")
                raise ServerError(error_detail) from e
        return wrapper
    return decorator
