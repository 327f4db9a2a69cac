"""
Database retry utilities for handling transient database errors.

Two kinds of retry live here:

- Per-query retry with a short exponential backoff for transient errors
  (SQLite "database is locked", PostgreSQL deadlocks/serialization failures,
  dropped connections).
- Startup connection retry with a longer exponential backoff, capped, used
  only while establishing store connectivity in the application lifespan.
"""

import asyncio
import functools
import logging
import random
import time
from typing import Callable, Optional, TypeVar

from config import DB_CONNECT_BASE_DELAY, DB_CONNECT_MAX_ATTEMPTS, DB_CONNECT_MAX_DELAY

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD = 1.0

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_RETRIES = 5
DEFAULT_BASE_DELAY = 0.1  # 100ms
DEFAULT_MAX_DELAY = 2.0  # 2 seconds
DEFAULT_EXPONENTIAL_BASE = 2


class DatabaseRetryableError(Exception):
    """Raised when a database operation fails after all retries exhausted."""

    pass


def is_retryable_database_error(exc: Exception) -> bool:
    """
    Check if an exception is a retryable database error.

    Supports both SQLite and PostgreSQL error patterns.
    """
    error_str = str(exc).lower()

    sqlite_patterns = [
        "database is locked",
        "database table is locked",
        "sqlite_busy",
        "sqlite_locked",
    ]

    postgres_patterns = [
        "deadlock detected",  # 40P01
        "could not serialize access",  # 40001 serialization failure
        "could not obtain lock",
        "connection refused",
        "connection reset",
        "server closed the connection unexpectedly",
        "canceling statement due to lock timeout",
        "lock timeout",
    ]

    for pattern in sqlite_patterns + postgres_patterns:
        if pattern in error_str:
            return True

    # asyncpg and psycopg2 may expose error codes
    if getattr(exc, "sqlstate", "") in ("40P01", "40001"):
        return True

    # The databases library wraps underlying driver exceptions
    if exc.__cause__ is not None:
        return is_retryable_database_error(exc.__cause__)

    return False


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff delay for a zero-based attempt number, capped at max_delay."""
    return min(base_delay * (DEFAULT_EXPONENTIAL_BASE**attempt), max_delay)


async def execute_with_retry(
    func: Callable,
    *args,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    **kwargs,
) -> T:
    """
    Execute an async function with retry logic for transient database errors.

    Uses exponential backoff with jitter to reduce contention.

    Raises:
        DatabaseRetryableError: If all retries are exhausted
        Other exceptions: Non-retryable errors are re-raised immediately
    """
    last_exception: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_database_error(e):
                raise

            last_exception = e

            if attempt < max_retries:
                delay = backoff_delay(attempt, base_delay, max_delay)
                # Add jitter (±25%) to prevent thundering herd
                jitter = delay * 0.25 * (2 * random.random() - 1)
                delay = max(0.01, delay + jitter)

                logger.warning(
                    f"Database error (attempt {attempt + 1}/{max_retries + 1}), retrying in {delay:.2f}s: {e}"
                )
                await asyncio.sleep(delay)
            else:
                logger.error(f"Database error after {max_retries + 1} attempts, giving up: {e}")

    raise DatabaseRetryableError(f"Database operation failed after {max_retries + 1} attempts: {last_exception}")


def with_db_retry(
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
):
    """
    Decorator to add database retry logic to async functions.

    Usage:
        @with_db_retry()
        async def my_database_operation():
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await execute_with_retry(
                func,
                *args,
                max_retries=max_retries,
                base_delay=base_delay,
                max_delay=max_delay,
                **kwargs,
            )

        return wrapper

    return decorator


def _log_if_slow(query, start_time: float) -> None:
    elapsed = time.monotonic() - start_time
    if elapsed >= SLOW_QUERY_THRESHOLD:
        logger.warning(f"Slow query ({elapsed:.2f}s): {str(query)[:500]}")


async def fetch_one_with_retry(query):
    """Execute a fetch_one query with retry logic. Returns a row or None."""
    from api.database import database

    async def _fetch():
        start_time = time.monotonic()
        result = await database.fetch_one(query)
        _log_if_slow(query, start_time)
        return result

    return await execute_with_retry(_fetch)


async def fetch_all_with_retry(query):
    """Execute a fetch_all query with retry logic. Returns a list of rows."""
    from api.database import database

    async def _fetch():
        start_time = time.monotonic()
        result = await database.fetch_all(query)
        _log_if_slow(query, start_time)
        return result

    return await execute_with_retry(_fetch)


async def db_execute_with_retry(query, values=None):
    """Execute a database write query with retry logic."""
    from api.database import database

    async def _execute():
        start_time = time.monotonic()
        if values is not None:
            result = await database.execute(query, values)
        else:
            result = await database.execute(query)
        _log_if_slow(query, start_time)
        return result

    return await execute_with_retry(_execute)


async def connect_with_retry(
    database,
    base_delay: float = DB_CONNECT_BASE_DELAY,
    max_delay: float = DB_CONNECT_MAX_DELAY,
    max_attempts: int = DB_CONNECT_MAX_ATTEMPTS,
) -> None:
    """
    Connect to the store, retrying with exponential backoff until it succeeds.

    Delays double from base_delay and are capped at max_delay. max_attempts=0
    retries forever; otherwise the last connection error is re-raised once the
    attempts are used up. Only used at startup, never for individual operations.
    """
    attempt = 0
    while True:
        try:
            await database.connect()
            if attempt:
                logger.info(f"Database connected after {attempt + 1} attempts")
            else:
                logger.info("Database connected")
            return
        except Exception as e:
            attempt += 1
            if max_attempts and attempt >= max_attempts:
                logger.error(f"Database connection failed after {attempt} attempts, giving up: {e}")
                raise
            delay = backoff_delay(attempt - 1, base_delay, max_delay)
            logger.warning(f"Database connection error, retrying in {delay:.0f}s: {e}")
            await asyncio.sleep(delay)
