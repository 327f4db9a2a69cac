"""
Common utilities shared by the API routers.

Middlewares, client IP resolution, the rate-limit handler and health checks.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from api.database import database
from api.uploads import UploadStorage
from config import (
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_STORAGE_URL,
    STORAGE_CHECK_TIMEOUT,
    TEST_MODE,
    TRUSTED_PROXIES,
    UPLOADS_DIR,
    UPLOADS_URL_PATH,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware UTC.

    SQLite doesn't store timezone info, so datetimes retrieved from the database
    may be timezone-naive even though they were stored as UTC.

    Examples:
        >>> ensure_utc(None)
        None
        >>> ensure_utc(datetime(2024, 1, 1, 12, 0, 0))  # naive
        datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def get_real_ip(request: Request) -> str:
    """
    Get the real client IP address, respecting X-Forwarded-For header only from trusted proxies.

    Security: X-Forwarded-For is only trusted when the direct client IP is in TRUSTED_PROXIES.
    This prevents attackers from spoofing the header to bypass rate limiting.
    """
    client_ip = get_remote_address(request)

    if TRUSTED_PROXIES and client_ip in TRUSTED_PROXIES:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            # The first entry is the original client
            return forwarded.split(",")[0].strip()

    return client_ip


# Shared by the public app and the admin router.
# Uses in-memory storage by default, can be configured to use Redis
limiter = Limiter(
    key_func=get_real_ip,
    storage_uri=RATE_LIMIT_STORAGE_URL if RATE_LIMIT_ENABLED else None,
    enabled=RATE_LIMIT_ENABLED,
)

upload_storage = UploadStorage(UPLOADS_DIR, UPLOADS_URL_PATH)


def get_request_id(request: Request) -> Optional[str]:
    """Return the request ID assigned by RequestIDMiddleware, if any."""
    return getattr(request.state, "request_id", None)


def request_audit_fields(request: Request) -> dict:
    """Client and tracing fields for log_audit()."""
    return {
        "client_ip": get_real_ip(request),
        "user_agent": request.headers.get("user-agent"),
        "request_id": get_request_id(request),
    }


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Attach a request ID to every request and echo it in the response.

    An incoming X-Request-ID header is kept (truncated); otherwise a UUID4 is
    generated.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER, "").strip()[:MAX_REQUEST_ID_LENGTH]
        if not request_id:
            request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle rate limit exceeded errors with a proper JSON response."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded",
            "error": str(exc.detail),
        },
    )


def _check_storage_sync(uploads_dir: Path) -> bool:
    """
    Synchronous storage check that verifies both existence and writability.

    Runs in a thread pool to avoid blocking the event loop.
    """
    try:
        if not uploads_dir.exists():
            return False
        test_file = uploads_dir / f".health_check_{uuid.uuid4().hex}"
        test_file.write_text("health check")
        test_file.unlink()
        return True
    except OSError:
        return False


async def check_health(uploads_dir: Path) -> dict:
    """
    Perform health checks for database and upload storage.

    Returns a dict with:
        - checks: dict of individual check results
        - healthy: bool indicating overall health
        - status_code: HTTP status code (200 if healthy, 503 if not)
        - checked_at: ISO timestamp
    """
    checks = {
        "database": False,
        "storage": False,
    }

    try:
        await database.fetch_one("SELECT 1")
        checks["database"] = True
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")

    if TEST_MODE:
        checks["storage"] = True
    else:
        try:
            loop = asyncio.get_running_loop()
            checks["storage"] = await asyncio.wait_for(
                loop.run_in_executor(None, _check_storage_sync, uploads_dir),
                timeout=STORAGE_CHECK_TIMEOUT,
            )
        except asyncio.TimeoutError:
            logger.warning("Storage health check timed out")
        except Exception as e:
            logger.warning(f"Storage health check failed: {e}")

    healthy = all(checks.values())
    return {
        "checks": checks,
        "healthy": healthy,
        "status_code": 200 if healthy else 503,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
