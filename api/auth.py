"""
Caller identity for API requests.

The caller identifies itself with two request headers:

- X-User-Id: the user id returned by register/login
- X-Admin: "true" to claim the admin capability

Neither is cryptographically verified. This is only safe behind a gateway
that authenticates users and injects these headers itself. All identity
resolution goes through get_caller() so a verified session scheme can replace
it without touching the stores. When VIDSHARE_ADMIN_API_SECRET is set, the
admin flag additionally requires a matching X-Admin-Secret header.
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

import config
from api.common import get_real_ip
from api.errors import UnauthorizedError

logger = logging.getLogger(__name__)

# Security event logger - separate from regular application logging
security_logger = logging.getLogger("security.auth")


@dataclass(frozen=True)
class Caller:
    user_id: Optional[str] = None
    is_admin: bool = False

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)


def _admin_flag_granted(request: Request) -> bool:
    if request.headers.get(config.ADMIN_FLAG_HEADER, "").strip().lower() != "true":
        return False
    if not config.ADMIN_API_SECRET:
        return True

    secret = request.headers.get(config.ADMIN_SECRET_HEADER, "")
    if secret and hmac.compare_digest(secret, config.ADMIN_API_SECRET):
        return True

    security_logger.warning(
        "Admin flag rejected: missing or invalid admin secret",
        extra={"event": "auth_failure", "reason": "invalid_secret", "path": request.url.path,
               "client_ip": get_real_ip(request)},
    )
    return False


def get_caller(request: Request) -> Caller:
    """FastAPI dependency resolving the caller from request headers."""
    user_id = request.headers.get(config.USER_ID_HEADER, "").strip() or None
    return Caller(user_id=user_id, is_admin=_admin_flag_granted(request))


def require_user(caller: Caller) -> str:
    """Return the caller's user id or raise UnauthorizedError."""
    if not caller.is_authenticated:
        raise UnauthorizedError()
    return caller.user_id


def require_admin(caller: Caller) -> None:
    """Raise UnauthorizedError unless the caller holds the admin capability."""
    if not caller.is_admin:
        raise UnauthorizedError("Admin capability required")


def check_admin_credentials(username: Optional[str], password: Optional[str]) -> bool:
    """Compare against the configured fixed admin credential pair."""
    if not isinstance(username, str) or not isinstance(password, str):
        return False
    # Both comparisons always run
    user_ok = hmac.compare_digest(username.encode(), config.ADMIN_USERNAME.encode())
    pass_ok = hmac.compare_digest(password.encode(), config.ADMIN_PASSWORD.encode())
    return user_ok and pass_ok
