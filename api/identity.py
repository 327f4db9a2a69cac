"""
Identity store: user accounts and their notification inbox.

Passwords are stored as argon2id hashes with a per-user salt (embedded in
the hash string); the plain password never reaches the database.
"""

import logging
from typing import List, Optional

import sqlalchemy as sa
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from api.common import ensure_utc
from api.database import EMAIL_MAX_LENGTH, NAME_MAX_LENGTH, new_id, notifications, users, utcnow
from api.db_retry import db_execute_with_retry, fetch_all_with_retry, fetch_one_with_retry
from api.errors import BadRequestError, ConflictError, NotFoundError, UnauthorizedError, is_unique_violation
from api.schemas import NotificationResponse, UserSummary

logger = logging.getLogger(__name__)

_password_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a password with argon2id."""
    return _password_hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """Check a password against a stored argon2 hash without raising."""
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def _user_summary(row) -> UserSummary:
    return UserSummary(user_id=row["id"], name=row["name"], email=row["email"], logo=row["logo"])


def _required(value: Optional[str]) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    return value


async def get_user(user_id: Optional[str]):
    """Fetch a user row by id, or None."""
    if not user_id:
        return None
    return await fetch_one_with_retry(users.select().where(users.c.id == user_id))


async def register(
    email: Optional[str],
    name: Optional[str],
    password: Optional[str],
    logo: Optional[str] = None,
) -> UserSummary:
    """
    Create a user account.

    Raises:
        BadRequestError: email, name or password missing, blank or too long
        ConflictError: a user with this email already exists
    """
    email = _required(email)
    name = _required(name)
    password = _required(password)
    if email is None or name is None or password is None:
        raise BadRequestError("email, name and password are required")

    email = email.strip()
    name = name.strip()
    if len(email) > EMAIL_MAX_LENGTH:
        raise BadRequestError(f"email cannot exceed {EMAIL_MAX_LENGTH} characters")
    if len(name) > NAME_MAX_LENGTH:
        raise BadRequestError(f"name cannot exceed {NAME_MAX_LENGTH} characters")

    existing = await fetch_one_with_retry(users.select().where(users.c.email == email))
    if existing:
        raise ConflictError("A user with this email already exists")

    user_id = new_id()
    values = {
        "id": user_id,
        "email": email,
        "name": name,
        "password_hash": hash_password(password),
        "logo": logo or "",
        "created_at": utcnow(),
    }
    try:
        await db_execute_with_retry(users.insert().values(**values))
    except Exception as e:
        # Lost a race with a concurrent registration for the same email
        if is_unique_violation(e):
            raise ConflictError("A user with this email already exists") from e
        raise

    logger.info(f"Registered user {user_id}")
    return UserSummary(user_id=user_id, name=values["name"], email=email, logo=values["logo"])


async def authenticate(email: Optional[str], password: Optional[str]) -> UserSummary:
    """
    Verify credentials and return the user's summary.

    Raises:
        UnauthorizedError: unknown email or wrong password (indistinguishable)
    """
    if not isinstance(email, str) or not isinstance(password, str):
        raise UnauthorizedError("Invalid credentials")

    row = await fetch_one_with_retry(users.select().where(users.c.email == email.strip()))
    if row is None or not verify_password(row["password_hash"], password):
        raise UnauthorizedError("Invalid credentials")

    return _user_summary(row)


async def get_notifications(user_id: Optional[str]) -> List[NotificationResponse]:
    """
    Return a user's notifications, newest first.

    Raises:
        UnauthorizedError: no caller id
        NotFoundError: user id does not resolve
    """
    if not user_id:
        raise UnauthorizedError()

    if await get_user(user_id) is None:
        raise NotFoundError("User not found")

    rows = await fetch_all_with_retry(
        notifications.select()
        .where(notifications.c.user_id == user_id)
        .order_by(sa.desc(notifications.c.created_at), sa.desc(notifications.c.id))
    )
    return [
        NotificationResponse(
            id=row["id"],
            message=row["message"],
            created_at=ensure_utc(row["created_at"]),
            read=bool(row["read"]),
        )
        for row in rows
    ]


async def append_notification(user_id: Optional[str], message: str) -> bool:
    """
    Append an unread notification to a user's inbox.

    Best-effort: a missing user or a store failure is logged and reported by
    returning False, never raised to the caller.
    """
    try:
        if await get_user(user_id) is None:
            logger.warning(f"Cannot notify unknown user {user_id}")
            return False
        await db_execute_with_retry(
            notifications.insert().values(
                user_id=user_id,
                message=message,
                created_at=utcnow(),
                read=False,
            )
        )
        return True
    except Exception as e:
        logger.warning(f"Failed to append notification for user {user_id}: {e}")
        return False
