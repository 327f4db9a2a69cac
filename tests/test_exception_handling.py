"""
Tests for the error taxonomy and the handle_api_exceptions decorator.
"""

import logging

import pytest
from fastapi import HTTPException

from api.db_retry import DatabaseRetryableError
from api.errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServerError,
    UnauthorizedError,
    is_unique_violation,
    truncate_string,
)
from api.exception_utils import handle_api_exceptions


class TestErrorTaxonomy:
    @pytest.mark.parametrize(
        "error_cls,status,code",
        [
            (BadRequestError, 400, "bad_request"),
            (UnauthorizedError, 401, "unauthorized"),
            (ForbiddenError, 403, "forbidden"),
            (NotFoundError, 404, "not_found"),
            (ConflictError, 409, "already_exists"),
            (ServerError, 500, "server_error"),
        ],
    )
    def test_status_and_code(self, error_cls, status, code):
        error = error_cls()
        assert error.status_code == status
        assert error.to_dict()["error"] == code

    def test_custom_message(self):
        assert NotFoundError("Video not found").to_dict() == {"detail": "Video not found", "error": "not_found"}


class TestIsUniqueViolation:
    def test_sqlite_message(self):
        assert is_unique_violation(Exception("UNIQUE constraint failed: users.email"))

    def test_postgres_message(self):
        assert is_unique_violation(Exception('duplicate key value violates unique constraint "users_email_key"'))

    def test_sqlstate(self):
        class PgError(Exception):
            sqlstate = "23505"

        assert is_unique_violation(PgError("boom"))

    def test_wrapped_cause(self):
        try:
            try:
                raise Exception("UNIQUE constraint failed: users.email")
            except Exception as inner:
                raise RuntimeError("wrapped") from inner
        except RuntimeError as outer:
            assert is_unique_violation(outer)

    def test_other_errors(self):
        assert not is_unique_violation(Exception("no such table: users"))


class TestTruncateString:
    def test_short_unchanged(self):
        assert truncate_string("abc", 10) == "abc"

    def test_long_truncated_with_suffix(self):
        assert truncate_string("abcdefghij", 6) == "abc..."

    def test_none(self):
        assert truncate_string(None, 5) is None


class TestHandleAPIExceptions:
    """Test the handle_api_exceptions decorator."""

    @pytest.mark.asyncio
    async def test_reraises_http_exception(self):
        @handle_api_exceptions("test_operation")
        async def failing_func():
            raise HTTPException(status_code=404, detail="Not found")

        with pytest.raises(HTTPException) as exc_info:
            await failing_func()
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_reraises_domain_errors(self):
        @handle_api_exceptions("test_operation")
        async def failing_func():
            raise ForbiddenError()

        with pytest.raises(ForbiddenError):
            await failing_func()

    @pytest.mark.asyncio
    async def test_reraises_retryable_database_error(self):
        @handle_api_exceptions("test_operation")
        async def failing_func():
            raise DatabaseRetryableError("gave up")

        with pytest.raises(DatabaseRetryableError):
            await failing_func()

    @pytest.mark.asyncio
    async def test_converts_generic_exception(self):
        """Unexpected errors become ServerError without leaking the original message."""

        @handle_api_exceptions("test_operation", "Operation failed")
        async def failing_func():
            raise ValueError("/home/user/secret.py line 12")

        with pytest.raises(ServerError) as exc_info:
            await failing_func()
        assert exc_info.value.message == "Operation failed"
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_logs_exception(self, caplog):
        @handle_api_exceptions("test_operation", "Error occurred", log_errors=True)
        async def failing_func():
            raise ValueError("Internal error")

        with caplog.at_level(logging.ERROR):
            with pytest.raises(ServerError):
                await failing_func()
        assert "Unexpected error in test_operation" in caplog.text

    @pytest.mark.asyncio
    async def test_no_logging_when_disabled(self, caplog):
        @handle_api_exceptions("test_operation", log_errors=False)
        async def failing_func():
            raise ValueError("Internal error")

        with caplog.at_level(logging.ERROR):
            with pytest.raises(ServerError):
                await failing_func()
        assert "Unexpected error" not in caplog.text

    @pytest.mark.asyncio
    async def test_passes_through_return_value(self):
        @handle_api_exceptions("test_operation")
        async def ok_func(value):
            return value * 2

        assert await ok_func(21) == 42
