"""Tests for caller identity resolution and the admin credential check."""

import pytest
from starlette.requests import Request

import config
from api.auth import Caller, check_admin_credentials, get_caller, require_admin, require_user
from api.errors import UnauthorizedError


def make_request(headers: dict) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/videos",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("127.0.0.1", 5000),
    }
    return Request(scope)


class TestGetCaller:
    def test_anonymous(self):
        caller = get_caller(make_request({}))
        assert caller == Caller()
        assert caller.is_authenticated is False

    def test_user_id_header(self):
        caller = get_caller(make_request({"X-User-Id": " abc123 "}))
        assert caller.user_id == "abc123"
        assert caller.is_admin is False

    @pytest.mark.parametrize("value,expected", [("true", True), ("TRUE", True), ("1", False), ("false", False)])
    def test_admin_flag(self, value, expected):
        assert get_caller(make_request({"X-Admin": value})).is_admin is expected

    def test_admin_secret_enforced_when_configured(self, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_API_SECRET", "s3cret")

        assert get_caller(make_request({"X-Admin": "true"})).is_admin is False
        assert get_caller(make_request({"X-Admin": "true", "X-Admin-Secret": "nope"})).is_admin is False
        assert get_caller(make_request({"X-Admin": "true", "X-Admin-Secret": "s3cret"})).is_admin is True


class TestRequire:
    def test_require_user(self):
        assert require_user(Caller(user_id="u1")) == "u1"
        with pytest.raises(UnauthorizedError):
            require_user(Caller())

    def test_require_admin(self):
        require_admin(Caller(is_admin=True))
        with pytest.raises(UnauthorizedError):
            require_admin(Caller(user_id="u1"))


class TestAdminCredentials:
    def test_default_pair(self):
        assert check_admin_credentials("admin@123", "password@1234") is True

    @pytest.mark.parametrize(
        "username,password",
        [("admin@123", "wrong"), ("root", "password@1234"), (None, None), ("", ""), (123, "password@1234")],
    )
    def test_rejected(self, username, password):
        assert check_admin_credentials(username, password) is False

    def test_configurable(self, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_USERNAME", "ops")
        monkeypatch.setattr(config, "ADMIN_PASSWORD", "hunter2")
        assert check_admin_credentials("ops", "hunter2") is True
        assert check_admin_credentials("admin@123", "password@1234") is False
