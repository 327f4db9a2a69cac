"""Tests for request ID middleware and client IP resolution."""

import uuid

from starlette.requests import Request

import api.common
from api.common import MAX_REQUEST_ID_LENGTH, get_real_ip


def make_request(client_host: str, headers: dict) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": (client_host, 12345),
    }
    return Request(scope)


class TestRequestIDMiddleware:
    """Tests for RequestIDMiddleware functionality."""

    def test_request_id_generated_when_not_provided(self, client):
        response = client.get("/api/health")
        uuid.UUID(response.headers["X-Request-ID"])

    def test_request_id_preserved_when_provided(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "custom-trace-id-12345"})
        assert response.headers["X-Request-ID"] == "custom-trace-id-12345"

    def test_request_id_truncated(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "a" * 500})
        assert response.headers["X-Request-ID"] == "a" * MAX_REQUEST_ID_LENGTH

    def test_request_id_unique_per_request(self, client):
        first = client.get("/api/health").headers["X-Request-ID"]
        second = client.get("/api/health").headers["X-Request-ID"]
        assert first != second

    def test_request_id_on_error_responses(self, client):
        response = client.get("/api/auth/notifications")
        assert response.status_code == 401
        assert "X-Request-ID" in response.headers


class TestGetRealIP:
    def test_untrusted_proxy_header_ignored(self, monkeypatch):
        monkeypatch.setattr(api.common, "TRUSTED_PROXIES", set())
        request = make_request("203.0.113.5", {"X-Forwarded-For": "198.51.100.1"})
        assert get_real_ip(request) == "203.0.113.5"

    def test_trusted_proxy_header_used(self, monkeypatch):
        monkeypatch.setattr(api.common, "TRUSTED_PROXIES", {"10.0.0.1"})
        request = make_request("10.0.0.1", {"X-Forwarded-For": "198.51.100.1, 10.0.0.1"})
        assert get_real_ip(request) == "198.51.100.1"
