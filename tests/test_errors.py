"""Tests for the exception hierarchy and security events."""

import logging

import pytest

from waypoint.app import App
from waypoint.errors import (
    ConfigurationError,
    HTTPError,
    MissingParameter,
    NotFound,
    RouteNotFound,
    TooManyRequests,
    Unauthorized,
    WaypointError,
)
from waypoint.security.audit import SecurityEvent, emit_security_event, set_security_event_sink
from waypoint.testing import TestClient, assert_error_envelope


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc",
        [
            ConfigurationError("x"),
            NotFound(),
            Unauthorized(),
            TooManyRequests(5),
            RouteNotFound("users.show"),
            MissingParameter("users.show", "id"),
        ],
    )
    def test_all_are_waypoint_errors(self, exc: Exception) -> None:
        assert isinstance(exc, WaypointError)

    def test_http_error_fields(self) -> None:
        exc = HTTPError(409, "Conflict")
        assert (exc.status, exc.detail, exc.headers) == (409, "Conflict", ())
        assert str(exc) == "409: Conflict"
        assert str(HTTPError(500)) == "500"

    def test_subclass_defaults(self) -> None:
        assert NotFound().status == 404
        assert Unauthorized().headers == (("WWW-Authenticate", "Bearer"),)
        assert TooManyRequests(12).headers == (("Retry-After", "12"),)
        assert TooManyRequests(12).status == 429

    def test_lookup_errors(self) -> None:
        assert isinstance(RouteNotFound("x"), LookupError)
        assert isinstance(MissingParameter("r", "id"), KeyError)
        assert str(MissingParameter("r", "id")) == "Missing required parameter 'id' for route [r]."

    async def test_raised_http_error_becomes_envelope(self) -> None:
        app = App()

        @app.get("/slow-down")
        def slow_down():
            raise TooManyRequests(30)

        async with TestClient(app) as client:
            response = await client.get("/slow-down")
        assert_error_envelope(response, status=429, message="Too Many Requests")
        assert response.header("Retry-After") == "30"


class TestSecurityEvents:
    def test_emit_logs_and_delivers(self, caplog: pytest.LogCaptureFixture) -> None:
        received: list[SecurityEvent] = []
        set_security_event_sink(received.append)
        try:
            with caplog.at_level(logging.WARNING, logger="waypoint.security"):
                event = emit_security_event("auth.login.success", user_id="7", details={"via": "token"})
        finally:
            set_security_event_sink(None)
        assert received == [event]
        assert event.user_id == "7"
        assert event.details == {"via": "token"}
        assert any("auth.login.success" in r.getMessage() for r in caplog.records)

    def test_no_sink(self) -> None:
        set_security_event_sink(None)
        event = emit_security_event("throttle.rejected")
        assert event.path is None
        assert event.details == {}
