"""Tests for session middleware: signed cookie sessions."""

import pytest

from waypoint.app import App
from waypoint.errors import ConfigurationError
from waypoint.http.response import Response
from waypoint.middleware.sessions import (
    Session,
    SessionConfig,
    SessionMiddleware,
    get_session,
    regenerate_session,
)
from waypoint.testing import TestClient


def _extract_session_cookie(response: Response, name: str = "waypoint_session") -> str | None:
    for header, value in response.headers:
        if header == "set-cookie" and value.startswith(f"{name}="):
            return value.split(";", 1)[0].split("=", 1)[1]
    return None


def _session_app(config: SessionConfig | None = None) -> App:
    app = App()
    app.use(SessionMiddleware(config or SessionConfig(secret_key="test-secret")))

    @app.get("/count")
    def count():
        session = get_session()
        session["visits"] = session.get("visits", 0) + 1
        return f"visits={session['visits']}"

    @app.get("/check")
    def check():
        session = get_session()
        return f"keys={sorted(session)}"

    @app.get("/regenerate")
    def regen():
        session = regenerate_session()
        return f"keys={sorted(session)}"

    @app.get("/id")
    def session_id():
        session = get_session()
        session["touched"] = True
        return session.id

    @app.get("/rotate")
    def rotate():
        session = regenerate_session()
        session["rotated"] = True
        return session.id

    @app.get("/forget")
    def forget():
        get_session().clear()
        return "forgotten"

    return app


class TestSessionConfig:
    def test_default_config(self) -> None:
        config = SessionConfig(secret_key="secret")
        assert config.cookie_name == "waypoint_session"
        assert config.max_age == 86400
        assert config.httponly is True
        assert config.samesite == "lax"

    def test_empty_secret_key_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="secret_key must not be empty"):
            SessionMiddleware(SessionConfig(secret_key=""))


class TestGetSession:
    def test_raises_outside_request(self) -> None:
        with pytest.raises(LookupError, match="No active session"):
            get_session()

    def test_regenerate_raises_outside_request(self) -> None:
        with pytest.raises(LookupError, match="No active session"):
            regenerate_session()


class TestSessionRoundTrip:
    async def test_counter_persists_across_requests(self) -> None:
        async with TestClient(_session_app()) as client:
            assert (await client.get("/count")).text == "visits=1"
            assert (await client.get("/count")).text == "visits=2"
            assert (await client.get("/count")).text == "visits=3"

    async def test_empty_session_without_cookie(self) -> None:
        async with TestClient(_session_app()) as client:
            response = await client.get("/check")
        assert response.text == "keys=[]"

    async def test_empty_session_sets_no_cookie(self) -> None:
        async with TestClient(_session_app()) as client:
            response = await client.get("/check")
        assert _extract_session_cookie(response) is None

    async def test_emptied_session_expires_cookie(self) -> None:
        async with TestClient(_session_app()) as client:
            await client.get("/count")
            response = await client.get("/forget")
            assert "waypoint_session" not in client.cookies
        header = next(v for k, v in response.headers if k == "set-cookie")
        assert "Max-Age=0" in header

    async def test_id_is_stable_across_requests(self) -> None:
        async with TestClient(_session_app()) as client:
            first = (await client.get("/id")).text
            second = (await client.get("/id")).text
        assert first == second

    async def test_user_data_stays_separate_from_bookkeeping(self) -> None:
        config = SessionConfig(secret_key="s", idle_timeout_seconds=3600)
        async with TestClient(_session_app(config)) as client:
            await client.get("/count")
            response = await client.get("/check")
        assert response.text == "keys=['visits']"

    async def test_cookie_attributes(self) -> None:
        config = SessionConfig(secret_key="s", cookie_name="sid", secure=True, max_age=60)
        async with TestClient(_session_app(config)) as client:
            response = await client.get("/count")
        header = next(v for k, v in response.headers if k == "set-cookie")
        assert header.startswith("sid=")
        assert "Max-Age=60" in header
        assert "Secure" in header
        assert "HttpOnly" in header


class TestSessionSecurity:
    async def test_tampered_cookie_is_ignored(self) -> None:
        async with TestClient(_session_app()) as client:
            response = await client.get(
                "/check",
                headers={"Cookie": "waypoint_session=tampered-value"},
            )
        assert response.text == "keys=[]"

    async def test_different_secret_rejects_cookie(self) -> None:
        async with TestClient(_session_app(SessionConfig(secret_key="secret-1"))) as client:
            cookie = _extract_session_cookie(await client.get("/count"))

        async with TestClient(_session_app(SessionConfig(secret_key="secret-2"))) as client:
            response = await client.get("/check", headers={"Cookie": f"waypoint_session={cookie}"})
        assert response.text == "keys=[]"

    async def test_regenerate_clears_data(self) -> None:
        async with TestClient(_session_app()) as client:
            await client.get("/count")
            cookie_before = client.cookies["waypoint_session"]
            regenerated = await client.get("/regenerate")
            after = await client.get("/check")
        assert regenerated.text == "keys=[]"
        assert after.text == "keys=[]"
        assert _extract_session_cookie(regenerated) != cookie_before

    async def test_regenerate_issues_new_id(self) -> None:
        async with TestClient(_session_app()) as client:
            before = (await client.get("/id")).text
            rotated = (await client.get("/rotate")).text
            after = (await client.get("/id")).text
        assert rotated != before
        assert after == rotated

    def test_decode_checks_signature_not_cookie_name(self) -> None:
        middleware = SessionMiddleware(SessionConfig(secret_key="s"))
        other = SessionMiddleware(SessionConfig(secret_key="s", cookie_name="other"))
        assert middleware.decode("garbage") is None
        assert middleware.decode(other.encode(Session({"a": 1}, id="abc"))) == {"a": 1}
        assert middleware.decode(other.encode(Session(id="abc"))).id == "abc"

    async def test_idle_timeout_expires_session(self) -> None:
        config = SessionConfig(secret_key="s", idle_timeout_seconds=-1)
        async with TestClient(_session_app(config)) as client:
            await client.get("/count")
            response = await client.get("/count")
        assert response.text == "visits=1"
