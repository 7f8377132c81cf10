"""Tests for API version negotiation middleware."""

import pytest

from waypoint.app import App
from waypoint.config import AppConfig
from waypoint.http.request import Request
from waypoint.middleware.api_version import (
    ApiVersionConfig,
    ApiVersionMiddleware,
    version_from_accept,
    version_from_path,
)
from waypoint.testing import TestClient


def _versioned_app() -> App:
    app = App(
        AppConfig(
            api_default_version="v1",
            api_supported_versions=("v1", "v2", "v3"),
            api_deprecated_versions=("v1",),
        )
    )

    def report(request: Request):
        return {
            "version": request.attribute("api_version"),
            "number": request.attribute("api_version_number"),
        }

    with app.group(prefix="/api", middleware="api.version"):
        app.get("/v2/users")(report)
        app.get("/v9/users")(report)
        app.get("/users")(report)

    return app


class TestVersionParsing:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/api/v2/users", "v2"),
            ("/v10", "v10"),
            ("/api/users", None),
            ("/api/version2/users", None),
        ],
    )
    def test_from_path(self, path: str, expected: str | None) -> None:
        assert version_from_path(path) == expected

    @pytest.mark.parametrize(
        ("accept", "expected"),
        [
            ("application/vnd.acme.v3+json", "v3"),
            ("application/vnd.acme.V2+json; q=0.9", "v2"),
            ("application/json", None),
            (None, None),
        ],
    )
    def test_from_accept(self, accept: str | None, expected: str | None) -> None:
        assert version_from_accept(accept) == expected

    @pytest.mark.parametrize(
        ("accept", "expected"),
        [
            ("application/vnd.acme.v3+json", "v3"),
            ("application/vnd.ACME.v3+json", "v3"),
            ("application/vnd.other.v3+json", None),
            ("application/vnd.acmecorp.v3+json", None),
        ],
    )
    def test_from_accept_with_vendor(self, accept: str, expected: str | None) -> None:
        assert version_from_accept(accept, vendor="acme") == expected

    def test_resolve_falls_back_to_default(self) -> None:
        mw = ApiVersionMiddleware(ApiVersionConfig(default_version="v1", supported_versions=("v1",)))
        request = Request.from_asgi(
            {"type": "http", "method": "GET", "path": "/api/v5/x", "headers": [], "query_string": b""},
            None,
        )
        assert mw.resolve(request) == "v1"


class TestApiVersionMiddleware:
    async def test_version_from_path(self) -> None:
        async with TestClient(_versioned_app()) as client:
            response = await client.get("/api/v2/users")
        assert response.json_body() == {"version": "v2", "number": 2}
        assert response.header("X-API-Version") == "v2"
        assert response.header("X-API-Version-Deprecated") is None

    async def test_version_from_accept_header(self) -> None:
        async with TestClient(_versioned_app()) as client:
            response = await client.get(
                "/api/users",
                headers={"Accept": "application/vnd.waypoint.v3+json"},
            )
        assert response.json_body() == {"version": "v3", "number": 3}

    async def test_other_vendor_is_ignored(self) -> None:
        async with TestClient(_versioned_app()) as client:
            response = await client.get(
                "/api/users",
                headers={"Accept": "application/vnd.acme.v3+json"},
            )
        assert response.json_body()["version"] == "v1"

    async def test_unsupported_version_uses_default(self) -> None:
        async with TestClient(_versioned_app()) as client:
            response = await client.get("/api/v9/users")
        assert response.json_body()["version"] == "v1"

    async def test_deprecated_version_headers(self) -> None:
        async with TestClient(_versioned_app()) as client:
            response = await client.get("/api/users")
        assert response.header("X-API-Version") == "v1"
        assert response.header("X-API-Version-Deprecated") == "true"
        assert "v1 is deprecated" in (response.header("X-API-Deprecation-Info") or "")
