"""Waypoint: routing and middleware for JSON-first ASGI applications.

Declarative routes with typed parameters, named URLs, groups and
resources, composed with a string-addressed middleware pipeline.

Basic usage::

    from waypoint import App, success

    app = App()

    @app.get("/users/{id}", name="users.show", middleware="throttle:10,1")
    async def show_user(id: int):
        return success({"id": id})

Serve it with any ASGI server (``uvicorn myapp:app``).
"""

import importlib

__version__ = "0.1.0"
__all__ = [
    "AnyResponse",
    "App",
    "AppConfig",
    "AuthConfig",
    "ConfigurationError",
    "HTTPError",
    "Middleware",
    "MiddlewareRegistry",
    "Next",
    "NotFound",
    "Redirect",
    "Request",
    "Response",
    "RouteNotFound",
    "TooManyRequests",
    "Unauthorized",
    "WaypointError",
    "created",
    "current_route",
    "error",
    "g",
    "get_request",
    "get_user",
    "route_is",
    "success",
]


_EXPORTS: dict[str, str] = {
    "App": "waypoint.app",
    "AppConfig": "waypoint.config",
    "AuthConfig": "waypoint.middleware.auth",
    "MiddlewareRegistry": "waypoint.middleware.registry",
    "Request": "waypoint.http.request",
    "Response": "waypoint.http.response",
    "Redirect": "waypoint.http.response",
    "success": "waypoint.http.envelope",
    "created": "waypoint.http.envelope",
    "error": "waypoint.http.envelope",
    "AnyResponse": "waypoint.middleware.protocol",
    "Middleware": "waypoint.middleware.protocol",
    "Next": "waypoint.middleware.protocol",
    "g": "waypoint.context",
    "get_request": "waypoint.context",
    "get_user": "waypoint.context",
    "current_route": "waypoint.context",
    "route_is": "waypoint.context",
    "ConfigurationError": "waypoint.errors",
    "HTTPError": "waypoint.errors",
    "NotFound": "waypoint.errors",
    "RouteNotFound": "waypoint.errors",
    "TooManyRequests": "waypoint.errors",
    "Unauthorized": "waypoint.errors",
    "WaypointError": "waypoint.errors",
}


def __getattr__(name: str) -> object:
    """Import public names on first access, so ``import waypoint`` stays cheap."""
    module = _EXPORTS.get(name)
    if module is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    return getattr(importlib.import_module(module), name)
