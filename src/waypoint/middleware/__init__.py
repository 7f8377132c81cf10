"""Middleware: Protocol-based, no inheritance required.

A middleware is any callable matching:
    async def mw(request: Request, next: Next) -> Response

Built-in middleware (registry alias in brackets):
    AuthMiddleware [auth] -- Bearer token or session authentication, 401 otherwise
    SessionMiddleware [session] -- Signed cookie sessions (itsdangerous)
    ThrottleMiddleware [throttle] -- Fixed-window rate limiting per client
    CORSMiddleware [cors] -- Cross-Origin Resource Sharing
    LogRequestMiddleware [log] -- One log line per request
    ApiVersionMiddleware [api.version] -- Path/Accept header API versioning

Middleware may also define ``terminate(request, response)``, which runs
after the response has been sent (see ``TerminableMiddleware``).
"""

from waypoint.middleware.api_version import ApiVersionConfig, ApiVersionMiddleware
from waypoint.middleware.auth import AuthConfig, AuthMiddleware, login, logout
from waypoint.middleware.cors import CORSConfig, CORSMiddleware
from waypoint.middleware.protocol import AnyResponse, Middleware, Next, TerminableMiddleware
from waypoint.middleware.registry import (
    MiddlewareRegistry,
    MiddlewareSpec,
    compose,
    default_registry,
    parse_middleware,
)
from waypoint.middleware.request_log import LogRequestMiddleware
from waypoint.middleware.sessions import (
    Session,
    SessionConfig,
    SessionMiddleware,
    get_session,
    regenerate_session,
)
from waypoint.middleware.throttle import ThrottleMiddleware, client_identity

__all__ = [
    "AnyResponse",
    "ApiVersionConfig",
    "ApiVersionMiddleware",
    "AuthConfig",
    "AuthMiddleware",
    "CORSConfig",
    "CORSMiddleware",
    "LogRequestMiddleware",
    "Middleware",
    "MiddlewareRegistry",
    "MiddlewareSpec",
    "Next",
    "Session",
    "SessionConfig",
    "SessionMiddleware",
    "TerminableMiddleware",
    "ThrottleMiddleware",
    "client_identity",
    "compose",
    "default_registry",
    "get_session",
    "login",
    "logout",
    "parse_middleware",
    "regenerate_session",
]
