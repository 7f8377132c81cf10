"""CORS middleware.

Answers ``OPTIONS`` preflight requests directly and adds the
allow-origin headers to every other response for allowed origins.
"""

import re
from dataclasses import dataclass

from waypoint.http.request import Request
from waypoint.http.response import Response
from waypoint.middleware.protocol import AnyResponse, Next


@dataclass(frozen=True, slots=True)
class CORSConfig:
    """CORS middleware configuration.

    ``allow_origins`` entries are exact origins, ``"*"``, or wildcard
    patterns such as ``"https://*.example.com"``. Nothing is allowed by
    default::

        CORSConfig(
            allow_origins=("https://app.example.com", "https://*.example.dev"),
            allow_credentials=True,
        )
    """

    allow_origins: tuple[str, ...] = ()
    allow_methods: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
    allow_headers: tuple[str, ...] = ("Content-Type", "Authorization", "X-Requested-With")
    expose_headers: tuple[str, ...] = ()
    allow_credentials: bool = False
    max_age: int = 86400


def _origin_pattern(origin: str) -> re.Pattern[str]:
    return re.compile(".*".join(re.escape(part) for part in origin.split("*")))


class CORSMiddleware:
    """Cross-Origin Resource Sharing.

    Every ``OPTIONS`` request this middleware sees is a preflight and is
    answered 204 without calling ``next``. Other requests run normally and
    gain the allow-origin headers when their origin is allowed. ``"*"`` is
    sent literally unless credentials are allowed; then the origin is
    echoed with ``Vary: Origin``.

    Attached to a group or a single route, it still sees preflights: an
    ``OPTIONS`` request to a path registered only for other methods is
    routed to that route's middleware, ending in a bare 204 with ``Allow``.
    """

    __slots__ = ("_patterns", "config")

    def __init__(self, config: CORSConfig | None = None) -> None:
        self.config = config or CORSConfig()
        wildcards = [o for o in self.config.allow_origins if "*" in o and o != "*"]
        self._patterns = tuple(_origin_pattern(o) for o in wildcards)

    def is_allowed_origin(self, origin: str) -> bool:
        allowed = self.config.allow_origins
        return "*" in allowed or origin in allowed or any(p.fullmatch(origin) for p in self._patterns)

    def origin_headers(self, origin: str) -> dict[str, str]:
        """Headers sent on every response to an allowed *origin*."""
        cfg = self.config
        headers: dict[str, str] = {}
        if "*" in cfg.allow_origins and not cfg.allow_credentials:
            headers["Access-Control-Allow-Origin"] = "*"
        else:
            headers["Access-Control-Allow-Origin"] = origin
            headers["Vary"] = "Origin"
        if cfg.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"
        if cfg.expose_headers:
            headers["Access-Control-Expose-Headers"] = ", ".join(cfg.expose_headers)
        return headers

    def preflight_headers(self, origin: str) -> dict[str, str]:
        cfg = self.config
        headers = self.origin_headers(origin)
        headers["Access-Control-Allow-Methods"] = ", ".join(cfg.allow_methods)
        if cfg.allow_headers:
            headers["Access-Control-Allow-Headers"] = ", ".join(cfg.allow_headers)
        headers["Access-Control-Max-Age"] = str(cfg.max_age)
        return headers

    async def __call__(self, request: Request, next: Next) -> AnyResponse:
        origin = request.headers.get("origin")
        if origin is not None and not self.is_allowed_origin(origin):
            origin = None

        if request.method == "OPTIONS":
            response = Response(status=204)
            return response if origin is None else response.with_headers(self.preflight_headers(origin))

        response = await next(request)
        return response if origin is None else response.with_headers(self.origin_headers(origin))
