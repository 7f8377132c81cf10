"""Waypoint exception hierarchy.

Shared across Router, App, dispatch, and middleware so every module
raises and catches the same types.
"""

from dataclasses import dataclass


class WaypointError(Exception):
    """Base for all waypoint-specific errors."""


class ConfigurationError(WaypointError):
    """Raised when a route, group, or middleware registration is invalid.

    Fatal at startup: typically raised while registering routes or during
    ``App._freeze()``.
    """


@dataclass(frozen=True, slots=True)
class HTTPError(WaypointError):
    """An error that maps directly to an HTTP status code.

    Raised by the router or handlers. The dispatch boundary catches these
    and answers with a JSON error envelope (or a registered ``@app.error()``
    handler).
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404: no route (and no fallback) matched the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class Unauthorized(HTTPError):  # noqa: N818
    """401: the request carries no valid credentials."""

    def __init__(self, detail: str = "Unauthenticated") -> None:
        super().__init__(status=401, detail=detail, headers=(("WWW-Authenticate", "Bearer"),))


class TooManyRequests(HTTPError):  # noqa: N818
    """429: the caller exhausted its throttle window."""

    def __init__(self, retry_after: int, detail: str = "Too Many Requests") -> None:
        super().__init__(
            status=429,
            detail=detail,
            headers=(("Retry-After", str(retry_after)),),
        )


class RouteNotFound(WaypointError, LookupError):  # noqa: N818
    """``url()`` was asked for a route name that was never registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Route [{name}] is not defined.")


class MissingParameter(WaypointError, KeyError):  # noqa: N818
    """``url()`` could not fill a required placeholder of a named route."""

    def __init__(self, route_name: str, parameter: str) -> None:
        self.route_name = route_name
        self.parameter = parameter
        super().__init__(f"Missing required parameter {parameter!r} for route [{route_name}].")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])
