"""Per-request state held in ContextVars.

``handle_request`` sets ``request_var`` before the global middleware runs
and ``route_var`` once a route has matched. ``AuthMiddleware`` sets
``user_var``. All three, and the ``g`` namespace, are reset when the
request ends.
"""

from contextvars import ContextVar
from fnmatch import fnmatchcase
from typing import Any

from waypoint.http.request import Request
from waypoint.routing.route import Route

request_var: ContextVar[Request] = ContextVar("waypoint_request")
route_var: ContextVar[Route] = ContextVar("waypoint_route")
user_var: ContextVar[Any] = ContextVar("waypoint_user", default=None)

_globals_var: ContextVar[dict[str, Any] | None] = ContextVar("waypoint_g", default=None)


def get_request() -> Request:
    """The request being handled. ``LookupError`` outside a request."""
    return request_var.get()


def get_user() -> Any:
    return user_var.get()


def current_route() -> Route | None:
    return route_var.get(None)


def current_route_name() -> str | None:
    route = route_var.get(None)
    return None if route is None else route.name


def route_is(*patterns: str) -> bool:
    """Whether the current route name matches one of *patterns*.

    Patterns are shell-style, so ``route_is("users.*", "home")`` matches
    ``users.show`` and ``home``. Unnamed routes match nothing.
    """
    name = current_route_name()
    return name is not None and any(fnmatchcase(name, p) for p in patterns)


def _namespace() -> dict[str, Any]:
    values = _globals_var.get()
    if values is None:
        values = {}
        _globals_var.set(values)
    return values


class RequestGlobals:
    """Attribute bag that lives for one request.

    Usage::

        g.tenant = lookup_tenant(request)   # middleware
        return {"tenant": g.tenant.name}    # handler
    """

    __slots__ = ()

    def __getattr__(self, name: str) -> Any:
        try:
            return _namespace()[name]
        except KeyError:
            msg = f"g has no attribute {name!r} in this request"
            raise AttributeError(msg) from None

    def __setattr__(self, name: str, value: Any) -> None:
        _namespace()[name] = value

    def __delattr__(self, name: str) -> None:
        values = _namespace()
        if name not in values:
            msg = f"g has no attribute {name!r} in this request"
            raise AttributeError(msg)
        del values[name]

    def __contains__(self, name: str) -> bool:
        return name in _namespace()

    def get(self, name: str, default: Any = None) -> Any:
        return _namespace().get(name, default)

    def _reset(self) -> None:
        _globals_var.set(None)

    def __repr__(self) -> str:
        return f"<g {_namespace()!r}>"


g = RequestGlobals()
