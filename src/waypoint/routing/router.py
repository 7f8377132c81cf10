"""Route table with group scopes and registration-order matching.

Routes are registered during setup and compiled into an immutable
tuple when the app freezes. Matching walks that tuple in order, so the
first registered route that fits wins.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from waypoint._internal.types import Handler, MiddlewareRef
from waypoint.errors import ConfigurationError, NotFound, RouteNotFound
from waypoint.http.response import Redirect
from waypoint.routing.route import (
    Route,
    RouteDefinition,
    RouteMatch,
    normalize_path,
    parse_path,
)

__all__ = ["ANY_METHODS", "RouteGroup", "Router", "parse_path"]

logger = logging.getLogger("waypoint.routing")

ANY_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

# action -> (method, path suffix)
_RESOURCE_ACTIONS: dict[str, tuple[str, str]] = {
    "index": ("GET", ""),
    "create": ("GET", "/create"),
    "store": ("POST", ""),
    "show": ("GET", "/{id}"),
    "edit": ("GET", "/{id}/edit"),
    "update": ("PUT", "/{id}"),
    "destroy": ("DELETE", "/{id}"),
}
_API_ACTIONS = ("index", "store", "show", "update", "destroy")


def _as_refs(middleware: MiddlewareRef | Iterable[MiddlewareRef] | None) -> tuple[MiddlewareRef, ...]:
    if middleware is None:
        return ()
    if isinstance(middleware, str) or callable(middleware):
        return (middleware,)
    return tuple(middleware)


@dataclass(frozen=True, slots=True)
class RouteGroup:
    """Attributes shared by the routes registered inside a group."""

    prefix: str = ""
    middleware: tuple[MiddlewareRef, ...] = ()
    name: str = ""


class _GroupScope:
    """Returned by ``Router.group()``.

    Works as a context manager::

        with router.group(prefix="/admin", middleware="auth"):
            router.get("/stats", stats)

    or as a decorator around a builder, which runs immediately::

        @router.group(prefix="/v1")
        def v1(r):
            r.get("/ping", ping)
    """

    __slots__ = ("_group", "_router")

    def __init__(self, router: "Router", group: RouteGroup) -> None:
        self._router = router
        self._group = group

    def __enter__(self) -> "Router":
        self._router._group_stack.append(self._group)
        return self._router

    def __exit__(self, *exc_info: object) -> None:
        self._router._group_stack.pop()

    def __call__(self, builder: Callable[["Router"], Any]) -> Callable[["Router"], Any]:
        with self as router:
            builder(router)
        return builder


class Router:
    """Route table.

    Usage::

        router = Router()
        router.get("/users/{id}", show_user).where_number("id").name("users.show")
        router.compile()
        match = router.match("GET", "/users/42")
        router.url("users.show", {"id": 42})  # "/users/42"
    """

    __slots__ = (
        "_compiled",
        "_definitions",
        "_fallback",
        "_fallback_route",
        "_group_stack",
        "_named",
        "_routes",
    )

    def __init__(self) -> None:
        self._definitions: list[RouteDefinition] = []
        self._group_stack: list[RouteGroup] = []
        self._fallback: RouteDefinition | None = None
        self._fallback_route: Route | None = None
        self._routes: tuple[Route, ...] = ()
        self._named: dict[str, Route] = {}
        self._compiled = False

    # -- Registration --

    def add(
        self,
        methods: str | Iterable[str],
        path: str,
        handler: Handler,
    ) -> RouteDefinition:
        """Register *handler* for *methods* at *path*.

        The enclosing groups' prefixes are prepended to the path and their
        middleware is placed before anything the route adds itself.
        """
        self._check_open()
        if isinstance(methods, str):
            methods = (methods,)
        definition = RouteDefinition(
            methods,
            self._prefixed(path),
            handler,
            middleware=self._group_middleware(),
            name_prefix=self._name_prefix(),
        )
        self._definitions.append(definition)
        logger.debug("Registered %s %s", ",".join(sorted(definition.methods)), definition.path)
        return definition

    def get(self, path: str, handler: Handler) -> RouteDefinition:
        return self.add("GET", path, handler)

    def post(self, path: str, handler: Handler) -> RouteDefinition:
        return self.add("POST", path, handler)

    def put(self, path: str, handler: Handler) -> RouteDefinition:
        return self.add("PUT", path, handler)

    def patch(self, path: str, handler: Handler) -> RouteDefinition:
        return self.add("PATCH", path, handler)

    def delete(self, path: str, handler: Handler) -> RouteDefinition:
        return self.add("DELETE", path, handler)

    def any(self, path: str, handler: Handler) -> RouteDefinition:
        return self.add(ANY_METHODS, path, handler)

    def match_methods(self, methods: Iterable[str], path: str, handler: Handler) -> RouteDefinition:
        return self.add(methods, path, handler)

    def group(
        self,
        prefix: str = "",
        middleware: MiddlewareRef | Iterable[MiddlewareRef] | None = None,
        name: str = "",
    ) -> _GroupScope:
        """Open a group scope. See ``_GroupScope`` for the two usage forms."""
        return _GroupScope(self, RouteGroup(prefix=prefix, middleware=_as_refs(middleware), name=name))

    def resource(
        self,
        base: str,
        controller: object,
        only: Iterable[str] | None = None,
        except_: Iterable[str] | None = None,
    ) -> list[RouteDefinition]:
        """Register the seven conventional CRUD routes for *controller*."""
        return self._register_resource(base, controller, tuple(_RESOURCE_ACTIONS), only, except_)

    def api_resource(
        self,
        base: str,
        controller: object,
        only: Iterable[str] | None = None,
        except_: Iterable[str] | None = None,
    ) -> list[RouteDefinition]:
        """Like ``resource()`` without the HTML-form ``create`` and ``edit`` routes."""
        return self._register_resource(base, controller, _API_ACTIONS, only, except_)

    def _register_resource(
        self,
        base: str,
        controller: object,
        actions: tuple[str, ...],
        only: Iterable[str] | None,
        except_: Iterable[str] | None,
    ) -> list[RouteDefinition]:
        selected = list(actions)
        if only is not None:
            wanted = set(only)
            selected = [a for a in selected if a in wanted]
        if except_ is not None:
            excluded = set(except_)
            selected = [a for a in selected if a not in excluded]

        base = normalize_path(base)
        base_name = base.strip("/").replace("/", ".")
        definitions: list[RouteDefinition] = []
        for action in selected:
            handler = getattr(controller, action, None)
            if not callable(handler):
                msg = (
                    f"Resource {base!r}: {type(controller).__name__} has no "
                    f"callable {action!r} action."
                )
                raise ConfigurationError(msg)
            method, suffix = _RESOURCE_ACTIONS[action]
            definitions.append(self.add(method, base + suffix, handler).name(f"{base_name}.{action}"))
        return definitions

    def fallback(self, handler: Handler) -> RouteDefinition:
        """Register the handler used when no route matches.

        The unmatched path (without its leading slash) is bound to the
        ``fallback`` parameter.
        """
        self._check_open()
        self._fallback = RouteDefinition(
            ANY_METHODS,
            "/{fallback:path}",
            handler,
            middleware=self._group_middleware(),
        )
        return self._fallback

    def redirect(self, path: str, destination: str, status: int = 302) -> RouteDefinition:
        """Register an any-method route that redirects to *destination*."""

        def redirect_handler() -> Redirect:
            return Redirect(destination, status=status)

        redirect_handler.__name__ = f"redirect_to_{destination.strip('/').replace('/', '_') or 'root'}"
        return self.any(path, redirect_handler)

    def permanent_redirect(self, path: str, destination: str) -> RouteDefinition:
        return self.redirect(path, destination, status=301)

    # -- Group stack --

    def _prefixed(self, path: str) -> str:
        prefix = "/".join(g.prefix.strip("/") for g in self._group_stack if g.prefix.strip("/"))
        return normalize_path(f"{prefix}/{path}")

    def _group_middleware(self) -> tuple[MiddlewareRef, ...]:
        return tuple(ref for g in self._group_stack for ref in g.middleware)

    def _name_prefix(self) -> str:
        return "".join(g.name for g in self._group_stack)

    def _check_open(self) -> None:
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)

    # -- Compilation --

    def compile(self) -> None:
        """Freeze the router. No more routes can be added.

        Raises ``ConfigurationError`` when two routes share a name.
        """
        if self._compiled:
            return
        routes: list[Route] = []
        named: dict[str, Route] = {}
        for definition in self._definitions:
            route = definition.build()
            if route.name is not None:
                if route.name in named:
                    msg = (
                        f"Route name {route.name!r} is used by both "
                        f"{named[route.name].path!r} and {route.path!r}."
                    )
                    raise ConfigurationError(msg)
                named[route.name] = route
            routes.append(route)
        self._routes = tuple(routes)
        self._named = named
        if self._fallback is not None:
            self._fallback_route = self._fallback.build()
        self._compiled = True

    @property
    def compiled(self) -> bool:
        return self._compiled

    # -- Lookup --

    @property
    def routes(self) -> list[Route]:
        """All routes in registration order (fallback excluded)."""
        if self._compiled:
            return list(self._routes)
        return [d.build() for d in self._definitions]

    @property
    def named_routes(self) -> dict[str, Route]:
        if self._compiled:
            return dict(self._named)
        return {r.name: r for r in self.routes if r.name is not None}

    @property
    def fallback_route(self) -> Route | None:
        if self._compiled or self._fallback is None:
            return self._fallback_route
        return self._fallback.build()

    def has(self, name: str) -> bool:
        """Return whether a route named *name* exists."""
        return name in self.named_routes

    def match(self, method: str, path: str) -> RouteMatch:
        """Match a request against the compiled routes.

        Returns a ``RouteMatch`` for the first route, in registration
        order, whose methods include *method* and whose segments fit
        *path*. An ``OPTIONS`` request no route accepts matches the first
        route for that path with ``is_options`` set, so the route's
        middleware (CORS in particular) can answer it. Falls back to the
        ``fallback()`` handler when one is registered. Raises ``NotFound``
        otherwise.
        """
        if not self._compiled:
            msg = "Router.match() called before compile()."
            raise RuntimeError(msg)

        method = method.upper()
        tokens = [p for p in path.strip("/").split("/") if p]
        options: tuple[Route, dict[str, str]] | None = None
        allowed: set[str] = set()
        for route in self._routes:
            if method not in route.methods:
                if method == "OPTIONS":
                    params = route.match_tokens(tokens)
                    if params is not None:
                        options = options or (route, params)
                        allowed.update(route.methods)
                continue
            params = route.match_tokens(tokens)
            if params is not None:
                return RouteMatch(route=route, path_params=params)
        if options is not None:
            return RouteMatch(
                route=options[0],
                path_params=options[1],
                is_options=True,
                allowed_methods=frozenset(allowed | {"OPTIONS"}),
            )

        fallback = self.fallback_route
        if fallback is not None and method in fallback.methods:
            return RouteMatch(
                route=fallback,
                path_params={"fallback": "/".join(tokens)},
                is_fallback=True,
            )

        raise NotFound(f"No route matches {method} {path!r}")

    def url(self, name: str, params: Mapping[str, Any] | None = None) -> str:
        """Build the path of the route named *name*.

        Raises ``RouteNotFound`` for an unknown name and
        ``MissingParameter`` when a required placeholder has no value.
        """
        route = self.named_routes.get(name)
        if route is None:
            raise RouteNotFound(name)
        return route.build_url(params)
