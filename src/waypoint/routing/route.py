"""Route definitions, compiled routes, and match results.

``RouteDefinition`` is the mutable handle returned by every registration
call; its fluent methods attach a name, middleware, and parameter
constraints. ``Router.compile()`` turns each definition into a frozen
``Route``.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import quote, urlencode

from waypoint._internal.types import Handler, MiddlewareRef
from waypoint.errors import ConfigurationError, MissingParameter
from waypoint.routing.params import (
    CATCH_ALL,
    CONSTRAINTS,
    UNCONSTRAINED,
    compile_constraint,
    one_of,
)

_PARAM_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route path.

    Static:    ``/users``      (is_param=False)
    Param:     ``/{id}``       (is_param=True, param_name="id")
    Optional:  ``/{page?}``    (optional=True)
    Typed:     ``/{id:number}`` (constraint set from the named kind)
    Catch-all: ``/{rest:path}`` (catch_all=True, must be last)
    """

    value: str
    is_param: bool = False
    param_name: str | None = None
    optional: bool = False
    catch_all: bool = False
    constraint: str | None = None
    regex: re.Pattern[str] | None = field(default=None, compare=False, repr=False)


def parse_path(path: str) -> list[PathSegment]:
    """Parse a route path string into segments.

    Examples::

        "/users"            -> [PathSegment("users")]
        "/users/{id}"       -> [PathSegment("users"), PathSegment("{id}", is_param=True, ...)]
        "/users/{id:number}" -> [..., PathSegment("{id:number}", constraint="[0-9]+")]
        "/posts/{page?}"    -> [..., PathSegment("{page?}", optional=True)]

    Raises ``ConfigurationError`` for malformed placeholders.
    """
    segments: list[PathSegment] = []
    seen: set[str] = set()
    for part in path.strip("/").split("/"):
        if not part:
            continue
        if "<" in part and ">" in part:
            msg = (
                f"Route path {path!r} uses <param> syntax. "
                "Waypoint placeholders are written {param}."
            )
            raise ConfigurationError(msg)
        if not (part.startswith("{") and part.endswith("}")):
            if "{" in part or "}" in part:
                msg = (
                    f"Route path {path!r}: segment {part!r} mixes literal text "
                    "and a placeholder, or has unbalanced braces."
                )
                raise ConfigurationError(msg)
            if segments and segments[-1].optional:
                msg = f"Route path {path!r}: optional parameters must come last."
                raise ConfigurationError(msg)
            segments.append(PathSegment(value=part))
            continue

        inner = part[1:-1]
        optional = inner.endswith("?")
        if optional:
            inner = inner[:-1]
        name, _, kind = inner.partition(":")
        if not _PARAM_NAME.match(name):
            msg = f"Route path {path!r}: invalid parameter name {name!r}."
            raise ConfigurationError(msg)
        if name in seen:
            msg = f"Route path {path!r}: parameter {name!r} appears twice."
            raise ConfigurationError(msg)
        if kind and kind not in CONSTRAINTS:
            known = ", ".join(sorted(CONSTRAINTS))
            msg = f"Route path {path!r}: unknown parameter kind {kind!r} (known: {known})."
            raise ConfigurationError(msg)
        if segments and (segments[-1].catch_all or (segments[-1].optional and not optional)):
            msg = f"Route path {path!r}: catch-all and optional parameters must come last."
            raise ConfigurationError(msg)
        seen.add(name)
        segments.append(
            PathSegment(
                value=part,
                is_param=True,
                param_name=name,
                optional=optional,
                catch_all=kind == CATCH_ALL,
                constraint=CONSTRAINTS[kind] if kind else None,
            )
        )
    return segments


def normalize_path(path: str) -> str:
    """Collapse a path to a single leading slash and no trailing slash."""
    parts = [p for p in path.strip("/").split("/") if p]
    return "/" + "/".join(parts)


@dataclass(frozen=True, slots=True)
class Route:
    """A frozen route.

    Created by ``Router.compile()`` from a ``RouteDefinition``. Segments
    carry their compiled constraint regexes.
    """

    path: str
    handler: Handler
    methods: frozenset[str]
    name: str | None = None
    middleware: tuple[MiddlewareRef, ...] = ()
    constraints: Mapping[str, str] = field(default_factory=dict)
    segments: tuple[PathSegment, ...] = ()

    @property
    def param_names(self) -> tuple[str, ...]:
        return tuple(s.param_name for s in self.segments if s.param_name)

    def match_tokens(self, tokens: list[str]) -> dict[str, str] | None:
        """Bind *tokens* (the split request path) against this route.

        Returns the bound parameters, or ``None`` when any literal
        differs, any constraint fails, or the token count is wrong.
        """
        params: dict[str, str] = {}
        for index, seg in enumerate(self.segments):
            if seg.catch_all:
                if index >= len(tokens):
                    return None
                remaining = "/".join(tokens[index:])
                if seg.regex is not None and not seg.regex.fullmatch(remaining):
                    return None
                params[seg.param_name or CATCH_ALL] = remaining
                return params

            if index >= len(tokens):
                if seg.optional:
                    continue
                return None

            token = tokens[index]
            if seg.is_param:
                if seg.regex is not None and not seg.regex.fullmatch(token):
                    return None
                params[seg.param_name or ""] = token
            elif token != seg.value:
                return None

        if len(tokens) > len(self.segments):
            return None
        return params

    def build_url(self, params: Mapping[str, Any] | None = None) -> str:
        """Fill the placeholders from *params*.

        Leftover parameters become the query string. Raises
        ``MissingParameter`` when a required placeholder has no value.
        """
        remaining = dict(params or {})
        parts: list[str] = []
        for seg in self.segments:
            if not seg.is_param:
                parts.append(seg.value)
                continue
            name = seg.param_name or ""
            if name not in remaining or remaining[name] is None:
                remaining.pop(name, None)
                if seg.optional:
                    continue
                raise MissingParameter(self.name or self.path, name)
            value = str(remaining.pop(name))
            parts.append(quote(value, safe="/" if seg.catch_all else ""))

        url = "/" + "/".join(parts)
        if remaining:
            url = f"{url}?{urlencode(remaining, doseq=True)}"
        return url


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match."""

    route: Route
    path_params: dict[str, str]
    is_fallback: bool = False
    # OPTIONS request answered on behalf of a route registered for other methods
    is_options: bool = False
    # Methods every route at this path accepts, set when is_options is
    allowed_methods: frozenset[str] = frozenset()


class RouteDefinition:
    """Registration handle for a single route.

    Returned by ``Router.add()`` and its shorthands. Every method returns
    the definition itself so calls chain::

        router.get("/users/{id}", show_user).where_number("id").name("users.show")
    """

    __slots__ = (
        "_constraints",
        "_middleware",
        "_name",
        "_name_prefix",
        "_segments",
        "handler",
        "methods",
        "path",
    )

    def __init__(
        self,
        methods: Iterable[str],
        path: str,
        handler: Handler,
        *,
        middleware: Iterable[MiddlewareRef] = (),
        name_prefix: str = "",
    ) -> None:
        self.methods: frozenset[str] = frozenset(m.upper() for m in methods)
        self.path: str = normalize_path(path)
        self.handler = handler
        self._segments: list[PathSegment] = parse_path(self.path)
        self._middleware: list[MiddlewareRef] = list(middleware)
        self._constraints: dict[str, str] = {}
        self._name: str | None = None
        self._name_prefix = name_prefix

    def __repr__(self) -> str:
        methods = ",".join(sorted(self.methods))
        return f"<RouteDefinition {methods} {self.path} name={self._name!r}>"

    # -- Introspection --

    @property
    def route_name(self) -> str | None:
        return self._name

    @property
    def middleware_refs(self) -> tuple[MiddlewareRef, ...]:
        return tuple(self._middleware)

    @property
    def param_names(self) -> tuple[str, ...]:
        return tuple(s.param_name for s in self._segments if s.param_name)

    # -- Fluent API --

    def name(self, name: str) -> "RouteDefinition":
        """Name the route for reverse URL generation.

        The enclosing groups' name prefixes are prepended.
        """
        self._name = f"{self._name_prefix}{name}"
        return self

    def middleware(self, *middleware: MiddlewareRef) -> "RouteDefinition":
        """Append middleware after any inherited from enclosing groups."""
        self._middleware.extend(middleware)
        return self

    def where(self, name: str | Mapping[str, str], pattern: str | None = None) -> "RouteDefinition":
        """Constrain one parameter with a regex, or several with a mapping."""
        if isinstance(name, Mapping):
            for key, value in name.items():
                self._constrain(key, value)
            return self
        if pattern is None:
            msg = f"where({name!r}) needs a pattern."
            raise ConfigurationError(msg)
        self._constrain(name, pattern)
        return self

    def where_number(self, *names: str) -> "RouteDefinition":
        return self._constrain_all(names, CONSTRAINTS["number"])

    def where_slug(self, *names: str) -> "RouteDefinition":
        return self._constrain_all(names, CONSTRAINTS["slug"])

    def where_alpha(self, *names: str) -> "RouteDefinition":
        return self._constrain_all(names, CONSTRAINTS["alpha"])

    def where_alpha_numeric(self, *names: str) -> "RouteDefinition":
        return self._constrain_all(names, CONSTRAINTS["alnum"])

    def where_uuid(self, *names: str) -> "RouteDefinition":
        return self._constrain_all(names, CONSTRAINTS["uuid"])

    def where_in(self, name: str, values: Iterable[str]) -> "RouteDefinition":
        values = tuple(values)
        if not values:
            msg = f"where_in({name!r}) needs at least one allowed value."
            raise ConfigurationError(msg)
        self._constrain(name, one_of(values))
        return self

    def _constrain_all(self, names: tuple[str, ...], pattern: str) -> "RouteDefinition":
        for param in names:
            self._constrain(param, pattern)
        return self

    def _constrain(self, name: str, pattern: str) -> None:
        if name not in self.param_names:
            msg = (
                f"Cannot constrain {name!r}: route {self.path!r} has no such parameter "
                f"(parameters: {', '.join(self.param_names) or 'none'})."
            )
            raise ConfigurationError(msg)
        try:
            compile_constraint(pattern)
        except re.error as exc:
            msg = f"Invalid constraint for {name!r} on {self.path!r}: {exc}"
            raise ConfigurationError(msg) from exc
        self._constraints[name] = pattern

    # -- Compilation --

    def build(self) -> Route:
        """Freeze this definition into a ``Route``."""
        segments: list[PathSegment] = []
        for seg in self._segments:
            if seg.is_param:
                pattern = self._constraints.get(seg.param_name or "", seg.constraint)
                if pattern is None:
                    pattern = UNCONSTRAINED
                seg = replace(seg, constraint=pattern, regex=compile_constraint(pattern))
            segments.append(seg)
        return Route(
            path=self.path,
            handler=self.handler,
            methods=self.methods,
            name=self._name,
            middleware=tuple(self._middleware),
            constraints=dict(self._constraints),
            segments=tuple(segments),
        )
