"""Middleware identifiers, aliases, groups, and chain composition.

Routes name their middleware with short identifiers::

    "auth"            -> alias "auth", no arguments
    "throttle:5,1"    -> alias "throttle", arguments ("5", "1")
    "api"             -> group expanding to several identifiers

A ``MiddlewareRegistry`` turns those identifiers into middleware
instances when the app freezes. Unknown identifiers fail there, at
startup, instead of on the first request.
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from waypoint._internal.types import MiddlewareRef
from waypoint.config import AppConfig
from waypoint.errors import ConfigurationError
from waypoint.http.request import Request
from waypoint.middleware.api_version import ApiVersionConfig, ApiVersionMiddleware
from waypoint.middleware.auth import AuthConfig, AuthMiddleware
from waypoint.middleware.cors import CORSConfig, CORSMiddleware
from waypoint.middleware.protocol import AnyResponse, Middleware, Next
from waypoint.middleware.request_log import LogRequestMiddleware
from waypoint.middleware.sessions import SessionConfig, SessionMiddleware
from waypoint.middleware.throttle import ThrottleMiddleware
from waypoint.security.rate_limit import CounterStore, MemoryCounterStore

type MiddlewareFactory = Callable[..., Middleware]


@dataclass(frozen=True, slots=True)
class MiddlewareSpec:
    """A parsed middleware identifier."""

    kind: str
    args: tuple[str, ...] = ()

    def __str__(self) -> str:
        if self.args:
            return f"{self.kind}:{','.join(self.args)}"
        return self.kind


def parse_middleware(identifier: str) -> MiddlewareSpec:
    """Split ``"kind:arg1,arg2"`` into a ``MiddlewareSpec``.

    Arguments are kept as strings; the alias factory converts them.
    Raises ``ConfigurationError`` for an empty kind.
    """
    kind, _, raw_args = identifier.strip().partition(":")
    kind = kind.strip()
    if not kind:
        msg = f"Middleware identifier {identifier!r} has no name."
        raise ConfigurationError(msg)
    args = tuple(a.strip() for a in raw_args.split(",")) if raw_args else ()
    return MiddlewareSpec(kind, args)


def compose(middleware: Sequence[Middleware], endpoint: Next) -> Next:
    """Wrap *endpoint* so the first middleware is the outermost.

    ``compose([a, b], h)`` runs ``a`` -> ``b`` -> ``h`` -> ``b`` -> ``a``.
    """
    chain = endpoint
    for mw in reversed(middleware):
        chain = _bind(mw, chain)
    return chain


def _bind(mw: Middleware, next_handler: Next) -> Next:
    async def step(request: Request) -> AnyResponse:
        return await mw(request, next_handler)

    return step


class MiddlewareRegistry:
    """Alias and group table for middleware identifiers.

    Usage::

        registry = MiddlewareRegistry()
        registry.alias("tenant", lambda: TenantMiddleware(db))
        registry.group("admin", ["auth", "tenant", "throttle:30,1"])
        registry.resolve(["admin", "log"])
    """

    __slots__ = ("_aliases", "_groups")

    def __init__(self) -> None:
        self._aliases: dict[str, MiddlewareFactory] = {}
        self._groups: dict[str, tuple[MiddlewareRef, ...]] = {}

    def alias(self, kind: str, factory: MiddlewareFactory) -> None:
        """Register *factory*; ``factory(*args)`` builds one middleware."""
        self._aliases[kind] = factory

    def group(self, name: str, identifiers: Iterable[MiddlewareRef]) -> None:
        """Register *name* as shorthand for several identifiers."""
        if ":" in name:
            msg = f"Middleware group name {name!r} must not contain ':'."
            raise ConfigurationError(msg)
        self._groups[name] = tuple(identifiers)

    def has(self, kind: str) -> bool:
        return kind in self._aliases or kind in self._groups

    @property
    def aliases(self) -> tuple[str, ...]:
        return tuple(self._aliases)

    @property
    def groups(self) -> Mapping[str, tuple[MiddlewareRef, ...]]:
        return dict(self._groups)

    def expand(self, identifiers: Iterable[MiddlewareRef]) -> tuple[MiddlewareRef, ...]:
        """Flatten groups into their members, dropping repeats.

        First occurrence wins. Strings compare by their parsed form,
        callables by identity.
        """
        result: list[MiddlewareRef] = []
        seen: set[Any] = set()
        self._expand_into(tuple(identifiers), result, seen, ())
        return tuple(result)

    def _expand_into(
        self,
        identifiers: tuple[MiddlewareRef, ...],
        result: list[MiddlewareRef],
        seen: set[Any],
        stack: tuple[str, ...],
    ) -> None:
        for ref in identifiers:
            if not isinstance(ref, str):
                if id(ref) not in seen:
                    seen.add(id(ref))
                    result.append(ref)
                continue

            spec = parse_middleware(ref)
            if spec.kind in self._groups and not spec.args:
                if spec.kind in stack:
                    cycle = " -> ".join((*stack, spec.kind))
                    msg = f"Middleware group cycle: {cycle}"
                    raise ConfigurationError(msg)
                self._expand_into(self._groups[spec.kind], result, seen, (*stack, spec.kind))
                continue

            key = str(spec)
            if key not in seen:
                seen.add(key)
                result.append(key)

    def resolve(self, identifiers: Iterable[MiddlewareRef]) -> tuple[Middleware, ...]:
        """Build middleware instances for *identifiers*, in order.

        Raises ``ConfigurationError`` for unknown identifiers and for
        arguments the alias factory rejects.
        """
        resolved: list[Middleware] = []
        for ref in self.expand(identifiers):
            if not isinstance(ref, str):
                resolved.append(ref)
                continue
            spec = parse_middleware(ref)
            factory = self._aliases.get(spec.kind)
            if factory is None:
                known = ", ".join(sorted((*self._aliases, *self._groups))) or "none"
                msg = f"Unknown middleware {ref!r} (registered: {known})."
                raise ConfigurationError(msg)
            try:
                resolved.append(factory(*spec.args))
            except (TypeError, ValueError) as exc:
                msg = f"Invalid arguments for middleware {ref!r}: {exc}"
                raise ConfigurationError(msg) from exc
        return tuple(resolved)


DEFAULT_GROUPS: dict[str, tuple[str, ...]] = {
    "api": ("api.version", "throttle"),
    "web": ("session",),
}


def default_registry(
    config: AppConfig | None = None,
    *,
    auth: AuthConfig | None = None,
    counter_store: CounterStore | None = None,
) -> MiddlewareRegistry:
    """A registry with the built-in aliases wired to *config*.

    Aliases: ``auth`` (``auth:optional`` lets anonymous requests through),
    ``session``, ``throttle[:max,minutes]``, ``cors``, ``log``,
    ``api.version``. Groups: ``api`` and ``web``, replaced by
    ``config.middleware_groups`` entries of the same name.
    """
    config = config or AppConfig()
    store = counter_store if counter_store is not None else MemoryCounterStore()
    registry = MiddlewareRegistry()

    def make_auth(*args: str) -> AuthMiddleware:
        if auth is None:
            msg = "The 'auth' middleware needs App(auth=AuthConfig(...))."
            raise ConfigurationError(msg)
        if args and args != ("optional",):
            msg = f"auth accepts only 'optional', got {','.join(args)!r}."
            raise ValueError(msg)
        return AuthMiddleware(auth, required=not args)

    def make_throttle(max_attempts: str | None = None, window_minutes: str | None = None) -> ThrottleMiddleware:
        default_max, _, default_window = config.throttle_default.partition(",")
        return ThrottleMiddleware(
            int(max_attempts or default_max),
            float(window_minutes or default_window or 1),
            store=store,
            trust_proxy_headers=config.trusted_proxy_headers,
        )

    registry.alias("auth", make_auth)
    registry.alias("session", lambda: SessionMiddleware(SessionConfig(secret_key=config.secret_key)))
    registry.alias("throttle", make_throttle)
    registry.alias(
        "cors",
        lambda: CORSMiddleware(
            CORSConfig(
                allow_origins=config.cors_allow_origins,
                allow_methods=config.cors_allow_methods,
                allow_headers=config.cors_allow_headers,
                expose_headers=config.cors_expose_headers,
                allow_credentials=config.cors_allow_credentials,
                max_age=config.cors_max_age,
            )
        ),
    )
    registry.alias("log", LogRequestMiddleware)
    registry.alias(
        "api.version",
        lambda: ApiVersionMiddleware(
            ApiVersionConfig(
                default_version=config.api_default_version,
                supported_versions=config.api_supported_versions,
                deprecated_versions=config.api_deprecated_versions,
                vendor=config.api_vendor,
            )
        ),
    )

    groups = {**DEFAULT_GROUPS, **dict(config.middleware_groups or {})}
    for name, members in groups.items():
        registry.group(name, members)
    return registry
