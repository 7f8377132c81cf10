"""The ``App`` object: route table, middleware registry and ASGI entry point.

An app has two phases. During setup, routes, middleware, error handlers
and hooks are registered. The first request or the lifespan startup
freezes it: the router compiles, every middleware identifier resolves, and
from then on any registration raises ``RuntimeError``.
"""

import functools
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from functools import partialmethod
from typing import Any

from waypoint._internal.asgi import Receive, Scope, Send
from waypoint._internal.invoke import invoke
from waypoint._internal.types import ErrorHandler, Handler, MiddlewareRef
from waypoint.config import AppConfig
from waypoint.middleware.auth import AuthConfig
from waypoint.middleware.protocol import Middleware
from waypoint.middleware.registry import MiddlewareRegistry, default_registry
from waypoint.routing.route import RouteDefinition
from waypoint.routing.router import Router, _GroupScope
from waypoint.security.rate_limit import CounterStore
from waypoint.server.handler import handle_request

logger = logging.getLogger("waypoint.server")


def _setup_only[F: Callable[..., Any]](method: F) -> F:
    """Reject calls to *method* once the app is frozen."""

    @functools.wraps(method)
    def wrapper(self: "App", *args: Any, **kwargs: Any) -> Any:
        if self._frozen:
            msg = (
                f"App.{method.__name__}() called after the app started serving. "
                "Register routes, middleware and handlers before the first request."
            )
            raise RuntimeError(msg)
        return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class App:
    """A waypoint application.

    Usage::

        app = App(AppConfig(secret_key="..."), auth=AuthConfig(verify_token=lookup))

        @app.get("/users/{id}", name="users.show", middleware="auth")
        async def show_user(id: int):
            return success(await repo.find(id))

        with app.group(prefix="/api", middleware="api"):
            app.api_resource("/posts", posts)

    Several workers may send the first request at once; the freeze runs
    under a lock and happens exactly once.
    """

    __slots__ = (
        "_error_handlers",
        "_freeze_lock",
        "_frozen",
        "_global_refs",
        "_middleware",
        "_providers",
        "_registry",
        "_route_middleware",
        "_router",
        "_shutdown_hooks",
        "_startup_hooks",
        "config",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        registry: MiddlewareRegistry | None = None,
        auth: AuthConfig | None = None,
        counter_store: CounterStore | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self._registry = registry or default_registry(self.config, auth=auth, counter_store=counter_store)
        self._router = Router()
        self._global_refs: list[MiddlewareRef] = []
        self._error_handlers: dict[int | type, ErrorHandler] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._providers: dict[type, Callable[..., Any]] = {}
        self._frozen = False
        self._freeze_lock = threading.Lock()

        # Filled in by _freeze()
        self._middleware: tuple[Middleware, ...] = ()
        self._route_middleware: dict[int, tuple[Middleware, ...]] = {}

    @property
    def router(self) -> Router:
        return self._router

    @property
    def registry(self) -> MiddlewareRegistry:
        return self._registry

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -- Routes --

    def _add_route(
        self,
        func: Handler,
        path: str,
        methods: Iterable[str],
        name: str | None,
        middleware: MiddlewareRef | Iterable[MiddlewareRef] | None,
    ) -> None:
        definition = self._router.add(tuple(methods), path, func)
        if name is not None:
            definition.name(name)
        if isinstance(middleware, str) or callable(middleware):
            definition.middleware(middleware)
        elif middleware is not None:
            definition.middleware(*middleware)

    @_setup_only
    def route(
        self,
        path: str,
        *,
        methods: Iterable[str] = ("GET",),
        name: str | None = None,
        middleware: MiddlewareRef | Iterable[MiddlewareRef] | None = None,
    ) -> Callable[[Handler], Handler]:
        """Decorator registering a handler for *methods* at *path*.

        *path* takes ``{param}``, ``{param?}`` and ``{param:path}``
        placeholders. *middleware* is an identifier, a callable, or a list
        of either, and runs inside any group middleware.
        """

        def decorator(func: Handler) -> Handler:
            self._add_route(func, path, methods, name, middleware)
            return func

        return decorator

    get = partialmethod(route, methods=("GET",))
    post = partialmethod(route, methods=("POST",))
    put = partialmethod(route, methods=("PUT",))
    patch = partialmethod(route, methods=("PATCH",))
    delete = partialmethod(route, methods=("DELETE",))

    @_setup_only
    def group(
        self,
        prefix: str = "",
        middleware: MiddlewareRef | Iterable[MiddlewareRef] | None = None,
        name: str = "",
    ) -> _GroupScope:
        """Open a route group. Works as a context manager or a decorator."""
        return self._router.group(prefix=prefix, middleware=middleware, name=name)

    @_setup_only
    def resource(self, base: str, controller: object, **kwargs: Any) -> list[RouteDefinition]:
        return self._router.resource(base, controller, **kwargs)

    @_setup_only
    def api_resource(self, base: str, controller: object, **kwargs: Any) -> list[RouteDefinition]:
        return self._router.api_resource(base, controller, **kwargs)

    @_setup_only
    def fallback(self, func: Handler) -> Handler:
        """Decorator for the handler of requests no route matches."""
        self._router.fallback(func)
        return func

    @_setup_only
    def redirect(self, path: str, destination: str, status: int = 302) -> RouteDefinition:
        return self._router.redirect(path, destination, status)

    @_setup_only
    def permanent_redirect(self, path: str, destination: str) -> RouteDefinition:
        return self._router.permanent_redirect(path, destination)

    def url(self, name: str, params: Mapping[str, Any] | None = None, **kwargs: Any) -> str:
        """Path of the route called *name*. See ``Router.url()``."""
        return self._router.url(name, {**(params or {}), **kwargs})

    # -- Handlers, middleware, hooks --

    @_setup_only
    def provide(self, annotation: type, factory: Callable[..., Any]) -> None:
        """Inject ``factory()`` into handler parameters annotated *annotation*.

        ::

            app.provide(UserRepository, get_repository)

            @app.get("/users")
            def list_users(repo: UserRepository): ...
        """
        self._providers[annotation] = factory

    @_setup_only
    def error(self, code_or_exception: int | type[Exception]) -> Callable[[ErrorHandler], ErrorHandler]:
        """Decorator for the handler of a status code or exception class."""

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    @_setup_only
    def use(self, *middleware: MiddlewareRef) -> None:
        """Add global middleware.

        Global middleware wraps routing, so it also sees requests that match
        no route.
        """
        self._global_refs.extend(middleware)

    @_setup_only
    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Decorator for a sync or async hook run at lifespan startup, in order."""
        self._startup_hooks.append(func)
        return func

    @_setup_only
    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        self._shutdown_hooks.append(func)
        return func

    # -- ASGI --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._lifespan(receive, send)
            return

        self.freeze()
        await handle_request(
            scope,
            receive,
            send,
            router=self._router,
            middleware=self._middleware,
            route_middleware=self._route_middleware,
            error_handlers=self._error_handlers,
            debug=self.config.debug,
            providers=self._providers or None,
        )

    async def _lifespan(self, receive: Receive, send: Send) -> None:
        """ASGI lifespan. Startup freezes the app, so bad configuration fails it."""
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                try:
                    self.freeze()
                    for hook in self._startup_hooks:
                        await invoke(hook)
                except Exception as exc:
                    logger.exception("Startup failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                for hook in self._shutdown_hooks:
                    await invoke(hook)
                await send({"type": "lifespan.shutdown.complete"})
                return

    def freeze(self) -> None:
        """Compile now instead of on the first request. Safe to call twice."""
        if self._frozen:
            return
        with self._freeze_lock:
            if not self._frozen:
                self._freeze()

    def _freeze(self) -> None:
        # Caller holds _freeze_lock
        self._router.compile()

        refs: list[MiddlewareRef] = ["log"] if self.config.log_requests else []
        self._middleware = self._registry.resolve([*refs, *self._global_refs])

        # Unknown identifiers on any route fail here, not on its first request
        routes = list(self._router.routes)
        if self._router.fallback_route is not None:
            routes.append(self._router.fallback_route)
        self._route_middleware = {id(route): self._registry.resolve(route.middleware) for route in routes}

        self._frozen = True
        logger.debug("Frozen with %d routes, %d global middleware", len(routes), len(self._middleware))
