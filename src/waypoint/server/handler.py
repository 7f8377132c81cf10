"""HTTP dispatch for one ASGI request.

Builds the ``Request``, runs global middleware around routing and the
matched route's middleware around its handler, sends the ``Response``,
then runs the ``terminate`` hooks.
"""

import inspect
import logging
from collections.abc import Callable, Mapping
from contextvars import Token
from typing import Any

from waypoint._internal.asgi import Receive, Scope, Send
from waypoint._internal.invoke import invoke
from waypoint.context import g, request_var, route_var
from waypoint.errors import HTTPError
from waypoint.http.request import Request
from waypoint.http.response import Response
from waypoint.middleware.protocol import AnyResponse, Middleware, Next
from waypoint.middleware.registry import compose
from waypoint.routing.route import Route, RouteMatch
from waypoint.routing.router import Router
from waypoint.server.errors import ErrorHandlers, handle_http_error, handle_internal_error
from waypoint.server.negotiation import negotiate
from waypoint.server.sender import send_response

logger = logging.getLogger("waypoint.server")


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    router: Router,
    middleware: tuple[Middleware, ...],
    route_middleware: Mapping[int, tuple[Middleware, ...]],
    error_handlers: ErrorHandlers,
    debug: bool,
    providers: dict[type, Callable[..., Any]] | None = None,
) -> None:
    """Process a single HTTP request through the full pipeline.

    Global middleware wraps routing, so it also sees unmatched paths and
    CORS preflights. Route middleware (keyed by ``id(route)``) wraps the
    matched handler only. Once the response is sent, every middleware in
    the pipeline that defines ``terminate`` is called with it.
    """
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)
    token: Token[Request] = request_var.set(request)
    pipeline: list[Middleware] = list(middleware)

    async def dispatch(req: Request) -> AnyResponse:
        # Errors become responses here so global middleware sees them
        try:
            match = router.match(req.method, req.path)
            route_token = route_var.set(match.route)
            matched = route_middleware.get(id(match.route), ())
            pipeline.extend(mw for mw in matched if mw not in pipeline)
            try:
                endpoint = (
                    _allow_response(match.allowed_methods)
                    if match.is_options
                    else lambda r: _invoke_handler(match, r, providers=providers)
                )
                chain = compose(matched, endpoint)
                return await chain(req.with_path_params(match.path_params))
            finally:
                route_var.reset(route_token)
        except HTTPError as exc:
            return await handle_http_error(exc, req, error_handlers)
        except Exception as exc:
            return await handle_internal_error(exc, req, error_handlers, debug)

    try:
        response = await compose(middleware, dispatch)(request)
    except HTTPError as exc:
        response = await handle_http_error(exc, request, error_handlers)
    except Exception as exc:
        response = await handle_internal_error(exc, request, error_handlers, debug)
    finally:
        g._reset()
        request_var.reset(token)

    await send_response(response, send, method=request.method)
    await terminate_pipeline(pipeline, request, response)


async def terminate_pipeline(
    pipeline: list[Middleware], request: Request, response: AnyResponse
) -> None:
    """Run ``terminate`` on each middleware that has one, outermost first."""
    for mw in pipeline:
        terminate = getattr(mw, "terminate", None)
        if terminate is None:
            continue
        try:
            await invoke(terminate, request, response)
        except Exception:
            logger.exception("terminate() failed in %r for %s %s", mw, request.method, request.path)


def _allow_response(methods: frozenset[str]) -> Next:
    """Endpoint for an OPTIONS request to a path with no OPTIONS route."""
    allow = ", ".join(sorted(methods))

    async def endpoint(request: Request) -> AnyResponse:
        return Response(status=204).with_header("Allow", allow)

    return endpoint


async def _invoke_handler(
    match: RouteMatch,
    request: Request,
    *,
    providers: dict[type, Callable[..., Any]] | None = None,
) -> AnyResponse:
    """Run the route handler and turn its return value into a response."""
    handler = match.route.handler
    kwargs = _build_handler_kwargs(handler, request, request.path_params, providers)
    return negotiate(await invoke(handler, **kwargs))


def _convert(value: str, annotation: Any) -> Any:
    """Apply a scalar annotation such as ``int`` to a path token; keep the string on failure."""
    if annotation in (inspect.Parameter.empty, str):
        return value
    try:
        return annotation(value)
    except (ValueError, TypeError):
        return value


def _build_handler_kwargs(
    handler: Callable[..., Any],
    request: Request,
    path_params: Mapping[str, str],
    providers: dict[type, Callable[..., Any]] | None = None,
) -> dict[str, Any]:
    """Arguments for *handler*, chosen per parameter.

    A parameter named ``request`` or annotated ``Request`` gets the
    request. One named like a path parameter gets the token, converted by
    its annotation. One whose annotation has a provider gets a fresh
    ``provider()``. Anything else keeps its default, which is how an
    absent ``{name?}`` segment reaches the handler.
    """
    providers = providers or {}
    kwargs: dict[str, Any] = {}
    for name, param in inspect.signature(handler, eval_str=True).parameters.items():
        annotation = param.annotation
        if name == "request" or annotation is Request:
            kwargs[name] = request
        elif name in path_params:
            kwargs[name] = _convert(path_params[name], annotation)
        elif annotation in providers:
            kwargs[name] = providers[annotation]()
    return kwargs


def describe_handler(route: Route) -> str:
    """``module.qualname`` of a route's handler, for listings."""
    handler = route.handler
    module = getattr(handler, "__module__", None) or ""
    qualname = getattr(handler, "__qualname__", None) or type(handler).__qualname__
    return f"{module}.{qualname}" if module else qualname
