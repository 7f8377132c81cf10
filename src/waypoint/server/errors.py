"""Turn exceptions raised during dispatch into responses.

A handler registered with ``@app.error(...)`` wins: exception classes are
looked up along the MRO, then the status code. Without one the client
gets a JSON error envelope.
"""

import inspect
import logging
from collections.abc import Callable
from typing import Any

from waypoint._internal.invoke import invoke
from waypoint.errors import HTTPError
from waypoint.http import envelope
from waypoint.http.request import Request
from waypoint.http.response import Response
from waypoint.server.negotiation import negotiate

logger = logging.getLogger("waypoint.server")

type ErrorHandlers = dict[int | type, Callable[..., Any]]


def find_error_handler(handlers: ErrorHandlers, exc: Exception, status: int) -> Callable[..., Any] | None:
    registered = next((cls for cls in type(exc).__mro__ if cls in handlers), status)
    return handlers.get(registered)


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    exc: Exception,
    status: int,
) -> Response:
    """Run *handler* with as many of ``(request, exc)`` as it accepts.

    A handler that leaves the status at 200 gets *status* instead.
    """
    arity = len(inspect.signature(handler).parameters)
    response = negotiate(await invoke(handler, *(request, exc)[:arity]))
    return response.with_status(status) if response.status == 200 else response


async def handle_http_error(
    exc: HTTPError,
    request: Request,
    error_handlers: ErrorHandlers,
) -> Response:
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)
    handler = find_error_handler(error_handlers, exc, exc.status)
    if handler is not None:
        return await call_error_handler(handler, request, exc, exc.status)
    return envelope.error(exc.detail or f"Error {exc.status}", status=exc.status, headers=exc.headers)


async def handle_internal_error(
    exc: Exception,
    request: Request,
    error_handlers: ErrorHandlers,
    debug: bool,
) -> Response:
    """Log the traceback and answer 500. ``debug`` puts the exception in the body."""
    logger.exception("500 %s %s", request.method, request.path)
    handler = find_error_handler(error_handlers, exc, 500)
    if handler is not None:
        return await call_error_handler(handler, request, exc, 500)
    detail = f"{type(exc).__name__}: {exc}" if debug else "Internal Server Error"
    return envelope.error(detail, status=500)
