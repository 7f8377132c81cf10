"""Middleware protocol and Next type alias.

A middleware is any callable matching::

    async def my_mw(request: Request, next: Next) -> Response: ...

No base class required. A middleware may answer on its own without
calling ``next`` (short-circuit), pass a different request to ``next``,
or transform the response on the way out.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol

from waypoint.http.request import Request
from waypoint.http.response import Response

# Any response type the pipeline can produce
type AnyResponse = Response

# The next handler in the middleware chain
type Next = Callable[[Request], Awaitable[AnyResponse]]


class Middleware(Protocol):
    """Protocol for waypoint middleware.

    Accepts both functions and callable objects::

        # Function middleware
        async def timing(request: Request, next: Next) -> Response:
            start = time.monotonic()
            response = await next(request)
            elapsed = time.monotonic() - start
            return response.with_header("X-Time", f"{elapsed:.3f}")

        # Class middleware
        class Tenant:
            async def __call__(self, request: Request, next: Next) -> Response:
                ...
    """

    async def __call__(self, request: Request, next: Next) -> AnyResponse: ...


class TerminableMiddleware(Middleware, Protocol):
    """Middleware with a ``terminate`` step that runs after the response is sent.

    ``terminate`` receives the request as it entered the pipeline and the
    response the client got. It may be sync or async. Its exceptions are
    logged and do not affect the response or the other middleware::

        class AuditTrail:
            async def __call__(self, request, next):
                return await next(request)

            async def terminate(self, request, response):
                await audit_log.write(request.path, response.status)
    """

    def terminate(self, request: Request, response: AnyResponse) -> object: ...
