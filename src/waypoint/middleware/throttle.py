"""Throttle middleware: per-client fixed-window rate limiting.

Identifier ``"throttle:60,1"`` allows 60 requests per client per minute.
Clients are identified by the authenticated user id when there is one,
otherwise by address.
"""

import time

from waypoint.http import envelope
from waypoint.http.request import Request
from waypoint.http.response import Response
from waypoint.middleware.protocol import AnyResponse, Next
from waypoint.security.audit import emit_security_event
from waypoint.security.rate_limit import CounterStore, Hit, MemoryCounterStore

MESSAGE = "Too many requests. Please try again later."


def _is_api_path(path: str) -> bool:
    return path == "/api" or path.startswith("/api/")


def client_identity(request: Request, *, trust_proxy_headers: bool = True) -> str:
    """Key a request by user id, else by client address.

    With *trust_proxy_headers* the first ``X-Forwarded-For`` hop and then
    ``X-Real-IP`` take precedence over the ASGI client address.
    """
    user = request.user
    if user is not None:
        user_id = getattr(user, "id", None)
        if user_id is not None:
            return f"user:{user_id}"
    if trust_proxy_headers:
        return f"ip:{request.ip}"
    return f"ip:{request.client[0] if request.client else '0.0.0.0'}"


class ThrottleMiddleware:
    """Reject clients that exceed *max_attempts* within *window_minutes*.

    The window starts at a client's first request and resets once it
    expires. The request that pushes the count past the limit, and every
    later one in the same window, gets a 429 with ``Retry-After``.
    Passing responses carry ``X-RateLimit-Limit`` and
    ``X-RateLimit-Remaining``.

    Instances that share a ``CounterStore`` and the same limits share a
    budget per client.
    """

    __slots__ = ("_store", "max_attempts", "trust_proxy_headers", "window_seconds")

    def __init__(
        self,
        max_attempts: int = 60,
        window_minutes: float = 1,
        *,
        store: CounterStore | None = None,
        trust_proxy_headers: bool = True,
    ) -> None:
        if max_attempts < 1 or window_minutes <= 0:
            msg = f"Throttle limits must be positive, got {max_attempts},{window_minutes}."
            raise ValueError(msg)
        self.max_attempts = max_attempts
        self.window_seconds = window_minutes * 60
        self._store = store if store is not None else MemoryCounterStore()
        self.trust_proxy_headers = trust_proxy_headers

    def __repr__(self) -> str:
        return f"ThrottleMiddleware({self.max_attempts}, {self.window_seconds / 60:g})"

    def _key(self, request: Request) -> str:
        identity = client_identity(request, trust_proxy_headers=self.trust_proxy_headers)
        return f"throttle:{self.max_attempts}:{self.window_seconds:g}:{identity}"

    def _limit_headers(self, response: AnyResponse, remaining: int) -> AnyResponse:
        return response.with_header("X-RateLimit-Limit", str(self.max_attempts)).with_header(
            "X-RateLimit-Remaining", str(max(0, remaining))
        )

    def _rejection(self, request: Request, hit: Hit) -> AnyResponse:
        retry_after = hit.retry_after
        emit_security_event(
            "throttle.rejected",
            request=request,
            details={"limit": self.max_attempts, "count": hit.count, "retry_after": retry_after},
        )
        if request.expects_json or _is_api_path(request.path):
            response = envelope.error(MESSAGE, status=429)
        else:
            response = Response(MESSAGE, status=429)
        response = self._limit_headers(response, 0)
        return response.with_header("Retry-After", str(retry_after)).with_header(
            "X-RateLimit-Reset", str(int(time.time()) + retry_after)
        )

    async def __call__(self, request: Request, next: Next) -> AnyResponse:
        hit = self._store.increment(self._key(request), self.window_seconds)
        if hit.count > self.max_attempts:
            return self._rejection(request, hit)

        response = await next(request)
        return self._limit_headers(response, self.max_attempts - hit.count)
