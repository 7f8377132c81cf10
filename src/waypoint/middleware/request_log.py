"""Request logging middleware.

One line per request on the ``waypoint.request`` logger: method, path
with masked query string, status, and duration. Level follows the status
class (INFO below 400, WARNING for 4xx, ERROR for 5xx).
"""

import logging
import time
from urllib.parse import urlencode

from waypoint.http.request import Request
from waypoint.middleware.protocol import AnyResponse, Next

logger = logging.getLogger("waypoint.request")

SENSITIVE_FIELDS = (
    "password",
    "token",
    "secret",
    "api_key",
    "authorization",
    "card_number",
    "cvv",
    "ssn",
)

FILTERED = "[FILTERED]"


def is_sensitive(key: str) -> bool:
    """True when *key* contains any of ``SENSITIVE_FIELDS`` (case-insensitive)."""
    lowered = key.lower()
    return any(field in lowered for field in SENSITIVE_FIELDS)


def masked_query(request: Request) -> str:
    """The request's query string with sensitive values replaced."""
    pairs = [
        (key, FILTERED if is_sensitive(key) else value)
        for key in request.query
        for value in request.query.get_list(key)
    ]
    return urlencode(pairs, safe="[]")


def level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class LogRequestMiddleware:
    """Log every request that passes through.

    Never short-circuits. An exception raised further down the chain is
    logged at ERROR and re-raised for the dispatch error boundary.
    """

    __slots__ = ()

    async def __call__(self, request: Request, next: Next) -> AnyResponse:
        start = time.perf_counter()
        query = masked_query(request)
        target = f"{request.path}?{query}" if query else request.path
        logger.debug(
            "Incoming %s %s ip=%s ua=%s",
            request.method,
            target,
            request.ip,
            request.headers.get("user-agent", "-"),
        )

        try:
            response = await next(request)
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            logger.error("%s %s raised after %.2fms", request.method, target, elapsed)
            raise

        elapsed = (time.perf_counter() - start) * 1000
        logger.log(
            level_for(response.status),
            "%s %s %d %.2fms",
            request.method,
            target,
            response.status,
            elapsed,
        )
        return response
