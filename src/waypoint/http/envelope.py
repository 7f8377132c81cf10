"""JSON success and error envelopes.

Every JSON endpoint answers in one of two shapes::

    {"success": true, "data": ..., "message": "..."}
    {"success": false, "error": "...", "status": 404}

Handlers, middleware short-circuits, and the dispatch error boundary all
build their bodies here so clients can rely on the shape.
"""

from typing import Any

from waypoint.http.response import Response


def success(data: Any = None, message: str | None = None, status: int = 200) -> Response:
    """Build a success envelope. ``message`` is omitted when ``None``."""
    payload: dict[str, Any] = {"success": True, "data": data}
    if message is not None:
        payload["message"] = message
    return Response.json(payload, status=status)


def created(data: Any = None, message: str | None = None) -> Response:
    """A 201 success envelope."""
    return success(data, message, status=201)


def error(
    message: str,
    status: int = 400,
    errors: Any = None,
    headers: tuple[tuple[str, str], ...] = (),
) -> Response:
    """Build an error envelope.

    ``errors`` carries field-level details (for example a 422 listing the
    missing fields) and is omitted when ``None``.
    """
    payload: dict[str, Any] = {"success": False, "error": message, "status": status}
    if errors is not None:
        payload["errors"] = errors
    response = Response.json(payload, status=status)
    for name, value in headers:
        response = response.with_header(name, value)
    return response
