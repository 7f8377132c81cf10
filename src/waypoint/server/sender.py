"""ASGI response sending: translates a Response into ASGI messages."""

from waypoint._internal.asgi import Send
from waypoint.http.response import Response


def _body_allowed(status: int, method: str) -> bool:
    """Whether the response may carry a message body."""
    # RFC: 1xx, 204, and 304 responses and HEAD requests have no body.
    if method == "HEAD":
        return False
    return not (100 <= status < 200 or status in {204, 304})


def encode_headers(response: Response) -> list[tuple[bytes, bytes]]:
    raw_headers: list[tuple[bytes, bytes]] = []
    if response.body or response.status not in {204, 304}:
        raw_headers.append((b"content-type", response.content_type.encode("latin-1")))
    for name, value in response.headers:
        raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))
    raw_headers.extend(
        (b"set-cookie", cookie.to_header_value().encode("latin-1")) for cookie in response.cookies
    )
    return raw_headers


async def send_response(response: Response, send: Send, *, method: str = "GET") -> None:
    """Send *response* as one start message and one body message."""
    raw_headers = encode_headers(response)
    body = response.body_bytes if _body_allowed(response.status, method) else b""
    if method != "HEAD":
        raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": raw_headers,
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": body,
        }
    )
