"""Immutable HTTP request.

Middleware never edits a request: ``with_attribute()`` and
``with_path_params()`` return a copy, and the copy is what it hands to
``next``. Copies share one body cache, so the ASGI body is read once.
"""

from __future__ import annotations

import json as json_module
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from waypoint._internal.asgi import Receive
from waypoint.http.cookies import parse_cookies
from waypoint.http.headers import Headers
from waypoint.http.query import QueryParams

_EMPTY: Mapping[str, Any] = MappingProxyType({})
_UNKNOWN_CLIENT = "0.0.0.0"


def _address(value: Any) -> tuple[str, int] | None:
    return (value[0], value[1]) if value else None


@dataclass(frozen=True, slots=True)
class Request:
    """Request metadata plus lazy access to the body.

    ``path_params`` are the tokens the router bound. ``attributes`` carry
    what middleware attached: ``"user"`` from auth, ``"api_version"``
    from API versioning.
    """

    method: str
    path: str
    headers: Headers
    query: QueryParams
    path_params: Mapping[str, str]
    http_version: str
    server: tuple[str, int] | None
    client: tuple[str, int] | None
    cookies: Mapping[str, str]
    attributes: Mapping[str, Any] = _EMPTY
    _receive: Receive | None = None
    # Shared by every copy of this request
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_asgi(cls, scope: Mapping[str, Any], receive: Receive | None) -> Request:
        headers = Headers(scope.get("headers", ()))
        return cls(
            method=scope["method"].upper(),
            path=scope["path"],
            headers=headers,
            query=QueryParams(scope.get("query_string", b"")),
            path_params=_EMPTY,
            http_version=scope.get("http_version", "1.1"),
            server=_address(scope.get("server")),
            client=_address(scope.get("client")),
            cookies=parse_cookies(headers.get("cookie", "")),
            _receive=receive,
        )

    def with_attribute(self, name: str, value: Any) -> Request:
        return replace(self, attributes=MappingProxyType({**self.attributes, name: value}))

    def with_path_params(self, params: Mapping[str, str]) -> Request:
        return replace(self, path_params=MappingProxyType(dict(params)))

    def attribute(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    @property
    def user(self) -> Any:
        """The principal attached by ``AuthMiddleware``, or ``None``."""
        return self.attributes.get("user")

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def expects_json(self) -> bool:
        """Whether the client accepts JSON or sent it."""
        return "json" in self.headers.get("accept", "") or "json" in self.content_type

    @property
    def ip(self) -> str:
        """Client address, preferring proxy headers.

        Checks the first ``X-Forwarded-For`` hop, then ``X-Real-IP``, then
        the ASGI client.
        """
        candidates = (
            self.headers.get("x-forwarded-for", "").split(",")[0],
            self.headers.get("x-real-ip", ""),
            self.client[0] if self.client else "",
        )
        return next((c.strip() for c in candidates if c.strip()), _UNKNOWN_CLIENT)

    @property
    def url(self) -> str:
        """Path with the raw query string, if any."""
        if not self.query.raw:
            return self.path
        return f"{self.path}?{self.query.raw.decode('latin-1')}"

    async def body(self) -> bytes:
        """The whole body. Later calls, on any copy, return the cached bytes."""
        if "body" not in self._cache:
            chunks: list[bytes] = []
            receive = self._receive
            while receive is not None:
                message = await receive()
                chunks.append(message.get("body", b""))
                if not message.get("more_body", False):
                    break
            self._cache["body"] = b"".join(chunks)
        return self._cache["body"]

    async def text(self) -> str:
        return (await self.body()).decode("utf-8")

    async def json(self) -> Any:
        return json_module.loads(await self.body())

    async def input(self) -> dict[str, Any]:
        """Query parameters overlaid with the body's fields.

        The body counts when it is a JSON object or an urlencoded form. Any
        other body, or one that does not parse, leaves just the query.
        """
        if "input" in self._cache:
            return self._cache["input"]

        data: dict[str, Any] = dict(self.query)
        raw = await self.body()
        if raw and "x-www-form-urlencoded" in self.content_type:
            data.update(QueryParams(raw))
        elif raw and "json" in self.content_type:
            try:
                parsed = json_module.loads(raw)
            except ValueError:
                parsed = None
            if isinstance(parsed, dict):
                data.update(parsed)

        self._cache["input"] = data
        return data
