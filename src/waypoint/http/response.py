"""Immutable HTTP responses.

Handlers return plain values that negotiation turns into a ``Response``.
Middleware decorates it on the way out; every ``with_*`` call copies.
"""

from __future__ import annotations

import json as json_module
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any, Unpack

from waypoint.http.cookies import CookieAttributes, SetCookie

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


@dataclass(frozen=True, slots=True)
class Response:
    """Status, body, headers and cookies of one response.

    Headers keep their order and may repeat. ``content_type`` is kept apart
    so it is written exactly once.
    """

    body: str | bytes = ""
    status: int = 200
    content_type: str = TEXT_CONTENT_TYPE
    headers: tuple[tuple[str, str], ...] = ()
    cookies: tuple[SetCookie, ...] = ()

    @classmethod
    def json(cls, data: Any, status: int = 200) -> Response:
        """Serialize *data* as a JSON response. Unknown types use ``str()``."""
        return cls(json_module.dumps(data, default=str), status, JSON_CONTENT_TYPE)

    def _append(self, pairs: Iterable[tuple[str, str]]) -> Response:
        return replace(self, headers=self.headers + tuple(pairs))

    def with_status(self, status: int) -> Response:
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        """Add a header. An existing header of the same name is kept."""
        return self._append([(name, value)])

    def with_headers(self, headers: Mapping[str, str]) -> Response:
        return self._append(headers.items())

    def without_header(self, name: str) -> Response:
        """Drop every header called *name*, ignoring case."""
        kept = tuple((k, v) for k, v in self.headers if k.lower() != name.lower())
        return replace(self, headers=kept)

    def with_cookie(self, name: str, value: str, **attributes: Unpack[CookieAttributes]) -> Response:
        return replace(self, cookies=self.cookies + (SetCookie(name, value, **attributes),))

    def without_cookie(self, name: str, path: str = "/") -> Response:
        """Tell the client to drop cookie *name*."""
        return replace(self, cookies=self.cookies + (SetCookie.expired(name, path),))

    def header(self, name: str, default: str | None = None) -> str | None:
        """First value of header *name*, ignoring case."""
        return next((v for k, v in self.headers if k.lower() == name.lower()), default)

    @property
    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8") if isinstance(self.body, str) else self.body

    @property
    def text(self) -> str:
        return self.body.decode("utf-8") if isinstance(self.body, bytes) else self.body

    def json_body(self) -> Any:
        return json_module.loads(self.body_bytes)


@dataclass(frozen=True, slots=True)
class Redirect:
    """A redirect returned by a handler; negotiated into a ``Location`` response."""

    url: str
    status: int = 302
    headers: tuple[tuple[str, str], ...] = ()
