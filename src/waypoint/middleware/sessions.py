"""Session middleware: signed cookie sessions.

The cookie holds ``{"id": ..., "seen": ..., "data": {...}}`` signed with
``itsdangerous``. Handlers work with ``data`` through ``get_session()``.
The ``id`` is rotated by ``regenerate_session()``, which ``login()`` and
``logout()`` call, so a session id seen before authentication is never
the one that carries the principal.

Empty sessions are not stored: a request that ends with no session data
sets no cookie, and expires one the client already holds.
"""

import secrets
from collections.abc import Mapping
from contextvars import ContextVar
from dataclasses import dataclass
from time import time
from typing import Any

from itsdangerous import BadData, URLSafeTimedSerializer

from waypoint.errors import ConfigurationError
from waypoint.http.request import Request
from waypoint.middleware.protocol import AnyResponse, Next


def _new_id() -> str:
    return secrets.token_urlsafe(16)


class Session(dict[str, Any]):
    """Session data for one request, plus the session id."""

    def __init__(self, data: Mapping[str, Any] | None = None, *, id: str | None = None) -> None:
        super().__init__(data or {})
        self.id = id or _new_id()

    def regenerate(self) -> None:
        """Drop all data and issue a new id."""
        self.clear()
        self.id = _new_id()


_session_var: ContextVar[Session | None] = ContextVar("waypoint_session", default=None)


def get_session() -> Session:
    """Return the current session.

    Raises ``LookupError`` outside a request that runs ``SessionMiddleware``.
    """
    session = _session_var.get()
    if session is None:
        msg = "No active session. Put the 'session' middleware before anything that reads it."
        raise LookupError(msg)
    return session


def regenerate_session() -> Session:
    """Clear the current session, give it a new id, and return it."""
    session = get_session()
    session.regenerate()
    return session


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Cookie and expiry settings. Sessions are signed, not encrypted."""

    secret_key: str
    cookie_name: str = "waypoint_session"
    max_age: int = 86400
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"
    # Seconds of inactivity after which a session is dropped
    idle_timeout_seconds: int | None = None


class SessionMiddleware:
    """Load the session before ``next`` and sign it onto the response.

    Stored sessions are re-signed on every response, so both ``max_age``
    and the idle timeout count from the latest request.

    Usage::

        app.use("session")

        @app.get("/visits")
        def visits():
            session = get_session()
            session["visits"] = session.get("visits", 0) + 1
            return {"visits": session["visits"]}
    """

    __slots__ = ("_config", "_serializer")

    def __init__(self, config: SessionConfig) -> None:
        if not config.secret_key:
            msg = "SessionConfig.secret_key must not be empty (set AppConfig.secret_key)."
            raise ConfigurationError(msg)
        self._config = config
        self._serializer = URLSafeTimedSerializer(config.secret_key, salt="waypoint.session")

    def decode(self, cookie_value: str) -> Session | None:
        """Verify a cookie value; ``None`` when it is invalid or idle too long."""
        try:
            payload = self._serializer.loads(cookie_value, max_age=self._config.max_age)
        except BadData:
            return None
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            return None

        idle = self._config.idle_timeout_seconds
        if idle is not None:
            seen = payload.get("seen")
            if not isinstance(seen, int | float) or time() - seen > idle:
                return None

        session_id = payload.get("id")
        return Session(payload["data"], id=session_id if isinstance(session_id, str) else None)

    def encode(self, session: Session) -> str:
        return self._serializer.dumps({"id": session.id, "seen": time(), "data": dict(session)})

    async def __call__(self, request: Request, next: Next) -> AnyResponse:
        cfg = self._config
        cookie_value = request.cookies.get(cfg.cookie_name)
        session = self.decode(cookie_value) if cookie_value else None
        if session is None:
            session = Session()

        token = _session_var.set(session)
        try:
            response = await next(request)
        finally:
            _session_var.reset(token)

        if session:
            return response.with_cookie(
                name=cfg.cookie_name,
                value=self.encode(session),
                max_age=cfg.max_age,
                path=cfg.path,
                domain=cfg.domain,
                secure=cfg.secure,
                httponly=cfg.httponly,
                samesite=cfg.samesite,
            )
        if cookie_value is not None:
            return response.without_cookie(cfg.cookie_name, path=cfg.path)
        return response
