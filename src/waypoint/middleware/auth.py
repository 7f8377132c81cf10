"""Authentication middleware: bearer token first, then session.

API clients send ``Authorization: Bearer <token>``; browsers carry the
signed session cookie. The principal lands on the request as
``request.attributes["user"]`` and in ``waypoint.context.get_user()``.

Unauthenticated requests get a 401 JSON error envelope and never reach
the handler, unless the middleware was built with ``required=False``
(identifier ``"auth:optional"``).

Usage::

    app = App(auth=AuthConfig(
        verify_token=tokens.lookup,     # (token: str) -> User | None, sync or async
        load_user=users.get,            # (id: str) -> User | None, sync or async
    ))

    with app.group(prefix="/api", middleware="auth"):
        ...
"""

from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from waypoint._internal.invoke import invoke
from waypoint.context import user_var
from waypoint.errors import ConfigurationError
from waypoint.http import envelope
from waypoint.http.request import Request
from waypoint.middleware.protocol import AnyResponse, Next
from waypoint.middleware.sessions import get_session, regenerate_session
from waypoint.security.audit import emit_security_event


@runtime_checkable
class User(Protocol):
    """Anything with an ``id`` can be a principal."""

    @property
    def id(self) -> Any: ...


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """How ``AuthMiddleware`` finds the principal.

    Attributes:
        session_key: Session key holding the user id.
        token_header: Header carrying the token.
        token_scheme: Scheme before the token, matched ignoring case.
        load_user: ``(user_id) -> user | None`` for session auth.
        verify_token: ``(token) -> user | None`` for token auth.
        message: Error text of the 401 envelope.
    """

    session_key: str = "user_id"
    token_header: str = "Authorization"
    token_scheme: str = "Bearer"
    load_user: Callable[[str], Any] | None = None
    verify_token: Callable[[str], Any] | None = None
    message: str = "Unauthenticated"


# Set by the innermost AuthMiddleware; login() and logout() need it
_active_config: ContextVar[AuthConfig | None] = ContextVar("waypoint_auth_config", default=None)


def _require_auth(caller: str) -> AuthConfig:
    config = _active_config.get()
    if config is None:
        msg = f"{caller}() requires AuthMiddleware to be active."
        raise LookupError(msg)
    return config


def login(user: User) -> None:
    """Make *user* the session's principal.

    The session is regenerated first, so data and id from before login
    are dropped. Needs both session and auth middleware.
    """
    config = _require_auth("login")
    regenerate_session()[config.session_key] = str(user.id)
    user_var.set(user)
    emit_security_event("auth.login.success", user_id=str(user.id))


def logout() -> None:
    _require_auth("logout")
    regenerate_session()
    user_var.set(None)
    emit_security_event("auth.logout.success")


def bearer_token(header: str | None, scheme: str) -> str | None:
    """The token in ``"<scheme> <token>"``, or ``None``."""
    if header is None:
        return None
    given, _, token = header.partition(" ")
    if given.lower() != scheme.lower():
        return None
    return token.strip() or None


class AuthMiddleware:
    """Resolve the principal from a token, then from the session.

    Session auth reads the session, so ``SessionMiddleware`` must run
    first; without it only tokens are checked.
    """

    __slots__ = ("_config", "required")

    def __init__(self, config: AuthConfig | None = None, *, required: bool = True) -> None:
        self._config = config or AuthConfig()
        self.required = required
        if self._config.load_user is None and self._config.verify_token is None:
            msg = "AuthConfig needs 'load_user' (session auth), 'verify_token' (token auth), or both."
            raise ConfigurationError(msg)

    async def _from_token(self, request: Request) -> Any:
        cfg = self._config
        token = bearer_token(request.headers.get(cfg.token_header), cfg.token_scheme)
        if cfg.verify_token is None or token is None:
            return None
        user = await invoke(cfg.verify_token, token)
        if user is None:
            emit_security_event("auth.token.invalid", request=request, details={"scheme": cfg.token_scheme})
        return user

    async def _from_session(self) -> Any:
        cfg = self._config
        if cfg.load_user is None:
            return None
        try:
            user_id = get_session().get(cfg.session_key)
        except LookupError:
            return None
        return await invoke(cfg.load_user, str(user_id)) if user_id else None

    async def __call__(self, request: Request, next: Next) -> AnyResponse:
        user = await self._from_token(request)
        if user is None:
            user = await self._from_session()

        if user is None and self.required:
            challenge = (("WWW-Authenticate", self._config.token_scheme),)
            return envelope.error(self._config.message, status=401, headers=challenge)
        if user is not None:
            request = request.with_attribute("user", user)

        user_token = user_var.set(user)
        config_token = _active_config.set(self._config)
        try:
            return await next(request)
        finally:
            user_var.reset(user_token)
            _active_config.reset(config_token)
