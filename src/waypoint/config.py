"""Application configuration.

AppConfig is a frozen dataclass: immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from waypoint.errors import ConfigurationError

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, secret_key="s3cr3t")
    """

    debug: bool = False

    # Security
    secret_key: str = ""
    # Trust X-Forwarded-For / X-Real-IP when identifying clients
    trusted_proxy_headers: bool = True

    # Request logging (adds the "log" middleware globally)
    log_requests: bool = False

    # "max_attempts,window_minutes" used by a bare "throttle" identifier
    throttle_default: str = "60,1"

    # CORS
    cors_allow_origins: tuple[str, ...] = ()
    cors_allow_methods: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
    cors_allow_headers: tuple[str, ...] = ("Content-Type", "Authorization", "X-Requested-With")
    cors_expose_headers: tuple[str, ...] = ()
    cors_allow_credentials: bool = False
    cors_max_age: int = 86400

    # API versioning
    api_default_version: str = "v1"
    api_supported_versions: tuple[str, ...] = ("v1",)
    api_deprecated_versions: tuple[str, ...] = ()
    api_vendor: str = "waypoint"

    # Middleware groups: name -> identifiers
    middleware_groups: Mapping[str, tuple[str, ...]] | None = None

    @classmethod
    def from_env(cls, prefix: str = "WAYPOINT_", environ: Mapping[str, str] | None = None) -> "AppConfig":
        """Build a config from environment variables.

        ``WAYPOINT_DEBUG=1`` sets ``debug``, ``WAYPOINT_API_SUPPORTED_VERSIONS=v1,v2``
        sets a tuple. Unset variables keep their defaults.
        ``middleware_groups`` is not read from the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name == "middleware_groups":
                continue
            key = f"{prefix}{f.name.upper()}"
            if key not in env:
                continue
            values[f.name] = _coerce(key, env[key], f.default)
        return cls(**values)


def _coerce(key: str, raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        msg = f"{key}={raw!r} is not a boolean (use 1/0, true/false, yes/no, on/off)."
        raise ConfigurationError(msg)
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            msg = f"{key}={raw!r} is not an integer."
            raise ConfigurationError(msg) from None
    if isinstance(default, tuple):
        return tuple(item.strip() for item in raw.split(",") if item.strip())
    return raw
