"""API version negotiation.

The version comes from the path (``/api/v2/users``) or, failing that,
from a vendor media type in ``Accept`` (``application/vnd.acme.v2+json``).
Unsupported or absent versions fall back to the default. The result is
attached to the request as ``attributes["api_version"]`` (``"v2"``) and
``attributes["api_version_number"]`` (``2``).
"""

import re
from dataclasses import dataclass

from waypoint.http.request import Request
from waypoint.middleware.protocol import AnyResponse, Next

_PATH_VERSION = re.compile(r"/v(\d+)(?:/|$)")
_VERSION_SUFFIX = r"\.v(\d+)(?:\+|\s|;|$)"
_ACCEPT_VERSION = re.compile(_VERSION_SUFFIX, re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ApiVersionConfig:
    default_version: str = "v1"
    supported_versions: tuple[str, ...] = ("v1",)
    deprecated_versions: tuple[str, ...] = ()
    # Only ``application/vnd.<vendor>.vN`` counts when set
    vendor: str | None = None


def version_from_path(path: str) -> str | None:
    match = _PATH_VERSION.search(path)
    return f"v{match.group(1)}" if match else None


def version_from_accept(accept: str | None, vendor: str | None = None) -> str | None:
    if not accept:
        return None
    if vendor is None:
        match = _ACCEPT_VERSION.search(accept)
    else:
        match = re.search(rf"vnd\.{re.escape(vendor)}{_VERSION_SUFFIX}", accept, re.IGNORECASE)
    return f"v{match.group(1)}" if match else None


class ApiVersionMiddleware:
    """Resolve the API version and flag deprecated ones.

    Responses to a deprecated version carry ``X-API-Version-Deprecated:
    true`` and a human-readable ``X-API-Deprecation-Info``. Every response
    carries ``X-API-Version``.
    """

    __slots__ = ("config",)

    def __init__(self, config: ApiVersionConfig | None = None) -> None:
        self.config = config or ApiVersionConfig()

    def resolve(self, request: Request) -> str:
        version = version_from_path(request.path) or version_from_accept(
            request.headers.get("accept"), self.config.vendor
        )
        if version is None or version not in self.config.supported_versions:
            return self.config.default_version
        return version

    async def __call__(self, request: Request, next: Next) -> AnyResponse:
        version = self.resolve(request)
        number = re.search(r"\d+", version)
        request = request.with_attribute("api_version", version).with_attribute(
            "api_version_number", int(number.group()) if number else 1
        )

        response = await next(request)
        response = response.with_header("X-API-Version", version)
        if version in self.config.deprecated_versions:
            response = response.with_header("X-API-Version-Deprecated", "true").with_header(
                "X-API-Deprecation-Info",
                f"API version {version} is deprecated. Please migrate to a newer version.",
            )
        return response
