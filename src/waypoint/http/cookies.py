"""Cookie header parsing and Set-Cookie directives."""

from dataclasses import dataclass
from typing import TypedDict


def parse_cookies(header: str) -> dict[str, str]:
    """Name-value pairs of a ``Cookie`` header. Pairs without ``=`` are skipped."""
    pairs = (chunk.partition("=") for chunk in header.split(";"))
    return {name.strip(): value.strip() for name, sep, value in pairs if sep and name.strip()}


class CookieAttributes(TypedDict, total=False):
    max_age: int | None
    path: str
    domain: str | None
    secure: bool
    httponly: bool
    samesite: str


@dataclass(frozen=True, slots=True)
class SetCookie:
    name: str
    value: str
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"

    @classmethod
    def expired(cls, name: str, path: str = "/") -> "SetCookie":
        return cls(name, "", max_age=0, path=path)

    def to_header_value(self) -> str:
        """Render as a ``Set-Cookie`` header value."""
        attributes = {
            "Max-Age": self.max_age,
            "Path": self.path,
            "Domain": self.domain,
            "Secure": self.secure,
            "HttpOnly": self.httponly,
            "SameSite": self.samesite,
        }
        parts = [f"{self.name}={self.value}"]
        for key, value in attributes.items():
            if isinstance(value, bool):
                if value:
                    parts.append(key)
            elif value is not None and value != "":
                parts.append(f"{key}={value}")
        return "; ".join(parts)
