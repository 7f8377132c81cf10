"""Security events.

Authentication outcomes and throttle rejections are logged on the
``waypoint.security`` logger at WARNING. An application may also install
one process-wide sink to forward them elsewhere.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from time import time
from typing import Any

logger = logging.getLogger("waypoint.security")


@dataclass(frozen=True, slots=True)
class SecurityEvent:
    name: str
    timestamp: float = field(default_factory=time)
    path: str | None = None
    method: str | None = None
    ip: str | None = None
    user_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        fields = (self.method, self.path, f"ip={self.ip or '-'}", f"user={self.user_id or '-'}")
        line = " ".join([self.name, *(f or "-" for f in fields)])
        return f"{line} {self.details}" if self.details else line


type SecurityEventSink = Callable[[SecurityEvent], None]


class _SinkSlot:
    """Holds the installed sink; swapped and read under a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sink: SecurityEventSink | None = None

    def swap(self, sink: SecurityEventSink | None) -> None:
        with self._lock:
            self._sink = sink

    def current(self) -> SecurityEventSink | None:
        with self._lock:
            return self._sink


_slot = _SinkSlot()


def set_security_event_sink(sink: SecurityEventSink | None) -> None:
    """Install *sink* for every later event; ``None`` removes it."""
    _slot.swap(sink)


def emit_security_event(
    name: str,
    *,
    request: Any | None = None,
    user_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> SecurityEvent:
    """Record one event. *request* supplies path, method and client ip."""
    event = SecurityEvent(
        name=name,
        path=getattr(request, "path", None),
        method=getattr(request, "method", None),
        ip=getattr(request, "ip", None),
        user_id=user_id,
        details=dict(details or {}),
    )
    logger.warning("%s", event.describe())

    sink = _slot.current()
    if sink is not None:
        sink(event)
    return event
