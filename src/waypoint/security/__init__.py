"""Security utilities: throttle counters and security events.

Forward authentication failures and throttle rejections elsewhere::

    from waypoint.security import set_security_event_sink

    set_security_event_sink(lambda event: metrics.increment(event.name))
"""

from waypoint.security.audit import SecurityEvent, emit_security_event, set_security_event_sink
from waypoint.security.rate_limit import CounterStore, Hit, MemoryCounterStore

__all__ = [
    "CounterStore",
    "Hit",
    "MemoryCounterStore",
    "SecurityEvent",
    "emit_security_event",
    "set_security_event_sink",
]
