"""Session plumbing: the event wire."""

from restep.session.wire import EventType, Wire, WireEvent

__all__ = [
    "EventType",
    "Wire",
    "WireEvent",
]
