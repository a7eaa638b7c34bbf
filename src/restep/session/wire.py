"""Wire protocol: decouples the engine from whoever watches it.

Engines publish round, text, tool and agent events; the CLI (or a test)
subscribes and renders them. Child engines share their parent's wire and tag
their events with an ``agent`` label.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    ROUND_BEGIN = "round_begin"
    ROUND_END = "round_end"
    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    AGENT_BEGIN = "agent_begin"
    AGENT_END = "agent_end"
    ERROR = "error"
    STATUS = "status"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: engine -> subscribers.

    Single-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def emit(self, type: EventType, agent: str | None = None, **data: Any) -> None:
        if agent:
            data["agent"] = agent
        self.send(WireEvent(type=type, data=data))

    def send_text(self, text: str, agent: str | None = None) -> None:
        self.emit(EventType.TEXT, agent, text=text)

    def send_status(self, message: str) -> None:
        self.emit(EventType.STATUS, message=message)

    def send_error(self, error: str, agent: str | None = None) -> None:
        self.emit(EventType.ERROR, agent, error=error)

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
