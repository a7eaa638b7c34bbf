"""Keyed persistent state with a deferred update queue.

Values declared through :meth:`StateStore.declare` live for the whole
conversation. Setters never write through; they enqueue an update that is
applied on the next :meth:`StateStore.flush`, which the round driver calls
once before each builder pass. Callable updates receive the value resolved
at flush time, so several sequential ``setter(lambda prev: prev + 1)`` calls
compose left to right.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


class _Absent:
    """Sentinel for keys that were never declared."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Any = _Absent()

Setter = Callable[[Any], None]


@dataclass
class _PendingUpdate:
    key: str
    update: Any  # a value, or a callable taking the previous value


class StateStore:
    """Conversation-lifetime key/value store."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._pending: deque[_PendingUpdate] = deque()

    def declare(self, key: str, initial: Any) -> tuple[Any, Setter]:
        """Return ``(current value, setter)`` for *key*.

        The initial value is stored on first declaration only; later
        declarations return whatever is resolved now.
        """
        if key not in self._values:
            self._values[key] = initial
            logger.debug("State %r declared", key)
        return self._values[key], self.setter(key)

    def setter(self, key: str) -> Setter:
        """Build the setter bound to *key*."""

        def set_value(update: Any) -> None:
            self.enqueue(key, update)

        set_value.__name__ = f"set_{key}"
        return set_value

    def enqueue(self, key: str, update: Any) -> None:
        """Queue *update* (a value or ``prev -> next`` callable) for *key*."""
        self._pending.append(_PendingUpdate(key, update))

    def flush(self) -> list[str]:
        """Apply every queued update in enqueue order.

        Returns the keys that were touched, in first-touch order.
        """
        touched: list[str] = []
        while self._pending:
            item = self._pending.popleft()
            prev = self._values.get(item.key, ABSENT)
            if callable(item.update):
                value = item.update(None if prev is ABSENT else prev)
            else:
                value = item.update
            self._values[item.key] = value
            if item.key not in touched:
                touched.append(item.key)
        if touched:
            logger.debug("Flushed state updates for %s", ", ".join(touched))
        return touched

    def get(self, key: str) -> Any:
        """Current resolved value, or :data:`ABSENT` if never declared."""
        return self._values.get(key, ABSENT)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def keys(self) -> list[str]:
        return list(self._values)

    def snapshot(self) -> dict[str, Any]:
        """Shallow copy of all resolved values."""
        return dict(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)
