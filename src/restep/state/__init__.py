"""Persistent conversation state."""

from restep.state.store import ABSENT, Setter, StateStore

__all__ = [
    "ABSENT",
    "Setter",
    "StateStore",
]
