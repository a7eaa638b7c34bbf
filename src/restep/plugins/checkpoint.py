"""Checkpoints: labelled snapshots of state that can be rewound to.

Snapshots are stored in state ``_checkpoints``. Like every state write,
``save``, ``rewind`` and ``delete`` are enqueued and take effect at the next
flush.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable

logger = logging.getLogger(__name__)

CHECKPOINTS_KEY = "_checkpoints"


@dataclass(frozen=True)
class Checkpoint:
    label: str
    timestamp: float
    state_snapshot: dict[str, Any] = field(default_factory=dict)


class CheckpointManager:
    def __init__(self, engine: Any) -> None:
        self._engine = engine

    def _saved(self) -> list[Checkpoint]:
        return list(self._engine.get_state(CHECKPOINTS_KEY) or [])

    def save(self, label: str, keys: Iterable[str] | None = None) -> Checkpoint:
        """Snapshot *keys* (default: every state key) under *label*.

        An existing checkpoint with the same label is replaced.
        """
        store = self._engine.store
        wanted = list(keys) if keys is not None else store.keys()
        snapshot = {
            k: copy.deepcopy(store.get(k))
            for k in wanted
            if k != CHECKPOINTS_KEY and k in store
        }
        checkpoint = Checkpoint(label=label, timestamp=time.time(), state_snapshot=snapshot)

        def replace(prev: list[Checkpoint] | None) -> list[Checkpoint]:
            kept = [cp for cp in prev or [] if cp.label != label]
            return kept + [checkpoint]

        self._engine.set_state(CHECKPOINTS_KEY, replace)
        logger.debug("Checkpoint %r saved (%d keys)", label, len(snapshot))
        return checkpoint

    def rewind(self, label: str) -> bool:
        """Restore the values saved under *label*; False if unknown."""
        checkpoint = next((cp for cp in self._saved() if cp.label == label), None)
        if checkpoint is None:
            return False
        for key, value in checkpoint.state_snapshot.items():
            self._engine.set_state(key, copy.deepcopy(value))
        logger.info("Rewinding to checkpoint %r", label)
        return True

    def list(self) -> list[Checkpoint]:
        return self._saved()

    def delete(self, label: str) -> bool:
        if not any(cp.label == label for cp in self._saved()):
            return False
        self._engine.set_state(
            CHECKPOINTS_KEY,
            lambda prev: [cp for cp in prev or [] if cp.label != label],
        )
        return True


def define_checkpoints(ctx: Any) -> CheckpointManager:
    """Declare checkpoint storage and return a manager for this engine."""
    ctx.state(CHECKPOINTS_KEY, [])
    return CheckpointManager(ctx.engine)
