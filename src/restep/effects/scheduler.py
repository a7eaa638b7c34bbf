"""Dependency-gated effects.

The builder re-registers its effects on every pass. The scheduler correlates
the *n*-th registration of one pass with the *n*-th of the previous pass and
decides whether it runs:

    deps is None  -> every round
    deps == []    -> first time only
    otherwise     -> when any resolved element differs (``!=``) from the
                     snapshot taken the last time the effect ran

The snapshot is taken before the callback runs, so a callback that enqueues
an update to its own dependency runs again once that update is visible.
"""

from __future__ import annotations

import copy
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from restep.definitions.registry import DefinitionHandle

logger = logging.getLogger(__name__)

EffectCallback = Callable[[Any, Callable[..., None]], Any]


@dataclass
class Effect:
    id: int
    callback: EffectCallback
    dependencies: list[Any] | None


class EffectScheduler:
    """Registers effects for one pass and runs the ones that are due."""

    def __init__(self) -> None:
        self._effects: list[Effect] = []
        self._snapshots: dict[int, list[Any]] = {}

    def register(
        self, callback: EffectCallback, dependencies: Sequence[Any] | None = None
    ) -> int:
        effect = Effect(
            id=len(self._effects),
            callback=callback,
            dependencies=None if dependencies is None else list(dependencies),
        )
        self._effects.append(effect)
        return effect.id

    def clear(self) -> None:
        """Drop this pass's registrations; dependency snapshots survive."""
        self._effects = []

    def reset(self) -> None:
        self._effects = []
        self._snapshots.clear()

    @property
    def effects(self) -> list[Effect]:
        return list(self._effects)

    def should_run(self, effect: Effect) -> bool:
        if effect.id not in self._snapshots:
            return True
        if effect.dependencies is None:
            return True
        return not _deps_equal(self._snapshots[effect.id], _resolve_all(effect.dependencies))

    def process(self, round_ctx: Any, step: Callable[..., None]) -> list[int]:
        """Run due effects in registration order; returns the ids that ran."""
        ran: list[int] = []
        for effect in self._effects:
            if not self.should_run(effect):
                continue
            deps = effect.dependencies if effect.dependencies is not None else []
            self._snapshots[effect.id] = _snapshot(_resolve_all(deps))
            result = effect.callback(round_ctx, step)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError(
                    f"Effect {getattr(effect.callback, '__name__', effect.id)!r} "
                    "returned an awaitable; effects must be synchronous"
                )
            ran.append(effect.id)
        if ran:
            logger.debug("Ran effects %s of %d", ran, len(self._effects))
        return ran


def _resolve(value: Any) -> Any:
    """Definition handles compare by their underlying value."""
    if isinstance(value, DefinitionHandle):
        return value.value
    return value


def _resolve_all(values: list[Any]) -> list[Any]:
    return [_resolve(v) for v in values]


def _snapshot(values: list[Any]) -> list[Any]:
    snap = []
    for v in values:
        try:
            snap.append(copy.deepcopy(v))
        except (TypeError, copy.Error):
            snap.append(v)
    return snap


def _deps_equal(a: list[Any], b: list[Any]) -> bool:
    if len(a) != len(b):
        return False
    for x, y in zip(a, b):
        if x is y:
            continue
        try:
            if x != y:
                return False
        except Exception:
            # Ambiguous comparisons (e.g. array-likes) count as a change
            return False
    return True
