"""Per-round hooks that narrow the active definitions.

Hooks never touch the registry. Each one sees the candidates left by the
previous hook and may return a :class:`HookResult` naming the subset to keep;
fields left as ``None`` keep every candidate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from restep.definitions.registry import Definition, DefinitionHandle

logger = logging.getLogger(__name__)


@dataclass
class HookInput:
    round_index: int
    systems: list[DefinitionHandle] = field(default_factory=list)
    variables: list[DefinitionHandle] = field(default_factory=list)
    tools: list[DefinitionHandle] = field(default_factory=list)

    @property
    def system_names(self) -> list[str]:
        return [h.name for h in self.systems]

    @property
    def variable_names(self) -> list[str]:
        return [h.name for h in self.variables]

    @property
    def tool_names(self) -> list[str]:
        return [h.name for h in self.tools]


@dataclass
class HookResult:
    """Names (or handles) to keep; ``None`` keeps all candidates."""

    active_systems: Iterable[str | DefinitionHandle] | None = None
    active_variables: Iterable[str | DefinitionHandle] | None = None
    active_tools: Iterable[str | DefinitionHandle] | None = None


HookCallback = Callable[[HookInput], HookResult | None]


class HookPipeline:
    def __init__(self) -> None:
        self._hooks: list[HookCallback] = []

    def register(self, callback: HookCallback) -> None:
        self._hooks.append(callback)

    def clear(self) -> None:
        self._hooks = []

    def __len__(self) -> int:
        return len(self._hooks)

    def run(
        self,
        round_index: int,
        systems: list[Definition],
        variables: list[Definition],
        tools: list[Definition],
    ) -> tuple[list[Definition], list[Definition], list[Definition]]:
        """Apply every hook in order; returns the narrowed (systems, variables, tools)."""
        for hook in self._hooks:
            result = hook(
                HookInput(
                    round_index=round_index,
                    systems=_handles(systems),
                    variables=_handles(variables),
                    tools=_handles(tools),
                )
            )
            if result is None:
                continue
            if not isinstance(result, HookResult):
                raise TypeError(
                    f"Hook {getattr(hook, '__name__', hook)!r} returned "
                    f"{type(result).__name__}, expected HookResult or None"
                )
            systems = _narrow(systems, result.active_systems)
            variables = _narrow(variables, result.active_variables)
            tools = _narrow(tools, result.active_tools)
        return systems, variables, tools


def _handles(entries: list[Definition]) -> list[DefinitionHandle]:
    return [e.handle for e in entries if e.handle is not None]


def _narrow(candidates: list[Definition], keep: Iterable[Any] | None) -> list[Definition]:
    if keep is None:
        return candidates
    names = {k.name if isinstance(k, DefinitionHandle) else str(k) for k in keep}
    unknown = names - {c.name for c in candidates}
    if unknown:
        logger.debug("Hook named non-candidates %s; ignored", sorted(unknown))
    return [c for c in candidates if c.name in names]
