"""Read-only views over registry entries, handed to effects and hooks."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Callable, Iterable

from restep.definitions.registry import DefinitionHandle


class DefinitionCollection:
    """An ordered, name-indexed snapshot of definition handles."""

    def __init__(self, handles: Iterable[DefinitionHandle]) -> None:
        self._handles = list(handles)

    def has(self, name: str) -> bool:
        return any(h.name == name for h in self._handles)

    def get(self, name: str) -> DefinitionHandle | None:
        for h in self._handles:
            if h.name == name:
                return h
        return None

    def names(self) -> list[str]:
        return [h.name for h in self._handles]

    def values(self) -> dict[str, Any]:
        return {h.name: h.value for h in self._handles}

    def filter(self, predicate: Callable[[DefinitionHandle], bool]) -> list[DefinitionHandle]:
        return [h for h in self._handles if predicate(h)]

    def __iter__(self) -> Iterator[DefinitionHandle]:
        return iter(list(self._handles))

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __repr__(self) -> str:
        return f"DefinitionCollection({self.names()!r})"
