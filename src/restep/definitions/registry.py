"""Definition registry and per-pass reconciliation.

Every builder pass re-declares the variables, system sections, tools and
agents it wants the model to see. The registry remembers what the previous
pass declared; after a pass, :meth:`DefinitionRegistry.reconcile` retracts
whatever was not declared again and admits the new names. Names that survive
keep their entry (and handle) and only refresh their spec.

Tools and agents share one namespace, as do text and data variables.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


class DefinitionKind(enum.Enum):
    VARIABLE = "variable"
    SYSTEM = "system"
    TOOL = "tool"
    AGENT = "agent"

    @property
    def namespace(self) -> str:
        if self in (DefinitionKind.TOOL, DefinitionKind.AGENT):
            return "tool"
        return self.value


@dataclass
class Definition:
    """One registry entry."""

    name: str
    kind: DefinitionKind
    spec: Any
    fmt: str = "text"  # variables only: "text" or "data"
    admitted_round: int = 0
    seen: bool = True
    reminded: bool = False
    disabled: bool = False
    handle: DefinitionHandle | None = field(default=None, repr=False)


class DefinitionHandle:
    """Stable reference returned by every declaration.

    Interpolating a handle into a template (see
    :func:`restep.assembly.render_template`) inserts :meth:`tag`, the
    placeholder the model sees in place of the value. The handle stays the
    same object across passes for as long as the definition is not
    retracted.
    """

    def __init__(self, registry: DefinitionRegistry, entry: Definition) -> None:
        self._registry = registry
        self._entry = entry

    @property
    def name(self) -> str:
        return self._entry.name

    @property
    def kind(self) -> DefinitionKind:
        return self._entry.kind

    @property
    def value(self) -> Any:
        return self._entry.spec

    @property
    def fmt(self) -> str:
        return self._entry.fmt

    @property
    def is_live(self) -> bool:
        """False once the definition was retracted."""
        return self._registry.entry(self._entry.kind, self._entry.name) is self._entry

    @property
    def is_disabled(self) -> bool:
        return self._entry.disabled

    @property
    def is_reminded(self) -> bool:
        return self._entry.reminded

    def tag(self) -> str:
        return f"<{self._entry.name}>"

    def remind(self) -> DefinitionHandle:
        """Emphasize this definition in the next assembled system text."""
        self._registry.mark_reminded(self._entry)
        return self

    def disable(self) -> DefinitionHandle:
        """Leave this definition out of the current round's input."""
        self._entry.disabled = True
        logger.debug("Disabled %s %r", self._entry.kind.value, self._entry.name)
        return self

    def enable(self) -> DefinitionHandle:
        self._entry.disabled = False
        return self

    def __repr__(self) -> str:
        return f"DefinitionHandle({self._entry.kind.value}, {self._entry.name!r})"


@dataclass
class ReconcileReport:
    admitted: list[str] = field(default_factory=list)
    retracted: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)


class DefinitionRegistry:
    """Owns every :class:`Definition` of one engine."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], Definition] = {}
        self._admitted: list[tuple[str, str]] = []
        self._changed: list[tuple[str, str]] = []
        self._reminders: list[dict[str, str]] = []
        self._round = 0

    # --- Pass lifecycle ---

    def begin_pass(self, round_index: int) -> None:
        """Start a builder pass: nothing is seen yet, round-local flags reset."""
        self._round = round_index
        self._admitted = []
        self._changed = []
        for entry in self._entries.values():
            entry.seen = False
            entry.reminded = False
            entry.disabled = False

    def declare(
        self, kind: DefinitionKind, name: str, spec: Any, fmt: str = "text"
    ) -> DefinitionHandle:
        """Declare (or re-declare) a definition in the current pass."""
        key = (kind.namespace, name)
        entry = self._entries.get(key)
        if entry is None:
            entry = Definition(
                name=name, kind=kind, spec=spec, fmt=fmt, admitted_round=self._round
            )
            entry.handle = DefinitionHandle(self, entry)
            self._entries[key] = entry
            self._admitted.append(key)
            return entry.handle

        if _differs(entry, kind, spec, fmt) and key not in self._admitted:
            self._changed.append(key)
        entry.kind = kind
        entry.spec = spec
        entry.fmt = fmt
        entry.seen = True
        assert entry.handle is not None
        return entry.handle

    def reconcile(self) -> ReconcileReport:
        """Retract definitions the last pass did not declare."""
        report = ReconcileReport(
            admitted=[name for _, name in self._admitted],
            changed=[name for _, name in self._changed],
        )
        for key in [k for k, e in self._entries.items() if not e.seen]:
            entry = self._entries.pop(key)
            report.retracted.append(entry.name)
            logger.debug("Retracted %s %r", entry.kind.value, entry.name)
        for name in report.admitted:
            logger.debug("Admitted %r in round %d", name, self._round)
        return report

    # --- Lookup ---

    def entry(self, kind: DefinitionKind, name: str) -> Definition | None:
        return self._entries.get((kind.namespace, name))

    def get(self, kind: DefinitionKind, name: str) -> DefinitionHandle | None:
        entry = self.entry(kind, name)
        return entry.handle if entry else None

    def entries(self, *kinds: DefinitionKind) -> list[Definition]:
        """Live entries of the given kinds, in first-declaration order."""
        return [e for e in self._entries.values() if not kinds or e.kind in kinds]

    def handles(self, *kinds: DefinitionKind) -> list[DefinitionHandle]:
        return [e.handle for e in self.entries(*kinds) if e.handle is not None]

    def variables(self) -> list[Definition]:
        return self.entries(DefinitionKind.VARIABLE)

    def systems(self) -> list[Definition]:
        return self.entries(DefinitionKind.SYSTEM)

    def tools(self) -> list[Definition]:
        return self.entries(DefinitionKind.TOOL, DefinitionKind.AGENT)

    def names(self, *kinds: DefinitionKind) -> list[str]:
        return [e.name for e in self.entries(*kinds)]

    def __len__(self) -> int:
        return len(self._entries)

    # --- Reminders ---

    def mark_reminded(self, entry: Definition) -> None:
        entry.reminded = True
        item = {"kind": entry.kind.value, "name": entry.name}
        if item not in self._reminders:
            self._reminders.append(item)

    def reminded(self) -> list[Definition]:
        """Entries flagged for emphasis in the current round."""
        return [e for e in self._entries.values() if e.reminded]

    def reminded_items(self) -> list[dict[str, str]]:
        """Definitions reminded since the last :meth:`consume_reminders`."""
        return [dict(item) for item in self._reminders]

    def consume_reminders(self) -> list[dict[str, str]]:
        items = self.reminded_items()
        self._reminders.clear()
        return items


def _differs(entry: Definition, kind: DefinitionKind, spec: Any, fmt: str) -> bool:
    """Value equality for variables and systems, identity for tools and agents."""
    if entry.kind is not kind or entry.fmt != fmt:
        return True
    if kind.namespace == "tool":
        return getattr(entry.spec, "execute", entry.spec) is not getattr(spec, "execute", spec)
    try:
        return bool(entry.spec != spec)
    except Exception:
        # Values without a usable __eq__ (e.g. numpy arrays) count as changed
        return True
