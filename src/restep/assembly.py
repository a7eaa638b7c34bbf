"""Step assembly and the round-local override protocol.

The assembler turns the active definitions and the persistent message
history into one :class:`RoundInput`. Effects can replace whole aspects of
that input through :class:`StepOverrides`; the replacement only exists on
the round input and never reaches the registry, the state store or the
persistent history.

System text layout::

    <name>
    section text
    </name>
    ...
    <variables>
      <NAME>
     text value
      </NAME>
      <DATA>
    yaml: value
      </DATA>
    </variables>
    <reminder>
    ...
    </reminder>
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import yaml
from pydantic import BaseModel

from restep.definitions.registry import (
    Definition,
    DefinitionHandle,
    DefinitionKind,
    DefinitionRegistry,
)
from restep.errors import EngineError, ErrorCodes
from restep.llm.message import Message
from restep.tool.base import AnySpec, CompositeSpec, ToolSpec

logger = logging.getLogger(__name__)

ASPECTS = ("messages", "tools", "systems", "variables")


@dataclass(frozen=True)
class SystemSection:
    name: str
    text: str


@dataclass(frozen=True)
class Variable:
    name: str
    value: Any
    fmt: str = "text"  # "text" or "data"


@dataclass
class RoundInput:
    """Everything sent to the model for one round."""

    round_index: int
    system: str
    messages: list[Message]
    tools: list[AnySpec] = field(default_factory=list)
    systems: list[SystemSection] = field(default_factory=list)
    variables: list[Variable] = field(default_factory=list)
    reminders: list[str] = field(default_factory=list)
    overridden: tuple[str, ...] = ()

    @property
    def tool_names(self) -> list[str]:
        return [t.name for t in self.tools]

    def tool(self, name: str) -> AnySpec | None:
        for t in self.tools:
            if t.name == name:
                return t
        return None

    def tool_table(self) -> list[dict[str, Any]]:
        return [t.to_openai_spec() for t in self.tools]


class StepOverrides:
    """The ``step`` callable handed to effects.

    ``step(aspect, items)`` replaces *aspect* for this round. A later call
    for the same aspect wins.

    ``step.extend(aspect, items)`` adds items instead. Without a replacement
    they land on top of the round's active (post-hook, non-disabled) items,
    otherwise on top of the replacement. An extension item replaces an item
    of the same name. A later replacement drops earlier extensions.
    """

    def __init__(self) -> None:
        self._items: dict[str, list[Any]] = {}
        self._extra: dict[str, list[Any]] = {}

    def __call__(self, aspect: str, items: Iterable[Any]) -> None:
        _check_aspect(aspect)
        self._items[aspect] = list(items)
        self._extra.pop(aspect, None)
        logger.debug("Step override for %s (%d items)", aspect, len(self._items[aspect]))

    def extend(self, aspect: str, items: Iterable[Any]) -> None:
        _check_aspect(aspect)
        items = list(items)
        self._extra.setdefault(aspect, []).extend(items)
        logger.debug("Step extension for %s (%d items)", aspect, len(items))

    def get(self, aspect: str) -> list[Any] | None:
        return self._items.get(aspect)

    def extra(self, aspect: str) -> list[Any]:
        return self._extra.get(aspect, [])

    @property
    def aspects(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys([*self._items, *self._extra]))

    def __contains__(self, aspect: object) -> bool:
        return aspect in self._items or aspect in self._extra

    def __bool__(self) -> bool:
        return bool(self._items or self._extra)


def _check_aspect(aspect: str) -> None:
    if aspect not in ASPECTS:
        raise EngineError(
            f"Unknown step aspect {aspect!r}; expected one of {', '.join(ASPECTS)}",
            ErrorCodes.INVALID_ASPECT,
        )


def _merge(items: list[Any], extra: list[Any]) -> list[Any]:
    """Append *extra*; an extra item replaces an existing one of the same name."""
    merged = list(items)
    for item in extra:
        names = [getattr(m, "name", None) for m in merged]
        name = getattr(item, "name", None)
        if name is not None and name in names:
            merged[names.index(name)] = item
        else:
            merged.append(item)
    return merged


def render_template(template: str, **values: Any) -> str:
    """Fill ``{name}`` fields; definition handles become their tag.

    Without values the template is returned untouched, braces and all.
    """
    if not values:
        return template
    resolved = {
        k: v.tag() if isinstance(v, DefinitionHandle) else v for k, v in values.items()
    }
    return template.format_map(resolved)


def render_variable(var: Variable) -> str:
    if var.fmt == "data":
        return f"  <{var.name}>\n{to_yaml(var.value)}\n  </{var.name}>"
    return f"  <{var.name}>\n {var.value}\n  </{var.name}>"


def to_yaml(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    return yaml.safe_dump(
        value, sort_keys=False, default_flow_style=False, allow_unicode=True
    ).rstrip("\n")


def render_system(
    systems: list[SystemSection], variables: list[Variable], reminders: list[str]
) -> str:
    parts = [f"<{s.name}>\n{s.text}\n</{s.name}>" for s in systems]
    if variables:
        body = "\n".join(render_variable(v) for v in variables)
        parts.append(f"<variables>\n{body}\n</variables>")
    if reminders:
        body = "\n".join(f"- {r}" for r in reminders)
        parts.append(
            "<reminder>\nPay particular attention to these definitions:\n"
            f"{body}\n</reminder>"
        )
    return "\n\n".join(parts)


class StepAssembler:
    def __init__(self, registry: DefinitionRegistry) -> None:
        self._registry = registry

    def assemble(
        self,
        round_index: int,
        messages: list[Message],
        systems: list[Definition],
        variables: list[Definition],
        tools: list[Definition],
        overrides: StepOverrides | None = None,
    ) -> RoundInput:
        """Build the round input from active definitions, then apply overrides."""
        section_list = [SystemSection(e.name, str(e.spec)) for e in systems]
        variable_list = [Variable(e.name, e.spec, e.fmt) for e in variables]
        tool_list: list[AnySpec] = [e.spec for e in tools]
        message_list = list(messages)
        reminders = [
            f"{e.kind.value} <{e.name}>" for e in self._registry.reminded()
        ]

        overrides = overrides or StepOverrides()
        if (items := overrides.get("messages")) is not None:
            message_list = [m for m in items if self._check_message(m)]
        if (items := overrides.get("tools")) is not None:
            tool_list = [t for t in (self._resolve_tool(i) for i in items) if t is not None]
        if (items := overrides.get("systems")) is not None:
            section_list = [
                s for s in (self._resolve_system(i) for i in items) if s is not None
            ]
        if (items := overrides.get("variables")) is not None:
            variable_list = [
                v for v in (self._resolve_variable(i) for i in items) if v is not None
            ]

        if extra := overrides.extra("messages"):
            message_list += [m for m in extra if self._check_message(m)]
        if extra := overrides.extra("tools"):
            tool_list = _merge(
                tool_list, [t for t in map(self._resolve_tool, extra) if t is not None]
            )
        if extra := overrides.extra("systems"):
            section_list = _merge(
                section_list, [s for s in map(self._resolve_system, extra) if s is not None]
            )
        if extra := overrides.extra("variables"):
            variable_list = _merge(
                variable_list, [v for v in map(self._resolve_variable, extra) if v is not None]
            )

        return RoundInput(
            round_index=round_index,
            system=render_system(section_list, variable_list, reminders),
            messages=message_list,
            tools=tool_list,
            systems=section_list,
            variables=variable_list,
            reminders=reminders,
            overridden=overrides.aspects,
        )

    # --- Override item resolution ---

    def _check_message(self, item: Any) -> bool:
        if isinstance(item, Message):
            return True
        logger.warning("Skipping messages override item %r: not a Message", item)
        return False

    def _resolve_tool(self, item: Any) -> AnySpec | None:
        if isinstance(item, (ToolSpec, CompositeSpec)):
            return item
        name = item.name if isinstance(item, DefinitionHandle) else item
        handle = self._registry.get(DefinitionKind.TOOL, str(name))
        if handle is None:
            logger.warning("Skipping tools override item %r: no such tool", name)
            return None
        return handle.value

    def _resolve_system(self, item: Any) -> SystemSection | None:
        if isinstance(item, SystemSection):
            return item
        if isinstance(item, tuple) and len(item) == 2:
            return SystemSection(str(item[0]), str(item[1]))
        name = item.name if isinstance(item, DefinitionHandle) else item
        handle = self._registry.get(DefinitionKind.SYSTEM, str(name))
        if handle is None:
            logger.warning("Skipping systems override item %r: no such system", name)
            return None
        return SystemSection(handle.name, str(handle.value))

    def _resolve_variable(self, item: Any) -> Variable | None:
        if isinstance(item, Variable):
            return item
        name = item.name if isinstance(item, DefinitionHandle) else item
        handle = self._registry.get(DefinitionKind.VARIABLE, str(name))
        if handle is None:
            logger.warning("Skipping variables override item %r: no such variable", name)
            return None
        return Variable(handle.name, handle.value, handle.fmt)
