"""Tool and agent specifications with Pydantic input models.

A spec is plain data: a name, a description, the pydantic model the model's
arguments are validated against, the handler, and optional lifecycle
callbacks. The same spec type is used top-level (``ctx.tool``) and as a
member of a composite (``tool(...)`` inside a list).

Usage:
    class SearchParams(BaseModel):
        query: str
        limit: int = 5

    async def search(params: SearchParams) -> list[str]:
        ...

    ctx.tool("search", "Search the docs", SearchParams, search)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel

from restep.definitions.registry import DefinitionKind

if TYPE_CHECKING:
    from restep.llm.provider import ChatProvider

logger = logging.getLogger(__name__)

# (input) -> value | None ; (input, output) -> value | None ; (input, exc) -> value | None
BeforeCall = Callable[[Any], Any]
OnSuccess = Callable[[Any, Any], Any]
OnError = Callable[[Any, BaseException], Any]


@dataclass
class ToolCallbacks:
    """Lifecycle callbacks. Any of them may be sync or async.

    A callback that returns ``None`` leaves the result alone.
    """

    before_call: BeforeCall | None = None
    on_success: OnSuccess | None = None
    on_error: OnError | None = None


@dataclass
class ToolCallContext:
    """What a handler may use besides its validated input."""

    call_id: str
    name: str
    engine: Any = None
    get_state: Callable[[str], Any] | None = None
    set_state: Callable[[str, Any], None] | None = None


@dataclass
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]
    execute: Callable[..., Any]
    callbacks: ToolCallbacks = field(default_factory=ToolCallbacks)
    response_model: type[BaseModel] | None = None

    @property
    def kind(self) -> DefinitionKind:
        return DefinitionKind.TOOL

    @property
    def is_composite(self) -> bool:
        return False

    def to_openai_spec(self) -> dict[str, Any]:
        return openai_function_spec(self.name, self.description, self.input_model)


@dataclass
class AgentSpec(ToolSpec):
    """A tool whose handler declares and drives a child engine.

    ``execute(args, child_ctx)`` is the child's builder.
    """

    model: str | ChatProvider | None = None
    options: dict[str, Any] | None = None
    system: str | None = None

    @property
    def kind(self) -> DefinitionKind:
        return DefinitionKind.AGENT


@dataclass
class CompositeSpec:
    """Several named members behind one call name.

    The model calls it with ``{"calls": [{"name": ..., "args": {...}}, ...]}``.
    """

    name: str
    description: str
    members: list[ToolSpec]
    agents: bool = False
    input_model: type[BaseModel] = field(init=False)

    def __post_init__(self) -> None:
        from restep.tool.composite import composite_input_model

        names = [m.name for m in self.members]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Composite {self.name!r} has duplicate members: {duplicates}")
        if not self.members:
            raise ValueError(f"Composite {self.name!r} needs at least one member")
        self.input_model = composite_input_model(
            self.name, self.members, "agent" if self.agents else "sub-tool"
        )

    @property
    def kind(self) -> DefinitionKind:
        return DefinitionKind.AGENT if self.agents else DefinitionKind.TOOL

    @property
    def is_composite(self) -> bool:
        return True

    def member(self, name: str) -> ToolSpec | None:
        for m in self.members:
            if m.name == name:
                return m
        return None

    def to_openai_spec(self) -> dict[str, Any]:
        from restep.tool.composite import enhanced_description

        label = "agents" if self.agents else "sub-tools"
        return openai_function_spec(
            self.name,
            enhanced_description(self.description, self.members, label),
            self.input_model,
        )


AnySpec = ToolSpec | CompositeSpec


def openai_function_spec(
    name: str, description: str, input_model: type[BaseModel]
) -> dict[str, Any]:
    """OpenAI function-tool entry for *input_model*."""
    schema = input_model.model_json_schema()
    # $defs must stay for nested $refs.
    schema.pop("title", None)
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": schema,
        },
    }


def tool(
    name: str,
    description: str,
    input_model: type[BaseModel],
    execute: Callable[..., Any],
    *,
    before_call: BeforeCall | None = None,
    on_success: OnSuccess | None = None,
    on_error: OnError | None = None,
    response_model: type[BaseModel] | None = None,
) -> ToolSpec:
    """Build a tool spec, usually as a member of a composite tool."""
    return ToolSpec(
        name=name,
        description=description,
        input_model=input_model,
        execute=execute,
        callbacks=ToolCallbacks(before_call, on_success, on_error),
        response_model=response_model,
    )


def agent(
    name: str,
    description: str,
    input_model: type[BaseModel],
    execute: Callable[..., Any],
    *,
    model: str | ChatProvider | None = None,
    options: dict[str, Any] | None = None,
    system: str | None = None,
    response_model: type[BaseModel] | None = None,
    before_call: BeforeCall | None = None,
    on_success: OnSuccess | None = None,
    on_error: OnError | None = None,
) -> AgentSpec:
    """Build an agent spec, usually as a member of a composite agent."""
    return AgentSpec(
        name=name,
        description=description,
        input_model=input_model,
        execute=execute,
        callbacks=ToolCallbacks(before_call, on_success, on_error),
        response_model=response_model,
        model=model,
        options=options,
        system=system,
    )
