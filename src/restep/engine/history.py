"""Round records: the simplified and the full per-attempt history."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from restep.assembly import RoundInput
from restep.llm.message import Message, TokenUsage


@dataclass(frozen=True)
class LastToolInfo:
    """The most recently dispatched call, as effects see it."""

    name: str
    arguments: dict[str, Any]
    output: Any
    is_error: bool = False


@dataclass
class AgentRun:
    """A child engine's conversation, kept on the parent's tool result."""

    agent: str
    text: str
    outcome: str
    history: list[RoundRecord] = field(default_factory=list)
    full_history: list[RoundAttempt] = field(default_factory=list)


@dataclass
class ToolResultRecord:
    call_id: str
    name: str
    arguments: dict[str, Any]
    output: Any
    content: str
    is_error: bool = False
    status: str = "success"
    agent_runs: list[AgentRun] = field(default_factory=list)


@dataclass(frozen=True)
class RoundRecord:
    """One round, as the model saw it and answered it."""

    index: int
    input: RoundInput
    message: Message
    finish_reason: str | None
    usage: TokenUsage
    tool_results: tuple[ToolResultRecord, ...] = ()

    @property
    def active_tool_names(self) -> list[str]:
        return self.input.tool_names

    @property
    def text(self) -> str:
        return self.message.text

    @property
    def content_parts(self) -> list[Any]:
        return list(self.message.parts)


@dataclass(frozen=True)
class RoundAttempt:
    """One streaming call, with every raw chunk received."""

    index: int
    attempt: int
    chunks: tuple[dict[str, Any], ...]
    finish_reason: str | None = None
    error: str | None = None
