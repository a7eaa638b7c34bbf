"""Message types exchanged with the model collaborator."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class TextPart:
    """A text content part."""

    type: Literal["text"] = "text"
    text: str = ""


@dataclass
class ToolCallPart:
    """A tool call content part."""

    type: Literal["tool_call"] = "tool_call"
    id: str = ""
    name: str = ""
    arguments: str = ""  # JSON string


@dataclass
class ToolResultPart:
    """A tool result content part."""

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str = ""
    name: str = ""
    content: str = ""
    is_error: bool = False


ContentPart = TextPart | ToolCallPart | ToolResultPart


@dataclass
class ToolCall:
    """A complete tool call extracted from a model response.

    ``parse_error`` is set when the model sent arguments that are not a JSON
    object; ``arguments`` is then empty.
    """

    id: str
    name: str
    arguments: dict[str, Any]
    parse_error: str | None = None


@dataclass
class TokenUsage:
    """Token usage stats from a model call."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass
class Message:
    """A conversation message with typed content parts."""

    role: Role
    parts: list[ContentPart] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Get concatenated text content."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> list[ToolCall]:
        """Get all tool calls in this message."""
        calls = []
        for p in self.parts:
            if not isinstance(p, ToolCallPart):
                continue
            args: dict[str, Any] = {}
            error = None
            try:
                parsed = json.loads(p.arguments) if p.arguments else {}
                if isinstance(parsed, dict):
                    args = parsed
                else:
                    error = "arguments must be a JSON object"
            except json.JSONDecodeError as e:
                logger.warning(
                    "Failed to parse tool call arguments for %s: %s",
                    p.name,
                    p.arguments[:200],
                )
                error = f"arguments are not valid JSON: {e}"
            calls.append(ToolCall(id=p.id, name=p.name, arguments=args, parse_error=error))
        return calls

    # --- Convenience constructors ---

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role="system", parts=[TextPart(text=text)])

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role="user", parts=[TextPart(text=text)])

    @classmethod
    def assistant(
        cls, text: str = "", tool_calls: list[ToolCallPart] | None = None
    ) -> Message:
        parts: list[ContentPart] = []
        if text:
            parts.append(TextPart(text=text))
        if tool_calls:
            parts.extend(tool_calls)
        if not parts:
            # Explicit empty assistant turns still carry a (blank) text part.
            parts.append(TextPart(text=""))
        return cls(role="assistant", parts=parts)

    @classmethod
    def tool_result(
        cls, tool_call_id: str, content: str, name: str = "", is_error: bool = False
    ) -> Message:
        return cls(
            role="tool",
            parts=[
                ToolResultPart(
                    tool_call_id=tool_call_id,
                    name=name,
                    content=content,
                    is_error=is_error,
                )
            ],
        )

    def to_openai_dict(self) -> dict[str, Any]:
        """Convert to OpenAI chat format (the shape litellm accepts)."""
        if self.role == "tool":
            for p in self.parts:
                if isinstance(p, ToolResultPart):
                    return {
                        "role": "tool",
                        "tool_call_id": p.tool_call_id,
                        "content": p.content,
                    }
            return {"role": "tool", "content": ""}

        if self.role == "assistant":
            result: dict[str, Any] = {"role": "assistant"}
            text_parts = [p for p in self.parts if isinstance(p, TextPart)]
            tc_parts = [p for p in self.parts if isinstance(p, ToolCallPart)]

            result["content"] = "".join(p.text for p in text_parts) if text_parts else None

            if tc_parts:
                result["tool_calls"] = [
                    {
                        "id": p.id,
                        "type": "function",
                        "function": {"name": p.name, "arguments": p.arguments},
                    }
                    for p in tc_parts
                ]
            return result

        return {"role": self.role, "content": self.text}
