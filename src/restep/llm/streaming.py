"""Streaming generation primitive."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from restep.llm.message import (
    ContentPart,
    Message,
    TextPart,
    TokenUsage,
    ToolCall,
    ToolCallPart,
)
from restep.llm.provider import ChatProvider

logger = logging.getLogger(__name__)

# OpenAI function-tool entries as sent to the provider
ToolTable = list[dict[str, Any]]

OnChunk = Callable[[dict[str, Any]], None] | None
OnPart = Callable[[ContentPart], None] | None


@dataclass
class GenerateResult:
    """Result of a single model generation."""

    message: Message
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None
    chunks: list[dict[str, Any]] = field(default_factory=list)

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self.message.tool_calls

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


async def generate(
    provider: ChatProvider,
    system: str,
    messages: list[Message],
    tools: ToolTable | None = None,
    options: dict[str, Any] | None = None,
    on_chunk: OnChunk = None,
    on_part: OnPart = None,
) -> GenerateResult:
    """Stream one model response into a single assistant message.

    Every raw chunk is kept on the result (and passed to ``on_chunk``) so the
    caller can build a per-attempt history.
    """
    api_messages = [m.to_openai_dict() for m in messages]

    text_buffer = ""
    tool_call_buffers: dict[int, dict[str, Any]] = {}  # index -> {id, name, arguments}
    usage = TokenUsage()
    finish_reason = None
    chunks: list[dict[str, Any]] = []

    async for chunk in provider.stream(system, api_messages, tools or None, options):
        chunks.append(chunk)
        if on_chunk:
            on_chunk(chunk)

        fr = chunk.get("finish_reason")
        if fr:
            finish_reason = fr

        delta = chunk.get("delta", {})

        content = delta.get("content")
        if content:
            text_buffer += content
            if on_part:
                on_part(TextPart(text=content))
                # Let wire subscribers drain between chunks.
                await asyncio.sleep(0)

        for tc_delta in delta.get("tool_calls") or []:
            idx = tc_delta.get("index", 0)
            buf = tool_call_buffers.setdefault(idx, {"id": "", "name": "", "arguments": ""})
            if tc_delta.get("id"):
                buf["id"] = tc_delta["id"]
            func = tc_delta.get("function") or {}
            if func.get("name"):
                buf["name"] = func["name"]
            if func.get("arguments"):
                buf["arguments"] += func["arguments"]

        if chunk.get("usage"):
            u = chunk["usage"]
            usage = TokenUsage(
                input_tokens=u.get("prompt_tokens", 0),
                output_tokens=u.get("completion_tokens", 0),
                total_tokens=u.get("total_tokens", 0),
            )

    parts: list[ContentPart] = []
    if text_buffer:
        parts.append(TextPart(text=text_buffer))

    for idx in sorted(tool_call_buffers):
        buf = tool_call_buffers[idx]
        tc_part = ToolCallPart(
            id=buf["id"] or f"call_{idx}",
            name=buf["name"],
            arguments=buf["arguments"],
        )
        parts.append(tc_part)
        if on_part:
            on_part(tc_part)

    if finish_reason is None:
        finish_reason = "tool_calls" if tool_call_buffers else "stop"

    logger.debug(
        "Generated %d chars, %d tool calls, finish_reason=%s",
        len(text_buffer),
        len(tool_call_buffers),
        finish_reason,
    )
    message = Message(role="assistant", parts=parts)
    return GenerateResult(
        message=message, usage=usage, finish_reason=finish_reason, chunks=chunks
    )
