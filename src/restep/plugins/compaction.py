"""Context compaction: keep long conversations under a message budget.

When the persistent history grows past ``max_messages``, an effect sends the
model only the most recent messages and summarizes the rest into a
``conversationSummary`` system section. The persistent history itself is
never shortened, so compaction is recomputed every round.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from restep.assembly import SystemSection
from restep.llm.message import Message, TextPart, ToolCallPart, ToolResultPart

logger = logging.getLogger(__name__)

COMPACTION_CONFIG_KEY = "_compactionConfig"
SUMMARY_SECTION = "conversationSummary"
SNIPPET_CHARS = 200


@dataclass(frozen=True)
class CompactionConfig:
    max_messages: int = 50
    preserve_recent: int = 10


def message_snippet(message: Message) -> str:
    """Plain-text rendering of *message* for the summary."""
    pieces = []
    for part in message.parts:
        if isinstance(part, TextPart):
            pieces.append(part.text)
        elif isinstance(part, ToolCallPart):
            pieces.append(f"called {part.name}({part.arguments})")
        elif isinstance(part, ToolResultPart):
            pieces.append(part.content)
    return " ".join(p for p in pieces if p)[:SNIPPET_CHARS]


def split_point(messages: list[Message], preserve_recent: int) -> int:
    """Index where the preserved tail starts.

    The tail never opens with a tool result: its assistant call moves into
    the tail as well.
    """
    split = max(0, len(messages) - preserve_recent)
    while split > 0 and messages[split].role == "tool":
        split -= 1
    return split


def summarize(messages: list[Message]) -> str:
    lines = []
    for m in messages:
        snippet = message_snippet(m)
        if snippet:
            lines.append(f"[{m.role}]: {snippet}")
    body = "\n".join(lines)
    return (
        "<conversation_summary>\n"
        "The following is a summary of earlier conversation messages "
        f"({len(messages)} messages compacted):\n{body}\n"
        "</conversation_summary>"
    )


def define_compaction(ctx: Any, max_messages: int = 50, preserve_recent: int = 10) -> None:
    """Register the compaction effect for this pass."""
    if preserve_recent < 1 or max_messages < preserve_recent:
        raise ValueError("Need 1 <= preserve_recent <= max_messages")
    config, _ = ctx.state(COMPACTION_CONFIG_KEY, CompactionConfig(max_messages, preserve_recent))

    def compact(round_ctx: Any, step: Any) -> None:
        messages = round_ctx.messages
        if len(messages) <= config.max_messages:
            return
        split = split_point(messages, config.preserve_recent)
        if split == 0:
            return
        older, recent = messages[:split], messages[split:]
        logger.info(
            "Compacting %d of %d messages in round %d",
            len(older),
            len(messages),
            round_ctx.round_index,
        )
        step.extend("systems", [SystemSection(SUMMARY_SECTION, summarize(older))])
        step("messages", recent)

    ctx.effect(compact)
