"""Model collaborator: messages, providers, streaming."""

from restep.llm.message import (
    ContentPart,
    Message,
    TextPart,
    TokenUsage,
    ToolCall,
    ToolCallPart,
    ToolResultPart,
)
from restep.llm.provider import (
    ChatProvider,
    LiteLLMProvider,
    ProviderConfig,
    create_provider,
)
from restep.llm.streaming import GenerateResult, generate

__all__ = [
    "ChatProvider",
    "ContentPart",
    "GenerateResult",
    "LiteLLMProvider",
    "Message",
    "ProviderConfig",
    "TextPart",
    "TokenUsage",
    "ToolCall",
    "ToolCallPart",
    "ToolResultPart",
    "create_provider",
    "generate",
]
