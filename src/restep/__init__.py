"""restep - reactive, round-based orchestration of tool-using LLM conversations.

A builder function is re-run before every model round. It declares state,
variables, system sections, tools and agents; the engine reconciles those
declarations against the previous round, assembles the request, streams the
model and dispatches any tool calls.
"""

__version__ = "0.1.0"

# The engine package must load before anything touches restep.tool.dispatcher.
from restep.engine import (
    BuilderContext,
    ChildEngineConfig,
    Engine,
    RoundContext,
    RunOutcome,
    RunResult,
    run_prompt,
)
from restep.assembly import SystemSection, Variable, render_template
from restep.config import RestepConfig
from restep.definitions import DefinitionHandle
from restep.effects import HookInput, HookResult
from restep.errors import (
    BuilderError,
    ConfigError,
    EngineError,
    ErrorCodes,
    RestepError,
    ToolInputError,
    ToolOutputError,
)
from restep.llm import Message, create_provider
from restep.session import EventType, Wire
from restep.tool import ToolCallContext, agent, tool

__all__ = [
    "BuilderContext",
    "BuilderError",
    "ChildEngineConfig",
    "ConfigError",
    "DefinitionHandle",
    "Engine",
    "EngineError",
    "ErrorCodes",
    "EventType",
    "HookInput",
    "HookResult",
    "Message",
    "RestepConfig",
    "RestepError",
    "RoundContext",
    "RunOutcome",
    "RunResult",
    "SystemSection",
    "ToolCallContext",
    "ToolInputError",
    "ToolOutputError",
    "Variable",
    "Wire",
    "agent",
    "create_provider",
    "render_template",
    "run_prompt",
    "tool",
]
