"""Tool and agent specs, composite schemas, lifecycle callbacks.

The dispatcher lives in :mod:`restep.tool.dispatcher`; it depends on the
engine and is not re-exported here.
"""

from restep.tool.base import (
    AgentSpec,
    CompositeSpec,
    ToolCallbacks,
    ToolCallContext,
    ToolSpec,
    agent,
    tool,
)
from restep.tool.callbacks import CallOutcome, CallStatus, execute_with_callbacks

__all__ = [
    "AgentSpec",
    "CallOutcome",
    "CallStatus",
    "CompositeSpec",
    "ToolCallContext",
    "ToolCallbacks",
    "ToolSpec",
    "agent",
    "execute_with_callbacks",
    "tool",
]
