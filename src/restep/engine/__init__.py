"""Engine, builder context, round driver and history records."""

from restep.engine.engine import (
    BuilderContext,
    ChildEngineConfig,
    Engine,
    RoundContext,
    RunOutcome,
    RunResult,
    run_prompt,
)
from restep.engine.history import (
    AgentRun,
    LastToolInfo,
    RoundAttempt,
    RoundRecord,
    ToolResultRecord,
)

__all__ = [
    "AgentRun",
    "BuilderContext",
    "ChildEngineConfig",
    "Engine",
    "LastToolInfo",
    "RoundAttempt",
    "RoundContext",
    "RoundRecord",
    "RunOutcome",
    "RunResult",
    "ToolResultRecord",
    "run_prompt",
]
