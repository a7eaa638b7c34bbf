"""Effects and hooks."""

from restep.effects.hooks import HookInput, HookPipeline, HookResult
from restep.effects.scheduler import Effect, EffectScheduler

__all__ = [
    "Effect",
    "EffectScheduler",
    "HookInput",
    "HookPipeline",
    "HookResult",
]
