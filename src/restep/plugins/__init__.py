"""Optional building blocks for builders.

Each plugin is a plain function taking the builder context; call it from the
builder on every pass like any other declaration.
"""

from restep.plugins.checkpoint import Checkpoint, CheckpointManager, define_checkpoints
from restep.plugins.compaction import define_compaction
from restep.plugins.context_file import ContextResult, define_context
from restep.plugins.task_list import Task, define_task_list

__all__ = [
    "Checkpoint",
    "CheckpointManager",
    "ContextResult",
    "Task",
    "define_checkpoints",
    "define_compaction",
    "define_context",
    "define_task_list",
]
