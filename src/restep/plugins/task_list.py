"""Managed task list: state, status tools and per-task extensions.

    tasks, set_tasks = define_task_list(ctx, [
        Task(id="1", name="Research the topic"),
        Task(id="2", name="Write the report", tools=[tool(...)]),
    ])

The list lives in state ``taskList``. The model moves tasks along with
``startTask``, ``completeTask`` and ``failTask``; the current status is
rendered into a ``taskList`` system section on every pass. While a task is
in progress, its own tools, variables and instructions are layered onto the
round through step overrides.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

from restep.assembly import SystemSection, Variable
from restep.state.store import Setter
from restep.tool.base import AnySpec, ToolCallContext

logger = logging.getLogger(__name__)

TASK_LIST_KEY = "taskList"
STATUS_TOOLS = ("startTask", "completeTask", "failTask")

TaskStatus = Literal["pending", "in_progress", "completed", "failed"]


@dataclass(frozen=True)
class Task:
    id: str
    name: str
    status: TaskStatus = "pending"
    tools: tuple[AnySpec, ...] = ()
    tool_mode: Literal["extend", "exclusive"] = "extend"
    variables: dict[str, Any] = field(default_factory=dict)
    system: str | tuple[SystemSection, ...] | None = None
    failure_reason: str | None = None

    @classmethod
    def from_value(cls, value: Task | dict[str, Any]) -> Task:
        if isinstance(value, Task):
            return value
        data = dict(value)
        data["tools"] = tuple(data.get("tools") or ())
        if isinstance(data.get("system"), list):
            data["system"] = tuple(data["system"])
        return cls(**data)


class TaskIdParams(BaseModel):
    taskId: str = Field(description="The ID of the task")


class FailTaskParams(TaskIdParams):
    reason: str = Field(default="", description="Why the task could not be completed")


class TaskUpdateResult(BaseModel):
    success: bool
    taskId: str
    message: str


def format_task_list(tasks: list[Task]) -> str:
    def lines(items: list[Task]) -> str:
        return "\n".join(f"  - [{t.id}] {t.name}" for t in items) or "  (none)"

    sections = ["## Current Task Status"]
    for title, status in (
        ("In Progress", "in_progress"),
        ("Pending", "pending"),
        ("Completed", "completed"),
        ("Failed", "failed"),
    ):
        items = [t for t in tasks if t.status == status]
        if status == "failed" and not items:
            continue
        sections.append(f"### {title} ({len(items)})\n{lines(items)}")
    sections.append(
        'Use "startTask" to begin a pending task, "completeTask" when finished '
        'and "failTask" if it cannot be done.'
    )
    return "\n\n".join(sections)


def _with_status(
    tasks: list[Task], task_id: str, status: TaskStatus, reason: str | None = None
) -> list[Task]:
    changes: dict[str, Any] = {"status": status}
    if reason is not None:
        changes["failure_reason"] = reason
    return [dataclasses.replace(t, **changes) if t.id == task_id else t for t in tasks]


def _result(success: bool, task_id: str, message: str) -> TaskUpdateResult:
    return TaskUpdateResult(success=success, taskId=task_id, message=message)


def define_task_list(
    ctx: Any, tasks: list[Task | dict[str, Any]] | None = None
) -> tuple[list[Task], Setter]:
    """Declare the task list, its tools, its section and its extension effect."""
    initial = [Task.from_value(t) for t in tasks or []]
    task_list, set_task_list = ctx.state(TASK_LIST_KEY, initial)

    def lookup(params: TaskIdParams, call_ctx: ToolCallContext) -> Task | None:
        assert call_ctx.get_state is not None
        return next((t for t in call_ctx.get_state(TASK_LIST_KEY) if t.id == params.taskId), None)

    def not_found(task_id: str) -> TaskUpdateResult:
        return _result(False, task_id, f'Task with ID "{task_id}" not found')

    def start_task(params: TaskIdParams, call_ctx: ToolCallContext) -> TaskUpdateResult:
        task = lookup(params, call_ctx)
        if task is None:
            return not_found(params.taskId)
        if task.status == "in_progress":
            return _result(True, task.id, f'Task "{task.name}" is already in progress')
        if task.status in ("completed", "failed"):
            return _result(False, task.id, f'Task "{task.name}" is already {task.status}')
        set_task_list(lambda prev: _with_status(prev, task.id, "in_progress"))
        return _result(True, task.id, f'Started task: "{task.name}"')

    def complete_task(params: TaskIdParams, call_ctx: ToolCallContext) -> TaskUpdateResult:
        task = lookup(params, call_ctx)
        if task is None:
            return not_found(params.taskId)
        if task.status == "completed":
            return _result(True, task.id, f'Task "{task.name}" is already completed')
        set_task_list(lambda prev: _with_status(prev, task.id, "completed"))
        return _result(True, task.id, f'Completed task: "{task.name}"')

    def fail_task(params: FailTaskParams, call_ctx: ToolCallContext) -> TaskUpdateResult:
        task = lookup(params, call_ctx)
        if task is None:
            return not_found(params.taskId)
        if task.status == "completed":
            return _result(False, task.id, f'Task "{task.name}" is already completed')
        set_task_list(lambda prev: _with_status(prev, task.id, "failed", params.reason))
        logger.info("Task %s failed: %s", task.id, params.reason or "no reason given")
        return _result(True, task.id, f'Failed task: "{task.name}"')

    ctx.tool(
        "startTask",
        "Mark a task as started/in-progress. Call this before beginning work on a task.",
        TaskIdParams,
        start_task,
    )
    ctx.tool(
        "completeTask",
        "Mark a task as completed. Call this when you have finished work on a task.",
        TaskIdParams,
        complete_task,
    )
    ctx.tool(
        "failTask",
        "Mark a task as failed when it cannot be completed.",
        FailTaskParams,
        fail_task,
    )
    ctx.system(TASK_LIST_KEY, format_task_list(task_list))

    active = next((t for t in task_list if t.status == "in_progress"), None)
    # Overrides last one round, so this runs every round.
    ctx.effect(_task_extensions(active))

    return task_list, set_task_list


def _task_extensions(task: Task | None) -> Any:
    """Effect layering *task*'s tools, variables and instructions onto the round."""

    def apply(round_ctx: Any, step: Any) -> None:
        if task is None:
            return
        if task.tools:
            if task.tool_mode == "exclusive":
                status = [round_ctx.tools.get(n) for n in STATUS_TOOLS]
                keep = [h.name for h in status if h is not None and not h.is_disabled]
                step("tools", keep + list(task.tools))
            else:
                step.extend("tools", task.tools)
        if task.variables:
            step.extend("variables", [Variable("current_task_context", task.variables, "data")])
        if task.system:
            if isinstance(task.system, str):
                sections = [SystemSection(f"task_{task.id}_instructions", task.system)]
            else:
                sections = list(task.system)
            step.extend("systems", sections)
        logger.debug("Applied extensions of task %s", task.id)

    return apply
