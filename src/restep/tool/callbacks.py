"""Single-call execution with lifecycle callbacks.

    validate input -> before_call -> handler -> on_success -> validate output

``before_call`` returning a value short-circuits the handler. Any failure
(input validation, handler exception, output validation) is offered once to
``on_error``; when it returns ``None`` the call degrades to a structured
``{"error": ...}`` payload. Nothing here raises into the round.
"""

from __future__ import annotations

import enum
import inspect
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from restep.errors import ToolInputError, ToolOutputError
from restep.tool.base import ToolCallContext, ToolSpec

logger = logging.getLogger(__name__)

Runner = Callable[[ToolSpec, BaseModel, ToolCallContext], Awaitable[Any]]

_FENCE_RE = re.compile(r"^\s*```[\w-]*\s*\n(.*?)\n?```\s*$", re.DOTALL)


class CallStatus(enum.Enum):
    SUCCESS = "success"
    RECOVERED = "recovered"
    ERROR = "error"


@dataclass
class CallOutcome:
    output: Any
    status: CallStatus
    error: BaseException | None = None

    @property
    def is_error(self) -> bool:
        return self.status is CallStatus.ERROR


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def accepts_context(fn: Callable[..., Any]) -> bool:
    """True when *fn* takes a second positional argument."""
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return False
    positional = 0
    for p in sig.parameters.values():
        if p.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional >= 2


async def call_handler(spec: ToolSpec, params: BaseModel, call_ctx: ToolCallContext) -> Any:
    """Default runner: ``execute(params)`` or ``execute(params, call_ctx)``."""
    if accepts_context(spec.execute):
        return await maybe_await(spec.execute(params, call_ctx))
    return await maybe_await(spec.execute(params))


def error_payload(exc: BaseException) -> dict[str, Any]:
    """Structured error returned to the model."""
    payload: dict[str, Any] = {"error": str(exc) or type(exc).__name__}
    if isinstance(exc, ToolOutputError):
        payload["output"] = to_jsonable(exc.output)
    details = getattr(exc, "details", None)
    if details:
        payload["details"] = details
    return payload


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


def parse_json_text(text: str) -> Any:
    """Parse JSON, tolerating a surrounding markdown code fence."""
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(1)
    return json.loads(text)


def validate_output(spec: ToolSpec, output: Any) -> Any:
    """Check *output* against ``spec.response_model`` if one is declared."""
    model = spec.response_model
    if model is None or isinstance(output, model):
        return output
    data = output
    if isinstance(output, str):
        try:
            data = parse_json_text(output)
        except json.JSONDecodeError as e:
            raise ToolOutputError(
                f"Output of {spec.name} is not valid JSON: {e}", output=output
            ) from e
    elif isinstance(output, BaseModel):
        data = output.model_dump()
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ToolOutputError(
            f"Output of {spec.name} does not match {model.__name__}",
            output=data,
            details=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


async def execute_with_callbacks(
    spec: ToolSpec,
    arguments: Any,
    call_ctx: ToolCallContext,
    runner: Runner = call_handler,
) -> CallOutcome:
    """Run one call through its lifecycle; always returns an outcome."""
    callbacks = spec.callbacks

    try:
        params = spec.input_model.model_validate(arguments)
    except ValidationError as e:
        exc = ToolInputError(
            f"Invalid parameters for {spec.name}",
            details=e.errors(include_url=False, include_context=False, include_input=False),
        )
        logger.debug("Input validation failed for %s: %s", spec.name, e)
        return await recover(spec, arguments, exc)

    try:
        output = None
        if callbacks.before_call:
            output = await maybe_await(callbacks.before_call(params))
        if output is not None:
            logger.debug("before_call short-circuited %s", spec.name)
        else:
            output = await runner(spec, params, call_ctx)
            if callbacks.on_success:
                replaced = await maybe_await(callbacks.on_success(params, output))
                if replaced is not None:
                    output = replaced
    except Exception as e:
        logger.error("Tool %s execution error: %s", spec.name, e, exc_info=True)
        return await recover(spec, params, e)

    try:
        return CallOutcome(output=validate_output(spec, output), status=CallStatus.SUCCESS)
    except ToolOutputError as e:
        logger.debug("Output validation failed for %s: %s", spec.name, e)
        return await recover(spec, params, e)


async def recover(spec: ToolSpec, params: Any, exc: BaseException) -> CallOutcome:
    """Offer *exc* to ``on_error``; fall back to a structured error."""
    on_error = spec.callbacks.on_error
    if on_error is not None:
        try:
            recovered = await maybe_await(on_error(params, exc))
        except Exception as e:
            logger.error("on_error callback of %s raised: %s", spec.name, e, exc_info=True)
            return CallOutcome(output=error_payload(e), status=CallStatus.ERROR, error=e)
        if recovered is not None:
            try:
                recovered = validate_output(spec, recovered)
            except ToolOutputError as e:
                return CallOutcome(output=error_payload(e), status=CallStatus.ERROR, error=e)
            return CallOutcome(output=recovered, status=CallStatus.RECOVERED, error=exc)
    return CallOutcome(output=error_payload(exc), status=CallStatus.ERROR, error=exc)
