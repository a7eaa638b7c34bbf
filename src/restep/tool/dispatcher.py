"""Tool/agent dispatch.

Every requested call ends as a :class:`ToolResultRecord` whose ``content`` is
sent back to the model. Unknown names, malformed arguments, handler failures
and schema mismatches all become structured ``{"error": ...}`` payloads;
nothing raised by a tool reaches the round.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from restep.assembly import RoundInput
from restep.engine.history import AgentRun, LastToolInfo, ToolResultRecord
from restep.errors import EngineError, ErrorCodes, ResolutionError, ToolInputError
from restep.llm.message import ToolCall
from restep.session.wire import EventType
from restep.tool.base import AgentSpec, CompositeSpec, ToolCallContext, ToolSpec
from restep.tool.callbacks import (
    CallOutcome,
    CallStatus,
    call_handler,
    error_payload,
    execute_with_callbacks,
    recover,
    to_jsonable,
)
from restep.tool.composite import parse_calls

if TYPE_CHECKING:
    from restep.engine.engine import BuilderContext, Engine

logger = logging.getLogger(__name__)

RESPONSE_FORMAT_TEMPLATE = (
    "Reply with a single JSON object and nothing else. "
    "It must validate against this JSON schema:\n{schema}"
)


def format_payload(output: Any) -> str:
    """Render a call result as tool-message content."""
    if isinstance(output, str):
        return output
    if isinstance(output, BaseModel):
        return output.model_dump_json()
    return json.dumps(output, default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return str(value)


class Dispatcher:
    """Resolves and runs the calls of one round for its engine."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    async def dispatch_all(
        self, calls: list[ToolCall], round_input: RoundInput
    ) -> list[ToolResultRecord]:
        """Run *calls* one after another, in the order the model sent them."""
        results = []
        for call in calls:
            results.append(await self.dispatch(call, round_input))
        return results

    async def dispatch(self, call: ToolCall, round_input: RoundInput) -> ToolResultRecord:
        engine = self._engine
        engine.emit(
            EventType.TOOL_CALL, id=call.id, name=call.name, arguments=call.arguments
        )
        agent_runs: list[AgentRun] = []

        spec = round_input.tool(call.name)
        if spec is None:
            err = ResolutionError(
                f"Unknown tool: {call.name}. "
                f"Available tools: {', '.join(round_input.tool_names)}",
                call.name,
            )
            logger.warning("Model requested undeclared tool %r", call.name)
            outcome = CallOutcome(error_payload(err), CallStatus.ERROR, err)
        elif call.parse_error:
            err = ToolInputError(f"Invalid arguments for {call.name}: {call.parse_error}")
            if isinstance(spec, CompositeSpec):
                outcome = CallOutcome(error_payload(err), CallStatus.ERROR, err)
            else:
                outcome = await recover(spec, call.arguments, err)
        elif isinstance(spec, CompositeSpec):
            outcome = await self._run_composite(spec, call, agent_runs)
        else:
            outcome = await self._run_single(spec, call.arguments, call, agent_runs)

        record = ToolResultRecord(
            call_id=call.id,
            name=call.name,
            arguments=call.arguments,
            output=outcome.output,
            content=format_payload(outcome.output),
            is_error=outcome.is_error,
            status=outcome.status.value,
            agent_runs=agent_runs,
        )
        engine.last_tool = LastToolInfo(
            name=call.name,
            arguments=call.arguments,
            output=outcome.output,
            is_error=outcome.is_error,
        )
        logger.debug("Call %s (%s) finished: %s", call.name, call.id, record.status)
        engine.emit(
            EventType.TOOL_RESULT,
            id=call.id,
            name=call.name,
            content=record.content,
            is_error=record.is_error,
        )
        return record

    async def _run_single(
        self,
        spec: ToolSpec,
        arguments: Any,
        call: ToolCall,
        agent_runs: list[AgentRun],
        sub_name: str | None = None,
    ) -> CallOutcome:
        call_ctx = ToolCallContext(
            call_id=call.id,
            name=sub_name or call.name,
            engine=self._engine,
            get_state=self._engine.get_state,
            set_state=self._engine.set_state,
        )
        if isinstance(spec, AgentSpec):

            async def run_agent(
                agent_spec: ToolSpec, params: BaseModel, ctx: ToolCallContext
            ) -> Any:
                assert isinstance(agent_spec, AgentSpec)
                return await self._run_agent(agent_spec, params, agent_runs)

            return await execute_with_callbacks(spec, arguments, call_ctx, run_agent)
        return await execute_with_callbacks(spec, arguments, call_ctx, call_handler)

    async def _run_composite(
        self, spec: CompositeSpec, call: ToolCall, agent_runs: list[AgentRun]
    ) -> CallOutcome:
        try:
            sub_calls = parse_calls(call.arguments)
        except ToolInputError as e:
            return CallOutcome(error_payload(e), CallStatus.ERROR, e)

        results: list[dict[str, Any]] = []
        for sub in sub_calls:
            member = spec.member(sub.name)
            if member is None:
                err = ResolutionError(
                    f"Unknown sub-call {sub.name!r} for {spec.name}. "
                    f"Available: {', '.join(m.name for m in spec.members)}",
                    sub.name,
                    ErrorCodes.UNKNOWN_SUBCALL,
                )
                results.append({"name": sub.name, "result": error_payload(err)})
                continue
            outcome = await self._run_single(member, sub.args, call, agent_runs, sub.name)
            results.append({"name": sub.name, "result": to_jsonable(outcome.output)})
        return CallOutcome(results, CallStatus.SUCCESS)

    async def _run_agent(
        self, spec: AgentSpec, params: BaseModel, agent_runs: list[AgentRun]
    ) -> str:
        """Run *spec* in a fresh child engine; returns the child's final text."""
        from restep.engine.engine import ChildEngineConfig, RunOutcome

        child = self._engine.spawn(
            ChildEngineConfig(model=spec.model, options=spec.options, label=spec.name)
        )
        schema = (
            json.dumps(spec.response_model.model_json_schema(), indent=2)
            if spec.response_model
            else None
        )

        def child_builder(ctx: BuilderContext) -> Any:
            if spec.system:
                ctx.system("instructions", spec.system)
            if schema:
                ctx.system("response_format", RESPONSE_FORMAT_TEMPLATE.format(schema=schema))
            return spec.execute(params, ctx)

        self._engine.emit(EventType.AGENT_BEGIN, name=spec.name)
        logger.info("Agent %s: starting child engine", spec.name)
        result = await child.run(child_builder)
        agent_runs.append(
            AgentRun(
                agent=spec.name,
                text=result.text,
                outcome=result.outcome.value,
                history=list(result.history),
                full_history=list(result.full_history),
            )
        )
        self._engine.emit(EventType.AGENT_END, name=spec.name, outcome=result.outcome.value)
        if result.outcome is RunOutcome.ERROR:
            raise EngineError(
                f"Agent {spec.name} failed: {result.error}", ErrorCodes.AGENT_FAILED
            )
        if result.outcome is not RunOutcome.COMPLETE:
            raise EngineError(
                f"Agent {spec.name} did not finish within {child.max_rounds} rounds",
                ErrorCodes.AGENT_FAILED,
            )
        return result.text
