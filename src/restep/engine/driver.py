"""The round driver: builder -> assembly -> model -> dispatch, until done.

Per round:
    1. flush queued state updates
    2. re-run the builder against a fresh pass of the registry
    3. reconcile definitions
    4. run due effects (they may install step overrides)
    5. narrow active definitions through the hooks
    6. assemble the round input
    7. stream the model response
    8. dispatch requested calls sequentially, append their results
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from restep.assembly import RoundInput, StepOverrides
from restep.engine.engine import BuilderContext, RunOutcome, RunResult
from restep.engine.history import RoundAttempt, RoundRecord
from restep.errors import BuilderError, RestepError
from restep.llm.message import ContentPart, Message, TextPart
from restep.llm.streaming import GenerateResult, generate
from restep.session.wire import EventType

if TYPE_CHECKING:
    from restep.engine.engine import Builder, Engine

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (ConnectionError, TimeoutError, OSError)


async def drive(engine: Engine, builder: Builder) -> RunResult:
    """Run rounds until a final response or the round limit."""
    engine.begin_run()
    outcome = RunOutcome.MAX_ROUNDS
    error: str | None = None
    text = ""

    for _ in range(engine.max_rounds):
        index = engine.round_index
        logger.info("%s: round %d", engine.label or "engine", index)

        round_input = await prepare_round(engine, builder, index)
        engine.emit(EventType.ROUND_BEGIN, index=index, tools=round_input.tool_names)

        try:
            result = await stream_round(engine, round_input)
        except Exception as e:
            logger.error("Round %d: model call failed: %s", index, e, exc_info=True)
            engine.emit(EventType.ERROR, error=str(e))
            outcome = RunOutcome.ERROR
            error = str(e)
            break

        engine.usage = engine.usage + result.usage
        engine.messages.append(result.message)
        text = result.message.text

        tool_results = []
        if result.has_tool_calls:
            tool_results = await engine.dispatcher.dispatch_all(result.tool_calls, round_input)
            for r in tool_results:
                engine.messages.append(
                    Message.tool_result(r.call_id, r.content, name=r.name, is_error=r.is_error)
                )

        engine.history.append(
            RoundRecord(
                index=index,
                input=round_input,
                message=result.message,
                finish_reason=result.finish_reason,
                usage=result.usage,
                tool_results=tuple(tool_results),
            )
        )
        engine.round_index += 1
        engine.emit(EventType.ROUND_END, index=index, finish_reason=result.finish_reason)

        if not result.has_tool_calls:
            outcome = RunOutcome.COMPLETE
            logger.info("%s: completed after %d rounds", engine.label or "engine", index + 1)
            break
    else:
        logger.warning(
            "%s: hit the round limit (%d)", engine.label or "engine", engine.max_rounds
        )

    # Updates enqueued by the last round's calls and effects settle here.
    engine.store.flush()
    return RunResult(
        text=text,
        outcome=outcome,
        history=list(engine.history),
        full_history=list(engine.full_history),
        messages=list(engine.messages),
        usage=engine.usage,
        engine=engine,
        error=error,
    )


async def prepare_round(engine: Engine, builder: Builder, index: int) -> RoundInput:
    """Steps 1 to 6: everything up to the model call."""
    engine.store.flush()
    engine.registry.begin_pass(index)
    engine.effects.clear()
    engine.hooks.clear()

    ctx = BuilderContext(engine, index)
    try:
        returned = builder(ctx)
        if inspect.isawaitable(returned):
            await returned
    except RestepError:
        raise
    except Exception as e:
        raise BuilderError(f"Builder failed in round {index}: {e}", index) from e

    report = engine.registry.reconcile()
    if report.admitted or report.retracted:
        logger.debug(
            "Round %d: admitted %s, retracted %s", index, report.admitted, report.retracted
        )

    overrides = StepOverrides()
    registry = engine.registry
    try:
        engine.effects.process(engine.round_context(index), overrides)
        systems, variables, tools = engine.hooks.run(
            index,
            [e for e in registry.systems() if not e.disabled],
            [e for e in registry.variables() if not e.disabled],
            [e for e in registry.tools() if not e.disabled],
        )
    except RestepError:
        raise
    except Exception as e:
        raise BuilderError(f"Effect or hook failed in round {index}: {e}", index) from e

    return engine.assembler.assemble(
        index, engine.messages, systems, variables, tools, overrides
    )


async def stream_round(engine: Engine, round_input: RoundInput) -> GenerateResult:
    """Step 7, retried on transient errors; every attempt is recorded."""
    assert engine.provider is not None
    attempt_no = 0

    def on_part(part: ContentPart) -> None:
        if isinstance(part, TextPart):
            engine.emit(EventType.TEXT, text=part.text)

    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(engine.stream_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            attempt_no += 1
            chunks: list[dict] = []
            try:
                result = await generate(
                    engine.provider,
                    round_input.system,
                    round_input.messages,
                    round_input.tool_table(),
                    engine.options,
                    on_chunk=chunks.append,
                    on_part=on_part,
                )
            except Exception as e:
                engine.full_history.append(
                    RoundAttempt(
                        index=round_input.round_index,
                        attempt=attempt_no,
                        chunks=tuple(chunks),
                        error=str(e),
                    )
                )
                raise
            engine.full_history.append(
                RoundAttempt(
                    index=round_input.round_index,
                    attempt=attempt_no,
                    chunks=tuple(chunks),
                    finish_reason=result.finish_reason,
                )
            )
    return result
