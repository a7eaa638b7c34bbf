"""The engine: owns one conversation's state, definitions and history.

An :class:`Engine` composes its collaborators explicitly (state store,
definition registry, effect scheduler, hook pipeline, assembler, dispatcher)
and hands the builder a fresh :class:`BuilderContext` every round. Agents run
in child engines created by :meth:`Engine.spawn`; a child shares nothing with
its parent except the provider factory and the wire.
"""

from __future__ import annotations

import enum
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Sequence

from pydantic import BaseModel

from restep.assembly import StepAssembler, render_template
from restep.definitions.collections import DefinitionCollection
from restep.definitions.registry import DefinitionHandle, DefinitionKind, DefinitionRegistry
from restep.effects.hooks import HookCallback, HookPipeline
from restep.effects.scheduler import EffectCallback, EffectScheduler
from restep.engine.history import LastToolInfo, RoundAttempt, RoundRecord
from restep.errors import EngineError, ErrorCodes
from restep.llm.message import Message, TokenUsage
from restep.llm.provider import ChatProvider, create_provider
from restep.session.wire import EventType, Wire
from restep.state.store import Setter, StateStore
from restep.tool.base import (
    AgentSpec,
    BeforeCall,
    CompositeSpec,
    OnError,
    OnSuccess,
    ToolCallbacks,
    ToolSpec,
)
from restep.tool.dispatcher import Dispatcher

if TYPE_CHECKING:
    from restep.config import RestepConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 100

Builder = Callable[["BuilderContext"], "None | Awaitable[None]"]
ProviderFactory = Callable[..., ChatProvider]


class RunOutcome(enum.Enum):
    """Why did the run end?"""

    COMPLETE = "complete"  # final response without tool calls
    MAX_ROUNDS = "max_rounds"  # hit the round limit
    ERROR = "error"  # the model collaborator failed


@dataclass
class ChildEngineConfig:
    """How a child engine differs from its parent.

    ``model``: ``None`` inherits the parent's provider, a string is resolved
    through the parent's provider factory, a provider is used as is.
    ``options``: ``None`` inherits, a dict replaces.
    """

    model: str | ChatProvider | None = None
    options: dict[str, Any] | None = None
    label: str | None = None
    max_rounds: int | None = None


@dataclass
class RoundContext:
    """What effects see."""

    round_index: int
    messages: list[Message]
    tools: DefinitionCollection
    systems: DefinitionCollection
    variables: DefinitionCollection
    last_tool: LastToolInfo | None
    engine: Engine = field(repr=False)


@dataclass
class RunResult:
    text: str
    outcome: RunOutcome
    history: list[RoundRecord]
    full_history: list[RoundAttempt]
    messages: list[Message]
    usage: TokenUsage
    engine: Engine = field(repr=False)
    error: str | None = None

    def state(self, key: str) -> Any:
        return self.engine.get_state(key)

    def reminded_items(self) -> list[dict[str, str]]:
        return self.engine.reminded_items()

    @property
    def rounds(self) -> int:
        return len(self.history)


class BuilderContext:
    """Declaration surface for one builder pass."""

    def __init__(self, engine: Engine, round_index: int) -> None:
        self._engine = engine
        self.round_index = round_index
        self._user_texts: Counter[str] = Counter()

    @property
    def engine(self) -> Engine:
        return self._engine

    # --- State ---

    def state(self, key: str, initial: Any = None) -> tuple[Any, Setter]:
        return self._engine.store.declare(key, initial)

    def get_state(self, key: str) -> Any:
        return self._engine.get_state(key)

    def set_state(self, key: str, update: Any) -> None:
        self._engine.set_state(key, update)

    # --- Definitions ---

    def define(self, name: str, value: Any) -> DefinitionHandle:
        """Text variable, rendered inside ``<variables>``."""
        return self._engine.registry.declare(DefinitionKind.VARIABLE, name, value, "text")

    def data(self, name: str, value: Any) -> DefinitionHandle:
        """Structured variable, rendered as YAML."""
        return self._engine.registry.declare(DefinitionKind.VARIABLE, name, value, "data")

    def system(self, name: str, text: str) -> DefinitionHandle:
        return self._engine.registry.declare(DefinitionKind.SYSTEM, name, text)

    def tool(
        self,
        name: str,
        description: str,
        input_model: type[BaseModel] | Sequence[ToolSpec],
        execute: Callable[..., Any] | None = None,
        *,
        before_call: BeforeCall | None = None,
        on_success: OnSuccess | None = None,
        on_error: OnError | None = None,
        response_model: type[BaseModel] | None = None,
    ) -> DefinitionHandle:
        """Declare a tool, or a composite tool when given a list of ``tool(...)``."""
        spec: ToolSpec | CompositeSpec
        if isinstance(input_model, (list, tuple)):
            spec = CompositeSpec(name, description, list(input_model))
        else:
            if execute is None:
                raise TypeError(f"Tool {name!r} needs an execute function")
            spec = ToolSpec(
                name=name,
                description=description,
                input_model=input_model,
                execute=execute,
                callbacks=ToolCallbacks(before_call, on_success, on_error),
                response_model=response_model,
            )
        return self._engine.registry.declare(spec.kind, name, spec)

    def agent(
        self,
        name: str,
        description: str,
        input_model: type[BaseModel] | Sequence[ToolSpec],
        execute: Callable[..., Any] | None = None,
        *,
        model: str | ChatProvider | None = None,
        options: dict[str, Any] | None = None,
        system: str | None = None,
        response_model: type[BaseModel] | None = None,
        before_call: BeforeCall | None = None,
        on_success: OnSuccess | None = None,
        on_error: OnError | None = None,
    ) -> DefinitionHandle:
        """Declare an agent, or a composite agent when given a list of ``agent(...)``.

        ``execute(args, child_ctx)`` becomes the builder of a child engine.
        """
        spec: ToolSpec | CompositeSpec
        if isinstance(input_model, (list, tuple)):
            spec = CompositeSpec(name, description, list(input_model), agents=True)
        else:
            if execute is None:
                raise TypeError(f"Agent {name!r} needs an execute function")
            spec = AgentSpec(
                name=name,
                description=description,
                input_model=input_model,
                execute=execute,
                callbacks=ToolCallbacks(before_call, on_success, on_error),
                response_model=response_model,
                model=model,
                options=options,
                system=system,
            )
        return self._engine.registry.declare(spec.kind, name, spec)

    # --- Effects and hooks ---

    def effect(self, callback: EffectCallback, deps: Sequence[Any] | None = None) -> None:
        """``callback(round_ctx, step)``; see :mod:`restep.effects.scheduler`."""
        self._engine.effects.register(callback, deps)

    def hook(self, callback: HookCallback) -> None:
        self._engine.hooks.register(callback)

    # --- Messages ---

    def user(self, template: str, **values: Any) -> Message | None:
        """Append a user message unless an earlier pass of this run already did.

        The k-th declaration of the same text within a pass matches the k-th
        time that text was appended, so declarations may move around between
        passes. Returns ``None`` when the message was already appended.
        """
        content = render_template(template, **values)
        self._user_texts[content] += 1
        return self._engine.append_user(content, self._user_texts[content])

    def assistant(self, text: str) -> Message:
        message = Message.assistant(text)
        self._engine.messages.append(message)
        return message

    def message(self, role: str, content: str) -> Message | None:
        if role == "user":
            return self.user(content)
        if role == "assistant":
            return self.assistant(content)
        raise ValueError(f"Unsupported message role: {role!r}")


class Engine:
    """One conversation: builder re-invocation, assembly, dispatch."""

    def __init__(
        self,
        provider: ChatProvider | None = None,
        *,
        options: dict[str, Any] | None = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        stream_attempts: int = 2,
        provider_factory: ProviderFactory = create_provider,
        wire: Wire | None = None,
        label: str | None = None,
        depth: int = 0,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.provider = provider
        self.options: dict[str, Any] = dict(options or {})
        self.max_rounds = max_rounds
        self.stream_attempts = max(1, stream_attempts)
        self.provider_factory = provider_factory
        self.wire = wire
        self.label = label
        self.depth = depth

        self.store = StateStore()
        self.registry = DefinitionRegistry()
        self.effects = EffectScheduler()
        self.hooks = HookPipeline()
        self.assembler = StepAssembler(self.registry)
        self.dispatcher = Dispatcher(self)

        self.messages: list[Message] = []
        self.history: list[RoundRecord] = []
        self.full_history: list[RoundAttempt] = []
        self.usage = TokenUsage()
        self.last_tool: LastToolInfo | None = None
        self.round_index = 0
        self._user_appended: Counter[str] = Counter()

    @classmethod
    def from_config(cls, config: RestepConfig, **kwargs: Any) -> Engine:
        """Build an engine with a litellm provider from *config*."""
        provider = create_provider(config.llm.model, **config.llm.sampling_options())
        kwargs.setdefault("max_rounds", config.engine.max_rounds)
        kwargs.setdefault("stream_attempts", config.engine.stream_attempts)
        return cls(provider, **kwargs)

    async def run(self, builder: Builder) -> RunResult:
        """Drive *builder* until the model answers without tool calls."""
        from restep.engine.driver import drive

        if self.provider is None:
            raise EngineError(
                "No model provider configured; pass provider= or a model name",
                ErrorCodes.MODEL_REQUIRED,
            )
        return await drive(self, builder)

    def spawn(self, config: ChildEngineConfig) -> Engine:
        """Create an isolated child engine for an agent call."""
        if config.model is None:
            provider = self.provider
        elif isinstance(config.model, str):
            provider = self.provider_factory(config.model)
        else:
            provider = config.model
        options = dict(self.options) if config.options is None else dict(config.options)
        label = config.label
        if label and self.label:
            label = f"{self.label}/{label}"
        logger.debug("Spawning child engine %s (depth %d)", label, self.depth + 1)
        return Engine(
            provider,
            options=options,
            max_rounds=config.max_rounds or self.max_rounds,
            stream_attempts=self.stream_attempts,
            provider_factory=self.provider_factory,
            wire=self.wire,
            label=label or self.label,
            depth=self.depth + 1,
        )

    # --- State access for handlers and results ---

    def get_state(self, key: str) -> Any:
        return self.store.get(key)

    def set_state(self, key: str, update: Any) -> None:
        """Enqueue an update; visible from the next round on."""
        self.store.enqueue(key, update)

    # --- Reminders ---

    def reminded_items(self) -> list[dict[str, str]]:
        return self.registry.reminded_items()

    def consume_reminders(self) -> list[dict[str, str]]:
        return self.registry.consume_reminders()

    # --- Internals used by the driver and the builder context ---

    def append_user(self, content: str, occurrence: int = 1) -> Message | None:
        if occurrence <= self._user_appended[content]:
            logger.debug("User message %r already appended", content[:60])
            return None
        self._user_appended[content] = occurrence
        message = Message.user(content)
        self.messages.append(message)
        return message

    def begin_run(self) -> None:
        """A new run appends its user messages afresh."""
        self._user_appended = Counter()

    def round_context(self, round_index: int) -> RoundContext:
        registry = self.registry
        return RoundContext(
            round_index=round_index,
            messages=list(self.messages),
            tools=DefinitionCollection(registry.handles(DefinitionKind.TOOL, DefinitionKind.AGENT)),
            systems=DefinitionCollection(registry.handles(DefinitionKind.SYSTEM)),
            variables=DefinitionCollection(registry.handles(DefinitionKind.VARIABLE)),
            last_tool=self.last_tool,
            engine=self,
        )

    def emit(self, type: EventType, **data: Any) -> None:
        if self.wire is not None:
            self.wire.emit(type, self.label, **data)


async def run_prompt(
    builder: Builder,
    model: str | None = None,
    *,
    provider: ChatProvider | None = None,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
    wire: Wire | None = None,
    **options: Any,
) -> RunResult:
    """One-shot helper: build an engine and run *builder*.

    Extra keyword arguments are sampling options sent with every round.
    """
    if provider is None:
        if model is None:
            raise EngineError(
                "run_prompt needs a model name or a provider", ErrorCodes.MODEL_REQUIRED
            )
        provider = create_provider(model)
    engine = Engine(provider, options=options, max_rounds=max_rounds, wire=wire)
    return await engine.run(builder)
