"""Deterministic model collaborator for tests and examples.

A script is a list of items:

    "text"                    -> streamed assistant text
    call("search", q="x")     -> one tool call
    [call(...), call(...)]    -> several tool calls in one response
    fn(request) -> item       -> computed from the request

Each ``stream()`` consumes one item. A text directly followed by a tool call
or batch joins it in the same response, so
``["Looking", call("search", q="x"), "Done"]`` is two rounds and
``["one", "two"]`` is two rounds too.
When the script runs out the provider answers with ``default_text``.
"""

from __future__ import annotations

import copy
import itertools
import json
import logging
from collections import deque
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from restep.llm.provider import ProviderConfig

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


@dataclass
class ScriptedCall:
    name: str
    arguments: dict[str, Any] | str = field(default_factory=dict)
    id: str = ""

    def arguments_json(self) -> str:
        if isinstance(self.arguments, str):
            return self.arguments
        return json.dumps(self.arguments)


def call(name: str, _id: str = "", /, **arguments: Any) -> ScriptedCall:
    """Shorthand for a scripted tool call."""
    return ScriptedCall(name=name, arguments=arguments, id=_id)


@dataclass
class ScriptedRequest:
    """One recorded ``stream()`` call."""

    system: str
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]]
    options: dict[str, Any]

    @property
    def tool_names(self) -> list[str]:
        return [t["function"]["name"] for t in self.tools]

    @property
    def last_message(self) -> dict[str, Any] | None:
        return self.messages[-1] if self.messages else None


class ScriptedProvider:
    """Replays a fixed script of responses."""

    def __init__(
        self,
        script: list[Any] | None = None,
        *,
        model: str = "scripted/test",
        default_text: str = "",
        chunk_size: int = 0,
    ) -> None:
        self._config = ProviderConfig(model=model)
        self._script: deque[Any] = deque(script or [])
        self.default_text = default_text
        self.chunk_size = chunk_size
        self.requests: list[ScriptedRequest] = []

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def remaining(self) -> int:
        return len(self._script)

    def extend(self, items: list[Any]) -> None:
        self._script.extend(items)

    async def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        options: dict[str, Any] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        request = ScriptedRequest(
            system=system,
            messages=copy.deepcopy(messages),
            tools=list(tools or []),
            options=dict(options or {}),
        )
        self.requests.append(request)

        texts, calls = self._next_response(request)
        response_id = f"scripted-{len(self.requests)}"
        completion_tokens = 0

        for text in texts:
            for piece in self._split(text):
                completion_tokens += len(piece.split())
                yield {
                    "id": response_id,
                    "finish_reason": None,
                    "delta": {"role": "assistant", "content": piece},
                }

        for idx, c in enumerate(calls):
            yield {
                "id": response_id,
                "finish_reason": None,
                "delta": {
                    "tool_calls": [
                        {
                            "index": idx,
                            "id": c.id or f"call_{next(_ids)}",
                            "function": {"name": c.name, "arguments": c.arguments_json()},
                        }
                    ]
                },
            }

        prompt_tokens = sum(len(str(m.get("content") or "").split()) for m in messages)
        yield {
            "id": response_id,
            "finish_reason": "tool_calls" if calls else "stop",
            "delta": {},
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        }

    def _next_response(self, request: ScriptedRequest) -> tuple[list[str], list[ScriptedCall]]:
        texts: list[str] = []
        while self._script:
            item = self._script.popleft()
            if callable(item):
                item = item(request)
            if isinstance(item, ScriptedCall):
                return texts, [item]
            if isinstance(item, (list, tuple)):
                return texts, list(item)
            texts.append(str(item))
            if not (self._script and isinstance(self._script[0], (ScriptedCall, list, tuple))):
                return texts, []
        if not texts and self.default_text:
            texts.append(self.default_text)
        return texts, []

    def _split(self, text: str) -> list[str]:
        if self.chunk_size <= 0 or not text:
            return [text]
        return [text[i : i + self.chunk_size] for i in range(0, len(text), self.chunk_size)]


class FailingProvider:
    """Raises *error* from every stream, after yielding *chunks*."""

    def __init__(self, error: BaseException, chunks: list[dict[str, Any]] | None = None) -> None:
        self._config = ProviderConfig(model="scripted/failing")
        self.error = error
        self.chunks = chunks or []
        self.calls = 0

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        options: dict[str, Any] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        self.calls += 1
        for chunk in self.chunks:
            yield chunk
        raise self.error
