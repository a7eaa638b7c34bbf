"""Tests for restep.llm.provider (retry logic, option merging, chunk normalization)."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from restep.llm.provider import (
    ChatProvider,
    LiteLLMProvider,
    ProviderConfig,
    _acompletion_with_retry,
    _chunk_to_dict,
    create_provider,
)


# ---------------------------------------------------------------------------
# ProviderConfig / create_provider
# ---------------------------------------------------------------------------


class TestCreateProvider:
    def test_returns_litellm_provider(self) -> None:
        provider = create_provider("test/model")
        assert isinstance(provider, LiteLLMProvider)
        assert isinstance(provider, ChatProvider)

    def test_default_options_empty(self) -> None:
        config = ProviderConfig(model="test/model")
        assert config.options == {}

    def test_options_propagated(self) -> None:
        provider = create_provider("openai/gpt-4o", temperature=0.2, max_tokens=512)
        assert provider.config.model == "openai/gpt-4o"
        assert provider.config.options == {"temperature": 0.2, "max_tokens": 512}


# ---------------------------------------------------------------------------
# LiteLLMProvider.stream: request shape
# ---------------------------------------------------------------------------


class _FakeStream:
    def __init__(self, chunks: list[Any]) -> None:
        self._chunks = list(chunks)

    def __aiter__(self) -> _FakeStream:
        return self

    async def __anext__(self) -> Any:
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)


class TestStreamRequest:
    async def _collect(self, provider: LiteLLMProvider, **kwargs: Any) -> tuple[list, dict]:
        mock = AsyncMock(return_value=_FakeStream([]))
        with patch("restep.llm.provider._acompletion_with_retry", mock):
            chunks = [c async for c in provider.stream(**kwargs)]
        return chunks, mock.call_args.kwargs

    async def test_system_prepended(self) -> None:
        provider = create_provider("test/model")
        _, sent = await self._collect(
            provider, system="be brief", messages=[{"role": "user", "content": "hi"}]
        )
        assert sent["messages"][0] == {"role": "system", "content": "be brief"}
        assert sent["messages"][1]["content"] == "hi"
        assert sent["stream"] is True
        assert sent["stream_options"] == {"include_usage": True}

    async def test_empty_system_omitted(self) -> None:
        provider = create_provider("test/model")
        _, sent = await self._collect(provider, system="", messages=[])
        assert sent["messages"] == []

    async def test_call_options_override_defaults(self) -> None:
        provider = create_provider("test/model", temperature=0.5, max_tokens=100)
        _, sent = await self._collect(
            provider, system="", messages=[], options={"temperature": 0.0}
        )
        assert sent["temperature"] == 0.0
        assert sent["max_tokens"] == 100
        assert sent["model"] == "test/model"

    async def test_tools_only_sent_when_present(self) -> None:
        provider = create_provider("test/model")
        _, sent = await self._collect(provider, system="", messages=[], tools=[])
        assert "tools" not in sent

        spec = {"type": "function", "function": {"name": "x", "parameters": {}}}
        _, sent = await self._collect(provider, system="", messages=[], tools=[spec])
        assert sent["tools"] == [spec]


# ---------------------------------------------------------------------------
# _acompletion_with_retry: retry logic
# ---------------------------------------------------------------------------


class TestRetryLogic:
    async def test_success_on_first_try(self) -> None:
        mock_acompletion = AsyncMock(return_value="ok")
        with patch("litellm.acompletion", mock_acompletion):
            result = await _acompletion_with_retry(model="test", messages=[])
            assert result == "ok"
            assert mock_acompletion.call_count == 1

    async def test_retries_on_connection_error(self) -> None:
        mock_acompletion = AsyncMock(side_effect=[ConnectionError("conn failed"), "ok"])
        with patch("litellm.acompletion", mock_acompletion):
            result = await _acompletion_with_retry(model="test", messages=[])
            assert result == "ok"
            assert mock_acompletion.call_count == 2

    async def test_retries_on_timeout_error(self) -> None:
        mock_acompletion = AsyncMock(side_effect=[TimeoutError("timed out"), "ok"])
        with patch("litellm.acompletion", mock_acompletion):
            result = await _acompletion_with_retry(model="test", messages=[])
            assert result == "ok"

    async def test_gives_up_after_3_attempts(self) -> None:
        mock_acompletion = AsyncMock(
            side_effect=[
                ConnectionError("fail 1"),
                ConnectionError("fail 2"),
                ConnectionError("fail 3"),
            ]
        )
        with patch("litellm.acompletion", mock_acompletion):
            with pytest.raises(ConnectionError, match="fail 3"):
                await _acompletion_with_retry(model="test", messages=[])
            assert mock_acompletion.call_count == 3

    async def test_does_not_retry_on_value_error(self) -> None:
        mock_acompletion = AsyncMock(side_effect=ValueError("bad input"))
        with patch("litellm.acompletion", mock_acompletion):
            with pytest.raises(ValueError, match="bad input"):
                await _acompletion_with_retry(model="test", messages=[])
            assert mock_acompletion.call_count == 1


# ---------------------------------------------------------------------------
# _chunk_to_dict: normalization
# ---------------------------------------------------------------------------


class _FakeFunction:
    def __init__(self, name: str | None, arguments: str | None) -> None:
        self.name = name
        self.arguments = arguments


class _FakeToolCallDelta:
    def __init__(
        self, index: int, id: str | None, function: _FakeFunction | None
    ) -> None:
        self.index = index
        self.id = id
        self.function = function


class _FakeDelta:
    def __init__(
        self,
        content: str | None = None,
        role: str | None = None,
        tool_calls: list | None = None,
    ) -> None:
        self.content = content
        self.role = role
        self.tool_calls = tool_calls


class _FakeChoice:
    def __init__(self, delta: _FakeDelta, finish_reason: str | None = None) -> None:
        self.delta = delta
        self.finish_reason = finish_reason


class _FakeChunk:
    def __init__(
        self,
        choices: list[_FakeChoice] | None = None,
        usage: object | None = None,
        chunk_id: str = "chunk_1",
    ) -> None:
        self.id = chunk_id
        self.choices = choices
        self.usage = usage


class TestChunkToDict:
    def test_text_content(self) -> None:
        chunk = _FakeChunk(choices=[_FakeChoice(delta=_FakeDelta(content="hello"))])
        d = _chunk_to_dict(chunk)
        assert d["id"] == "chunk_1"
        assert d["delta"]["content"] == "hello"
        assert d["finish_reason"] is None

    def test_finish_reason(self) -> None:
        chunk = _FakeChunk(choices=[_FakeChoice(delta=_FakeDelta(), finish_reason="stop")])
        assert _chunk_to_dict(chunk)["finish_reason"] == "stop"

    def test_no_choices(self) -> None:
        d = _chunk_to_dict(_FakeChunk(choices=None))
        assert d["finish_reason"] is None
        assert d["delta"] == {}

    def test_tool_call_delta(self) -> None:
        tc = _FakeToolCallDelta(0, "call_1", _FakeFunction("add", '{"a": 1'))
        chunk = _FakeChunk(choices=[_FakeChoice(delta=_FakeDelta(tool_calls=[tc]))])
        d = _chunk_to_dict(chunk)
        assert d["delta"]["tool_calls"] == [
            {"index": 0, "id": "call_1", "function": {"name": "add", "arguments": '{"a": 1'}}
        ]

    def test_tool_call_delta_without_function(self) -> None:
        tc = _FakeToolCallDelta(1, None, None)
        chunk = _FakeChunk(choices=[_FakeChoice(delta=_FakeDelta(tool_calls=[tc]))])
        entry = _chunk_to_dict(chunk)["delta"]["tool_calls"][0]
        assert entry["function"] == {"name": None, "arguments": None}

    def test_usage_present(self) -> None:
        class FakeUsage:
            prompt_tokens = 100
            completion_tokens = 50
            total_tokens = 150

        chunk = _FakeChunk(choices=[], usage=FakeUsage())
        d = _chunk_to_dict(chunk)
        assert d["usage"] == {
            "prompt_tokens": 100,
            "completion_tokens": 50,
            "total_tokens": 150,
        }

    def test_content_none_not_in_delta(self) -> None:
        chunk = _FakeChunk(choices=[_FakeChoice(delta=_FakeDelta(content=None))])
        assert "content" not in _chunk_to_dict(chunk)["delta"]
