"""Tests for restep.llm.message."""

from __future__ import annotations

from restep.llm.message import (
    Message,
    TextPart,
    TokenUsage,
    ToolCallPart,
    ToolResultPart,
)


# ---------------------------------------------------------------------------
# TokenUsage
# ---------------------------------------------------------------------------


class TestTokenUsage:
    def test_defaults(self) -> None:
        u = TokenUsage()
        assert (u.input_tokens, u.output_tokens, u.total_tokens) == (0, 0, 0)

    def test_add(self) -> None:
        total = TokenUsage(1, 2, 3) + TokenUsage(10, 20, 30)
        assert total == TokenUsage(11, 22, 33)


# ---------------------------------------------------------------------------
# Message.tool_calls: argument parsing
# ---------------------------------------------------------------------------


class TestToolCalls:
    def test_parses_json_object(self) -> None:
        tc = ToolCallPart(id="tc1", name="add", arguments='{"a": 1, "b": 2}')
        msg = Message(role="assistant", parts=[tc])
        calls = msg.tool_calls
        assert len(calls) == 1
        assert calls[0].arguments == {"a": 1, "b": 2}
        assert calls[0].parse_error is None

    def test_empty_arguments_are_empty_object(self) -> None:
        msg = Message(role="assistant", parts=[ToolCallPart(id="t", name="ping")])
        assert msg.tool_calls[0].arguments == {}
        assert msg.tool_calls[0].parse_error is None

    def test_invalid_json_sets_parse_error(self) -> None:
        tc = ToolCallPart(id="tc1", name="add", arguments='{"a": ')
        call = Message(role="assistant", parts=[tc]).tool_calls[0]
        assert call.arguments == {}
        assert call.parse_error is not None
        assert "not valid JSON" in call.parse_error

    def test_non_object_json_sets_parse_error(self) -> None:
        tc = ToolCallPart(id="tc1", name="add", arguments="[1, 2]")
        call = Message(role="assistant", parts=[tc]).tool_calls[0]
        assert call.parse_error == "arguments must be a JSON object"

    def test_text_ignores_tool_calls(self) -> None:
        msg = Message(
            role="assistant",
            parts=[TextPart(text="a"), ToolCallPart(id="x", name="n"), TextPart(text="b")],
        )
        assert msg.text == "ab"


# ---------------------------------------------------------------------------
# Constructors and to_openai_dict
# ---------------------------------------------------------------------------


class TestConstructors:
    def test_user(self) -> None:
        msg = Message.user("hello")
        assert msg.role == "user"
        assert msg.to_openai_dict() == {"role": "user", "content": "hello"}

    def test_empty_assistant_keeps_blank_text(self) -> None:
        msg = Message.assistant()
        assert len(msg.parts) == 1
        assert msg.to_openai_dict() == {"role": "assistant", "content": ""}

    def test_assistant_with_tool_calls(self) -> None:
        tc = ToolCallPart(id="tc1", name="shell", arguments='{"cmd":"ls"}')
        d = Message.assistant(tool_calls=[tc]).to_openai_dict()
        assert d["content"] is None
        assert d["tool_calls"] == [
            {
                "id": "tc1",
                "type": "function",
                "function": {"name": "shell", "arguments": '{"cmd":"ls"}'},
            }
        ]

    def test_tool_result(self) -> None:
        msg = Message.tool_result("tc1", '{"ok": true}', name="shell", is_error=True)
        part = msg.parts[0]
        assert isinstance(part, ToolResultPart)
        assert part.is_error is True
        assert msg.to_openai_dict() == {
            "role": "tool",
            "tool_call_id": "tc1",
            "content": '{"ok": true}',
        }
