"""Tests for restep.assembly (templates, system rendering, step overrides)."""

from __future__ import annotations

import logging

import pytest
from pydantic import BaseModel

from restep.assembly import (
    StepAssembler,
    StepOverrides,
    SystemSection,
    Variable,
    render_system,
    render_template,
    render_variable,
    to_yaml,
)
from restep.definitions.registry import DefinitionKind, DefinitionRegistry
from restep.errors import EngineError, ErrorCodes
from restep.llm.message import Message
from restep.tool.base import tool


class EmptyParams(BaseModel):
    pass


def _noop(params: EmptyParams) -> str:
    return "ok"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRenderTemplate:
    def test_handles_become_tags(self) -> None:
        reg = DefinitionRegistry()
        handle = reg.declare(DefinitionKind.VARIABLE, "userName", "Ada")
        assert render_template("Greet {user}", user=handle) == "Greet <userName>"

    def test_plain_values(self) -> None:
        assert render_template("{a} + {b}", a=1, b=2) == "1 + 2"

    def test_no_values_leaves_braces(self) -> None:
        assert render_template('Reply with {"ok": true}') == 'Reply with {"ok": true}'


class TestRenderSystem:
    def test_text_variable(self) -> None:
        assert render_variable(Variable("NAME", "Ada")) == "  <NAME>\n Ada\n  </NAME>"

    def test_data_variable_is_yaml(self) -> None:
        rendered = render_variable(Variable("CFG", {"b": 1, "a": [1, 2]}, "data"))
        assert rendered == "  <CFG>\nb: 1\na:\n- 1\n- 2\n  </CFG>"

    def test_pydantic_values_dumped(self) -> None:
        class Point(BaseModel):
            x: int
            y: int

        assert to_yaml(Point(x=1, y=2)) == "x: 1\ny: 2"

    def test_layout(self) -> None:
        text = render_system(
            [SystemSection("persona", "Be kind.")],
            [Variable("NAME", "Ada")],
            ["variable <NAME>"],
        )
        assert text == (
            "<persona>\nBe kind.\n</persona>\n\n"
            "<variables>\n  <NAME>\n Ada\n  </NAME>\n</variables>\n\n"
            "<reminder>\nPay particular attention to these definitions:\n"
            "- variable <NAME>\n</reminder>"
        )

    def test_empty(self) -> None:
        assert render_system([], [], []) == ""


# ---------------------------------------------------------------------------
# StepOverrides
# ---------------------------------------------------------------------------


class TestStepOverrides:
    def test_later_call_wins(self) -> None:
        step = StepOverrides()
        step("systems", ["a"])
        step("systems", ["b"])
        assert step.get("systems") == ["b"]
        assert step.aspects == ("systems",)
        assert "systems" in step
        assert step

    def test_extend_collects_extras(self) -> None:
        step = StepOverrides()
        step.extend("systems", ["a"])
        step.extend("systems", ["b"])
        assert step.get("systems") is None
        assert step.extra("systems") == ["a", "b"]
        assert step.aspects == ("systems",)
        assert step

    def test_replacement_drops_earlier_extensions(self) -> None:
        step = StepOverrides()
        step.extend("tools", ["a"])
        step("tools", ["b"])
        step.extend("tools", ["c"])
        assert step.get("tools") == ["b"]
        assert step.extra("tools") == ["c"]

    def test_extend_checks_aspect(self) -> None:
        with pytest.raises(EngineError):
            StepOverrides().extend("model", ["x"])

    def test_invalid_aspect(self) -> None:
        step = StepOverrides()
        with pytest.raises(EngineError) as exc_info:
            step("model", ["x"])
        assert exc_info.value.code == ErrorCodes.INVALID_ASPECT

    def test_empty_is_falsy(self) -> None:
        assert not StepOverrides()
        assert StepOverrides().get("tools") is None


# ---------------------------------------------------------------------------
# StepAssembler
# ---------------------------------------------------------------------------


def _populated() -> DefinitionRegistry:
    reg = DefinitionRegistry()
    reg.begin_pass(0)
    reg.declare(DefinitionKind.SYSTEM, "persona", "Be kind.")
    reg.declare(DefinitionKind.SYSTEM, "rules", "No lies.")
    reg.declare(DefinitionKind.VARIABLE, "NAME", "Ada")
    reg.declare(DefinitionKind.TOOL, "ping", tool("ping", "Ping", EmptyParams, _noop))
    reg.declare(DefinitionKind.TOOL, "pong", tool("pong", "Pong", EmptyParams, _noop))
    reg.reconcile()
    return reg


def _assemble(reg: DefinitionRegistry, step: StepOverrides | None = None, messages=None):
    return StepAssembler(reg).assemble(
        0,
        messages or [Message.user("hi")],
        reg.systems(),
        reg.variables(),
        reg.tools(),
        step,
    )


class TestStepAssembler:
    def test_defaults_from_registry(self) -> None:
        reg = _populated()
        ri = _assemble(reg)
        assert [s.name for s in ri.systems] == ["persona", "rules"]
        assert ri.tool_names == ["ping", "pong"]
        assert ri.overridden == ()
        assert "<variables>" in ri.system
        assert [t["function"]["name"] for t in ri.tool_table()] == ["ping", "pong"]

    def test_tools_override_by_name_and_handle(self) -> None:
        reg = _populated()
        step = StepOverrides()
        step("tools", [reg.get(DefinitionKind.TOOL, "pong")])
        ri = _assemble(reg, step)
        assert ri.tool_names == ["pong"]
        assert ri.overridden == ("tools",)

    def test_override_adds_round_local_tool(self) -> None:
        reg = _populated()
        extra = tool("extra", "Extra", EmptyParams, _noop)
        step = StepOverrides()
        step("tools", ["ping", extra])
        ri = _assemble(reg, step)
        assert ri.tool_names == ["ping", "extra"]
        assert ri.tool("extra") is extra
        # the registry never learns about it
        assert reg.get(DefinitionKind.TOOL, "extra") is None

    def test_systems_override_accepts_sections_and_tuples(self) -> None:
        reg = _populated()
        step = StepOverrides()
        step("systems", ["rules", SystemSection("extra", "X"), ("pair", "Y")])
        ri = _assemble(reg, step)
        assert [s.name for s in ri.systems] == ["rules", "extra", "pair"]
        assert "<persona>" not in ri.system
        assert "<pair>\nY\n</pair>" in ri.system

    def test_variables_override(self) -> None:
        reg = _populated()
        step = StepOverrides()
        step("variables", [Variable("ctx", {"k": 1}, "data")])
        ri = _assemble(reg, step)
        assert [v.name for v in ri.variables] == ["ctx"]
        assert "  <ctx>\nk: 1\n  </ctx>" in ri.system

    def test_messages_override(self) -> None:
        reg = _populated()
        history = [Message.user("one"), Message.user("two")]
        step = StepOverrides()
        step("messages", history[1:])
        ri = _assemble(reg, step, history)
        assert [m.text for m in ri.messages] == ["two"]
        assert len(history) == 2

    def test_extension_lands_on_active_items(self) -> None:
        reg = _populated()
        extra = tool("extra", "Extra", EmptyParams, _noop)
        step = StepOverrides()
        step.extend("tools", [extra])
        step.extend("systems", [SystemSection("note", "N")])
        # "rules" and "pong" were narrowed away before assembly
        ri = StepAssembler(reg).assemble(
            0,
            [],
            [e for e in reg.systems() if e.name != "rules"],
            reg.variables(),
            [e for e in reg.tools() if e.name != "pong"],
            step,
        )
        assert ri.tool_names == ["ping", "extra"]
        assert [s.name for s in ri.systems] == ["persona", "note"]
        assert ri.overridden == ("tools", "systems")

    def test_extension_replaces_same_name(self) -> None:
        reg = _populated()
        step = StepOverrides()
        step.extend("systems", [SystemSection("rules", "Some lies.")])
        ri = _assemble(reg, step)
        assert [s.text for s in ri.systems] == ["Be kind.", "Some lies."]

    def test_extension_after_replacement(self) -> None:
        reg = _populated()
        step = StepOverrides()
        step("variables", [])
        step.extend("variables", [Variable("ctx", "v")])
        step.extend("messages", [Message.user("extra")])
        ri = _assemble(reg, step)
        assert [v.name for v in ri.variables] == ["ctx"]
        assert [m.text for m in ri.messages] == ["hi", "extra"]

    def test_unknown_items_skipped_with_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        reg = _populated()
        step = StepOverrides()
        step("tools", ["ping", "ghost"])
        step("messages", ["not a message"])
        with caplog.at_level(logging.WARNING, logger="restep.assembly"):
            ri = _assemble(reg, step)
        assert ri.tool_names == ["ping"]
        assert ri.messages == []
        assert "no such tool" in caplog.text

    def test_reminders_rendered(self) -> None:
        reg = _populated()
        reg.get(DefinitionKind.SYSTEM, "rules").remind()
        ri = _assemble(reg)
        assert ri.reminders == ["system <rules>"]
        assert ri.system.endswith("- system <rules>\n</reminder>")
