"""Composite tools: one call name, an ordered list of member calls."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Union

from pydantic import BaseModel, Field, create_model

from restep.errors import ToolInputError

if TYPE_CHECKING:
    from restep.tool.base import ToolSpec

logger = logging.getLogger(__name__)


def _model_name(*parts: str) -> str:
    return "".join(re.sub(r"\W", "_", p).title().replace("_", "") for p in parts)


def composite_input_model(
    name: str, members: list[ToolSpec], label: str
) -> type[BaseModel]:
    """``{calls: [{name: Literal[member], args: member.input_model}, ...]}``."""
    variants = [
        create_model(
            _model_name(name, m.name, "call"),
            name=(
                Literal[m.name],  # type: ignore[valid-type]
                Field(description=f'Call the "{m.name}" {label}'),
            ),
            args=(m.input_model, Field(description=m.description)),
        )
        for m in members
    ]
    call_type: Any = variants[0] if len(variants) == 1 else Union[tuple(variants)]
    return create_model(
        _model_name(name, "calls"),
        calls=(list[call_type], Field(description=f"Array of {label} calls to execute")),
    )


def enhanced_description(description: str, members: list[ToolSpec], label: str) -> str:
    docs = "\n".join(f"  - {m.name}: {m.description}" for m in members)
    return f"{description}\n\nAvailable {label}:\n{docs}"


@dataclass
class SubCall:
    """One entry of a composite call list, before member validation."""

    name: str
    args: Any


def parse_calls(arguments: dict[str, Any]) -> list[SubCall]:
    """Leniently pull the call list out of composite arguments.

    Only the outer shape is checked here; each member validates its own
    ``args`` when it runs, so one malformed entry cannot sink its siblings.
    """
    calls = arguments.get("calls")
    if not isinstance(calls, list):
        raise ToolInputError(
            "Composite call requires a 'calls' array of {name, args} objects"
        )
    parsed: list[SubCall] = []
    for item in calls:
        if isinstance(item, dict):
            name = item.get("name")
            parsed.append(SubCall(name=name if isinstance(name, str) else "", args=item.get("args", {})))
        else:
            parsed.append(SubCall(name="", args=item))
    return parsed
