"""Persistent project context loaded from ``.restep.md`` files.

    define_context(ctx)                          # ./.restep.md
    define_context(ctx, search_parents=True)     # plus every parent directory
    define_context(ctx, paths=["docs/.restep.md"])
    define_context(ctx, content="Always answer in French.")

Files are read once per engine; the result is kept in state
``_persistentContext`` and re-declared as a system section on every pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONTEXT_FILENAME = ".restep.md"
CONTEXT_STATE_KEY = "_persistentContext"


@dataclass(frozen=True)
class ContextResult:
    loaded: bool
    sources: list[str] = field(default_factory=list)
    content: str = ""


def find_context_files(start_dir: Path, search_parents: bool = False) -> list[Path]:
    """Context files from *start_dir* (and its parents, outermost first)."""
    current = start_dir.resolve()
    files = []
    candidate = current / CONTEXT_FILENAME
    if candidate.is_file():
        files.append(candidate)
    if search_parents:
        for parent in current.parents:
            candidate = parent / CONTEXT_FILENAME
            if candidate.is_file():
                files.insert(0, candidate)
    return files


def load_context_files(paths: list[Path]) -> ContextResult:
    parts: list[str] = []
    sources: list[str] = []
    for path in paths:
        try:
            text = path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning("Skipping context file %s: %s", path, e)
            continue
        if text:
            parts.append(f"<!-- Source: {path} -->\n{text}")
            sources.append(str(path))
    content = "\n\n".join(parts)
    return ContextResult(loaded=bool(content), sources=sources, content=content)


def define_context(
    ctx: Any,
    paths: list[str | Path] | None = None,
    content: str | None = None,
    section: str = "projectContext",
    search_parents: bool = False,
    start_dir: str | Path | None = None,
) -> ContextResult:
    """Declare the project context section for this pass."""
    if CONTEXT_STATE_KEY in ctx.engine.store:
        result = ctx.get_state(CONTEXT_STATE_KEY)
    else:
        if content:
            result = ContextResult(loaded=True, sources=["direct"], content=content)
        elif paths:
            result = load_context_files([Path(p) for p in paths])
        else:
            base = Path(start_dir) if start_dir is not None else Path.cwd()
            result = load_context_files(find_context_files(base, search_parents))
        ctx.state(CONTEXT_STATE_KEY, result)
        logger.debug("Loaded project context from %s", result.sources or "nowhere")

    if result.loaded:
        ctx.system(section, result.content)
    return result
