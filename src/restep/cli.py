"""CLI entry point for restep."""

from __future__ import annotations

import asyncio
import importlib.util
import json
import logging
import os
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

import typer

from restep.config import RestepConfig
from restep.errors import RestepError

app = typer.Typer(
    name="restep",
    help="Run reactive, tool-augmented LLM conversations from Python builder scripts.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_script(path: Path) -> ModuleType:
    """Import a builder script by path."""
    spec = importlib.util.spec_from_file_location(f"restep_script_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise typer.BadParameter(f"Cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)
    logger.debug("Loaded builder script %s", path)
    return module


@app.command()
def run(
    script: str = typer.Argument(help="Python file defining build(ctx)."),
    model: str | None = typer.Option(
        None,
        "--model",
        "-m",
        help="Model to use (default: from env/config, or the script's OPTIONS).",
    ),
    max_rounds: int | None = typer.Option(
        None, "--max-rounds", "-r", help="Round limit for the conversation."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run the builder in SCRIPT until the model gives a final answer."""
    setup_logging(verbose)

    script_path = Path(script).resolve()
    if not script_path.is_file():
        typer.echo(f"Error: Script not found: {script_path}", err=True)
        raise typer.Exit(1)

    try:
        config = RestepConfig.load(config_file)
    except RestepError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1) from e

    module = load_script(script_path)
    build = getattr(module, "build", None)
    if not callable(build):
        typer.echo(f"Error: {script_path.name} does not define build(ctx)", err=True)
        raise typer.Exit(1)

    options: dict[str, Any] = dict(getattr(module, "OPTIONS", None) or {})
    script_model = options.pop("model", None)
    if model:
        config.llm.model = model
    elif script_model:
        config.llm.model = script_model
    if max_rounds is not None:
        config.engine.max_rounds = max_rounds

    typer.echo(f"Script: {script_path}")
    typer.echo(f"Model: {config.llm.model}")
    _show_api_key_status(config)
    typer.echo("---")

    try:
        outcome = asyncio.run(_run_script(build, config, options))
    except RestepError as e:
        typer.echo(f"\nERROR [{e.code}]: {e.message}", err=True)
        raise typer.Exit(1) from e

    typer.echo(f"\n---\nOutcome: {outcome}")


async def _run_script(build: Any, config: RestepConfig, options: dict[str, Any]) -> str:
    from restep.engine.engine import Engine
    from restep.session.wire import EventType, Wire

    wire = Wire()

    async def _consume_wire() -> None:
        queue = wire.subscribe()
        at_line_start = True
        while True:
            event = await queue.get()
            if event is None:
                break

            d = event.data
            agent = d.get("agent")
            prefix = f"  [{agent}] " if agent else ""

            if event.type == EventType.TEXT:
                text = d.get("text", "")
                if at_line_start and prefix:
                    print(prefix, end="", flush=True)
                print(text, end="", flush=True)
                at_line_start = text.endswith("\n")
                continue

            if not at_line_start:
                print(flush=True)
                at_line_start = True

            if event.type == EventType.ROUND_BEGIN:
                tools = ", ".join(d.get("tools", [])) or "none"
                print(f"{prefix}[Round {d.get('index', 0)}] tools: {tools}", flush=True)

            elif event.type == EventType.TOOL_CALL:
                args = json.dumps(d.get("arguments", {}))
                print(f"{prefix}> {d.get('name', '?')} {args[:100]}", flush=True)

            elif event.type == EventType.TOOL_RESULT:
                content = d.get("content", "")
                status = "ERROR" if d.get("is_error") else "OK"
                first_line = content.split("\n")[0][:100] if content else status
                print(f"{prefix}< {d.get('name', '?')}: {first_line}", flush=True)

            elif event.type == EventType.AGENT_BEGIN:
                print(f"{prefix}--- Agent: {d.get('name', '?')} ---", flush=True)

            elif event.type == EventType.AGENT_END:
                print(f"{prefix}--- {d.get('name', '?')} {d.get('outcome', '')} ---", flush=True)

            elif event.type == EventType.ERROR:
                print(f"\n{prefix}ERROR: {d.get('error', '')}", flush=True)

            elif event.type == EventType.STATUS:
                print(f"{prefix}[{d.get('message', '')}]", flush=True)

        wire.unsubscribe(queue)

    consumer_task = asyncio.create_task(_consume_wire())

    engine = Engine.from_config(config, wire=wire)
    engine.options.update(options)
    try:
        result = await engine.run(build)
        wire.send_status(
            f"{result.rounds} rounds, {result.usage.total_tokens:,} tokens"
        )
    finally:
        wire.close()
        await consumer_task

    return result.outcome.value


@app.command()
def config(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Show the resolved configuration and which API key is active."""
    try:
        resolved = RestepConfig.load(config_file)
    except RestepError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1) from e

    typer.echo(f"Model: {resolved.llm.model}")
    typer.echo(f"Sampling options: {resolved.llm.sampling_options() or 'defaults'}")
    typer.echo(f"Max rounds: {resolved.engine.max_rounds}")
    typer.echo(f"Stream attempts: {resolved.engine.stream_attempts}")
    _show_api_key_status(resolved)


def _show_api_key_status(config: RestepConfig) -> None:
    """Print which API key litellm will pick up for the configured model."""
    provider_prefix = config.llm.model.split("/")[0] if "/" in config.llm.model else ""
    key_env_map = {
        "anthropic": "ANTHROPIC_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "openai": "OPENAI_API_KEY",
    }
    env_var = key_env_map.get(provider_prefix, "")
    if not env_var:
        typer.echo(f"Provider: {provider_prefix or 'unknown'} (check API key manually)")
        return
    key = os.environ.get(env_var, "")
    if key:
        masked = f"{key[:8]}...{key[-4:]}" if len(key) > 12 else "***"
        typer.echo(f"API key: {env_var} = {masked}")
    else:
        typer.echo(f"WARNING: {env_var} is not set! Set it in .env or your shell.", err=True)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
