"""
Main CLI application for flowcore.

Usage:
    flowcore chat [--model ID] [--profile NAME] [--browse]
    flowcore compress TRANSCRIPT [--model ID] [--title TEXT]
    flowcore models
    flowcore config show|validate
    flowcore version
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from flowcore.config import FlowConfig, LLMProviderConfig, load_config

app = typer.Typer(name="flowcore", help="flowcore - streaming chat inference")
config_app = typer.Typer(help="Configuration management")

app.add_typer(config_app, name="config")

console = Console()

__version__ = "0.1.0"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file in standard locations."""
    candidates = [
        Path.cwd() / "flowcore.yaml",
        Path.cwd() / "flowcore.yml",
        Path.home() / ".config" / "flowcore" / "config.yaml",
        Path.home() / ".flowcore" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _make_provider(entry: LLMProviderConfig):
    from flowcore.llm.providers.local import LocalRuntimeProvider, load_runtime
    from flowcore.llm.providers.ollama import OllamaProvider
    from flowcore.llm.providers.openai_compat import OpenAICompatProvider

    if entry.name == "ollama":
        return OllamaProvider(
            url=entry.api_base or "http://localhost:11434",
            model=entry.model,
            timeout=float(entry.timeout_seconds),
        )
    if entry.name == "openai":
        return OpenAICompatProvider(
            url=entry.api_base or "https://api.openai.com/v1",
            model=entry.model,
            api_key=os.environ.get(entry.api_key_env, ""),
            timeout=float(entry.timeout_seconds),
            max_retries=entry.max_retries,
        )
    if entry.name == "local":
        # model names the flowcore.runtimes entry point, extra holds its options
        return LocalRuntimeProvider(load_runtime(entry.model, entry.extra))
    raise ValueError(f"Unknown provider kind: {entry.name}")


def build_router(cfg: FlowConfig):
    """Register the primary model and every named model from the config."""
    from flowcore.llm.router import ModelRouter

    router = ModelRouter()
    entries = {cfg.llm.model: cfg.llm, **cfg.models}
    for model_id, entry in entries.items():
        router.register_model(
            model_id,
            _make_provider(entry),
            display_name=entry.display_name or entry.model,
            supports_tools=entry.supports_tools,
            max_completion_tokens=entry.max_output_tokens,
            temperature=entry.temperature,
            extra_body=entry.extra,
        )
    return router


def build_registry(cfg: FlowConfig):
    from flowcore.tools.builtin import WaitForNextRoundTool
    from flowcore.tools.registry import ToolRegistry

    registry = ToolRegistry(tool_timeout=cfg.inference.tool_timeout)
    registry.register(WaitForNextRoundTool())
    registry.load_plugins(
        enabled=cfg.plugins.enabled,
        allow_tools=set(cfg.plugins.allow_tools) if cfg.plugins.allow_tools else None,
    )
    return registry


def _build_memory(cfg: FlowConfig):
    from flowcore.prompts.system import StaticMemory

    if not cfg.memory.proactive_memory_file:
        return None
    return StaticMemory(path=cfg.memory.proactive_memory_file)


def _load(profile: str | None, overrides: dict | None = None) -> FlowConfig:
    cfg = load_config(_get_config_path(), profile=profile, cli_overrides=overrides)
    problems = cfg.validate()
    if problems:
        for p in problems:
            console.print(f"[red]Config error:[/red] {p}")
        raise typer.Exit(1)
    return cfg


def _router(cfg: FlowConfig):
    try:
        return build_router(cfg)
    except LookupError as e:
        console.print(f"[red]Model setup failed:[/red] {e}")
        raise typer.Exit(1)


def _select_model(router, model: str | None) -> str:
    if model is None:
        return router.active_model
    try:
        router.set_active(model)
    except KeyError:
        console.print(f"[red]Unknown model:[/red] {model}")
        raise typer.Exit(1)
    return model


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """flowcore command line."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, rich_tracebacks=True)],
        )


@app.command()
def chat(
    model: Optional[str] = typer.Option(None, help="Model id to chat with"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    browse: bool = typer.Option(False, "--browse", help="Start with web search mode on"),
    no_tools: bool = typer.Option(False, "--no-tools", help="Disable tool calls"),
):
    """Start an interactive chat session."""
    from flowcore.cli.chat import ChatHandler
    from flowcore.orchestrator.core import InferenceOrchestrator
    from flowcore.session.manager import ConversationManager

    cfg = _load(profile, {"inference.tools_enabled": False} if no_tools else None)
    router = _router(cfg)
    model_id = _select_model(router, model)

    manager = ConversationManager()
    session = manager.create_new_conversation(
        title=f"Chat {datetime.now():%Y-%m-%d %H:%M}"
    )
    orchestrator = InferenceOrchestrator(
        session,
        router,
        build_registry(cfg),
        cfg.inference,
        memory=_build_memory(cfg),
    )
    handler = ChatHandler(orchestrator, manager, model_id, console=console)
    orchestrator.anchor = handler
    handler.browsing = browse

    asyncio.run(handler.run_loop())


@app.command()
def compress(
    transcript: Path = typer.Argument(..., help="YAML/JSON list of {role, content} messages"),
    model: Optional[str] = typer.Option(None, help="Model id used for the summary"),
    title: Optional[str] = typer.Option(None, help="Title of the source conversation"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Summarise a saved conversation into a new one and print the summary."""
    from flowcore.cli.output import OutputFormatter
    from flowcore.orchestrator.compression import ConversationCompressor
    from flowcore.session.manager import ConversationManager
    from flowcore.session.messages import MessageRole

    if not transcript.is_file():
        console.print(f"[red]File not found:[/red] {transcript}")
        raise typer.Exit(1)
    with transcript.open("r", encoding="utf-8") as f:
        records = yaml.safe_load(f) or []

    roles = {r.value for r in MessageRole}
    for i, record in enumerate(records):
        role = record.get("role", "user") if isinstance(record, dict) else None
        if not isinstance(role, str) or role not in roles:
            console.print(
                f"[red]Unsupported transcript record {i}:[/red] role must be one of "
                f"{', '.join(sorted(roles))}"
            )
            raise typer.Exit(1)

    cfg = _load(profile)
    router = _router(cfg)
    model_id = _select_model(router, model)

    manager = ConversationManager()
    source = manager.create_new_conversation(title=title or transcript.stem)
    for record in records:
        role = MessageRole(record.get("role", "user"))
        source.append_new_message(
            role, lambda m, r=record: m.update("document", str(r.get("content", "")))
        )

    compressor = ConversationCompressor(manager, router, cfg.inference)
    result = asyncio.run(compressor.compress(source.conversation_id, model_id))
    if not result.ok:
        console.print(f"[red]Compression failed:[/red] {result.error}")
        raise typer.Exit(1)

    summary = manager.session(result.conversation_id).messages[-1].document
    OutputFormatter(console).export_transcript(summary)


@app.command()
def models(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """List configured models."""
    from flowcore.cli.output import OutputFormatter

    cfg = _load(profile)
    OutputFormatter(console).format_model_list(_router(cfg))


@config_app.command("show")
def config_show(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Show effective config."""
    from flowcore.cli.output import OutputFormatter

    cfg = load_config(_get_config_path(), profile=profile)
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate():
    """Validate config and show any problems."""
    config_path = _get_config_path()
    try:
        cfg = load_config(config_path)
    except (yaml.YAMLError, TypeError, ValueError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    problems = cfg.validate()
    if problems:
        for p in problems:
            console.print(f"[red]Config error:[/red] {p}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  LLM provider: {cfg.llm.name} ({cfg.llm.model})")
    console.print(f"  Extra models: {', '.join(cfg.models) or 'none'}")
    console.print(f"  Tools enabled: {cfg.inference.tools_enabled}")
    console.print(f"  Plugins enabled: {cfg.plugins.enabled}")


@app.command()
def version():
    """Show version."""
    console.print(f"flowcore v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
