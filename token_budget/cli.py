# token_budget/cli.py
"""
CLI entry point for token-budget.

Available commands:
  token-budget count conversation.json --family claude [--max-input-tokens N]
                     [--tools tools.json] [--system TEXT]
  token-budget calibrations [--config token_budget.yaml]
  token-budget reset [FAMILY] [--config token_budget.yaml]

Conversation files hold either a list of messages or an object with
"messages", and optionally "tools" and "system". A message's "content" may
be a plain string as a shorthand for a single text part.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .estimator import HybridTokenEstimator
from .exceptions import TokenBudgetError
from .models import ChatMessage, ModelInfo

app = typer.Typer(
    name="token-budget",
    help="Estimate chat-request input tokens before sending them.",
    add_completion=False,
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _load_estimator(config_path: Optional[str]) -> HybridTokenEstimator:
    try:
        if config_path:
            return HybridTokenEstimator.from_yaml(config_path)
        return HybridTokenEstimator.from_env()
    except (TokenBudgetError, OSError) as exc:
        console.print(f"[red]Cannot load configuration:[/red] {escape(str(exc))}")
        raise typer.Exit(1)


def _normalise_message(raw: dict[str, Any]) -> dict[str, Any]:
    content = raw.get("content")
    if isinstance(content, str):
        return {**raw, "content": [{"type": "text", "value": content}]}
    return raw


def _load_conversation(path: Path) -> tuple[list[ChatMessage], list[dict[str, Any]], str | None]:
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        console.print(f"[red]Cannot read {path}:[/red] {escape(str(exc))}")
        raise typer.Exit(1)

    if isinstance(document, list):
        document = {"messages": document}
    if not isinstance(document, dict):
        console.print(f"[red]{path} must hold a list of messages or an object.[/red]")
        raise typer.Exit(1)

    try:
        messages = [ChatMessage.model_validate(_normalise_message(m)) for m in document.get("messages", [])]
    except (ValidationError, TypeError) as exc:
        console.print(f"[red]Invalid message in {path}:[/red] {escape(str(exc))}")
        raise typer.Exit(1)
    return messages, document.get("tools") or [], document.get("system")


def _load_tools(path: Path) -> list[dict[str, Any]]:
    try:
        tools = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        console.print(f"[red]Cannot read {path}:[/red] {escape(str(exc))}")
        raise typer.Exit(1)
    if not isinstance(tools, list):
        console.print(f"[red]{path} must hold a list of tool schemas.[/red]")
        raise typer.Exit(1)
    return tools


def _preview(message: ChatMessage, width: int = 48) -> str:
    for part in message.content:
        if part.type == "text":
            text = " ".join(part.value.split())
            return text if len(text) <= width else text[: width - 1] + "…"
    return ", ".join(part.type for part in message.content) or "(empty)"


@app.command()
def count(
    file: Path = typer.Argument(..., help="Conversation JSON file."),
    family: str = typer.Option(..., "--family", "-f", help="Model family, e.g. claude or gpt-4o."),
    max_input_tokens: int = typer.Option(200_000, "--max-input-tokens", "-m", help="Model input window."),
    tools_file: Optional[Path] = typer.Option(None, "--tools", help="JSON file with a list of tool schemas."),
    system_prompt: Optional[str] = typer.Option(None, "--system", help="System prompt text."),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to token_budget.yaml"),
) -> None:
    """Estimate input tokens for a conversation file."""
    messages, tools, system = _load_conversation(file)
    if tools_file is not None:
        tools = _load_tools(tools_file)
    if system_prompt is not None:
        system = system_prompt
    model = ModelInfo(family=family, max_input_tokens=max_input_tokens)

    with _load_estimator(config) as estimator:
        table = Table(title=f"Token estimate: {family}", show_lines=False)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Role", style="bold cyan")
        table.add_column("Content")
        table.add_column("Tokens", justify="right")

        for i, message in enumerate(messages, start=1):
            tokens = estimator.counter.estimate_message(message, family)
            table.add_row(str(i), message.role, _preview(message), f"{tokens:,}")

        conversation = estimator.estimate_conversation(messages, model)
        tools_tokens = estimator.count_tools(tools, model)
        system_tokens = estimator.count_system_prompt(system, model)
        total = conversation.tokens + tools_tokens + system_tokens
        limit = estimator.get_effective_limit(model)

        console.print(table)
        console.print(f"Messages:      {conversation.tokens:,} ({conversation.source})")
        if system_tokens:
            console.print(f"System prompt: {system_tokens:,}")
        if tools_tokens:
            console.print(f"Tools:         {tools_tokens:,} ({len(tools)} tools)")
        colour = "red" if total > limit.limit else "green"
        console.print(
            f"[bold]Total:         [{colour}]{total:,}[/{colour}][/bold] "
            f"of {limit.limit:,} usable ({limit.confidence} confidence)"
        )


def _build_calibration_table(status: dict[str, Any]) -> Table:
    """Render calibration status as a Rich table."""
    table = Table(title="token-budget calibration", show_lines=True)
    table.add_column("Family", style="bold cyan", no_wrap=True)
    table.add_column("Factor", justify="right")
    table.add_column("Samples", justify="right")
    table.add_column("Drift", justify="right")
    table.add_column("Confidence")
    table.add_column("Last calibrated")

    styles = {"high": "green", "medium": "yellow", "low": "red"}
    for family, info in sorted(status.items()):
        confidence = info["confidence"]
        last = info["last_calibrated"]
        last_str = datetime.fromtimestamp(last).strftime("%Y-%m-%d %H:%M:%S") if last else "never"
        table.add_row(
            family,
            f"{info['correction_factor']:.3f}",
            str(info["sample_count"]),
            f"{info['drift_pct']}%",
            f"[{styles[confidence]}]{confidence}[/{styles[confidence]}]",
            last_str,
        )
    return table


@app.command()
def calibrations(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to token_budget.yaml"),
) -> None:
    """Show the persisted calibration state per model family."""
    with _load_estimator(config) as estimator:
        status = estimator.status()
    if not status:
        console.print("No calibration data yet.")
        return
    console.print(_build_calibration_table(status))


@app.command()
def reset(
    family: Optional[str] = typer.Argument(None, help="Family to reset; all families when omitted."),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to token_budget.yaml"),
) -> None:
    """Forget learned calibration."""
    with _load_estimator(config) as estimator:
        if family:
            estimator.calibration.reset(family)
            console.print(f"Reset calibration for [bold]{family}[/bold].")
        else:
            estimator.calibration.reset_all()
            console.print("Reset all calibration.")


if __name__ == "__main__":  # pragma: no cover
    app()
