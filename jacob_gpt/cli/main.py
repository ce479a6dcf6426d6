"""
CLI interface for the JACoB GPT dispatch layer.

Provides command-line access to token budgeting, requests and usage data.
"""

import sqlite3
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from jacob_gpt.config.loader import DispatchConfig, load_dispatch_config
from jacob_gpt.config.logging_setup import configure_logging
from jacob_gpt.core.token_counter import (
    InputTooLargeError,
    compute_max_tokens,
    count_tokens,
    fallback_max_tokens,
)
from jacob_gpt.sdk.openai_client import GPTDispatcher
from jacob_gpt.storage.db import DEFAULT_DB_PATH
from jacob_gpt.storage.repository import UsageRepository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _load_config(config_path: Optional[str]) -> DispatchConfig:
    if config_path:
        return load_dispatch_config(config_path)
    return DispatchConfig()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("WARNING", "--log-level", help="Minimum log level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines"),
):
    """JACoB GPT dispatch CLI."""
    configure_logging(log_level, json_output=json_logs)
    if ctx.invoked_subcommand is None:
        console.print("JACoB GPT - Use --help to see available commands")


@app.command()
def init(
    db_path: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Event store database path"),
):
    """Initialize the usage event store."""
    try:
        initialize_schema(db_path)
        console.print("[green]✓[/] Event store initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except sqlite3.Error as e:
        console.print(f"[red]Error initializing event store:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def budget(
    input_file: Path = typer.Argument(..., help="File containing the full prompt text"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """Show the response token budget for a prompt."""
    try:
        config = _load_config(config_path)
        profile = config.build_registry().get_profile(model or config.default_model)
        text = input_file.read_text(encoding="utf-8")
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    input_tokens = count_tokens(text, profile.name)
    console.print(f"Model: {profile.name}")
    console.print(f"Input tokens: {input_tokens:,}")
    console.print(f"Context window: {profile.context_window:,}")
    try:
        max_tokens = compute_max_tokens(text, profile, count_tokens)
        console.print(f"Response budget: {max_tokens:,}")
    except InputTooLargeError:
        fallback = fallback_max_tokens(profile)
        console.print("[yellow]Input does not fit the context window[/]")
        console.print(f"Fallback response budget: {fallback:,}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="User prompt"),
    system: Optional[str] = typer.Option(None, "--system", "-s", help="System prompt"),
    image_url: Optional[str] = typer.Option(None, "--image-url", "-i", help="Image to include"),
    temperature: Optional[float] = typer.Option(None, "--temperature", "-t"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="YAML config file"),
    record: bool = typer.Option(False, "--record", help="Record a usage event"),
):
    """Send a prompt (optionally with an image) and print the reply."""
    try:
        config = _load_config(config_path)
        dispatcher = GPTDispatcher(config=config)
        reply = dispatcher.send_vision_request(
            prompt,
            system_prompt=system,
            image_url=image_url,
            temperature=temperature,
            event_context={"source": "cli"} if record else None,
        )
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if reply is None:
        console.print("[yellow]No content returned[/]")
    else:
        console.print(reply, markup=False, highlight=False)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def usage(
    days: int = typer.Option(30, "--days", "-d", help="Days of history to include"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Filter to one model"),
    db_path: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Event store database path"),
):
    """Summarize recorded GPT usage."""
    try:
        stats = UsageRepository(db_path).get_usage_stats(model=model, days=days)
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            console.print("\n[bold yellow]No usage data found[/]")
            console.print("Run `jacob-gpt init` to initialize the event store.\n")
            sys.exit(EXIT_CODE_PASS)
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_usage(stats, days, model)
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: float) -> str:
    """Format currency with enough precision for per-token prices."""
    return f"${amount:,.4f}"


def _display_usage(stats, days: int, model: Optional[str]):
    title = f"GPT usage, last {days} days"
    if model:
        title += f" ({model})"

    table = Table(title=title)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Requests", f"{stats['total_requests']:,}")
    table.add_row("Total tokens", f"{stats['total_tokens']:,}")
    table.add_row("Total cost", _format_currency(stats["total_cost"]))
    table.add_row("Average cost", _format_currency(stats["avg_cost"]))
    table.add_row("Average duration", f"{stats['avg_duration_ms']:,.0f} ms")
    console.print(table)


if __name__ == "__main__":
    app()
