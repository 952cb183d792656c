"""
popwarden CLI Helpers

Shared console, status messages and the glue that loads configuration and
storage for a single command invocation.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Optional

import click
import yaml
from pydantic import ValidationError
from rich.console import Console

from popwarden.config.loader import load_config
from popwarden.config.models import PopwardenConfig

# Single shared Console instance for the entire CLI
console = Console()


def print_success(message: str) -> None:
    """Print a success message with green checkmark."""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message with yellow triangle."""
    console.print(f"[yellow]⚠[/yellow]  {message}")


def print_error(message: str, fix_hint: str = "") -> None:
    """Print an error message with red X and optional fix hint."""
    console.print(f"[red]✗[/red] {message}")
    if fix_hint:
        console.print(f"  [white]Hint: {fix_hint}[/white]")


def run(coro: Awaitable[Any]) -> Any:
    """Run a coroutine to completion from a synchronous click command."""
    return asyncio.run(coro)


def config_path_from(ctx: click.Context) -> Optional[Path]:
    obj = ctx.find_root().obj or {}
    return obj.get("config_path")


def load_cli_config(ctx: click.Context) -> PopwardenConfig:
    """Load configuration for a command, exiting with status 1 if invalid."""
    path = config_path_from(ctx)
    try:
        return load_config(path)
    except ValidationError as e:
        print_error(f"Invalid configuration ({path}):")
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"])
            console.print(f"  [red]{loc}[/red]: {err['msg']}")
        ctx.exit(1)
    except (OSError, yaml.YAMLError, ValueError) as e:
        print_error(f"Cannot read configuration: {e}", fix_hint="Check the --config path")
        ctx.exit(1)


def format_ms(value: Optional[int]) -> str:
    """Epoch milliseconds as a short local-time string."""
    if value is None:
        return "-"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


def confidence_style(confidence: float) -> str:
    if confidence >= 0.8:
        return "green"
    if confidence >= 0.6:
        return "yellow"
    return "red"
