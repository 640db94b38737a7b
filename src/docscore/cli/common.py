"""Common CLI option types and helpers.

It provides:
- `run_async_command`: Unified async execution with error handling for CLI commands
- Annotated option aliases shared by commands
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Annotated, TypeVar

import typer
from rich.console import Console

from docscore.schemas import OutputFormat

# Shared console instance for CLI output
console = Console()

T = TypeVar("T")


def run_async_command(
    coro: Coroutine[object, object, T],
    *,
    error_prefix: str = "Error",
) -> T:
    """Execute async code from a synchronous CLI command.

    Catches exceptions, prints a short red message and exits with code 1.

    Args:
        coro: Async coroutine to execute
        error_prefix: Prefix for error messages (default: "Error")

    Returns:
        Result from the coroutine

    Raises:
        typer.Exit: Re-raised from deliberate exits, or raised with code 1 on error
    """
    try:
        return asyncio.run(coro)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]{error_prefix}:[/red] {e}")
        raise typer.Exit(1) from None


# Option types shared by commands

OutputFormatOption = Annotated[
    OutputFormat,
    typer.Option(
        "--format",
        "-f",
        help="Output format",
    ),
]
"""Output format option type for CLI commands.

Usage:
    def command(output_format: OutputFormatOption = OutputFormat.TEXT):
"""

RunIdOption = Annotated[
    str | None,
    typer.Option(
        "--run-id",
        help="Run identifier (generated if omitted)",
    ),
]

BatchSizeOption = Annotated[
    int | None,
    typer.Option(
        "--batch-size",
        "-b",
        min=1,
        max=100,
        help="Jobs scored concurrently per batch (overrides BATCH__BATCH_SIZE)",
    ),
]


def score_style(score: float | None) -> str:
    """Color a score for table output."""
    if score is None:
        return "[dim]-[/dim]"
    if score >= 70:
        return f"[green]{score:.1f}[/green]"
    if score >= 40:
        return f"[yellow]{score:.1f}[/yellow]"
    return f"[red]{score:.1f}[/red]"
