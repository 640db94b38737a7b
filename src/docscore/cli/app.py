"""Main CLI application for docscore."""

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from docscore import __version__
from docscore.config import get_settings
from docscore.logging import setup_logging
from docscore.schemas import OutputFormat

from . import run as run_cmd
from .common import OutputFormatOption, console

app = typer.Typer(
    name="docscore",
    help="Score documents against a description through a rate-limited scoring service.",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"docscore version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-error output (WARNING level).",
        ),
    ] = False,
) -> None:
    """docscore - batch document scoring with live progress."""
    settings = get_settings()
    log_config = settings.logging

    setup_logging(
        level=settings.log_level,
        verbose=verbose,
        quiet=quiet,
        log_file=Path(log_config.log_file) if log_config.log_file else None,
        rotation=log_config.rotation,
        retention=log_config.retention,
        serialize=log_config.serialize,
    )


app.command("run")(run_cmd.run_folder)


@app.command()
def limits(output_format: OutputFormatOption = OutputFormat.TEXT) -> None:
    """Show configured quotas and pacing.

    Examples:
        docscore limits
        docscore limits --format json
    """
    settings = get_settings()
    rate = settings.rate_limit
    values = {
        "requests_per_minute": rate.requests_per_minute,
        "requests_per_day": rate.requests_per_day,
        "min_spacing_ms": rate.min_spacing_ms,
        "retry_delay_ms": settings.retry_delay_ms,
        "max_retries": settings.retry.max_retries,
        "batch_size": settings.batch.batch_size,
        "delay_between_batches_ms": settings.batch.delay_between_batches_ms,
        "continue_on_error": settings.batch.continue_on_error,
    }

    if output_format == OutputFormat.JSON:
        console.print_json(json.dumps(values))
        return

    table = Table(title="Scoring Quotas & Pacing")
    table.add_column("Setting", style="bold")
    table.add_column("Value", justify="right")
    for key, value in values.items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", help="Bind port")] = None,
) -> None:
    """Start the HTTP API (run submission and progress streams).

    Examples:
        docscore serve
        docscore serve --host 0.0.0.0 --port 9000
    """
    import uvicorn

    server = get_settings().server
    host = host or server.host
    port = port or server.port
    console.print(f"Starting server at http://{host}:{port}/docs")
    # log_config=None keeps the loguru interception installed by setup_logging
    uvicorn.run("docscore.server.app:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    app()
