"""Score a local folder of documents."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from docscore.config import get_settings
from docscore.pacing import BatchScheduler, ProgressUpdate, RetryingCaller, RunResult
from docscore.rate_limit import RateLimiter
from docscore.runs import RunService
from docscore.schemas import OutputFormat
from docscore.scoring import HttpScoringClient
from docscore.sources import LocalDocumentSource

from .common import (
    BatchSizeOption,
    OutputFormatOption,
    RunIdOption,
    console,
    run_async_command,
    score_style,
)


def run_folder(
    folder: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
            help="Folder with .txt/.md documents to score",
        ),
    ],
    description: Annotated[
        Path,
        typer.Option(
            "--description",
            "-d",
            exists=True,
            dir_okay=False,
            help="File with the description documents are scored against",
        ),
    ],
    run_id: RunIdOption = None,
    batch_size: BatchSizeOption = None,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Score every document in FOLDER and print the ranking.

    Exits with code 1 if the run stopped early (e.g. daily quota reached).

    Examples:
        docscore run ./resumes --description job.txt
        docscore run ./resumes -d job.txt --batch-size 2 --format json
    """
    settings = get_settings()
    text_mode = output_format == OutputFormat.TEXT
    description_text = description.read_text(encoding="utf-8").strip()
    if not description_text:
        console.print("[red]Error:[/red] Description file is empty")
        raise typer.Exit(1)

    batch_config = settings.batch
    if batch_size is not None:
        batch_config = batch_config.model_copy(update={"batch_size": batch_size})

    seen = 0

    def _print_progress(update: ProgressUpdate) -> None:
        nonlocal seen
        if update.completed == seen or update.current_item is None:
            return
        seen = update.completed
        console.print(f"[dim]  [{update.completed}/{update.total}] {update.current_item}[/dim]")

    async def _run() -> RunResult:
        limiter = RateLimiter(settings.rate_limit)
        documents = LocalDocumentSource(folder)
        async with HttpScoringClient(settings.scoring) as scorer:
            scheduler = BatchScheduler(
                RetryingCaller(limiter, settings.retry),
                scorer,
                config=batch_config,
                documents=documents,
            )
            service = RunService(scheduler, documents=documents)
            jobs = await service.jobs_from_source(".", description_text)
            if not jobs:
                console.print(f"[yellow]No documents found in {folder}[/yellow]")
                raise typer.Exit(0)
            if text_mode:
                console.print(
                    f"[dim]Scoring {len(jobs)} documents in "
                    f"{scheduler.count_batches(len(jobs))} batches...[/dim]"
                )
            return await service.run(
                jobs,
                run_id,
                on_progress=_print_progress if text_mode else None,
            )

    result = run_async_command(_run(), error_prefix="Run failed")

    if text_mode:
        _print_result(result)
    else:
        console.print_json(json.dumps(result.to_dict()))

    if result.aborted:
        raise typer.Exit(1)


def _print_result(result: RunResult) -> None:
    table = Table(title=f"Run {result.run_id}")
    table.add_column("#", justify="right")
    table.add_column("Document", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Details")

    for rank, outcome in enumerate(result.outcomes, start=1):
        if outcome.success and outcome.result is not None:
            details = outcome.result.narrative[:80]
        else:
            kind = outcome.error_kind.value if outcome.error_kind else "error"
            details = f"[red]{kind}[/red]: {outcome.error or ''}"
        table.add_row(str(rank), outcome.name, score_style(outcome.score), details)

    console.print()
    console.print(table)
    console.print()
    console.print(f"  [green]Scored:[/green]  {result.succeeded_count}")
    console.print(f"  [red]Failed:[/red]  {result.failed_count}")
    if result.duration_seconds is not None:
        console.print(f"  Duration: {result.duration_seconds:.1f}s")
    if result.aborted:
        console.print()
        console.print(f"[red]Run stopped:[/red] {result.abort_reason}")
