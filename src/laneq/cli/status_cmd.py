"""CLI command for checking a job.

Usage:
    laneq status 42
"""

from __future__ import annotations

import typer

from laneq.cli._common import run_with_queue
from laneq.errors import InvalidId

app = typer.Typer(help="Show whether a job is waiting, reserved or done")


@app.callback(invoke_without_command=True)
def status(
    ctx: typer.Context,
    job_id: str = typer.Argument(..., help="Job id"),
) -> None:
    """Print the job status."""
    try:
        result = run_with_queue(ctx, lambda queue: queue.status(job_id))
    except InvalidId as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=2)

    typer.echo(result.value)
