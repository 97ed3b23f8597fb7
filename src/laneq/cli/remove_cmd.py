"""CLI command for cancelling a job.

Usage:
    laneq remove 42
"""

from __future__ import annotations

import typer

from laneq.cli._common import run_with_queue

app = typer.Typer(help="Cancel a job wherever it is")


@app.callback(invoke_without_command=True)
def remove(
    ctx: typer.Context,
    job_id: int = typer.Argument(..., min=1, help="Job id"),
) -> None:
    """Remove the job; exits with 1 if there was nothing to remove."""
    removed = run_with_queue(ctx, lambda queue: queue.cancel(job_id))
    if not removed:
        typer.echo(f"Job {job_id} not found")
        raise typer.Exit(code=1)

    typer.echo(f"Job {job_id} removed")
