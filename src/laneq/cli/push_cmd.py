"""CLI command for adding a job.

Usage:
    laneq push 'hello'
    laneq push '{"to": "a@b.c"}' --json --priority high --delay 30
"""

from __future__ import annotations

import typer

from laneq.cli._common import run_with_queue
from laneq.errors import UnsupportedPriority
from laneq.serializers import JsonSerializer

app = typer.Typer(
    help="Add a job to the queue",
    # Options may follow the positional argument
    context_settings={"allow_interspersed_args": True},
)


@app.callback(invoke_without_command=True)
def push(
    ctx: typer.Context,
    payload: str = typer.Argument(..., help="Job payload"),
    ttr: int | None = typer.Option(
        None,
        "--ttr",
        "-t",
        help="Seconds a reservation lasts (default from settings)",
    ),
    delay: int = typer.Option(
        0,
        "--delay",
        "-d",
        min=0,
        help="Seconds before the job becomes visible",
    ),
    priority: str | None = typer.Option(
        None,
        "--priority",
        "-p",
        help="Priority lane (first configured lane by default)",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Validate the payload as JSON and store it compacted",
    ),
) -> None:
    """Push a job and print its id."""
    body: bytes = payload.encode()
    if as_json:
        serializer = JsonSerializer()
        try:
            body = serializer.dumps(serializer.loads(body))
        except ValueError as e:
            typer.echo(f"Invalid JSON payload: {e}", err=True)
            raise typer.Exit(code=2)

    try:
        job_id = run_with_queue(
            ctx, lambda queue: queue.enqueue(body, ttr=ttr, delay=delay, priority=priority)
        )
    except UnsupportedPriority as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=2)

    typer.echo(str(job_id))
