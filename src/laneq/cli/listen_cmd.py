"""CLI command for consuming jobs from the terminal.

Every reserved job is printed and acknowledged. Handy for inspecting a
channel or draining it in development.

Usage:
    laneq listen
    laneq listen --once --timeout 0
"""

from __future__ import annotations

import typer

from laneq.cli._common import get_state, run_with_queue
from laneq.config import settings
from laneq.queue import PriorityQueue, ReservedJob
from laneq.worker import QueueWorker, WorkerConfig

app = typer.Typer(help="Print and acknowledge jobs as they arrive")


@app.callback(invoke_without_command=True)
def listen(
    ctx: typer.Context,
    timeout: float = typer.Option(
        float(settings.worker_timeout),
        "--timeout",
        "-t",
        min=0,
        help="Seconds each reserve call may block",
    ),
    once: bool = typer.Option(
        False,
        "--once",
        help="Stop as soon as the queue is empty",
    ),
) -> None:
    """Run a worker that echoes each job."""
    channel = get_state(ctx).channel

    async def echo(job: ReservedJob) -> bool:
        body = job.payload.decode(errors="replace")
        typer.echo(f"[{job.id}] {job.priority} attempt={job.attempt}: {body}")
        return True

    async def consume(queue: PriorityQueue) -> int:
        worker = QueueWorker(
            queue,
            echo,
            WorkerConfig(
                name=f"cli-{channel}",
                timeout=timeout,
                repeat=not once,
                error_backoff=settings.worker_error_backoff,
            ),
        )
        return await worker.run()

    processed = run_with_queue(ctx, consume)
    typer.echo(f"{processed} job(s) processed")
