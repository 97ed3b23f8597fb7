"""CLI command for wiping a channel.

Usage:
    laneq clear
    laneq --channel test clear --yes
"""

from __future__ import annotations

import typer

from laneq.cli._common import get_state, run_with_queue

app = typer.Typer(help="Delete every job of the channel")


@app.callback(invoke_without_command=True)
def clear(
    ctx: typer.Context,
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation",
    ),
) -> None:
    """Delete all keys of the channel. Cannot be undone."""
    channel = get_state(ctx).channel
    if not yes:
        typer.confirm(f"Delete every job of channel '{channel}'?", abort=True)

    run_with_queue(ctx, lambda queue: queue.clear())
    typer.echo(f"Channel '{channel}' cleared")
