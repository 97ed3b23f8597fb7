"""CLI command for queue statistics.

Usage:
    laneq info
    laneq info --format json
"""

from __future__ import annotations

import typer

from laneq.cli._common import get_state, run_with_queue

app = typer.Typer(help="Show job counts for the channel")


@app.callback(invoke_without_command=True)
def info(
    ctx: typer.Context,
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """Print waiting, delayed, reserved and done counts."""
    from rich.console import Console
    from rich.table import Table

    from laneq.serializers import JsonSerializer

    stats = run_with_queue(ctx, lambda queue: queue.stats())

    if output_format == "json":
        typer.echo(JsonSerializer(sort_keys=True).dumps(stats.to_dict()).decode())
        return

    console = Console()
    table = Table(title=f"Channel '{get_state(ctx).channel}'")
    table.add_column("Jobs")
    table.add_column("Count", justify="right")

    table.add_row("[blue]waiting[/blue]", str(stats.waiting))
    for lane, count in stats.lanes.items():
        table.add_row(f"  {lane}", str(count))
    table.add_row("[yellow]delayed[/yellow]", str(stats.delayed))
    table.add_row("[magenta]reserved[/magenta]", str(stats.reserved))
    table.add_row("[green]done[/green]", str(stats.done))
    table.add_row("[bold]total[/bold]", str(stats.total))

    console.print(table)
