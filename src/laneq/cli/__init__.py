"""CLI commands for laneq.

Provides command-line interface using Typer:
- laneq push: Add a job
- laneq status: Show a job's status
- laneq remove: Cancel a job
- laneq clear: Delete every job of a channel
- laneq info: Show job counts
- laneq listen: Print and acknowledge jobs as they arrive

Usage:
    laneq --help
    laneq --channel emails --priorities high,low push '{"to": "a@b.c"}' -p high
    laneq status 42
"""

from __future__ import annotations

import typer

from laneq.cli._common import CliState
from laneq.cli.clear_cmd import app as clear_app
from laneq.cli.info_cmd import app as info_app
from laneq.cli.listen_cmd import app as listen_app
from laneq.cli.push_cmd import app as push_app
from laneq.cli.remove_cmd import app as remove_app
from laneq.cli.status_cmd import app as status_app
from laneq.config import settings
from laneq.observability.logging import configure_logging

# Main CLI application
app = typer.Typer(
    name="laneq",
    help="laneq: priority delay queue on Redis",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(push_app, name="push")
app.add_typer(status_app, name="status")
app.add_typer(remove_app, name="remove")
app.add_typer(clear_app, name="clear")
app.add_typer(info_app, name="info")
app.add_typer(listen_app, name="listen")


@app.callback()
def callback(
    ctx: typer.Context,
    channel: str = typer.Option(settings.channel, "--channel", "-c", help="Queue channel"),
    redis_url: str = typer.Option(settings.redis_url, "--redis-url", help="Redis URL"),
    priorities: str = typer.Option(
        settings.priorities,
        "--priorities",
        help="Comma separated lanes, highest precedence first",
    ),
    log_level: str = typer.Option(settings.log_level, "--log-level", "-l", help="Log level"),
    json_logs: bool = typer.Option(settings.log_json, "--json-logs", help="Log as JSON"),
) -> None:
    """laneq: priority delay queue on Redis."""
    configure_logging(json_format=json_logs, level=log_level)
    lanes = tuple(lane.strip() for lane in priorities.split(",") if lane.strip())
    ctx.obj = CliState(
        channel=channel,
        redis_url=redis_url,
        priorities=lanes or ("default",),
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
