"""Command-line interface for bisyncd.

This module provides the main CLI entry point and assembles all commands.

Commands:
- run: Run the sync daemon and its control API
- status: Show per-directory sync state
- start / stop: Start or stop syncing in a running daemon
- sync: Sync every directory, or one, now
- resync: Rebuild a directory's sync state from scratch
- add-dir: Register a directory
- excludes / exclude / unexclude: Manage exclude patterns
"""

from __future__ import annotations

from pathlib import Path

import click

from bisyncd import __version__
from bisyncd.cli.control import (
    add_dir,
    exclude,
    excludes,
    resync,
    start,
    status,
    stop,
    sync,
    unexclude,
)
from bisyncd.cli.daemon import run


@click.group()
@click.version_option(__version__)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.bisyncd/config.json).",
)
@click.option(
    "--url",
    default=None,
    help="Control API URL of a running daemon (default: from config).",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Path | None, url: str | None) -> None:
    """bisyncd - keep local directories in sync with an rclone remote."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    ctx.obj["url"] = url


# Daemon
cli.add_command(run)

# Operator commands
cli.add_command(status)
cli.add_command(start)
cli.add_command(stop)
cli.add_command(sync)
cli.add_command(resync)
cli.add_command(add_dir)
cli.add_command(excludes)
cli.add_command(exclude)
cli.add_command(unexclude)


def main() -> None:
    """Console script entry point."""
    cli(obj={})
