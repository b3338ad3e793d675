"""Operator commands for bisyncd CLI.

All commands talk to a running daemon through its control API.

Commands:
- status, start, stop
- sync [PATH], resync PATH
- add-dir LOCAL [REMOTE]
- excludes, exclude PATTERN, unexclude PATTERN
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

import click

from bisyncd.cli.config import make_client
from bisyncd.client.api import APIError, ControlClient, DaemonStatus

T = TypeVar("T")


@contextmanager
def _client(ctx: click.Context) -> Iterator[ControlClient]:
    """Yield a control client; API errors print 'Error: ...' and exit 1."""
    client = make_client(ctx)
    try:
        yield client
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        client.close()


def _call(ctx: click.Context, func: Callable[[ControlClient], T]) -> T:
    with _client(ctx) as client:
        return func(client)


def _format_status(daemon: DaemonStatus) -> list[str]:
    state = "running" if daemon.running else "stopped"
    lines = [
        f"Sync: {state} (remote: {daemon.remote_name}, every {daemon.sync_interval:g}s)",
        f"Queue: {daemon.queue_size} pending, {daemon.active_syncs} syncing",
    ]
    if not daemon.directories:
        lines.append("No directories registered.")
        return lines

    lines.append("")
    for d in daemon.directories:
        last = d.last_sync_time.strftime("%Y-%m-%d %H:%M:%S") if d.last_sync_time else "never"
        flag = " (initial sync pending)" if d.needs_initial_sync else ""
        lines.append(f"  [{d.state:7}] {d.local_path} -> {d.remote_path}{flag}")
        lines.append(f"            last sync: {last}")
        if d.last_error:
            for error_line in d.last_error.splitlines():
                lines.append(f"            error: {error_line}")
    return lines


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the sync state of every directory."""
    daemon = _call(ctx, lambda c: c.status())
    for line in _format_status(daemon):
        click.echo(line)


@click.command()
@click.pass_context
def start(ctx: click.Context) -> None:
    """Start syncing."""
    click.echo(_call(ctx, lambda c: c.start()))


@click.command()
@click.option("--force", is_flag=True, help="Terminate running transfers.")
@click.pass_context
def stop(ctx: click.Context, force: bool) -> None:
    """Stop syncing."""
    click.echo(_call(ctx, lambda c: c.stop(force=force)))


@click.command()
@click.argument("path", required=False)
@click.pass_context
def sync(ctx: click.Context, path: str | None) -> None:
    """Sync every directory now, or only PATH."""
    queued = _call(ctx, lambda c: c.sync(path))
    if path:
        click.echo(f"Queued {path} for sync.")
    else:
        click.echo(f"Queued {queued} directories for sync.")


@click.command()
@click.argument("path")
@click.pass_context
def resync(ctx: click.Context, path: str) -> None:
    """Rebuild PATH's sync state from scratch.

    Clears rclone's lock and cached listings, pushes local deletions to the
    remote, then runs a full resync. Use this when deletions stop
    propagating. Waits until the resync finishes.
    """
    click.echo(f"Resyncing {path}, this can take a while...")
    result = _call(ctx, lambda c: c.resync(path))
    if result.success:
        click.echo(f"Resync of {result.directory} completed.")
    else:
        click.echo(f"Error: resync of {result.directory} failed: {result.error}", err=True)
        sys.exit(1)


@click.command("add-dir")
@click.argument("local")
@click.argument("remote", required=False)
@click.pass_context
def add_dir(ctx: click.Context, local: str, remote: str | None) -> None:
    """Register LOCAL for syncing (to REMOTE, default REMOTE_NAME:<basename>)."""
    info = _call(ctx, lambda c: c.add_directory(local, remote))
    click.echo(f"Added {info.local_path} -> {info.remote_path}")


@click.command()
@click.pass_context
def excludes(ctx: click.Context) -> None:
    """List exclude patterns."""
    for pattern in _call(ctx, lambda c: c.list_excludes()):
        click.echo(pattern)


@click.command()
@click.argument("pattern")
@click.pass_context
def exclude(ctx: click.Context, pattern: str) -> None:
    """Exclude files matching PATTERN from every sync."""
    _call(ctx, lambda c: c.add_exclude(pattern))
    click.echo(f"Excluding {pattern}")


@click.command()
@click.argument("pattern")
@click.pass_context
def unexclude(ctx: click.Context, pattern: str) -> None:
    """Stop excluding PATTERN."""
    _call(ctx, lambda c: c.remove_exclude(pattern))
    click.echo(f"No longer excluding {pattern}")
