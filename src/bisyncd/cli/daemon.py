"""Daemon command for bisyncd CLI.

Commands:
- run: Start the sync orchestrator and serve the control API
"""

from __future__ import annotations

import logging
import sys

import click
import uvicorn

from bisyncd.cli.config import load_cli_config
from bisyncd.core.errors import RemoteConfigError
from bisyncd.server.app import create_app, setup_logging
from bisyncd.sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


@click.command()
@click.option(
    "--force-stop",
    is_flag=True,
    help="Terminate running transfers on shutdown instead of letting them finish.",
)
@click.option(
    "--no-start",
    is_flag=True,
    help="Serve the control API without starting to sync.",
)
@click.pass_context
def run(ctx: click.Context, force_stop: bool, no_start: bool) -> None:
    """Run the sync daemon until interrupted.

    Verifies the rclone remote, registers the configured directories (or the
    default ones that exist), syncs them all once and then every
    sync_interval seconds. Operator commands reach the daemon through its
    control API.

    Examples:

        # Run with ~/.bisyncd/config.json
        bisyncd run

        # Kill in-flight transfers on Ctrl+C
        bisyncd run --force-stop
    """
    config = load_cli_config(ctx)
    setup_logging(config.log_level, config.log_file)

    coordinator = SyncCoordinator(config)
    if not no_start:
        try:
            coordinator.start()
        except RemoteConfigError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    app = create_app(coordinator)
    try:
        uvicorn.run(
            app,
            host=config.api_host,
            port=config.api_port,
            log_level=config.log_level.lower(),
        )
    finally:
        coordinator.stop(force=force_stop)
