"""Configuration helpers shared by CLI commands."""

from __future__ import annotations

import sys

import click

from bisyncd.client.api import ControlClient
from bisyncd.core.config import DaemonConfig, load_daemon_config
from bisyncd.core.errors import ConfigError


def load_cli_config(ctx: click.Context) -> DaemonConfig:
    """Load the daemon config, exiting with an error message if invalid."""
    try:
        return load_daemon_config(ctx.obj.get("config_file"))
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def make_client(ctx: click.Context) -> ControlClient:
    """Create a control client for the daemon named by --url or the config."""
    url = ctx.obj.get("url") or load_cli_config(ctx).api_url
    return ControlClient(url)
