"""Command-line interface for recordsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Set the remote record source
- add: Add a record
- list: List records
- random: Show a random record
- stats: Show record and category counts
- status: Show sync state
- sync: Run one sync cycle
- auto: Enable or disable periodic sync
- offline: Toggle offline mode
- watch: Sync periodically until interrupted
"""

from __future__ import annotations

import click

from recordsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_state_db,
    load_config,
    save_config,
    setup_logging,
)
from recordsync.client.cli.records import add, list_records, random, stats
from recordsync.client.cli.sync import auto, configure, offline, status, sync, watch


@click.group()
@click.version_option(package_name="recordsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
def cli(verbose: bool) -> None:
    """recordsync - local-first record store with remote sync."""
    setup_logging(verbose)


# Setup
cli.add_command(configure)

# Record commands
cli.add_command(add)
cli.add_command(list_records)
cli.add_command(random)
cli.add_command(stats)

# Sync commands
cli.add_command(status)
cli.add_command(sync)
cli.add_command(auto)
cli.add_command(offline)
cli.add_command(watch)


def main() -> None:
    """Main entry point."""
    cli()


__all__ = [
    "cli",
    "get_config_dir",
    "get_config_file",
    "get_state_db",
    "load_config",
    "main",
    "save_config",
]
