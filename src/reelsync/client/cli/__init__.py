"""Command-line interface for reelsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Write the config file
- set-secret: Store the API key or access token in the OS keyring
- whoami: Show the editor identity for the stored API key
- projects: List shared projects
- push: Upload a project and its media
- status: Compare a remote project with a local folder
- pull: Download a project
- patch: Repoint media paths in a project document
- lock / unlock / force-unlock / locks: Project edit locks
"""

from __future__ import annotations

import logging

import click

from reelsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_sync_folder,
    load_config,
    save_config,
)
from reelsync.client.cli.locks import force_unlock, list_locks, lock, unlock
from reelsync.client.cli.projects import patch, projects, pull, push, status
from reelsync.client.cli.setup import configure, set_secret_cmd, whoami


def setup_logging(verbose: bool) -> None:
    """Route reelsync log records to stderr."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))

    reelsync_logger = logging.getLogger("reelsync")
    for existing in reelsync_logger.handlers[:]:
        reelsync_logger.removeHandler(existing)
    reelsync_logger.addHandler(handler)
    reelsync_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    reelsync_logger.propagate = False


@click.group()
@click.version_option()
@click.option("--verbose", "-v", is_flag=True, help="Show debug output.")
def cli(verbose: bool) -> None:
    """reelsync - Push and pull media projects through a shared drive."""
    setup_logging(verbose)


# Setup commands
cli.add_command(configure)
cli.add_command(set_secret_cmd)
cli.add_command(whoami)

# Project commands
cli.add_command(projects)
cli.add_command(push)
cli.add_command(status)
cli.add_command(pull)
cli.add_command(patch)

# Lock commands
cli.add_command(lock)
cli.add_command(unlock)
cli.add_command(force_unlock)
cli.add_command(list_locks)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_sync_folder",
    "load_config",
    "save_config",
]
