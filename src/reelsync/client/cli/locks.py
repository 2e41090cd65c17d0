"""Project lock commands for the reelsync CLI.

Commands:
- lock: Take the edit lock of a project
- unlock: Release a lock you hold
- force-unlock: Remove any lock (administrator)
- locks: List current locks
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

import click

from reelsync.client.cli.config import build_coordinator_config, load_config
from reelsync.client.coordination import CoordinationClient, CoordinationError
from reelsync.client.sync.locks import LockCoordinator

T = TypeVar("T")


def run_with_locks(action: Callable[[LockCoordinator], Awaitable[T]]) -> T:
    """Run an async action against a LockCoordinator built from the config."""
    config = load_config()
    coordinator_config = build_coordinator_config(config)

    async def run() -> T:
        async with CoordinationClient(coordinator_config) as client:
            locks = LockCoordinator(client, config.get("editor_name") or None)
            return await action(locks)

    try:
        return asyncio.run(run())
    except CoordinationError as e:
        raise click.ClickException(str(e)) from e


@click.command()
@click.argument("project_name")
def lock(project_name: str) -> None:
    """Take the edit lock of PROJECT_NAME."""
    response = run_with_locks(lambda locks: locks.acquire(project_name))
    if response.success:
        click.echo(f"Locked {project_name}")
        return
    when = f" since {response.locked_at}" if response.locked_at else ""
    click.echo(f"Error: {project_name} is locked by {response.locked_by}{when}", err=True)
    sys.exit(1)


@click.command()
@click.argument("project_name")
def unlock(project_name: str) -> None:
    """Release the edit lock of PROJECT_NAME."""
    response = run_with_locks(lambda locks: locks.release(project_name))
    if response.success:
        click.echo(f"Unlocked {project_name}")
        return
    click.echo(f"Error: {response.error or 'Could not unlock'}", err=True)
    sys.exit(1)


@click.command("force-unlock")
@click.argument("project_name")
@click.option("--admin-user", prompt="Admin username", help="Coordination service admin.")
@click.option("--admin-password", prompt="Admin password", hide_input=True, help="Admin password.")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
def force_unlock(project_name: str, admin_user: str, admin_password: str, yes: bool) -> None:
    """Remove the lock of PROJECT_NAME whoever holds it."""
    if not yes and not click.confirm(f"Force-unlock {project_name}? The holder may lose work"):
        sys.exit(0)
    ok = run_with_locks(lambda locks: locks.force_unlock(project_name, admin_user, admin_password))
    if not ok:
        click.echo("Error: Force-unlock failed", err=True)
        sys.exit(1)
    click.echo(f"Force-unlocked {project_name}")


@click.command("locks")
def list_locks() -> None:
    """List every project lock."""
    project_locks = run_with_locks(lambda locks: locks.list_locks())
    if not project_locks:
        click.echo("No locked projects")
        return
    for project_lock in project_locks:
        click.echo(f"{project_lock.project_name}  {project_lock.locked_by}  {project_lock.locked_at or ''}".rstrip())
