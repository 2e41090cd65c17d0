"""Setup commands for the reelsync CLI.

Commands:
- configure: Write ~/.reelsync/config.json
- set-secret: Store the API key or access token in the OS keyring
- whoami: Show the editor identity behind the stored API key
"""

from __future__ import annotations

import asyncio
import sys

import click

from reelsync.client.cli.config import (
    DEFAULT_SERVER_URL,
    build_coordinator_config,
    get_concurrency,
    get_config_file,
    get_sync_folder,
    load_config,
    save_config,
)
from reelsync.client.credentials import SECRET_NAMES, delete_secret, set_secret


@click.command()
@click.option("--server-url", default=None, help="Coordination service URL.")
@click.option("--root-folder-id", default=None, help="Id of the shared folder holding all projects.")
@click.option("--sync-folder", default=None, type=click.Path(file_okay=False), help="Local folder for pulls.")
@click.option("--editor-name", default=None, help="Your name, recorded in push manifests.")
@click.option("--team-email", "team_emails", multiple=True, help="Address to share pushed projects with.")
@click.option("--concurrency", default=None, type=click.IntRange(1, 16), help="Concurrent uploads per push.")
def configure(
    server_url: str | None,
    root_folder_id: str | None,
    sync_folder: str | None,
    editor_name: str | None,
    team_emails: tuple[str, ...],
    concurrency: int | None,
) -> None:
    """Configure reelsync.

    Options not given on the command line are prompted for, with the
    current values as defaults.
    """
    config = load_config()

    if server_url is None:
        server_url = click.prompt("Coordination service URL", default=config.get("server_url") or DEFAULT_SERVER_URL)
    if root_folder_id is None:
        root_folder_id = click.prompt("Shared root folder id", default=config.get("root_folder_id", ""))
    if sync_folder is None:
        sync_folder = click.prompt("Sync folder", default=str(get_sync_folder()))
    if editor_name is None:
        editor_name = click.prompt("Editor name", default=config.get("editor_name", ""))

    config["server_url"] = server_url.rstrip("/")
    config["root_folder_id"] = root_folder_id
    config["sync_folder"] = sync_folder
    config["editor_name"] = editor_name
    if team_emails:
        config["team_emails"] = list(team_emails)
    config["concurrency"] = concurrency if concurrency is not None else get_concurrency(config)

    save_config(config)
    click.echo(f"Configuration saved to {get_config_file()}")


@click.command("set-secret")
@click.argument("name", type=click.Choice(SECRET_NAMES))
@click.option("--clear", is_flag=True, help="Remove the stored secret.")
def set_secret_cmd(name: str, clear: bool) -> None:
    """Store a secret (api_key or access_token) in the OS keyring."""
    if clear:
        delete_secret(name)
        click.echo(f"Removed {name}")
        return

    value = click.prompt(f"Value for {name}", hide_input=True)
    if not set_secret(name, value.strip()):
        click.echo("Error: OS keyring unavailable. Use environment variables instead.", err=True)
        sys.exit(1)
    click.echo(f"Stored {name}")


@click.command()
def whoami() -> None:
    """Show the editor identity for the stored API key."""
    from reelsync.client.coordination import CoordinationClient, CoordinationError

    coordinator_config = build_coordinator_config(load_config())

    async def run() -> None:
        async with CoordinationClient(coordinator_config) as client:
            response = await client.validate()
        if not response.valid:
            raise click.ClickException(response.error or "Invalid API key")
        click.echo(f"Editor: {response.editor_name}")
        if response.expires_at:
            click.echo(f"Key expires: {response.expires_at}")

    try:
        asyncio.run(run())
    except CoordinationError as e:
        raise click.ClickException(str(e)) from e
