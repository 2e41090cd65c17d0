"""Configuration utilities for the reelsync CLI.

This module provides shared configuration functions used across CLI commands.
Settings live in ~/.reelsync/config.json; secrets live in the OS keyring
(see reelsync.client.credentials).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from reelsync.client.credentials import ACCESS_TOKEN, API_KEY, get_secret
from reelsync.client.sync.upload import DEFAULT_CONCURRENCY
from reelsync.core.config import CoordinatorConfig, DriveConfig

DEFAULT_SERVER_URL = "http://localhost:3000"


def get_config_dir() -> Path:
    """Get the configuration directory for reelsync.

    Returns:
        Path to ~/.reelsync or equivalent.
    """
    return Path.home() / ".reelsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_sync_folder() -> Path:
    """Get the local folder projects are pulled into.

    Returns:
        Path to the sync folder (configured or default ~/ReelSync).
    """
    config = load_config()
    if config.get("sync_folder"):
        return Path(config["sync_folder"]).expanduser().resolve()
    return Path.home() / "ReelSync"


def get_concurrency(config: dict[str, Any]) -> int:
    """Get the configured number of concurrent uploads."""
    try:
        return max(1, int(config.get("concurrency", DEFAULT_CONCURRENCY)))
    except (TypeError, ValueError):
        return DEFAULT_CONCURRENCY


def build_drive_config(config: dict[str, Any]) -> DriveConfig:
    """Build the object store configuration from settings and the keyring.

    Raises:
        click.ClickException: If no access token is available.
    """
    token = get_secret(ACCESS_TOKEN)
    if not token:
        raise click.ClickException(
            "No access token. Run 'reelsync set-secret access_token' or set REELSYNC_ACCESS_TOKEN."
        )
    return DriveConfig(
        access_token=token,
        root_folder_id=config.get("root_folder_id", ""),
        team_emails=list(config.get("team_emails", [])),
    )


def build_coordinator_config(config: dict[str, Any]) -> CoordinatorConfig:
    """Build the coordination service configuration.

    Raises:
        click.ClickException: If no API key is available.
    """
    coordinator_config = optional_coordinator_config(config)
    if coordinator_config is None:
        raise click.ClickException("No API key. Run 'reelsync set-secret api_key' or set REELSYNC_API_KEY.")
    return coordinator_config


def optional_coordinator_config(config: dict[str, Any]) -> CoordinatorConfig | None:
    """Build the coordination service configuration, or None without an API key."""
    api_key = get_secret(API_KEY)
    if not api_key:
        return None
    return CoordinatorConfig(
        server_url=config.get("server_url") or DEFAULT_SERVER_URL,
        api_key=api_key,
    )
