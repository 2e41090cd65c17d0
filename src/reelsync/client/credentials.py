"""Secret storage for reelsync.

The coordination API key and the object store access token live in the OS
keyring, never in the JSON config file. Environment variables take
precedence so CI and scripted runs need no keyring.
"""

from __future__ import annotations

import contextlib
import os

import keyring

KEYRING_SERVICE = "reelsync"

API_KEY = "api_key"
ACCESS_TOKEN = "access_token"

ENV_VARS = {
    API_KEY: "REELSYNC_API_KEY",
    ACCESS_TOKEN: "REELSYNC_ACCESS_TOKEN",
}

SECRET_NAMES = tuple(ENV_VARS)


def get_secret(name: str) -> str | None:
    """Get a secret from the environment or the keyring.

    Args:
        name: API_KEY or ACCESS_TOKEN.

    Returns:
        The secret, or None if not stored (or the keyring is unavailable).
    """
    env_value = os.environ.get(ENV_VARS[name])
    if env_value:
        return env_value
    with contextlib.suppress(Exception):
        return keyring.get_password(KEYRING_SERVICE, name)
    return None


def set_secret(name: str, value: str) -> bool:
    """Store a secret in the keyring.

    Returns:
        True if stored, False if the keyring is unavailable.
    """
    if name not in ENV_VARS:
        raise ValueError(f"Unknown secret: {name}")
    try:
        keyring.set_password(KEYRING_SERVICE, name, value)
    except Exception:
        return False
    return True


def delete_secret(name: str) -> None:
    """Remove a secret from the keyring (silently ignore if absent)."""
    with contextlib.suppress(Exception):
        keyring.delete_password(KEYRING_SERVICE, name)
