"""Shared configuration classes for reelsync.

This module defines the connection settings for the two remote services the
sync engine talks to: the object store holding project files and the
coordination service arbitrating project locks.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_DRIVE_API_URL = "https://www.googleapis.com"


@dataclass
class DriveConfig:
    """Configuration for connecting to the object store.

    Attributes:
        access_token: OAuth bearer token sent with every request.
        root_folder_id: Id of the shared folder holding one folder per project.
        api_url: Base URL of the REST API.
        timeout: Default request timeout in seconds (transfers override it).
        team_emails: Addresses granted writer access to pushed project folders.
    """

    access_token: str
    root_folder_id: str = ""
    api_url: str = DEFAULT_DRIVE_API_URL
    timeout: float = 30.0
    team_emails: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Normalize API URL."""
        self.api_url = self.api_url.rstrip("/")


@dataclass
class CoordinatorConfig:
    """Configuration for connecting to the coordination service.

    Attributes:
        server_url: Base URL of the service (e.g., "http://localhost:3000").
        api_key: Editor API key issued by the service administrator.
        timeout: Request timeout in seconds.
    """

    server_url: str
    api_key: str
    timeout: float = 15.0

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS."""
        return self.server_url.startswith("https://")
