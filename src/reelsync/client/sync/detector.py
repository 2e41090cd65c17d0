"""Change detection between local files and remote copies.

This module provides:
- ChangeState: missing / synced / conflict classification
- ChangeDetector: classifies pull entries and finds push duplicates

The detector only classifies. It never deletes, overwrites or transfers.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from reelsync.client.sync.types import Conflict
from reelsync.core.media import compute_file_md5

if TYPE_CHECKING:
    from reelsync.client.drive import DriveClient, RemoteFile

logger = logging.getLogger(__name__)


class ChangeState(str, Enum):
    """Relationship between a remote file and its expected local copy."""

    MISSING = "missing"
    SYNCED = "synced"
    CONFLICT = "conflict"


class ChangeDetector:
    """Classifies local/remote divergence.

    Pulls compare sizes only unless ``verify_hash`` is set, in which case a
    size match is confirmed against the remote MD5. Pushes always compare
    content hashes (see find_duplicate).
    """

    def __init__(self, verify_hash: bool = False) -> None:
        self._verify_hash = verify_hash

    @property
    def verify_hash(self) -> bool:
        """Whether size matches are confirmed by content hash."""
        return self._verify_hash

    async def classify(self, local_path: Path, remote: RemoteFile) -> ChangeState:
        """Classify one remote entry against the local file at ``local_path``.

        Args:
            local_path: Where the file is expected locally.
            remote: Remote file descriptor.

        Returns:
            MISSING if no local file exists, SYNCED if the copies match,
            CONFLICT otherwise.
        """
        try:
            stat = await asyncio.to_thread(local_path.stat)
        except FileNotFoundError:
            return ChangeState.MISSING
        except OSError as e:
            # e.g. a local file where the remote has a folder
            logger.debug(f"{remote.path}: local path unusable ({e})")
            return ChangeState.CONFLICT
        if not local_path.is_file():
            return ChangeState.CONFLICT

        if stat.st_size != remote.size:
            logger.debug(f"{remote.path}: size differs (local {stat.st_size}, remote {remote.size})")
            return ChangeState.CONFLICT

        if self._verify_hash and remote.md5_checksum:
            local_md5 = await asyncio.to_thread(compute_file_md5, local_path)
            if local_md5 != remote.md5_checksum:
                logger.debug(f"{remote.path}: same size but content differs")
                return ChangeState.CONFLICT

        return ChangeState.SYNCED

    def conflict_for(self, local_path: Path, remote: RemoteFile) -> Conflict:
        """Build the Conflict record for a diverged entry."""
        try:
            local_size = local_path.stat().st_size
        except OSError:
            local_size = 0
        return Conflict(
            name=remote.path or remote.name,
            local_path=local_path,
            remote=remote,
            local_size=local_size,
            remote_size=remote.size,
        )

    async def find_duplicate(
        self,
        drive: DriveClient,
        name: str,
        folder_id: str,
        content_hash: str,
    ) -> tuple[RemoteFile | None, bool]:
        """Look up a remote file by name and compare its content hash.

        The metadata lookup is the whole check: no body is transferred.

        Args:
            drive: Object store client.
            name: Remote file name.
            folder_id: Folder the file would be uploaded into.
            content_hash: MD5 of the local content.

        Returns:
            (existing remote file or None, True if the hashes match).
        """
        existing = await drive.find_file(name, folder_id)
        if existing is None:
            return None, False
        return existing, existing.md5_checksum == content_hash
