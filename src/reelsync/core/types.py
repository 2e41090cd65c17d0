"""Shared types for reelsync.

This module defines enums used across the transfer layer, the orchestrators
and the CLI.
"""

from __future__ import annotations

from enum import Enum


class FileKind(str, Enum):
    """Kind of a file taking part in a sync batch."""

    PROJECT = "project"
    VIDEO = "video"
    AUDIO = "audio"
    IMAGE = "image"
    OTHER = "other"


class TransferDirection(str, Enum):
    """Direction of a single file transfer."""

    UPLOAD = "upload"
    DOWNLOAD = "download"


class TransferStatus(str, Enum):
    """Lifecycle status of a transfer task.

    QUEUED -> ACTIVE -> one of the terminal states. SKIPPED means the remote
    copy was already identical and no body was transferred.
    """

    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETE = "complete"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether the task has settled."""
        return self not in (TransferStatus.QUEUED, TransferStatus.ACTIVE)
