"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, FolderCreationError, ProjectLockedError, PatchError: Exception classes
- SyncFile: one file taking part in a push or pull batch
- TransferTask: per-file task state owned by an orchestrator
- ResumableSession: state of one chunked upload
- TransferOutcome: result of one Transfer Primitive call
- ProgressEvent: structured progress notification
- Conflict: size/hash divergence surfaced for a human decision
- PushTotals, PushResult, PullResult: batch results
- Type aliases for callbacks
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from reelsync.core.types import FileKind, TransferDirection, TransferStatus

if TYPE_CHECKING:
    from reelsync.client.drive import RemoteFile


class SyncError(Exception):
    """Base exception for sync errors."""


class FolderCreationError(SyncError):
    """The remote project folder could not be created. Aborts the whole push."""


class ProjectLockedError(SyncError):
    """Another editor holds the project lock.

    Attributes:
        project_name: Locked project.
        holder: Editor currently holding the lock.
        locked_at: ISO timestamp of acquisition, if known.
    """

    def __init__(self, project_name: str, holder: str, locked_at: str | None = None) -> None:
        self.project_name = project_name
        self.holder = holder
        self.locked_at = locked_at
        super().__init__(f"Project {project_name} is locked by {holder}")


class PatchError(SyncError):
    """The project document could not be decompressed or rewritten."""


@dataclass(frozen=True)
class SyncFile:
    """A file taking part in one sync batch.

    Immutable for the lifetime of the batch. ``upload_key`` is unique within
    the batch and doubles as the cancellation handle.
    """

    local_path: Path
    remote_relative_path: str
    display_name: str
    kind: FileKind
    size_bytes: int
    upload_key: str
    content_hash: str | None = None

    @property
    def remote_name(self) -> str:
        """Base name of the remote file."""
        return self.remote_relative_path.rsplit("/", 1)[-1] or self.display_name

    @property
    def remote_folder_parts(self) -> list[str]:
        """Folder components of the remote relative path."""
        return [p for p in self.remote_relative_path.split("/")[:-1] if p]

    @property
    def is_project(self) -> bool:
        """Check if this is the project descriptor document."""
        return self.kind == FileKind.PROJECT


@dataclass
class ProgressEvent:
    """Structured progress notification emitted by the transfer layer.

    Attributes:
        key: upload_key (pushes) or remote relative path (pulls).
        phase: "hashing", "uploading", "downloading" or "done".
        bytes_done: Bytes transferred so far.
        total: Total bytes expected.
    """

    key: str
    phase: str
    bytes_done: int
    total: int

    @property
    def percent(self) -> float:
        """Get progress percentage."""
        if self.total <= 0:
            return 100.0
        return min(100.0, self.bytes_done * 100.0 / self.total)


# Type alias for progress callback
ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class ResumableSession:
    """State of one chunked upload. Discarded when the file settles."""

    session_url: str
    total_size: int
    committed_bytes: int = 0

    @property
    def complete(self) -> bool:
        """Whether every byte has been committed."""
        return self.committed_bytes >= self.total_size


@dataclass
class TransferOutcome:
    """Result of one Transfer Primitive call."""

    remote_id: str | None
    skipped: bool = False
    reason: str = ""
    bytes_transferred: int = 0


@dataclass
class TransferTask:
    """A SyncFile wrapped with direction, status and progress counters.

    Owned by the orchestrator that created it; mutated only by the worker
    executing it and by cancellation requests.
    """

    file: SyncFile
    direction: TransferDirection
    status: TransferStatus = TransferStatus.QUEUED
    bytes_transferred: int = 0
    total_bytes: int = 0
    remote_id: str | None = None
    reason: str = ""
    started_at: float | None = None
    finished_at: float | None = None

    def __post_init__(self) -> None:
        if not self.total_bytes:
            self.total_bytes = self.file.size_bytes

    def mark_active(self) -> None:
        """Record that a worker picked the task up."""
        self.status = TransferStatus.ACTIVE
        self.started_at = time.monotonic()

    def settle(self, status: TransferStatus, reason: str = "") -> None:
        """Move the task to a terminal state."""
        self.status = status
        self.reason = reason
        self.finished_at = time.monotonic()


@dataclass
class Conflict:
    """Local and remote copies differ and both exist.

    Never resolved by the engine on its own.
    """

    name: str
    local_path: Path
    remote: RemoteFile
    local_size: int
    remote_size: int


@dataclass
class ReportEntry:
    """One line of a push report."""

    name: str
    drive_path: str
    status: TransferStatus
    reason: str = ""


@dataclass
class PushTotals:
    """Per-bucket counts for one push. Each file counts in exactly one bucket."""

    selected: int = 0
    uploaded: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: int = 0

    @property
    def settled(self) -> int:
        """Number of files that reached a terminal bucket."""
        return self.uploaded + self.skipped + self.failed + self.cancelled


@dataclass
class PushResult:
    """Result of a push batch."""

    project_name: str
    folder_id: str | None
    totals: PushTotals
    tasks: list[TransferTask] = field(default_factory=list)
    report: list[ReportEntry] = field(default_factory=list)
    cancelled: bool = False
    manifest_written: bool = False


@dataclass
class PullResult:
    """Result of a pull batch."""

    target_folder: Path
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: int = 0
    conflicts: list[Conflict] = field(default_factory=list)
    tasks: list[TransferTask] = field(default_factory=list)
    patched_paths: int = 0
    was_cancelled: bool = False

    @property
    def total(self) -> int:
        """Number of selected entries accounted for."""
        return self.downloaded + self.skipped + self.failed + self.cancelled
