"""Sync engine for pushing and pulling media projects.

Architecture:
    push: build_file_set → UploadOrchestrator → TaskPool(3) → FileTransfer → manifest
    pull: DownloadOrchestrator.scan → PullPlan → TaskPool(1) → FileTransfer → patcher

Components:
- **FileTransfer**: one file up or down, resumable chunks, retry with backoff
- **ChangeDetector**: missing / synced / conflict classification, push dedup
- **UploadOrchestrator**: remote folder tree, bounded pool, per-file and global cancel
- **DownloadOrchestrator**: remote tree scan, sequential pull, descriptor last
- **LockCoordinator**: pessimistic per-project locks on the coordination service
- **patcher**: rewrites media paths inside a downloaded project document
- **TaskPool**: the bounded scheduler shared by both orchestrators
"""

from reelsync.client.sync.detector import ChangeDetector, ChangeState
from reelsync.client.sync.download import (
    ConflictStrategy,
    DownloadOrchestrator,
    PullEntry,
    PullPlan,
)
from reelsync.client.sync.folders import RemoteFolderCache
from reelsync.client.sync.locks import LockCoordinator
from reelsync.client.sync.patcher import (
    build_media_index,
    patch_project_file,
    rewrite_media_paths,
)
from reelsync.client.sync.paths import build_file_set, remote_relative_path
from reelsync.client.sync.pool import PoolState, PoolTask, TaskPool
from reelsync.client.sync.retry import (
    DEFAULT_MAX_ATTEMPTS,
    backoff_delay,
    dynamic_timeout,
    retry_transfer,
)
from reelsync.client.sync.transfer import CHUNK_SIZE, RESUMABLE_THRESHOLD, FileTransfer
from reelsync.client.sync.types import (
    Conflict,
    FolderCreationError,
    PatchError,
    ProgressCallback,
    ProgressEvent,
    ProjectLockedError,
    PullResult,
    PushResult,
    PushTotals,
    ReportEntry,
    ResumableSession,
    SyncError,
    SyncFile,
    TransferOutcome,
    TransferTask,
)
from reelsync.client.sync.upload import MANIFEST_NAME, UploadOrchestrator

__all__ = [
    # Transfer
    "CHUNK_SIZE",
    "RESUMABLE_THRESHOLD",
    "FileTransfer",
    "DEFAULT_MAX_ATTEMPTS",
    "backoff_delay",
    "dynamic_timeout",
    "retry_transfer",
    # Detection
    "ChangeDetector",
    "ChangeState",
    # Push
    "MANIFEST_NAME",
    "RemoteFolderCache",
    "UploadOrchestrator",
    "build_file_set",
    "remote_relative_path",
    # Pull
    "ConflictStrategy",
    "DownloadOrchestrator",
    "PullEntry",
    "PullPlan",
    # Locks
    "LockCoordinator",
    # Patcher
    "build_media_index",
    "patch_project_file",
    "rewrite_media_paths",
    # Scheduling
    "PoolState",
    "PoolTask",
    "TaskPool",
    # Types
    "Conflict",
    "FolderCreationError",
    "PatchError",
    "ProgressCallback",
    "ProgressEvent",
    "ProjectLockedError",
    "PullResult",
    "PushResult",
    "PushTotals",
    "ReportEntry",
    "ResumableSession",
    "SyncError",
    "SyncFile",
    "TransferOutcome",
    "TransferTask",
]
