"""Pull orchestration: scan a remote project, classify, download, patch.

This module provides:
- DownloadOrchestrator: scans a remote project folder and pulls selected files
- PullPlan, PullEntry: classification of every remote file against the target
- ConflictStrategy: explicit resolution of conflicts confirmed by a human
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from reelsync.client.drive import NotFoundError
from reelsync.client.sync.detector import ChangeDetector, ChangeState
from reelsync.client.sync.patcher import patch_project_file
from reelsync.client.sync.pool import TaskPool
from reelsync.client.sync.retry import DEFAULT_MAX_ATTEMPTS, SleepFunc, retry_transfer
from reelsync.client.sync.transfer import FileTransfer
from reelsync.client.sync.types import (
    Conflict,
    PatchError,
    ProgressCallback,
    ProgressEvent,
    PullResult,
    SyncFile,
    TransferOutcome,
    TransferTask,
)
from reelsync.client.sync.upload import MANIFEST_NAME
from reelsync.core.media import file_kind, is_project_file
from reelsync.core.types import TransferDirection, TransferStatus

if TYPE_CHECKING:
    from reelsync.client.drive import DriveClient, RemoteFile

logger = logging.getLogger(__name__)


class ConflictStrategy(str, Enum):
    """Which copy wins when a human resolves a conflict."""

    DRIVE = "drive"  # download and overwrite the local copy
    LOCAL = "local"  # keep the local copy, transfer nothing


@dataclass
class PullEntry:
    """One remote file and its classification against the target folder."""

    remote: RemoteFile
    local_path: Path
    state: ChangeState

    @property
    def is_project(self) -> bool:
        """Check if this entry is the project descriptor."""
        return is_project_file(self.remote.name)


@dataclass
class PullPlan:
    """Classification of a remote project, presented before any transfer.

    ``duplicates`` holds remote files sharing a relative path with a newer
    sibling. They are left out of ``entries`` since only one copy can land
    at a given local path.
    """

    project_name: str
    folder_id: str
    target_folder: Path
    entries: list[PullEntry] = field(default_factory=list)
    conflict_records: list[Conflict] = field(default_factory=list)
    duplicates: list[RemoteFile] = field(default_factory=list)

    def _with_state(self, state: ChangeState) -> list[PullEntry]:
        return [e for e in self.entries if e.state == state]

    @property
    def missing(self) -> list[PullEntry]:
        """Entries with no local copy."""
        return self._with_state(ChangeState.MISSING)

    @property
    def synced(self) -> list[PullEntry]:
        """Entries whose local copy already matches."""
        return self._with_state(ChangeState.SYNCED)

    @property
    def conflicts(self) -> list[PullEntry]:
        """Entries whose local copy differs from the remote one."""
        return self._with_state(ChangeState.CONFLICT)


def local_path_for(target_folder: Path, relative_path: str) -> Path:
    """Map a remote relative path into the target folder.

    Empty, ``.`` and ``..`` components are dropped so a remote name can never
    escape the target folder.
    """
    parts = [p for p in relative_path.replace("\\", "/").split("/") if p not in ("", ".", "..")]
    return target_folder.joinpath(*parts)


def descriptor_last(entries: Iterable[PullEntry]) -> list[PullEntry]:
    """Order entries so project descriptors come after every other file."""
    return sorted(entries, key=lambda e: e.is_project)


def split_duplicates(remote_files: Iterable[RemoteFile]) -> tuple[list[RemoteFile], list[RemoteFile]]:
    """Keep one remote file per relative path.

    The most recently modified copy wins; on a tie the first listed one does.

    Returns:
        (kept files in listing order, shadowed duplicates).
    """
    kept: dict[str, RemoteFile] = {}
    duplicates: list[RemoteFile] = []
    for remote in remote_files:
        path = remote.path or remote.name
        current = kept.get(path)
        if current is None:
            kept[path] = remote
        elif (remote.modified_time or "") > (current.modified_time or ""):
            duplicates.append(current)
            kept[path] = remote
        else:
            duplicates.append(remote)
    return list(kept.values()), duplicates


class DownloadOrchestrator:
    """Pulls a remote project into a local folder, one file at a time.

    Nothing is transferred until the caller has seen the PullPlan. Conflicts
    are never overwritten without an explicit ConflictStrategy.

    Usage:
        orchestrator = DownloadOrchestrator(drive)
        plan = await orchestrator.scan(folder_id, target, "Promo_Cut")
        result = await orchestrator.pull(plan)
    """

    def __init__(
        self,
        drive: DriveClient,
        transfer: FileTransfer | None = None,
        detector: ChangeDetector | None = None,
        patch_projects: bool = True,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            drive: Object store client.
            transfer: Transfer primitive (defaults to one built on ``drive``).
            detector: Change detector used to classify entries.
            patch_projects: Rewrite media paths in downloaded project documents.
            max_attempts: Attempts per request for listing calls.
            sleep: Sleep coroutine used between attempts.
        """
        self._drive = drive
        self._transfer = transfer or FileTransfer(drive, max_attempts=max_attempts, sleep=sleep)
        self._detector = detector or ChangeDetector()
        self._patch_projects = patch_projects
        self._max_attempts = max_attempts
        self._sleep = sleep

        self._pool: TaskPool | None = None
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        """Whether the current pull was cancelled."""
        return self._cancelled

    def cancel(self) -> None:
        """Stop after the file currently downloading. It is not aborted.

        A cancel issued while scanning applies to the pull that follows.
        The flag is cleared by the next scan().
        """
        self._cancelled = True
        if self._pool is not None:
            self._pool.stop()
        logger.info("Pull cancelled")

    async def _retry(self, func, description: str):  # type: ignore[no-untyped-def]
        return await retry_transfer(func, description, self._max_attempts, self._sleep)

    # === Discovery ===

    async def list_projects(self, root_folder_id: str | None = None) -> list[RemoteFile]:
        """List the project folders under the shared root folder."""
        root = root_folder_id or self._drive.config.root_folder_id
        if not root:
            raise ValueError("No root folder configured")
        folders = await self._retry(lambda: self._drive.list_folders(root), "List projects")
        return sorted(folders, key=lambda f: f.name.lower())

    async def find_project(self, project_name: str, root_folder_id: str | None = None) -> str:
        """Get the folder id of a project by name.

        Raises:
            NotFoundError: If no such project exists.
        """
        root = root_folder_id or self._drive.config.root_folder_id or None
        folder_id = await self._retry(
            lambda: self._drive.find_folder(project_name, root),
            f"Find project {project_name}",
        )
        if not folder_id:
            raise NotFoundError(f"Project not found: {project_name}", 404, retriable=False)
        return folder_id

    async def scan(self, folder_id: str, target_folder: Path, project_name: str = "") -> PullPlan:
        """List a remote project tree and classify each file.

        Args:
            folder_id: Remote project folder.
            target_folder: Local folder the project is pulled into.
            project_name: Name for logging and the plan.

        Returns:
            PullPlan with one entry per remote path (the manifest excluded).
        """
        self._cancelled = False
        remote_files = await self._retry(
            lambda: self._drive.list_tree(folder_id),
            f"List {project_name or folder_id}",
        )
        kept, duplicates = split_duplicates(r for r in remote_files if r.path != MANIFEST_NAME)
        plan = PullPlan(
            project_name=project_name,
            folder_id=folder_id,
            target_folder=target_folder,
            duplicates=duplicates,
        )
        for remote in duplicates:
            logger.warning(f"Ignoring duplicate remote file {remote.path} ({remote.id})")

        for remote in kept:
            local_path = local_path_for(target_folder, remote.path or remote.name)
            state = await self._detector.classify(local_path, remote)
            plan.entries.append(PullEntry(remote, local_path, state))
            if state == ChangeState.CONFLICT:
                plan.conflict_records.append(self._detector.conflict_for(local_path, remote))

        logger.info(
            f"Scanned {project_name or folder_id}: {len(plan.missing)} missing, "
            f"{len(plan.synced)} synced, {len(plan.conflicts)} conflicts"
        )
        return plan

    # === Transfers ===

    async def pull(
        self,
        plan: PullPlan,
        selection: Iterable[PullEntry] | None = None,
        on_progress: ProgressCallback | None = None,
        conflict_strategy: ConflictStrategy | None = None,
    ) -> PullResult:
        """Download the selected entries of a plan.

        The default selection is every missing entry. Synced entries count as
        skipped. Conflicts are returned untouched for a human decision unless
        a strategy was already confirmed: DRIVE overwrites them in the same
        batch (so the project descriptor still comes last), LOCAL counts them
        as skipped.

        Args:
            plan: Result of scan().
            selection: Entries to consider (defaults to the whole plan).
            on_progress: Optional structured progress sink.
            conflict_strategy: Confirmed resolution for conflicting entries.

        Returns:
            PullResult with counts, unresolved conflicts and the patch count.
        """
        candidates = list(plan.entries if selection is None else selection)
        to_download = [e for e in candidates if e.state == ChangeState.MISSING]
        skipped = sum(1 for e in candidates if e.state == ChangeState.SYNCED)
        conflicting = [e for e in candidates if e.state == ChangeState.CONFLICT]

        if conflict_strategy == ConflictStrategy.DRIVE:
            to_download.extend(conflicting)
        elif conflict_strategy == ConflictStrategy.LOCAL:
            skipped += len(conflicting)

        result = await self._download(to_download, plan.target_folder, on_progress)
        result.skipped += skipped
        if conflict_strategy is None:
            conflict_paths = {e.local_path for e in conflicting}
            result.conflicts = [c for c in plan.conflict_records if c.local_path in conflict_paths]
        return result

    async def resolve_conflicts(
        self,
        conflicts: Iterable[Conflict],
        strategy: ConflictStrategy,
        target_folder: Path,
        on_progress: ProgressCallback | None = None,
    ) -> PullResult:
        """Apply a confirmed resolution to conflicts.

        DRIVE downloads the remote copies over the local ones; LOCAL keeps the
        local copies and transfers nothing.
        """
        conflicts = list(conflicts)
        if strategy == ConflictStrategy.LOCAL:
            logger.info(f"Keeping local copies of {len(conflicts)} conflicting files")
            return PullResult(target_folder=target_folder, skipped=len(conflicts))

        entries = [PullEntry(c.remote, c.local_path, ChangeState.CONFLICT) for c in conflicts]
        logger.info(f"Overwriting {len(entries)} local files with remote copies")
        return await self._download(entries, target_folder, on_progress)

    async def _download(
        self,
        entries: list[PullEntry],
        target_folder: Path,
        on_progress: ProgressCallback | None,
    ) -> PullResult:
        """Download entries sequentially, project descriptor last, then patch."""
        ordered = descriptor_last(entries)
        tasks: dict[str, TransferTask] = {}
        pool = TaskPool(concurrency=1, name="pull")
        for index, entry in enumerate(ordered):
            relative_path = entry.remote.path or entry.remote.name
            sync_file = SyncFile(
                local_path=entry.local_path,
                remote_relative_path=relative_path,
                display_name=entry.remote.name,
                kind=file_kind(entry.remote.name),
                size_bytes=entry.remote.size,
                upload_key=f"{index}:{relative_path}",
            )
            task = TransferTask(sync_file, TransferDirection.DOWNLOAD, remote_id=entry.remote.id)
            tasks[sync_file.upload_key] = task
            pool.submit(sync_file.upload_key, self._make_job(task, on_progress))
        if self._cancelled:
            pool.stop()

        self._pool = pool
        try:
            pool_tasks = await pool.run()
        finally:
            self._pool = None

        result = PullResult(target_folder=target_folder, was_cancelled=self._cancelled)
        for pool_task in pool_tasks:
            task = tasks[pool_task.key]
            if pool_task.status == TransferStatus.COMPLETE:
                task.settle(TransferStatus.COMPLETE)
                result.downloaded += 1
            elif pool_task.status == TransferStatus.FAILED:
                task.settle(TransferStatus.FAILED, pool_task.reason)
                result.failed += 1
                logger.error(f"Download failed for {task.file.display_name}: {pool_task.reason}")
            else:
                task.settle(TransferStatus.CANCELLED, "Cancelled")
                result.cancelled += 1
            task.started_at = pool_task.started_at
            task.finished_at = pool_task.finished_at
            result.tasks.append(task)

        if self._patch_projects:
            for task in result.tasks:
                if task.file.is_project and task.status == TransferStatus.COMPLETE:
                    result.patched_paths += await self._patch(task.file.local_path, target_folder)

        logger.info(
            f"Pull finished: {result.downloaded} downloaded, {result.skipped} skipped, "
            f"{result.failed} failed, {result.cancelled} cancelled"
        )
        return result

    def _make_job(self, task: TransferTask, on_progress: ProgressCallback | None):  # type: ignore[no-untyped-def]
        async def job() -> TransferOutcome:
            task.mark_active()

            def progress(event: ProgressEvent) -> None:
                task.bytes_transferred = event.bytes_done
                if on_progress:
                    on_progress(event)

            remote_id = task.remote_id or ""
            return await self._transfer.transfer(task.file, TransferDirection.DOWNLOAD, remote_id, progress)

        return job

    async def _patch(self, project_path: Path, target_folder: Path) -> int:
        """Patch a downloaded project document. Failures are logged, not raised."""
        try:
            return await asyncio.to_thread(patch_project_file, project_path, target_folder)
        except PatchError as e:
            logger.warning(f"Could not patch {project_path.name}; relink media in the editor: {e}")
            return 0
