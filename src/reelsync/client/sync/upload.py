"""Push orchestration: project folder, bounded upload pool, manifest.

This module provides:
- UploadOrchestrator: pushes a project document and its media to the
  object store and writes the push manifest
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from reelsync.client.drive import DriveError
from reelsync.client.schemas import Manifest, ManifestFile, ManifestTotals
from reelsync.client.sync.detector import ChangeDetector
from reelsync.client.sync.folders import RemoteFolderCache
from reelsync.client.sync.paths import build_file_set
from reelsync.client.sync.pool import TaskPool
from reelsync.client.sync.retry import DEFAULT_MAX_ATTEMPTS, SleepFunc, retry_transfer
from reelsync.client.sync.transfer import FileTransfer
from reelsync.client.sync.types import (
    FolderCreationError,
    ProgressCallback,
    ProgressEvent,
    PushResult,
    PushTotals,
    ReportEntry,
    SyncFile,
    TransferOutcome,
    TransferTask,
)
from reelsync.core.media import compute_file_md5
from reelsync.core.types import TransferDirection, TransferStatus

if TYPE_CHECKING:
    from reelsync.client.drive import DriveClient

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
MANIFEST_NAME = "manifest.json"
MANIFEST_MIME_TYPE = "application/json"


def _utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class UploadOrchestrator:
    """Runs one push at a time.

    Per-file failures are recorded and never abort sibling uploads. Only a
    failure to create the project folder (raised before any file work) or a
    global cancellation ends the push early.

    Usage:
        orchestrator = UploadOrchestrator(drive, editor_name="Ana")
        result = await orchestrator.push(project_path, media_paths)
        print(result.totals)
    """

    def __init__(
        self,
        drive: DriveClient,
        transfer: FileTransfer | None = None,
        detector: ChangeDetector | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        editor_name: str = "",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            drive: Object store client.
            transfer: Transfer primitive (defaults to one built on ``drive``).
            detector: Change detector used for the dedup check.
            concurrency: Number of files uploaded at once.
            editor_name: Recorded as ``uploadedBy`` in the manifest.
            max_attempts: Attempts per request for folder and lookup calls.
            sleep: Sleep coroutine used between attempts.
        """
        self._drive = drive
        self._transfer = transfer or FileTransfer(drive, max_attempts=max_attempts, sleep=sleep)
        self._detector = detector or ChangeDetector()
        self._concurrency = concurrency
        self._editor_name = editor_name
        self._max_attempts = max_attempts
        self._sleep = sleep

        self._pool: TaskPool | None = None
        self._cancelled = False
        self._tasks: dict[str, TransferTask] = {}

    @property
    def tasks(self) -> list[TransferTask]:
        """Tasks of the current or last push."""
        return list(self._tasks.values())

    @property
    def editor_name(self) -> str:
        """Editor recorded as uploadedBy in the manifest."""
        return self._editor_name

    @editor_name.setter
    def editor_name(self, value: str) -> None:
        self._editor_name = value

    @property
    def is_cancelled(self) -> bool:
        """Whether the current push was cancelled globally."""
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the whole push: nothing new starts, in-flight uploads abort."""
        self._cancelled = True
        if self._pool is not None:
            self._pool.cancel_all()
        logger.info("Push cancelled")

    def cancel_file(self, upload_key: str) -> bool:
        """Cancel one file without affecting the others.

        Returns:
            True if the file had not settled yet.
        """
        if self._pool is None:
            return False
        return self._pool.cancel(upload_key)

    async def _retry(self, func, description: str):  # type: ignore[no-untyped-def]
        return await retry_transfer(func, description, self._max_attempts, self._sleep)

    async def push(
        self,
        project_path: Path,
        media_paths: Iterable[Path] = (),
        on_progress: ProgressCallback | None = None,
    ) -> PushResult:
        """Push a project document and its media.

        Args:
            project_path: Local project document.
            media_paths: Media files referenced by the project.
            on_progress: Optional structured progress sink.

        Returns:
            PushResult with totals, per-file report and manifest status.

        Raises:
            FolderCreationError: If the remote project folder cannot be created.
        """
        files = build_file_set(project_path, media_paths)
        return await self.push_files(project_path, files, on_progress)

    async def push_files(
        self,
        project_path: Path,
        files: list[SyncFile],
        on_progress: ProgressCallback | None = None,
    ) -> PushResult:
        """Push an already assembled file set (see build_file_set)."""
        project_name = project_path.stem
        self._cancelled = False
        self._tasks = {f.upload_key: TransferTask(f, TransferDirection.UPLOAD) for f in files}
        logger.info(f"Pushing {project_name}: {len(files)} files")

        folder_id = await self._create_project_folder(project_name)
        await self._share_folders(folder_id)

        folders = RemoteFolderCache(self._drive, folder_id, self._max_attempts, self._sleep)
        pool = TaskPool(self._concurrency, name="push")
        for file in files:
            pool.submit(file.upload_key, self._make_job(file, folders, on_progress))
        if self._cancelled:
            pool.stop()

        self._pool = pool
        try:
            pool_tasks = await pool.run()
        finally:
            self._pool = None

        totals = PushTotals(selected=len(files))
        report: list[ReportEntry] = []
        for pool_task in pool_tasks:
            task = self._tasks[pool_task.key]
            status, reason = self._settle(task, pool_task.status, pool_task.result, pool_task.reason)
            task.started_at = pool_task.started_at
            task.finished_at = pool_task.finished_at
            if status == TransferStatus.COMPLETE:
                totals.uploaded += 1
            elif status == TransferStatus.SKIPPED:
                totals.skipped += 1
            elif status == TransferStatus.FAILED:
                totals.failed += 1
                logger.error(f"Upload failed for {task.file.display_name}: {reason}")
            else:
                totals.cancelled += 1
            report.append(ReportEntry(task.file.display_name, task.file.remote_relative_path, status, reason))

        result = PushResult(
            project_name=project_name,
            folder_id=folder_id,
            totals=totals,
            tasks=self.tasks,
            report=report,
            cancelled=self._cancelled,
        )
        if self._cancelled:
            logger.info(f"Push of {project_name} cancelled; manifest not written")
        else:
            result.manifest_written = await self._write_manifest(project_path, folder_id, result)

        logger.info(
            f"Push of {project_name} finished: {totals.uploaded} uploaded, "
            f"{totals.skipped} skipped, {totals.failed} failed, {totals.cancelled} cancelled"
        )
        return result

    @staticmethod
    def _settle(
        task: TransferTask,
        pool_status: TransferStatus,
        outcome: TransferOutcome | None,
        reason: str,
    ) -> tuple[TransferStatus, str]:
        """Translate a pool outcome into the task's terminal status."""
        if pool_status == TransferStatus.COMPLETE and outcome is not None:
            task.remote_id = outcome.remote_id
            if outcome.skipped:
                task.settle(TransferStatus.SKIPPED, outcome.reason)
            else:
                task.bytes_transferred = outcome.bytes_transferred
                task.settle(TransferStatus.COMPLETE)
        elif pool_status == TransferStatus.FAILED:
            task.settle(TransferStatus.FAILED, reason)
        else:
            task.settle(TransferStatus.CANCELLED, "Cancelled")
        return task.status, task.reason

    async def _create_project_folder(self, project_name: str) -> str:
        root_id = self._drive.config.root_folder_id or None
        try:
            return await self._retry(
                lambda: self._drive.get_or_create_folder(project_name, root_id),
                f"Create project folder {project_name}",
            )
        except DriveError as e:
            raise FolderCreationError(f"Cannot create remote folder for {project_name}: {e}") from e

    async def _share_folders(self, folder_id: str) -> None:
        """Grant the team writer access to the project and root folders."""
        targets = [folder_id]
        if self._drive.config.root_folder_id:
            targets.append(self._drive.config.root_folder_id)
        for email in self._drive.config.team_emails:
            for target in targets:
                try:
                    await self._drive.share_with(target, email, role="writer")
                except DriveError as e:
                    logger.warning(f"Could not share {target} with {email}: {e}")

    def _make_job(
        self,
        file: SyncFile,
        folders: RemoteFolderCache,
        on_progress: ProgressCallback | None,
    ):  # type: ignore[no-untyped-def]
        async def job() -> TransferOutcome:
            return await self._upload_one(file, folders, on_progress)

        return job

    async def _upload_one(
        self,
        file: SyncFile,
        folders: RemoteFolderCache,
        on_progress: ProgressCallback | None,
    ) -> TransferOutcome:
        """Dedup check then transfer, for one file. Runs on a pool worker."""
        task = self._tasks[file.upload_key]
        task.mark_active()

        def progress(event: ProgressEvent) -> None:
            task.bytes_transferred = event.bytes_done
            if on_progress:
                on_progress(event)

        folder_id = await folders.ensure(file.remote_folder_parts)

        progress(ProgressEvent(file.upload_key, "hashing", 0, file.size_bytes))
        content_hash = await asyncio.to_thread(compute_file_md5, file.local_path)
        existing, unchanged = await self._retry(
            lambda: self._detector.find_duplicate(self._drive, file.remote_name, folder_id, content_hash),
            f"Look up {file.remote_name}",
        )
        if existing is not None and unchanged:
            logger.info(f"Skipping {file.display_name}: unchanged (MD5 match)")
            progress(ProgressEvent(file.upload_key, "done", file.size_bytes, file.size_bytes))
            return TransferOutcome(remote_id=existing.id, skipped=True, reason="Unchanged (MD5 match)")

        return await self._transfer.upload(
            file,
            folder_id,
            existing_id=existing.id if existing else None,
            on_progress=progress,
        )

    async def _write_manifest(self, project_path: Path, folder_id: str, result: PushResult) -> bool:
        """Write manifest.json into the project folder. Failures are not fatal."""
        totals = result.totals
        manifest = Manifest(
            project_name=result.project_name,
            uploaded_by=self._editor_name,
            uploaded_at=_utc_timestamp(),
            path=str(project_path),
            totals=ManifestTotals(
                selected=totals.selected,
                uploaded=totals.uploaded,
                skipped=totals.skipped,
                failed=totals.failed,
                cancelled=totals.cancelled,
            ),
            files=[
                ManifestFile(
                    name=task.file.display_name,
                    drive_name=task.file.remote_name,
                    drive_path=task.file.remote_relative_path,
                    path=str(task.file.local_path),
                    drive_id=task.remote_id,
                    size=task.file.size_bytes,
                )
                for task in result.tasks
                if task.status == TransferStatus.COMPLETE
            ],
        )
        try:
            await self._transfer.upload_bytes(
                MANIFEST_NAME,
                manifest.to_json().encode("utf-8"),
                MANIFEST_MIME_TYPE,
                folder_id,
            )
        except DriveError as e:
            logger.warning(f"Could not write manifest for {result.project_name}: {e}")
            return False
        logger.info(f"Wrote manifest for {result.project_name}")
        return True
