"""Per-process sync session.

This module provides:
- SyncSession: owns the object store and coordination clients plus the
  orchestrators built on them, and runs lock-aware push and pull flows
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path

import httpx

from reelsync.client.coordination import CoordinationClient
from reelsync.client.drive import DriveClient
from reelsync.client.schemas import RegisteredFile
from reelsync.client.sync.detector import ChangeDetector
from reelsync.client.sync.download import ConflictStrategy, DownloadOrchestrator, PullPlan
from reelsync.client.sync.locks import LockCoordinator
from reelsync.client.sync.retry import DEFAULT_MAX_ATTEMPTS, SleepFunc
from reelsync.client.sync.transfer import FileTransfer
from reelsync.client.sync.types import ProgressCallback, PullResult, PushResult
from reelsync.client.sync.upload import DEFAULT_CONCURRENCY, UploadOrchestrator
from reelsync.core.config import CoordinatorConfig, DriveConfig
from reelsync.core.types import TransferStatus

logger = logging.getLogger(__name__)


class SyncSession:
    """Everything one process needs to push and pull projects.

    Built once and passed by reference; no module-level state.

    Usage:
        async with SyncSession(drive_config, coordinator_config) as session:
            result = await session.push(project_path, media_paths)
    """

    def __init__(
        self,
        drive_config: DriveConfig,
        coordinator_config: CoordinatorConfig | None = None,
        editor_name: str = "",
        concurrency: int = DEFAULT_CONCURRENCY,
        verify_hash: bool = False,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: SleepFunc = asyncio.sleep,
        drive_transport: httpx.AsyncBaseTransport | None = None,
        coordinator_transport: httpx.AsyncBaseTransport | None = None,
        drive: DriveClient | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            drive_config: Object store configuration.
            coordinator_config: Coordination service configuration. Without
                it no lock checks, registration or activity logging happen.
            editor_name: Editor identity; resolved from the API key if empty.
            concurrency: Number of concurrent uploads per push.
            verify_hash: Confirm pull size matches with MD5.
            max_attempts: Attempts per object store request.
            sleep: Sleep coroutine used between attempts.
            drive_transport: Optional transport for the object store client.
            coordinator_transport: Optional transport for the coordination client.
            drive: Object store client to use instead of building one from
                ``drive_config``. The session closes it.
        """
        self._drive = drive if drive is not None else DriveClient(drive_config, transport=drive_transport)
        self._coordinator = (
            CoordinationClient(coordinator_config, transport=coordinator_transport)
            if coordinator_config
            else None
        )
        self._locks = LockCoordinator(self._coordinator, editor_name or None) if self._coordinator else None
        self._editor_name = editor_name

        transfer = FileTransfer(self._drive, max_attempts=max_attempts, sleep=sleep)
        self._uploads = UploadOrchestrator(
            self._drive,
            transfer=transfer,
            concurrency=concurrency,
            editor_name=editor_name,
            max_attempts=max_attempts,
            sleep=sleep,
        )
        self._downloads = DownloadOrchestrator(
            self._drive,
            transfer=transfer,
            detector=ChangeDetector(verify_hash=verify_hash),
            max_attempts=max_attempts,
            sleep=sleep,
        )

    @property
    def drive(self) -> DriveClient:
        """Get the object store client."""
        return self._drive

    @property
    def locks(self) -> LockCoordinator | None:
        """Get the lock coordinator, if a coordination service is configured."""
        return self._locks

    @property
    def uploads(self) -> UploadOrchestrator:
        """Get the push orchestrator."""
        return self._uploads

    @property
    def downloads(self) -> DownloadOrchestrator:
        """Get the pull orchestrator."""
        return self._downloads

    async def close(self) -> None:
        """Close both HTTP clients."""
        await self._drive.close()
        if self._coordinator is not None:
            await self._coordinator.close()

    async def __aenter__(self) -> SyncSession:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()

    def cancel(self) -> None:
        """Cancel whatever push or pull is running."""
        self._uploads.cancel()
        self._downloads.cancel()

    async def push(
        self,
        project_path: Path,
        media_paths: Iterable[Path] = (),
        on_progress: ProgressCallback | None = None,
    ) -> PushResult:
        """Push a project after checking nobody else holds its lock.

        Raises:
            ProjectLockedError: If another editor holds the project lock.
            FolderCreationError: If the remote project folder cannot be created.
        """
        project_name = project_path.stem
        if self._locks is not None:
            await self._locks.ensure_can_edit(project_name)
            if not self._editor_name:
                self._editor_name = await self._locks.identity()
                self._uploads.editor_name = self._editor_name
                logger.debug(f"Pushing as {self._editor_name}")

        result = await self._uploads.push(project_path, media_paths, on_progress)

        if self._locks is not None and not result.cancelled:
            files = [
                RegisteredFile(
                    name=task.file.display_name,
                    path=task.file.remote_relative_path,
                    size=task.file.size_bytes,
                    type=task.file.kind.value,
                )
                for task in result.tasks
                if task.status in (TransferStatus.COMPLETE, TransferStatus.SKIPPED)
            ]
            await self._locks.register_project(project_name, str(project_path), files)
            await self._locks.log_activity("push", project_name)
        return result

    async def scan(self, project_name: str, target_folder: Path) -> PullPlan:
        """Find a project by name and classify it against a local folder."""
        folder_id = await self._downloads.find_project(project_name)
        return await self._downloads.scan(folder_id, target_folder, project_name)

    async def pull(
        self,
        plan: PullPlan,
        on_progress: ProgressCallback | None = None,
        conflict_strategy: ConflictStrategy | None = None,
    ) -> PullResult:
        """Pull the missing entries of a plan and log the activity."""
        result = await self._downloads.pull(
            plan, on_progress=on_progress, conflict_strategy=conflict_strategy
        )
        if result.was_cancelled:
            logger.info(f"Pull of {plan.project_name or plan.folder_id} cancelled")
        if self._locks is not None and plan.project_name:
            await self._locks.log_activity("pull", plan.project_name)
        return result
