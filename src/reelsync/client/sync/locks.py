"""Client side of the pessimistic per-project lock protocol.

This module provides:
- LockCoordinator: acquire/release/force-unlock against the coordination
  service, plus reconciliation of the locks this client believes it holds

The service is authoritative. Locks have no expiry and no heartbeat: a lock
stays until its holder releases it or an administrator force-unlocks it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reelsync.client.coordination import CoordinationError
from reelsync.client.schemas import LockResponse, ProjectLock, RegisteredFile, ValidateResponse
from reelsync.client.sync.types import ProjectLockedError

if TYPE_CHECKING:
    from reelsync.client.coordination import CoordinationClient

logger = logging.getLogger(__name__)


class LockCoordinator:
    """Wraps the coordination service lock endpoints.

    Usage:
        locks = LockCoordinator(coordinator)
        result = await locks.acquire("Promo_Cut")
        if not result.success:
            print(f"Locked by {result.locked_by}")
    """

    def __init__(self, client: CoordinationClient, editor_name: str | None = None) -> None:
        """Initialize the lock coordinator.

        Args:
            client: Coordination service client.
            editor_name: Editor identity, if already known. Otherwise it is
                resolved lazily by validating the API key.
        """
        self._client = client
        self._editor_name = editor_name
        self._held: set[str] = set()

    @property
    def held(self) -> frozenset[str]:
        """Projects this client believes it holds. Reconcile before trusting."""
        return frozenset(self._held)

    async def validate(self) -> ValidateResponse:
        """Validate the API key and remember the editor identity."""
        response = await self._client.validate()
        if response.valid and response.editor_name:
            self._editor_name = response.editor_name
        return response

    async def identity(self) -> str:
        """Get the editor name for the configured API key.

        Raises:
            CoordinationError: If the key is not valid.
        """
        if self._editor_name:
            return self._editor_name
        response = await self.validate()
        if not response.valid or not response.editor_name:
            raise CoordinationError(response.error or "Invalid API key", 401)
        return response.editor_name

    async def acquire(self, project_name: str) -> LockResponse:
        """Try to lock a project.

        No queueing and no retry: on contention the response carries the
        current holder and the caller decides what to do.
        """
        response = await self._client.lock(project_name)
        if response.success:
            self._held.add(project_name)
            logger.info(f"Locked {project_name}")
            await self._log_activity("lock", project_name)
        else:
            logger.info(f"{project_name} is locked by {response.locked_by}")
        return response

    async def release(self, project_name: str) -> LockResponse:
        """Release a lock held by this editor. Non-owners are rejected."""
        response = await self._client.unlock(project_name)
        if response.success:
            self._held.discard(project_name)
            logger.info(f"Unlocked {project_name}")
            await self._log_activity("unlock", project_name)
        else:
            logger.warning(f"Could not unlock {project_name}: {response.error}")
        return response

    async def force_unlock(self, project_name: str, admin_user: str, admin_password: str) -> bool:
        """Delete a project lock regardless of its holder."""
        ok = await self._client.force_unlock(project_name, admin_user, admin_password)
        if ok:
            self._held.discard(project_name)
            logger.warning(f"Force-unlocked {project_name}")
        return ok

    async def list_locks(self) -> list[ProjectLock]:
        """List every lock on the service."""
        return await self._client.list_locks()

    async def holder_of(self, project_name: str) -> ProjectLock | None:
        """Get the current lock of a project, if any."""
        for lock in await self._client.list_locks():
            if lock.project_name == project_name:
                return lock
        return None

    async def reconcile(self, project_name: str) -> bool:
        """Refresh the local belief about a project lock from the service.

        Returns:
            True if this editor holds the lock according to the service.
        """
        lock = await self.holder_of(project_name)
        mine = lock is not None and lock.locked_by == await self.identity()
        if mine:
            self._held.add(project_name)
        elif project_name in self._held:
            logger.warning(f"Lock on {project_name} is no longer held by this editor")
            self._held.discard(project_name)
        return mine

    async def ensure_can_edit(self, project_name: str) -> None:
        """Check that no other editor holds the project lock.

        Raises:
            ProjectLockedError: If another editor holds the lock.
        """
        lock = await self.holder_of(project_name)
        if lock is None:
            self._held.discard(project_name)
            return
        if lock.locked_by != await self.identity():
            self._held.discard(project_name)
            raise ProjectLockedError(project_name, lock.locked_by, lock.locked_at)
        self._held.add(project_name)

    async def register_project(
        self,
        project_name: str,
        project_path: str,
        files: list[RegisteredFile],
    ) -> bool:
        """Register a pushed project. Failures are logged, not raised."""
        try:
            response = await self._client.register_project(project_name, project_path, files)
        except CoordinationError as e:
            logger.warning(f"Failed to register {project_name}: {e}")
            return False
        return response.success

    async def log_activity(self, action: str, project_name: str) -> None:
        """Append to the activity log. Failures are logged, not raised."""
        await self._log_activity(action, project_name)

    async def _log_activity(self, action: str, project_name: str) -> None:
        try:
            await self._client.log_activity(action, project_name)
        except CoordinationError as e:
            logger.warning(f"Failed to log {action} activity for {project_name}: {e}")
