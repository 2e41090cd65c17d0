"""Memoized remote folder creation for one push batch."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from reelsync.client.sync.retry import DEFAULT_MAX_ATTEMPTS, SleepFunc, retry_transfer

if TYPE_CHECKING:
    from reelsync.client.drive import DriveClient

logger = logging.getLogger(__name__)


class RemoteFolderCache:
    """Maps relative folder paths under the project folder to remote ids.

    Shared by all upload workers. Each path prefix is resolved at most once:
    the first caller stores a future that later callers await, so two workers
    needing ``media/day1`` never both create it.

    Usage:
        folders = RemoteFolderCache(drive, project_folder_id)
        folder_id = await folders.ensure(["media", "day1"])
    """

    def __init__(
        self,
        drive: DriveClient,
        root_id: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._drive = drive
        self._root_id = root_id
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._futures: dict[str, asyncio.Future[str]] = {}

    @property
    def root_id(self) -> str:
        """Get the project folder id."""
        return self._root_id

    def __len__(self) -> int:
        return len(self._futures)

    async def ensure(self, parts: list[str]) -> str:
        """Return the id of the folder at ``parts``, creating missing levels."""
        parent_id = self._root_id
        for depth in range(len(parts)):
            key = "/".join(parts[: depth + 1])
            parent_id = await self._resolve(key, parts[depth], parent_id)
        return parent_id

    async def _resolve(self, key: str, name: str, parent_id: str) -> str:
        while True:
            future = self._futures.get(key)
            if future is None:
                return await self._create(key, name, parent_id)
            try:
                return await asyncio.shield(future)
            except asyncio.CancelledError:
                if future.cancelled():
                    # The worker creating it was cancelled; take over.
                    continue
                raise

    async def _create(self, key: str, name: str, parent_id: str) -> str:
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._futures[key] = future
        try:
            folder_id = await retry_transfer(
                lambda: self._drive.get_or_create_folder(name, parent_id),
                f"Create folder {key}",
                self._max_attempts,
                self._sleep,
            )
        except asyncio.CancelledError:
            del self._futures[key]
            future.cancel()
            raise
        except Exception as e:
            del self._futures[key]
            future.set_exception(e)
            future.exception()
            raise
        future.set_result(folder_id)
        logger.debug(f"Resolved folder {key} -> {folder_id}")
        return folder_id
