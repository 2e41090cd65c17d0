"""Single-file transfer over the object store wire protocol.

This module provides:
- FileTransfer: the Transfer Primitive. Uploads one file (simple or resumable
  chunked) or downloads one file, with retry/backoff on transient failures.

It knows nothing about projects or batches. Cancellation is the asyncio task
cancellation of the caller: cancelling the task running a transfer aborts the
in-flight HTTP call, and an aborted chunked upload is never resumed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from reelsync.client.drive import DriveError
from reelsync.client.sync.retry import (
    DEFAULT_MAX_ATTEMPTS,
    SleepFunc,
    dynamic_timeout,
    retry_transfer,
)
from reelsync.client.sync.types import (
    ProgressCallback,
    ProgressEvent,
    ResumableSession,
    SyncFile,
    TransferOutcome,
)
from reelsync.core.media import compute_bytes_md5, guess_mime_type
from reelsync.core.types import TransferDirection

if TYPE_CHECKING:
    from reelsync.client.drive import DriveClient

logger = logging.getLogger(__name__)

RESUMABLE_THRESHOLD = 8 * 1024 * 1024  # 8 MiB
CHUNK_SIZE = 8 * 1024 * 1024  # 8 MiB
PARTIAL_SUFFIX = ".part"


def _read_range(path: Path, offset: int, length: int) -> bytes:
    """Read ``length`` bytes of a file starting at ``offset``."""
    with open(path, "rb") as f:
        f.seek(offset)
        return f.read(length)


class FileTransfer:
    """Moves one file's bytes to or from the object store.

    Usage:
        transfer = FileTransfer(drive)
        outcome = await transfer.upload(sync_file, folder_id, on_progress=cb)
    """

    def __init__(
        self,
        drive: DriveClient,
        chunk_size: int = CHUNK_SIZE,
        resumable_threshold: int = RESUMABLE_THRESHOLD,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """Initialize the transfer primitive.

        Args:
            drive: Object store client.
            chunk_size: Bytes per resumable chunk.
            resumable_threshold: Files this size or larger use a resumable session.
            max_attempts: Attempts per request (each chunk independently).
            sleep: Sleep coroutine used between attempts (injectable for tests).
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._drive = drive
        self._chunk_size = chunk_size
        self._resumable_threshold = resumable_threshold
        self._max_attempts = max_attempts
        self._sleep = sleep

    async def _retry(self, func, description: str):  # type: ignore[no-untyped-def]
        return await retry_transfer(func, description, self._max_attempts, self._sleep)

    async def transfer(
        self,
        file: SyncFile,
        direction: TransferDirection,
        remote_ref: str,
        on_progress: ProgressCallback | None = None,
    ) -> TransferOutcome:
        """Upload or download one file.

        Args:
            file: The file being moved. For downloads ``local_path`` is the destination.
            direction: UPLOAD or DOWNLOAD.
            remote_ref: Target folder id (upload) or remote file id (download).
            on_progress: Optional structured progress sink.

        Returns:
            TransferOutcome with the remote id.
        """
        if direction == TransferDirection.UPLOAD:
            return await self.upload(file, remote_ref, on_progress=on_progress)
        return await self.download(
            remote_ref,
            file.local_path,
            file.size_bytes,
            key=file.upload_key,
            on_progress=on_progress,
        )

    # === Upload ===

    async def upload(
        self,
        file: SyncFile,
        folder_id: str,
        existing_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> TransferOutcome:
        """Upload a local file into a remote folder.

        Reuses ``existing_id`` when the file already exists remotely, otherwise
        creates the metadata entry first.
        """
        stat = await asyncio.to_thread(file.local_path.stat)
        size = stat.st_size
        name = file.remote_name
        mime_type = guess_mime_type(name)

        def emit(phase: str, done: int) -> None:
            if on_progress:
                on_progress(ProgressEvent(file.upload_key, phase, done, size))

        file_id = existing_id or await self._retry(
            lambda: self._drive.create_file_metadata(name, folder_id),
            f"Create metadata for {name}",
        )

        emit("uploading", 0)
        if size >= self._resumable_threshold:
            logger.info(f"Using resumable upload for {name} ({size} bytes)")
            remote_id = await self._upload_resumable(file.local_path, name, file_id, mime_type, size, emit)
        else:
            content = await asyncio.to_thread(file.local_path.read_bytes)
            timeout = dynamic_timeout(len(content))
            result = await self._retry(
                lambda: self._drive.upload_media(file_id, content, mime_type, timeout),
                f"Upload {name}",
            )
            remote_id = result.id
        emit("done", size)
        logger.info(f"Uploaded {name} ({remote_id})")
        return TransferOutcome(remote_id=remote_id, bytes_transferred=size)

    async def _upload_resumable(
        self,
        path: Path,
        name: str,
        file_id: str,
        mime_type: str,
        size: int,
        emit,  # type: ignore[no-untyped-def]
    ) -> str:
        """Upload a large file as sequential chunks of one resumable session."""
        session_url = await self._retry(
            lambda: self._drive.start_resumable_session(file_id, mime_type, size),
            f"Start resumable upload of {name}",
        )
        session = ResumableSession(session_url=session_url, total_size=size)
        timeout = dynamic_timeout(size)

        while not session.complete:
            start = session.committed_bytes
            length = min(self._chunk_size, size - start)
            data = await asyncio.to_thread(_read_range, path, start, length)
            if not data:
                raise DriveError(f"{name} shrank during upload", retriable=False)
            end = start + len(data) - 1

            async def put(data: bytes = data, start: int = start):  # type: ignore[no-untyped-def]
                return await self._drive.put_chunk(session.session_url, data, start, size, timeout)

            response = await self._retry(put, f"Chunk {start}-{end} of {name}")
            if response.done:
                session.committed_bytes = size
                emit("uploading", size)
                return response.file_id or file_id

            committed = response.committed_bytes
            if committed is None or committed <= start:
                committed = start + len(data)
            session.committed_bytes = committed
            logger.debug(f"{name}: committed {committed}/{size} bytes")
            emit("uploading", committed)

        return file_id

    async def upload_bytes(
        self,
        name: str,
        data: bytes,
        mime_type: str,
        folder_id: str,
    ) -> TransferOutcome:
        """Upload an in-memory document, skipping it if unchanged remotely."""
        existing = await self._retry(
            lambda: self._drive.find_file(name, folder_id),
            f"Look up {name}",
        )
        if existing and existing.md5_checksum == compute_bytes_md5(data):
            return TransferOutcome(remote_id=existing.id, skipped=True, reason="Unchanged (MD5 match)")
        file_id = existing.id if existing else await self._retry(
            lambda: self._drive.create_file_metadata(name, folder_id),
            f"Create metadata for {name}",
        )
        result = await self._retry(
            lambda: self._drive.upload_media(file_id, data, mime_type, dynamic_timeout(len(data))),
            f"Upload {name}",
        )
        return TransferOutcome(remote_id=result.id, bytes_transferred=len(data))

    # === Download ===

    async def download(
        self,
        remote_id: str,
        destination: Path,
        size: int = 0,
        key: str = "",
        on_progress: ProgressCallback | None = None,
    ) -> TransferOutcome:
        """Download a remote file to ``destination``.

        Bytes land in a ``.part`` sibling that is renamed over the destination
        only once complete, so an interrupted download never clobbers a good
        local copy.
        """
        key = key or destination.name
        partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
        await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)

        def on_bytes(done: int) -> None:
            if on_progress:
                on_progress(ProgressEvent(key, "downloading", done, size))

        try:
            written = await self._retry(
                lambda: self._drive.download_to(remote_id, partial, on_bytes, dynamic_timeout(size)),
                f"Download {destination.name}",
            )
            await asyncio.to_thread(os.replace, partial, destination)
        except BaseException:
            with contextlib.suppress(OSError):
                partial.unlink()
            raise

        if on_progress:
            on_progress(ProgressEvent(key, "done", written, size or written))
        logger.info(f"Downloaded {destination.name} ({written} bytes)")
        return TransferOutcome(remote_id=remote_id, bytes_transferred=written)
