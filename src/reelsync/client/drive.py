"""HTTP client for the cloud object store (Drive v3 REST API).

This module provides:
- DriveClient: async HTTP client for folder, metadata, upload and download calls
- RemoteFile: file metadata as returned by the store
- DriveError and subclasses, carrying retry classification for the transfer layer
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import httpx

from reelsync.core.config import DriveConfig

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id,name,mimeType,md5Checksum,size,modifiedTime"
LIST_PAGE_SIZE = 1000
DOWNLOAD_BLOCK_SIZE = 1024 * 1024

# Statuses worth another attempt; everything else fails immediately.
RETRY_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class DriveError(Exception):
    """Base exception for object store errors.

    Attributes:
        status_code: HTTP status, or None for network-level failures.
        retriable: Whether the transfer layer may try again.
        retry_after: Server-requested delay in seconds, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retriable: bool | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        if retriable is None:
            retriable = status_code in RETRY_STATUSES
        self.retriable = retriable
        self.retry_after = retry_after


class AuthenticationError(DriveError):
    """Access token rejected. Caller must refresh and resubmit."""


class NotFoundError(DriveError):
    """Resource not found."""


@dataclass(frozen=True)
class RemoteFile:
    """File metadata from the object store.

    ``path`` is the path relative to the project folder, reconstructed while
    walking the folder tree; it defaults to the bare name.
    """

    id: str
    name: str
    mime_type: str = ""
    size: int = 0
    md5_checksum: str | None = None
    modified_time: str | None = None
    path: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteFile:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            size=int(data.get("size") or 0),
            md5_checksum=data.get("md5Checksum"),
            modified_time=data.get("modifiedTime"),
            path=data.get("name", ""),
        )

    @property
    def is_folder(self) -> bool:
        """Check if this entry is a folder."""
        return self.mime_type == FOLDER_MIME_TYPE

    def with_path(self, path: str) -> RemoteFile:
        """Return a copy carrying a reconstructed relative path."""
        return replace(self, path=path)


@dataclass
class ChunkResponse:
    """Outcome of one resumable chunk PUT."""

    done: bool
    file_id: str | None = None
    committed_bytes: int | None = None


def _escape_query(value: str) -> str:
    """Escape a literal for use inside a search query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _parse_retry_after(response: httpx.Response) -> float | None:
    """Read an integer-seconds Retry-After header."""
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        seconds = int(value)
    except ValueError:
        return None
    return float(seconds) if seconds >= 0 else None


def _parse_range_end(response: httpx.Response) -> int | None:
    """Parse the committed byte count from a 308 ``Range: bytes=0-N`` header."""
    value = response.headers.get("Range")
    if not value or "-" not in value:
        return None
    try:
        return int(value.rsplit("-", 1)[1]) + 1
    except ValueError:
        return None


class DriveClient:
    """Async HTTP client for the object store API.

    Every request carries the bearer access token. Network failures and
    timeouts are converted to retriable DriveError instances so callers only
    deal with one exception family.

    Usage:
        async with DriveClient(config) as drive:
            folder_id = await drive.get_or_create_folder("Promo_Cut", root_id)
    """

    def __init__(
        self,
        config: DriveConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Object store configuration.
            transport: Optional custom transport (tests, proxies).
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.timeout,
            headers={"Authorization": f"Bearer {config.access_token}"},
            transport=transport,
        )

    @property
    def config(self) -> DriveConfig:
        """Get the client configuration."""
        return self._config

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> DriveClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()

    def _handle_response(self, response: httpx.Response, action: str) -> httpx.Response:
        """Raise the matching DriveError for an error response."""
        status = response.status_code
        if status < 400:
            return response
        detail = f"{action} failed: {status} {response.text[:200]}"
        if status == 401:
            raise AuthenticationError(detail, status, retriable=False)
        if status == 404:
            raise NotFoundError(detail, status, retriable=False)
        raise DriveError(detail, status, retry_after=_parse_retry_after(response))

    async def _request(
        self,
        method: str,
        url: str,
        action: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, mapping transport failures to DriveError."""
        if kwargs.get("timeout") is None:
            kwargs.pop("timeout", None)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise DriveError(f"{action} timed out: {e}", 408, retriable=True) from e
        except httpx.TransportError as e:
            raise DriveError(f"{action} network error: {e}", None, retriable=True) from e
        return response

    # === Search ===

    async def _search(self, query: str, fields: str) -> list[RemoteFile]:
        """Run a files.list query, following page tokens."""
        results: list[RemoteFile] = []
        page_token = ""
        while True:
            params = {
                "q": query,
                "fields": f"nextPageToken,files({fields})",
                "pageSize": str(LIST_PAGE_SIZE),
                "supportsAllDrives": "true",
                "includeItemsFromAllDrives": "true",
            }
            if page_token:
                params["pageToken"] = page_token
            response = self._handle_response(
                await self._request("GET", "/drive/v3/files", "List files", params=params),
                "List files",
            )
            data = response.json()
            results.extend(RemoteFile.from_dict(f) for f in data.get("files", []))
            page_token = data.get("nextPageToken") or ""
            if not page_token:
                return results

    async def find_file(self, name: str, folder_id: str) -> RemoteFile | None:
        """Find a non-trashed file by exact name inside a folder.

        Args:
            name: File name.
            folder_id: Parent folder id.

        Returns:
            First matching file, or None.
        """
        query = (
            f"name='{_escape_query(name)}' and '{folder_id}' in parents "
            "and trashed=false"
        )
        matches = await self._search(query, FILE_FIELDS)
        return matches[0] if matches else None

    async def list_children(self, folder_id: str) -> list[RemoteFile]:
        """List every non-trashed direct child of a folder."""
        return await self._search(f"'{folder_id}' in parents and trashed=false", FILE_FIELDS)

    async def list_folders(self, parent_id: str) -> list[RemoteFile]:
        """List the sub-folders of a folder (one per project under the root)."""
        query = (
            f"'{parent_id}' in parents and mimeType='{FOLDER_MIME_TYPE}' "
            "and trashed=false"
        )
        return await self._search(query, "id,name,mimeType,modifiedTime")

    async def list_tree(self, folder_id: str) -> list[RemoteFile]:
        """List all files below a folder, depth-first.

        Folder entries are not returned; each file carries its path relative
        to ``folder_id`` (forward slashes).
        """
        files: list[RemoteFile] = []
        stack: list[tuple[str, str]] = [(folder_id, "")]
        while stack:
            current_id, prefix = stack.pop()
            for entry in await self.list_children(current_id):
                path = f"{prefix}/{entry.name}" if prefix else entry.name
                if entry.is_folder:
                    stack.append((entry.id, path))
                else:
                    files.append(entry.with_path(path))
        return files

    # === Folders ===

    async def find_folder(self, name: str, parent_id: str | None) -> str | None:
        """Find a folder id by name under a parent."""
        query = (
            f"mimeType='{FOLDER_MIME_TYPE}' and name='{_escape_query(name)}' "
            "and trashed=false"
        )
        if parent_id:
            query += f" and '{parent_id}' in parents"
        matches = await self._search(query, "id,name,mimeType")
        return matches[0].id if matches else None

    async def create_folder(self, name: str, parent_id: str | None) -> str:
        """Create a folder and return its id."""
        metadata: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            metadata["parents"] = [parent_id]
        response = self._handle_response(
            await self._request(
                "POST",
                "/drive/v3/files",
                "Create folder",
                params={"fields": "id", "supportsAllDrives": "true"},
                json=metadata,
            ),
            "Create folder",
        )
        folder_id: str = response.json()["id"]
        logger.info(f"Created folder {name} ({folder_id})")
        return folder_id

    async def get_or_create_folder(self, name: str, parent_id: str | None) -> str:
        """Return the id of an existing folder, creating it if missing."""
        existing = await self.find_folder(name, parent_id)
        if existing:
            logger.debug(f"Found existing folder {name} ({existing})")
            return existing
        return await self.create_folder(name, parent_id)

    async def share_with(self, file_id: str, email: str, role: str = "writer") -> None:
        """Grant a user access to a file or folder."""
        self._handle_response(
            await self._request(
                "POST",
                f"/drive/v3/files/{file_id}/permissions",
                "Share",
                json={"role": role, "type": "user", "emailAddress": email},
            ),
            "Share",
        )

    # === Uploads ===

    async def create_file_metadata(self, name: str, folder_id: str) -> str:
        """Create an empty file entry and return its id."""
        response = self._handle_response(
            await self._request(
                "POST",
                "/drive/v3/files",
                "Create file metadata",
                params={"fields": "id", "supportsAllDrives": "true"},
                json={"name": name, "parents": [folder_id]},
            ),
            "Create file metadata",
        )
        file_id: str = response.json()["id"]
        return file_id

    async def upload_media(
        self,
        file_id: str,
        content: bytes,
        mime_type: str,
        timeout: float | None = None,
    ) -> RemoteFile:
        """Replace a file's content in one request (simple media upload)."""
        response = self._handle_response(
            await self._request(
                "PATCH",
                f"/upload/drive/v3/files/{file_id}",
                "Upload",
                params={
                    "uploadType": "media",
                    "fields": "id,md5Checksum",
                    "supportsAllDrives": "true",
                },
                content=content,
                headers={"Content-Type": mime_type},
                timeout=timeout,
            ),
            "Upload",
        )
        try:
            data = response.json()
        except ValueError as e:
            raise DriveError("Failed to parse upload response", response.status_code, retriable=False) from e
        data.setdefault("id", file_id)
        return RemoteFile.from_dict(data)

    async def start_resumable_session(self, file_id: str, mime_type: str, total_size: int) -> str:
        """Open a resumable upload session and return its URL."""
        response = self._handle_response(
            await self._request(
                "PATCH",
                f"/upload/drive/v3/files/{file_id}",
                "Start resumable upload",
                params={
                    "uploadType": "resumable",
                    "fields": "id,md5Checksum",
                    "supportsAllDrives": "true",
                },
                json={},
                headers={
                    "X-Upload-Content-Type": mime_type,
                    "X-Upload-Content-Length": str(total_size),
                },
            ),
            "Start resumable upload",
        )
        session_url = response.headers.get("Location")
        if not session_url:
            raise DriveError("Missing resumable session URL", response.status_code, retriable=False)
        return session_url

    async def put_chunk(
        self,
        session_url: str,
        data: bytes,
        start: int,
        total: int,
        timeout: float | None = None,
    ) -> ChunkResponse:
        """Send one chunk of a resumable session.

        Returns:
            ChunkResponse with done=False on 308 (incomplete), True on 200/201.
        """
        end = start + len(data) - 1
        response = await self._request(
            "PUT",
            session_url,
            "Chunk upload",
            content=data,
            headers={
                "Content-Type": "application/octet-stream",
                "Content-Range": f"bytes {start}-{end}/{total}",
            },
            timeout=timeout,
        )
        if response.status_code == 308:
            return ChunkResponse(done=False, committed_bytes=_parse_range_end(response))
        self._handle_response(response, "Chunk upload")
        file_id = None
        if response.content:
            try:
                file_id = response.json().get("id")
            except ValueError:
                file_id = None
        return ChunkResponse(done=True, file_id=file_id, committed_bytes=total)

    # === Downloads ===

    async def download_to(
        self,
        file_id: str,
        destination: Path,
        on_bytes: Callable[[int], None] | None = None,
        timeout: float | None = None,
    ) -> int:
        """Stream a file's content into ``destination``.

        Args:
            file_id: Remote file id.
            destination: Local path to write (overwritten).
            on_bytes: Called with the running byte count after each block.
            timeout: Request timeout in seconds.

        Returns:
            Number of bytes written.
        """
        written = 0
        extra: dict[str, Any] = {"timeout": timeout} if timeout is not None else {}
        try:
            async with self._client.stream(
                "GET",
                f"/drive/v3/files/{file_id}",
                params={"alt": "media", "supportsAllDrives": "true"},
                **extra,
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    self._handle_response(response, "Download")
                handle = await asyncio.to_thread(open, destination, "wb")
                try:
                    async for block in response.aiter_bytes(DOWNLOAD_BLOCK_SIZE):
                        await asyncio.to_thread(handle.write, block)
                        written += len(block)
                        if on_bytes:
                            on_bytes(written)
                finally:
                    await asyncio.to_thread(handle.close)
        except httpx.TimeoutException as e:
            raise DriveError(f"Download timed out: {e}", 408, retriable=True) from e
        except httpx.TransportError as e:
            raise DriveError(f"Download network error: {e}", None, retriable=True) from e
        return written
