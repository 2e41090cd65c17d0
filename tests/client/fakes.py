"""In-memory test doubles for the sync engine.

This module provides stand-ins for the two remote services:
- FakeDrive: an object store with folders, files, resumable sessions
- FakeCoordinationServer: the lock/activity endpoints behind an
  httpx.MockTransport
"""

from __future__ import annotations

import asyncio
import base64
import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from reelsync.client.drive import FOLDER_MIME_TYPE, ChunkResponse, DriveError, RemoteFile
from reelsync.core.config import DriveConfig
from reelsync.core.media import compute_bytes_md5


@dataclass
class FakeEntry:
    """A file or folder stored by FakeDrive."""

    id: str
    name: str
    parent: str | None
    mime_type: str = "application/octet-stream"
    content: bytes = b""

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    def to_remote(self, path: str = "") -> RemoteFile:
        return RemoteFile(
            id=self.id,
            name=self.name,
            mime_type=self.mime_type,
            size=0 if self.is_folder else len(self.content),
            md5_checksum=None if self.is_folder else compute_bytes_md5(self.content),
            path=path or self.name,
        )


class FakeDrive:
    """In-memory object store exposing the DriveClient surface used by the engine.

    Knobs:
        fail_uploads: file names whose body upload fails with a 403
        fail_folders: every folder call fails with a 403
        fail_shares: sharing fails with a 403
        upload_delay: seconds each body upload takes
        gate: if set, body uploads wait on it before completing
        chunk_errors: raised, in order, by the next chunk PUTs
        download_errors: raised, in order, by the next downloads
    """

    def __init__(self, root_folder_id: str = "root", team_emails: list[str] | None = None) -> None:
        self.config = DriveConfig(
            access_token="test-token",
            root_folder_id=root_folder_id,
            team_emails=team_emails or [],
        )
        self.entries: dict[str, FakeEntry] = {}
        if root_folder_id:
            self.entries[root_folder_id] = FakeEntry(root_folder_id, "Root", None, FOLDER_MIME_TYPE)
        self._counter = 0
        self._sessions: dict[str, tuple[str, int, bytearray]] = {}

        self.fail_uploads: set[str] = set()
        self.fail_folders = False
        self.fail_shares = False
        self.upload_delay = 0.0
        self.gate: asyncio.Event | None = None
        self.chunk_errors: list[DriveError] = []
        self.download_errors: list[DriveError] = []

        self.body_uploads: list[str] = []
        self.folders_created: list[str] = []
        self.shares: list[tuple[str, str, str]] = []
        self.chunk_ranges: list[tuple[int, int]] = []
        self.downloads: list[str] = []
        self.chunk_attempts = 0
        self.active_uploads = 0
        self.peak_uploads = 0
        self.closed = False

    # === Helpers for tests ===

    def _new_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    def add_folder(self, name: str, parent: str | None) -> str:
        folder_id = self._new_id("folder")
        self.entries[folder_id] = FakeEntry(folder_id, name, parent, FOLDER_MIME_TYPE)
        return folder_id

    def add_file(self, folder_id: str, relative_path: str, content: bytes) -> str:
        """Store a file, creating intermediate folders of ``relative_path``."""
        *dirs, name = relative_path.split("/")
        parent = folder_id
        for part in dirs:
            existing = self._child(parent, part, folders=True)
            parent = existing.id if existing else self.add_folder(part, parent)
        file_id = self._new_id("file")
        self.entries[file_id] = FakeEntry(file_id, name, parent, content=content)
        return file_id

    def children(self, folder_id: str | None) -> list[FakeEntry]:
        return [e for e in self.entries.values() if e.parent == folder_id]

    def _child(self, parent: str | None, name: str, folders: bool) -> FakeEntry | None:
        for entry in self.children(parent):
            if entry.name == name and entry.is_folder == folders:
                return entry
        return None

    def file_named(self, name: str) -> FakeEntry | None:
        for entry in self.entries.values():
            if entry.name == name and not entry.is_folder:
                return entry
        return None

    # === DriveClient surface ===

    async def close(self) -> None:
        self.closed = True

    async def find_file(self, name: str, folder_id: str) -> RemoteFile | None:
        await asyncio.sleep(0)
        entry = self._child(folder_id, name, folders=False)
        return entry.to_remote() if entry else None

    async def find_folder(self, name: str, parent_id: str | None) -> str | None:
        await asyncio.sleep(0)
        if self.fail_folders:
            raise DriveError("Forbidden", 403)
        entry = self._child(parent_id, name, folders=True)
        return entry.id if entry else None

    async def create_folder(self, name: str, parent_id: str | None) -> str:
        await asyncio.sleep(0)
        if self.fail_folders:
            raise DriveError("Forbidden", 403)
        self.folders_created.append(name)
        return self.add_folder(name, parent_id)

    async def get_or_create_folder(self, name: str, parent_id: str | None) -> str:
        existing = await self.find_folder(name, parent_id)
        if existing:
            return existing
        return await self.create_folder(name, parent_id)

    async def share_with(self, file_id: str, email: str, role: str = "writer") -> None:
        if self.fail_shares:
            raise DriveError("Forbidden", 403)
        self.shares.append((file_id, email, role))

    async def create_file_metadata(self, name: str, folder_id: str) -> str:
        await asyncio.sleep(0)
        file_id = self._new_id("file")
        self.entries[file_id] = FakeEntry(file_id, name, folder_id)
        return file_id

    async def _body_upload(self, name: str) -> None:
        self.active_uploads += 1
        self.peak_uploads = max(self.peak_uploads, self.active_uploads)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(self.upload_delay)
            if name in self.fail_uploads:
                raise DriveError(f"Upload of {name} forbidden", 403)
        finally:
            self.active_uploads -= 1

    async def upload_media(
        self, file_id: str, content: bytes, mime_type: str, timeout: float | None = None
    ) -> RemoteFile:
        entry = self.entries[file_id]
        await self._body_upload(entry.name)
        entry.content = content
        entry.mime_type = mime_type
        self.body_uploads.append(entry.name)
        return entry.to_remote()

    async def start_resumable_session(self, file_id: str, mime_type: str, total_size: int) -> str:
        await asyncio.sleep(0)
        url = f"https://upload.test/session/{file_id}"
        self._sessions[url] = (file_id, total_size, bytearray())
        self.entries[file_id].mime_type = mime_type
        return url

    async def put_chunk(
        self, session_url: str, data: bytes, start: int, total: int, timeout: float | None = None
    ) -> ChunkResponse:
        self.chunk_attempts += 1
        if self.chunk_errors:
            raise self.chunk_errors.pop(0)
        file_id, expected_total, buffer = self._sessions[session_url]
        entry = self.entries[file_id]
        await self._body_upload(entry.name)
        assert total == expected_total
        assert start == len(buffer), "chunks must be contiguous"
        self.chunk_ranges.append((start, start + len(data) - 1))
        buffer.extend(data)
        if len(buffer) < total:
            return ChunkResponse(done=False, committed_bytes=len(buffer))
        entry.content = bytes(buffer)
        self.body_uploads.append(entry.name)
        return ChunkResponse(done=True, file_id=file_id, committed_bytes=total)

    async def list_children(self, folder_id: str) -> list[RemoteFile]:
        await asyncio.sleep(0)
        return [e.to_remote() for e in self.children(folder_id)]

    async def list_folders(self, parent_id: str) -> list[RemoteFile]:
        return [e.to_remote() for e in self.children(parent_id) if e.is_folder]

    async def list_tree(self, folder_id: str) -> list[RemoteFile]:
        files: list[RemoteFile] = []
        stack: list[tuple[str, str]] = [(folder_id, "")]
        while stack:
            current, prefix = stack.pop()
            for entry in self.children(current):
                path = f"{prefix}/{entry.name}" if prefix else entry.name
                if entry.is_folder:
                    stack.append((entry.id, path))
                else:
                    files.append(entry.to_remote(path))
        return files

    async def download_to(
        self,
        file_id: str,
        destination: Path,
        on_bytes: Callable[[int], None] | None = None,
        timeout: float | None = None,
    ) -> int:
        entry = self.entries[file_id]
        self.downloads.append(entry.name)
        if self.download_errors:
            raise self.download_errors.pop(0)
        await asyncio.sleep(0)
        destination.write_bytes(entry.content)
        if on_bytes:
            on_bytes(len(entry.content))
        return len(entry.content)


class FakeCoordinationServer:
    """In-memory coordination service with the lock semantics of the real one."""

    def __init__(self, editors: dict[str, str] | None = None) -> None:
        self.editors = editors or {"key-ana": "Ana", "key-ben": "Ben"}
        self.locks: dict[str, tuple[str, str]] = {}
        self.activity: list[tuple[str, str, str]] = []
        self.registered: list[dict] = []
        self.admin = ("admin", "secret")

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path == "/api/projects/locks":
            return httpx.Response(
                200,
                json=[
                    {"project_name": name, "locked_by": holder, "locked_at": at}
                    for name, (holder, at) in self.locks.items()
                ],
            )

        body = json.loads(request.content or b"{}")
        if path == "/api/projects/force-unlock":
            token = base64.b64encode(":".join(self.admin).encode()).decode()
            expected = f"Basic {token}"
            if request.headers.get("Authorization") != expected:
                return httpx.Response(401, json={"error": "Invalid credentials"})
            self.locks.pop(body["projectName"], None)
            return httpx.Response(200, json={"success": True})

        editor = self.editors.get(body.get("apiKey", ""))
        if path == "/api/validate":
            if editor is None:
                return httpx.Response(200, json={"valid": False, "error": "Invalid API key"})
            return httpx.Response(200, json={"valid": True, "editorName": editor, "expiresAt": None})
        if editor is None:
            return httpx.Response(401, json={"error": "Invalid API key"})

        project = body.get("projectName", "")
        if path == "/api/projects/lock":
            if project in self.locks:
                holder, at = self.locks[project]
                return httpx.Response(
                    200,
                    json={
                        "success": False,
                        "error": f"Project is locked by {holder}",
                        "lockedBy": holder,
                        "lockedAt": at,
                    },
                )
            self.locks[project] = (editor, "2026-10-19T09:00:00.000Z")
            return httpx.Response(200, json={"success": True})
        if path == "/api/projects/unlock":
            lock = self.locks.get(project)
            if lock and lock[0] != editor:
                return httpx.Response(200, json={"success": False, "error": "You do not own this lock"})
            self.locks.pop(project, None)
            return httpx.Response(200, json={"success": True})
        if path == "/api/activity":
            self.activity.append((editor, body["action"], project))
            return httpx.Response(200, json={"success": True})
        if path == "/api/projects/register":
            self.registered.append(body)
            return httpx.Response(
                200,
                json={"success": True, "projectName": project, "filesAdded": len(body.get("files", []))},
            )
        return httpx.Response(404, json={"error": "Not found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


async def no_sleep(seconds: float) -> None:
    """Sleep replacement that returns immediately."""
