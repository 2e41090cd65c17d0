"""Tests for memoized remote folder creation."""

from __future__ import annotations

import asyncio

import pytest

from reelsync.client.drive import DriveError
from reelsync.client.sync.folders import RemoteFolderCache

from fakes import FakeDrive, no_sleep


class TestRemoteFolderCache:
    """Tests for RemoteFolderCache."""

    @pytest.mark.asyncio
    async def test_empty_parts_is_root(self, fake_drive: FakeDrive) -> None:
        """Should return the project folder for files at the top level."""
        folders = RemoteFolderCache(fake_drive, "root", sleep=no_sleep)
        assert await folders.ensure([]) == "root"
        assert fake_drive.folders_created == []

    @pytest.mark.asyncio
    async def test_creates_nested_levels(self, fake_drive: FakeDrive) -> None:
        """Should create each missing level under its parent."""
        folders = RemoteFolderCache(fake_drive, "root", sleep=no_sleep)

        leaf = await folders.ensure(["media", "day1"])

        assert fake_drive.folders_created == ["media", "day1"]
        media = fake_drive.entries[leaf].parent
        assert fake_drive.entries[media].name == "media"  # type: ignore[index]
        assert fake_drive.entries[media].parent == "root"  # type: ignore[index]
        assert len(folders) == 2

    @pytest.mark.asyncio
    async def test_reuses_existing_remote_folder(self, fake_drive: FakeDrive) -> None:
        """Should not create a folder that already exists remotely."""
        existing = fake_drive.add_folder("media", "root")
        folders = RemoteFolderCache(fake_drive, "root", sleep=no_sleep)

        assert await folders.ensure(["media"]) == existing
        assert fake_drive.folders_created == []

    @pytest.mark.asyncio
    async def test_concurrent_callers_create_once(self, fake_drive: FakeDrive) -> None:
        """Should create a shared folder once when many workers need it."""
        folders = RemoteFolderCache(fake_drive, "root", sleep=no_sleep)

        ids = await asyncio.gather(*(folders.ensure(["media", "day1"]) for _ in range(5)))

        assert len(set(ids)) == 1
        assert fake_drive.folders_created == ["media", "day1"]

    @pytest.mark.asyncio
    async def test_failure_not_memoized(self, fake_drive: FakeDrive) -> None:
        """Should let a later caller retry after a failed creation."""
        folders = RemoteFolderCache(fake_drive, "root", sleep=no_sleep)
        fake_drive.fail_folders = True
        with pytest.raises(DriveError):
            await folders.ensure(["media"])

        fake_drive.fail_folders = False
        assert await folders.ensure(["media"])
        assert fake_drive.folders_created == ["media"]

    @pytest.mark.asyncio
    async def test_waiters_see_failure(self, fake_drive: FakeDrive) -> None:
        """Should propagate a creation failure to every waiting caller."""
        folders = RemoteFolderCache(fake_drive, "root", sleep=no_sleep)
        fake_drive.fail_folders = True

        results = await asyncio.gather(
            folders.ensure(["media"]), folders.ensure(["media"]), return_exceptions=True
        )

        assert all(isinstance(r, DriveError) for r in results)
        assert folders.root_id == "root"
