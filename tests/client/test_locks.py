"""Tests for the client side of the project lock protocol."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from reelsync.client.coordination import CoordinationClient, CoordinationError, InvalidAPIKeyError
from reelsync.client.schemas import RegisteredFile
from reelsync.client.sync.locks import LockCoordinator
from reelsync.client.sync.types import ProjectLockedError
from reelsync.core.config import CoordinatorConfig

from fakes import FakeCoordinationServer


def make_locks(server: FakeCoordinationServer, api_key: str, editor_name: str | None = None) -> LockCoordinator:
    """Create a lock coordinator for one editor against the fake service."""
    client = CoordinationClient(
        CoordinatorConfig(server_url="http://coord.test", api_key=api_key),
        transport=server.transport(),
    )
    return LockCoordinator(client, editor_name)


class TestAcquireRelease:
    """Tests for acquire and release."""

    @pytest.mark.asyncio
    async def test_acquire_free_project(self, coordination_server: FakeCoordinationServer) -> None:
        """Should lock a free project and remember it."""
        ana = make_locks(coordination_server, "key-ana")

        response = await ana.acquire("Promo_Cut")

        assert response.success
        assert ana.held == frozenset({"Promo_Cut"})
        assert coordination_server.locks["Promo_Cut"][0] == "Ana"
        assert ("Ana", "lock", "Promo_Cut") in coordination_server.activity

    @pytest.mark.asyncio
    async def test_second_editor_sees_holder(self, coordination_server: FakeCoordinationServer) -> None:
        """Should refuse a held project and name the holder."""
        ana = make_locks(coordination_server, "key-ana")
        ben = make_locks(coordination_server, "key-ben")
        await ana.acquire("Promo_Cut")

        response = await ben.acquire("Promo_Cut")

        assert not response.success
        assert response.locked_by == "Ana"
        assert response.locked_at is not None
        assert ben.held == frozenset()

    @pytest.mark.asyncio
    async def test_concurrent_acquire_exclusive(self, coordination_server: FakeCoordinationServer) -> None:
        """Should let exactly one of two simultaneous attempts win."""
        ana = make_locks(coordination_server, "key-ana")
        ben = make_locks(coordination_server, "key-ben")

        first, second = await asyncio.gather(ana.acquire("Promo_Cut"), ben.acquire("Promo_Cut"))

        assert [first.success, second.success].count(True) == 1
        winner = "Ana" if first.success else "Ben"
        loser = second if first.success else first
        assert loser.locked_by == winner

    @pytest.mark.asyncio
    async def test_release(self, coordination_server: FakeCoordinationServer) -> None:
        """Should release an owned lock."""
        ana = make_locks(coordination_server, "key-ana")
        await ana.acquire("Promo_Cut")

        response = await ana.release("Promo_Cut")

        assert response.success
        assert ana.held == frozenset()
        assert "Promo_Cut" not in coordination_server.locks
        assert ("Ana", "unlock", "Promo_Cut") in coordination_server.activity

    @pytest.mark.asyncio
    async def test_non_owner_cannot_release(self, coordination_server: FakeCoordinationServer) -> None:
        """Should reject a release by someone other than the holder."""
        ana = make_locks(coordination_server, "key-ana")
        ben = make_locks(coordination_server, "key-ben")
        await ana.acquire("Promo_Cut")

        response = await ben.release("Promo_Cut")

        assert not response.success
        assert coordination_server.locks["Promo_Cut"][0] == "Ana"

    @pytest.mark.asyncio
    async def test_invalid_key(self, coordination_server: FakeCoordinationServer) -> None:
        """Should raise InvalidAPIKeyError for an unknown key."""
        stranger = make_locks(coordination_server, "key-unknown")
        with pytest.raises(InvalidAPIKeyError):
            await stranger.acquire("Promo_Cut")


class TestForceUnlock:
    """Tests for administrator force-unlock."""

    @pytest.mark.asyncio
    async def test_force_unlock(self, coordination_server: FakeCoordinationServer) -> None:
        """Should remove a lock held by another editor."""
        ana = make_locks(coordination_server, "key-ana")
        ben = make_locks(coordination_server, "key-ben")
        await ana.acquire("Promo_Cut")

        assert await ben.force_unlock("Promo_Cut", "admin", "secret")
        assert "Promo_Cut" not in coordination_server.locks
        assert (await ben.acquire("Promo_Cut")).success

    @pytest.mark.asyncio
    async def test_force_unlock_bad_credentials(self, coordination_server: FakeCoordinationServer) -> None:
        """Should refuse wrong administrator credentials."""
        ana = make_locks(coordination_server, "key-ana")
        await ana.acquire("Promo_Cut")

        with pytest.raises(InvalidAPIKeyError):
            await ana.force_unlock("Promo_Cut", "admin", "wrong")
        assert "Promo_Cut" in coordination_server.locks


class TestIdentityAndReconcile:
    """Tests for identity, reconciliation and edit checks."""

    @pytest.mark.asyncio
    async def test_identity_from_key(self, coordination_server: FakeCoordinationServer) -> None:
        """Should resolve the editor name by validating the key."""
        assert await make_locks(coordination_server, "key-ben").identity() == "Ben"

    @pytest.mark.asyncio
    async def test_identity_invalid_key(self, coordination_server: FakeCoordinationServer) -> None:
        """Should raise when the key does not validate."""
        with pytest.raises(CoordinationError):
            await make_locks(coordination_server, "key-unknown").identity()

    @pytest.mark.asyncio
    async def test_reconcile_drops_lost_lock(self, coordination_server: FakeCoordinationServer) -> None:
        """Should forget a lock that was force-unlocked behind our back."""
        ana = make_locks(coordination_server, "key-ana")
        await ana.acquire("Promo_Cut")
        coordination_server.locks.clear()

        assert not await ana.reconcile("Promo_Cut")
        assert ana.held == frozenset()

    @pytest.mark.asyncio
    async def test_reconcile_adopts_existing_lock(self, coordination_server: FakeCoordinationServer) -> None:
        """Should learn about a lock this editor took in an earlier run."""
        coordination_server.locks["Promo_Cut"] = ("Ana", "2026-10-18T10:00:00.000Z")
        ana = make_locks(coordination_server, "key-ana")

        assert await ana.reconcile("Promo_Cut")
        assert ana.held == frozenset({"Promo_Cut"})

    @pytest.mark.asyncio
    async def test_ensure_can_edit_blocks_other_holder(self, coordination_server: FakeCoordinationServer) -> None:
        """Should raise ProjectLockedError when someone else holds the lock."""
        await make_locks(coordination_server, "key-ben").acquire("Promo_Cut")
        ana = make_locks(coordination_server, "key-ana")

        with pytest.raises(ProjectLockedError) as exc_info:
            await ana.ensure_can_edit("Promo_Cut")

        assert exc_info.value.holder == "Ben"
        assert exc_info.value.project_name == "Promo_Cut"

    @pytest.mark.asyncio
    async def test_ensure_can_edit_allows_own_or_free(self, coordination_server: FakeCoordinationServer) -> None:
        """Should pass for a free project or one this editor holds."""
        ana = make_locks(coordination_server, "key-ana", editor_name="Ana")
        await ana.ensure_can_edit("Promo_Cut")
        await ana.acquire("Promo_Cut")
        await ana.ensure_can_edit("Promo_Cut")
        assert ana.held == frozenset({"Promo_Cut"})


class TestBestEffortCalls:
    """Tests for registration and activity logging."""

    @pytest.mark.asyncio
    async def test_register_project(self, coordination_server: FakeCoordinationServer) -> None:
        """Should register a pushed project."""
        ana = make_locks(coordination_server, "key-ana")
        files = [RegisteredFile(name="clip.mov", path="media/clip.mov", size=3, type="video")]

        assert await ana.register_project("Promo_Cut", "/work/Promo_Cut.prproj", files)
        assert coordination_server.registered[0]["files"][0]["path"] == "media/clip.mov"

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self) -> None:
        """Should not raise when the service is down."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        client = CoordinationClient(
            CoordinatorConfig(server_url="http://coord.test", api_key="key-ana"),
            transport=httpx.MockTransport(refuse),
        )
        locks = LockCoordinator(client, "Ana")

        assert not await locks.register_project("Promo_Cut", "/work/Promo_Cut.prproj", [])
        await locks.log_activity("push", "Promo_Cut")
