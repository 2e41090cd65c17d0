"""Pytest fixtures for sync engine tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from fakes import FakeCoordinationServer, FakeDrive
from reelsync.core.config import CoordinatorConfig


@pytest.fixture
def fake_drive() -> FakeDrive:
    """Create an empty in-memory object store."""
    return FakeDrive()


@pytest.fixture
def coordination_server() -> FakeCoordinationServer:
    """Create an in-memory coordination service."""
    return FakeCoordinationServer()


@pytest.fixture
def coordinator_config() -> CoordinatorConfig:
    """Coordination config for editor Ana."""
    return CoordinatorConfig(server_url="http://coord.test", api_key="key-ana")


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a project folder with a project document and two media files."""
    project = tmp_path / "Promo_Cut"
    (project / "media").mkdir(parents=True)
    (project / "Promo_Cut.prproj").write_bytes(b"project-document")
    (project / "media" / "clip_a.mov").write_bytes(b"a" * 2048)
    (project / "media" / "clip_b.wav").write_bytes(b"b" * 5000)
    return project
