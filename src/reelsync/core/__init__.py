"""Core module - Shared config, types, and media helpers."""

from reelsync.core.config import CoordinatorConfig, DriveConfig
from reelsync.core.media import (
    compute_bytes_md5,
    compute_file_md5,
    file_kind,
    guess_mime_type,
    is_project_file,
)
from reelsync.core.types import FileKind, TransferDirection, TransferStatus

__all__ = [
    # Config
    "CoordinatorConfig",
    "DriveConfig",
    # Media
    "compute_bytes_md5",
    "compute_file_md5",
    "file_kind",
    "guess_mime_type",
    "is_project_file",
    # Types
    "FileKind",
    "TransferDirection",
    "TransferStatus",
]
