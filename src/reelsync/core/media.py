"""File hashing and media type helpers.

This module provides:
- compute_file_md5: streaming MD5 of a local file (matches the store's md5Checksum)
- compute_bytes_md5: MD5 of an in-memory payload
- guess_mime_type: MIME type from a file name
- file_kind: FileKind from a file name
"""

from __future__ import annotations

import hashlib
from pathlib import Path, PurePath

from reelsync.core.types import FileKind

HASH_BLOCK_SIZE = 1024 * 1024

PROJECT_EXTENSIONS = frozenset({".prproj"})

MIME_TYPES = {
    ".mov": "video/quicktime",
    ".mp4": "video/mp4",
    ".avi": "video/x-msvideo",
    ".mxf": "application/mxf",
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".json": "application/json",
}
DEFAULT_MIME_TYPE = "application/octet-stream"

_VIDEO_EXTENSIONS = frozenset({".mov", ".mp4", ".avi", ".mxf", ".m4v", ".mkv", ".r3d", ".braw"})
_AUDIO_EXTENSIONS = frozenset({".wav", ".mp3", ".aif", ".aiff", ".m4a", ".aac", ".flac"})
_IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".tif", ".tiff", ".psd", ".gif", ".exr"})


def compute_file_md5(path: Path) -> str:
    """Compute MD5 hash of a file.

    Reads the file in blocks to handle large media efficiently.

    Args:
        path: Path to the file to hash.

    Returns:
        Hexadecimal MD5 hash string.
    """
    hasher = hashlib.md5()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(HASH_BLOCK_SIZE), b""):
            hasher.update(block)
    return hasher.hexdigest()


def compute_bytes_md5(data: bytes) -> str:
    """Compute MD5 hash of an in-memory payload."""
    return hashlib.md5(data).hexdigest()


def guess_mime_type(name: str) -> str:
    """Get the upload MIME type for a file name."""
    return MIME_TYPES.get(PurePath(name).suffix.lower(), DEFAULT_MIME_TYPE)


def is_project_file(name: str) -> bool:
    """Check whether a name refers to a project descriptor document."""
    return PurePath(name).suffix.lower() in PROJECT_EXTENSIONS


def file_kind(name: str) -> FileKind:
    """Classify a file by its extension."""
    suffix = PurePath(name).suffix.lower()
    if suffix in PROJECT_EXTENSIONS:
        return FileKind.PROJECT
    if suffix in _VIDEO_EXTENSIONS:
        return FileKind.VIDEO
    if suffix in _AUDIO_EXTENSIONS:
        return FileKind.AUDIO
    if suffix in _IMAGE_EXTENSIONS:
        return FileKind.IMAGE
    return FileKind.OTHER
