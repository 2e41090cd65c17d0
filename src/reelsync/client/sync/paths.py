"""Remote path rules for pushed files.

This module provides:
- sanitize_relative_path: forward slashes, no duplicate or leading slashes
- remote_relative_path: where a local file lives inside the remote project folder
- build_file_set: the SyncFile list for a push (project document first)
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from reelsync.client.sync.types import SyncFile
from reelsync.core.media import file_kind
from reelsync.core.types import FileKind

logger = logging.getLogger(__name__)

EXTERNAL_PREFIX = "external"

_DRIVE_RE = re.compile(r"^([a-zA-Z]):[\\/]")


def _to_forward_slash(value: str) -> str:
    return value.replace("\\", "/")


def sanitize_relative_path(value: str) -> str:
    """Normalize a relative path to forward slashes without leading slashes."""
    value = re.sub(r"/+", "/", _to_forward_slash(value))
    return value.lstrip("/")


def _absolute(path: str | Path) -> str:
    """Absolute form of a path, leaving Windows drive paths untouched."""
    text = str(path)
    if _DRIVE_RE.match(text):
        return text
    return os.path.abspath(text)


def remote_relative_path(local_path: str | Path, project_root: str | Path, is_project: bool = False) -> str:
    """Compute the path of a file inside the remote project folder.

    The project document goes to the top of the folder. Files under the
    project's own folder keep their relative path. Anything else is namespaced
    by drive letter (``external_<letter>/...``) or under ``external/`` so files
    with the same name from different volumes do not collide.

    Args:
        local_path: Absolute local path of the file.
        project_root: Folder holding the project document.
        is_project: Whether this is the project document itself.

    Returns:
        Forward-slash relative path.
    """
    absolute = _absolute(local_path)
    name = PurePosixPath(_to_forward_slash(absolute)).name
    if is_project:
        return name

    normalized = _to_forward_slash(absolute)
    root = _to_forward_slash(_absolute(project_root)).rstrip("/")
    if root and normalized.lower().startswith(root.lower() + "/"):
        return sanitize_relative_path(normalized[len(root) + 1 :])

    match = _DRIVE_RE.match(absolute)
    if match:
        prefix = f"{EXTERNAL_PREFIX}_{match.group(1).lower()}"
        without_drive = absolute[match.end() :]
    else:
        prefix = EXTERNAL_PREFIX
        without_drive = absolute
    return sanitize_relative_path(f"{prefix}/{without_drive}")


def _disambiguate(path: str, index: int) -> str:
    """Give a colliding remote path a unique file name."""
    posix = PurePosixPath(path)
    renamed = f"{posix.stem}_{index}{posix.suffix}"
    return str(posix.with_name(renamed))


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0


def build_file_set(project_path: Path, media_paths: Iterable[Path]) -> list[SyncFile]:
    """Assemble the files of one push.

    The project document is always index 0. Duplicate local paths are dropped
    and remote paths that would collide (case-insensitively) are renamed.

    Args:
        project_path: Local path of the project document.
        media_paths: Local paths of the media the project references.

    Returns:
        SyncFile list with unique upload keys and remote paths.
    """
    project_root = project_path.parent
    entries: list[tuple[Path, bool]] = [(project_path, True)]
    seen_local = {_absolute(project_path).lower()}
    for media in media_paths:
        key = _absolute(media).lower()
        if key in seen_local:
            logger.debug(f"Ignoring duplicate media path {media}")
            continue
        seen_local.add(key)
        entries.append((Path(media), False))

    files: list[SyncFile] = []
    seen_remote: set[str] = set()
    for index, (path, is_project) in enumerate(entries):
        display_name = PurePosixPath(_to_forward_slash(str(path))).name
        relative = remote_relative_path(path, project_root, is_project)
        if relative.lower() in seen_remote:
            relative = _disambiguate(relative, index)
        seen_remote.add(relative.lower())
        files.append(
            SyncFile(
                local_path=path,
                remote_relative_path=relative,
                display_name=display_name,
                kind=FileKind.PROJECT if is_project else file_kind(display_name),
                size_bytes=_file_size(path),
                upload_key=f"{index}:{path}",
            )
        )
    return files
