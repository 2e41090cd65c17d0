"""Repoint media paths embedded in a downloaded project document.

This module provides:
- build_media_index: lowercase basename -> local path, for a folder tree
- rewrite_media_paths: pure text rewrite of absolute media paths
- patch_project_file: decompress, rewrite and recompress a project document

The project document is gzip-compressed UTF-8 XML. The rewrite is a
syntax-unaware pattern match: paths it misses are left for the host
application's own relink.
"""

from __future__ import annotations

import gzip
import logging
import os
import re
import zlib
from pathlib import Path
from xml.sax.saxutils import escape

from reelsync.client.sync.transfer import PARTIAL_SUFFIX
from reelsync.client.sync.types import PatchError

logger = logging.getLogger(__name__)

# C:\folder\sub\clip.mov
WINDOWS_PATH_RE = re.compile(
    r"([A-Z]:\\(?:[^<>\"*?|\r\n]+\\)*([^<>\"*?|\\\r\n]+\.[a-zA-Z0-9]{2,6}))",
    re.IGNORECASE,
)
# /Volumes/Media/clip.mov (not part of a URL or a relative path)
POSIX_PATH_RE = re.compile(
    r"(?<![\w:/\\.])(/(?:[^<>\"*?|\r\n/]+/)+([^<>\"*?|/\r\n]+\.[a-zA-Z0-9]{2,6}))",
)

PATH_PATTERNS = (WINDOWS_PATH_RE, POSIX_PATH_RE)


def build_media_index(root: Path) -> dict[str, str]:
    """Index every file below ``root`` by lowercase basename.

    When two files share a name the last one found wins.
    """
    index: dict[str, str] = {}
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            if name.endswith(PARTIAL_SUFFIX):
                continue
            index[name.lower()] = os.path.join(dirpath, name)
    return index


def rewrite_media_paths(text: str, index: dict[str, str]) -> tuple[str, int]:
    """Rewrite absolute media paths whose basename exists in ``index``.

    Args:
        text: Decompressed project document.
        index: Lowercase basename -> local path.

    Returns:
        (rewritten text, number of substitutions).
    """
    count = 0

    def substitute(match: re.Match[str]) -> str:
        nonlocal count
        full_path, basename = match.group(1), match.group(2)
        local = index.get(basename.lower())
        if local is None:
            return match.group(0)
        replacement = escape(local)
        if replacement.lower() == full_path.lower():
            return match.group(0)
        count += 1
        logger.debug(f"{basename}: {full_path} -> {local}")
        return replacement

    for pattern in PATH_PATTERNS:
        text = pattern.sub(substitute, text)
    return text, count


def patch_project_file(path: Path, media_root: Path) -> int:
    """Patch a project document in place to reference local media.

    The file is rewritten only when at least one path changed.

    Args:
        path: Project document (gzip-compressed XML).
        media_root: Folder holding the synced media.

    Returns:
        Number of substitutions.

    Raises:
        PatchError: If the document cannot be read, decompressed or written.
    """
    try:
        raw = path.read_bytes()
        text = gzip.decompress(raw).decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise PatchError(f"Cannot read project document {path}: {e}") from e

    patched, count = rewrite_media_paths(text, build_media_index(media_root))
    logger.info(f"Patched {count} media path(s) in {path.name}")
    if count == 0:
        return 0

    temp = path.with_name(path.name + ".patching")
    try:
        temp.write_bytes(gzip.compress(patched.encode("utf-8")))
        os.replace(temp, path)
    except OSError as e:
        temp.unlink(missing_ok=True)
        raise PatchError(f"Cannot write project document {path}: {e}") from e
    return count
