"""
Path Utilities
==============

OS-aware path handling utilities with security considerations.
"""

from __future__ import annotations

import hashlib
import os
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Final, Iterator

# Characters not allowed in filenames across all platforms
_UNSAFE_CHARS: Final[re.Pattern[str]] = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

ROOT_TOKEN_DIGEST_CHARS: Final[int] = 16


def normalize_path(path: str | Path) -> Path:
    """
    Normalize a path to an absolute path without resolving symlinks away.

    ``~`` is expanded and ``.``/``..`` components are collapsed so that
    the same location always yields the same key.
    """
    return Path(os.path.normpath(Path(path).expanduser().absolute()))


def sanitize_filename(filename: str, replacement: str = "_") -> str:
    """
    Sanitize a filename by removing potentially dangerous characters.

    Args:
        filename: The filename to sanitize
        replacement: Character to replace unsafe chars with

    Returns:
        Sanitized filename safe for all platforms
    """
    if not filename:
        raise ValueError("Filename cannot be empty")

    sanitized = _UNSAFE_CHARS.sub(replacement, filename)
    sanitized = sanitized.strip(". ")

    if not sanitized:
        raise ValueError("Filename becomes empty after sanitization")

    # Leave room for the digest suffix and extension
    max_length = 200
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def root_token(root: str | Path) -> str:
    """
    Derive a deterministic, filesystem-safe token for a root path.

    The token is the sanitized leaf name followed by a truncated SHA-256
    of the full normalized path, so two roots with the same leaf name
    never share a token.

    Examples:
        /home/alice/docs -> "docs-3b1f0c9e2d7a6b55"
        /                -> "root-<digest>"
    """
    normalized = str(normalize_path(root))
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    digest = digest[:ROOT_TOKEN_DIGEST_CHARS]

    try:
        leaf = sanitize_filename(Path(normalized).name)
    except ValueError:
        leaf = "root"

    return f"{leaf}-{digest}"


def is_path_within_directory(path: Path, directory: Path) -> bool:
    """
    Check if a path is equal to or inside a directory (lexically).

    Args:
        path: The path to check
        directory: The containing directory

    Returns:
        True if path is the directory itself or one of its descendants
    """
    try:
        return normalize_path(path).is_relative_to(normalize_path(directory))
    except (ValueError, RuntimeError):
        return False


@contextmanager
def atomic_write(target: Path, mode: int = 0o600) -> Iterator[BinaryIO]:
    """
    Open a temporary sibling of ``target`` for binary writing.

    On normal exit the data is flushed, fsynced and renamed over
    ``target``. On any exception the temporary file is removed and the
    final name is never touched.
    """
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
