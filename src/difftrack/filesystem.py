"""Filesystem helpers for difftrack."""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_MARKER = ".git"


def find_repository_root(start: Path | str) -> Path | None:
    """Walk up from ``start`` and return the first directory holding a ``.git`` marker.

    The marker may be a directory (regular clone) or a file (worktrees, submodules).
    """

    try:
        current = Path(start).expanduser().resolve(strict=False)
    except OSError as exc:
        logger.debug("Cannot resolve '%s': %s", start, exc)
        return None

    if current.is_file():
        current = current.parent

    for candidate in (current, *current.parents):
        marker = candidate / GIT_MARKER
        if marker.is_dir() or marker.is_file():
            return candidate
    return None


def to_full_path(root: Path, relative_path: str) -> Path:
    """Join a repository-relative posix path onto ``root``."""

    return Path(os.path.normpath(root / Path(*relative_path.split("/"))))


def to_relative_path(root: Path, path: Path) -> str:
    """Return ``path`` relative to ``root`` in posix form, or the full path if outside."""

    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def is_under_directory(path: Path, directory: Path) -> bool:
    """Return ``True`` if ``path`` lies inside ``directory`` (or is the directory itself)."""

    full_path = Path(os.path.normcase(os.path.abspath(path)))
    full_directory = Path(os.path.normcase(os.path.abspath(directory)))
    return full_path == full_directory or full_directory in full_path.parents


def decode_text(data: bytes) -> str | None:
    """Decode file bytes as UTF-8 text, or return ``None`` for binary content."""

    if b"\0" in data:
        return None
    return data.decode("utf-8-sig", errors="replace")


def read_text_file(path: Path, *, max_bytes: int) -> str | None:
    """Return the text of ``path``, or ``None`` if it is missing, oversize, binary or unreadable."""

    try:
        if path.stat().st_size > max_bytes:
            return None
        with path.open("rb") as handle:
            data = handle.read(max_bytes + 1)
    except OSError as exc:
        logger.debug("Cannot read '%s': %s", path, exc)
        return None

    if len(data) > max_bytes:
        return None
    return decode_text(data)


def last_modified(path: Path) -> float:
    """Return the modification time of ``path``; missing files sort first with ``0.0``."""

    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0
