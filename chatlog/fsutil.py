"""File-system helpers: pattern search, working directories and sizes."""

from __future__ import annotations

import os
import re
import stat
import sys
from collections.abc import Iterator

__all__ = [
    "find_files_with_patterns",
    "default_work_dir",
    "get_dir_size",
    "byte_count_si",
    "prepare_dir",
]


def _walk_files(root: str, rel: str, recursive: bool) -> Iterator[tuple[str, str]]:
    """Yield (relative path, name) for files below ``root``, in lexical order."""
    current = os.path.join(root, rel) if rel else root
    with os.scandir(current) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        child = os.path.join(rel, entry.name) if rel else entry.name
        if entry.is_dir(follow_symlinks=False):
            if recursive:
                yield from _walk_files(root, child, recursive)
            continue
        yield child, entry.name


def find_files_with_patterns(directory: str, pattern: str, recursive: bool) -> list[str]:
    """Return the files in ``directory`` whose names match the regex ``pattern``.

    Raises ValueError for an invalid pattern, and OSError (FileNotFoundError,
    NotADirectoryError, ...) when the directory cannot be read.
    """
    try:
        regex = re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"invalid regular expression {pattern!r}: {exc}") from exc

    info = os.stat(directory)
    if not stat.S_ISDIR(info.st_mode):
        raise NotADirectoryError(f"{directory!r} is not a directory")

    return [
        os.path.normpath(os.path.join(directory, rel))
        for rel, name in _walk_files(directory, "", recursive)
        if regex.search(name)
    ]


def default_work_dir(account: str) -> str:
    """Return the default working directory, optionally for one account."""
    if sys.platform.startswith("win"):
        parts = [os.environ.get("USERPROFILE", ""), "Documents", "chatlog"]
    elif sys.platform == "darwin":
        parts = [os.environ.get("HOME", ""), "Documents", "chatlog"]
    else:
        parts = [os.environ.get("HOME", ""), "chatlog"]
    if account:
        parts.append(account)
    return os.path.join(*parts)


def _tree_sizes(path: str) -> Iterator[int]:
    try:
        info = os.lstat(path)
    except OSError:
        return
    yield info.st_size
    if stat.S_ISDIR(info.st_mode):
        try:
            names = sorted(os.listdir(path))
        except OSError:
            return
        for name in names:
            yield from _tree_sizes(os.path.join(path, name))


def get_dir_size(directory: str) -> str:
    """Return the total size of everything under ``directory``, human readable."""
    return byte_count_si(sum(_tree_sizes(directory)))


def byte_count_si(size: int) -> str:
    """Format a byte count with decimal (SI) units."""
    unit = 1000
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'kMGTPE'[exp]}B"


def prepare_dir(path: str) -> None:
    """Make sure ``path`` exists as a directory, creating it if needed."""
    try:
        info = os.stat(path)
    except FileNotFoundError:
        os.makedirs(path, mode=0o755, exist_ok=True)
        return
    if not stat.S_ISDIR(info.st_mode):
        raise NotADirectoryError(f"{path} is not a directory")