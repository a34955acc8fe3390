"""Groups of files, selected by directory and name pattern, sharing callbacks."""

from __future__ import annotations

import enum
import logging
import os
import re
import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

__all__ = ["EventOp", "FileEvent", "FileChangeCallback", "FileGroup"]

_log = logging.getLogger(__name__)


class EventOp(enum.IntFlag):
    """Kinds of file-system change; several may be combined."""

    CREATE = 1
    WRITE = 2
    REMOVE = 4
    RENAME = 8
    CHMOD = 16


@dataclass(frozen=True)
class FileEvent:
    """A change to the file at ``name``."""

    name: str
    op: EventOp


FileChangeCallback = Callable[[FileEvent], None]


def _iter_files(directory: str) -> Iterator[str]:
    """Yield the paths of all non-directory entries below ``directory``.

    Entries are visited in lexical order; unreadable directories are skipped.
    """
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError:
        return
    for entry in entries:
        path = os.path.join(directory, entry.name)
        if entry.is_dir(follow_symlinks=False):
            yield from _iter_files(path)
        else:
            yield path


class FileGroup:
    """Files under ``root_dir`` whose names match ``pattern``.

    A path is excluded when its location relative to the root contains any
    of the ``blacklist`` strings. Raises ValueError for an invalid pattern.
    """

    def __init__(
        self,
        group_id: str,
        root_dir: str,
        pattern: str,
        blacklist: Iterable[str] | None = None,
    ) -> None:
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise ValueError(f"invalid pattern {pattern!r}: {exc}") from exc
        self.id = group_id
        self.root_dir = os.path.normpath(root_dir)
        self.pattern = regex
        self.pattern_str = pattern
        self.blacklist = list(blacklist or [])
        self._callbacks: list[FileChangeCallback] = []
        self._lock = threading.Lock()

    @property
    def callbacks(self) -> tuple[FileChangeCallback, ...]:
        """The registered callbacks, in the order they were added."""
        with self._lock:
            return tuple(self._callbacks)

    def add_callback(self, callback: FileChangeCallback) -> None:
        """Register ``callback`` to be called for matching events."""
        with self._lock:
            self._callbacks.append(callback)

    def remove_callback(self, callback: FileChangeCallback) -> bool:
        """Unregister ``callback``; return whether it was registered."""
        with self._lock:
            for pos, registered in enumerate(self._callbacks):
                if registered == callback:
                    del self._callbacks[pos]
                    return True
        return False

    def match(self, path: str) -> bool:
        """Return True if ``path`` belongs to this group."""
        path = os.path.normpath(path)
        try:
            rel = os.path.relpath(path, self.root_dir)
        except ValueError:
            return False
        if rel.startswith(".."):
            return False
        if not self.pattern.search(os.path.basename(path)):
            return False
        return not any(item in rel for item in self.blacklist)

    def list_files(self) -> list[str]:
        """Scan the root directory and return the matching files."""
        return [path for path in _iter_files(self.root_dir) if self.match(path)]

    def list_matching_directories(self) -> set[str]:
        """Return the directories that hold at least one matching file."""
        return {os.path.dirname(path) for path in self.list_files()}

    def handle_event(self, event: FileEvent) -> None:
        """Run every callback, each in its own thread, if ``event`` matches."""
        if not self.match(event.name):
            return
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            threading.Thread(
                target=self._run_callback, args=(callback, event), daemon=True
            ).start()

    @staticmethod
    def _run_callback(callback: FileChangeCallback, event: FileEvent) -> None:
        try:
            callback(event)
        except Exception:
            _log.error(
                "callback error: file=%s op=%s", event.name, event.op, exc_info=True
            )