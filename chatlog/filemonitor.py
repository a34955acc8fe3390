"""Watching the directories of several file groups for changes."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterable, Iterator
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from chatlog.filegroup import EventOp, FileEvent, FileGroup

__all__ = ["FileMonitorError", "FileMonitor"]

_log = logging.getLogger(__name__)


class FileMonitorError(Exception):
    """Raised when the monitor cannot carry out a request."""


def _translate(event: FileSystemEvent) -> Iterator[FileEvent]:
    """Turn a watchdog event into file events."""
    kind = event.event_type
    src = os.fsdecode(event.src_path)
    if kind == "created":
        yield FileEvent(src, EventOp.CREATE)
    elif kind == "modified":
        if not event.is_directory:
            yield FileEvent(src, EventOp.WRITE)
    elif kind == "deleted":
        yield FileEvent(src, EventOp.REMOVE)
    elif kind == "moved":
        yield FileEvent(src, EventOp.RENAME)
        dest = getattr(event, "dest_path", "")
        if dest:
            yield FileEvent(os.fsdecode(dest), EventOp.CREATE)


class _EventForwarder(FileSystemEventHandler):
    def __init__(self, monitor: FileMonitor) -> None:
        super().__init__()
        self._monitor = monitor

    def dispatch(self, event: FileSystemEvent) -> None:
        for file_event in _translate(event):
            self._monitor._on_event(file_event)


class FileMonitor:
    """Watches the directories of its file groups and forwards changes to them.

    Only the root of each group and the directories holding matching files
    are watched; new directories and directories of new matching files are
    added as they appear.
    """

    def __init__(self) -> None:
        self._groups: dict[str, FileGroup] = {}
        self._watch_dirs: dict[str, Any] = {}
        self._blacklist: list[str] = []
        self._lock = threading.RLock()
        self._state_lock = threading.Lock()
        self._observer: Any = None
        self._handler = _EventForwarder(self)
        self._running = False

    def set_blacklist(self, blacklist: Iterable[str]) -> None:
        """Never watch directories whose path contains one of these strings."""
        with self._lock:
            self._blacklist = list(blacklist)

    def add_group(self, group: FileGroup) -> None:
        """Add ``group``; if running, start watching its directories."""
        if group is None:
            raise FileMonitorError("group cannot be None")
        running = self.is_running()
        with self._lock:
            if group.id in self._groups:
                raise FileMonitorError(f"group with ID {group.id!r} already exists")
            self._groups[group.id] = group
        if running:
            try:
                self._setup_watch_for_group(group)
            except FileMonitorError:
                with self._lock:
                    self._groups.pop(group.id, None)
                raise

    def create_group(
        self,
        group_id: str,
        root_dir: str,
        pattern: str,
        blacklist: Iterable[str] | None,
    ) -> FileGroup:
        """Create a file group, add it and return it."""
        group = FileGroup(group_id, root_dir, pattern, blacklist)
        self.add_group(group)
        return group

    def remove_group(self, group_id: str) -> None:
        """Remove the group with ``group_id``."""
        with self._lock:
            if group_id not in self._groups:
                raise FileMonitorError(f"group with ID {group_id!r} does not exist")
            del self._groups[group_id]

    def get_groups(self) -> list[FileGroup]:
        """Return all groups."""
        with self._lock:
            return list(self._groups.values())

    def get_group(self, group_id: str) -> FileGroup | None:
        """Return the group with ``group_id``, or None."""
        with self._lock:
            return self._groups.get(group_id)

    def is_running(self) -> bool:
        """Return whether the monitor is running."""
        with self._state_lock:
            return self._running

    def start(self) -> None:
        """Start watching the directories of every group."""
        with self._state_lock:
            if self._running:
                raise FileMonitorError("file monitor is already running")
            observer = Observer()
            try:
                observer.start()
            except (OSError, RuntimeError) as exc:
                raise FileMonitorError(f"failed to create watcher: {exc}") from exc
            self._observer = observer
            with self._lock:
                groups = list(self._groups.values())
                self._watch_dirs = {}
            self._running = True

        for group in groups:
            try:
                self._setup_watch_for_group(group)
            except FileMonitorError as exc:
                with self._state_lock:
                    self._observer = None
                    self._running = False
                observer.stop()
                observer.join()
                raise FileMonitorError(
                    f"failed to setup watch for group {group.id!r}: {exc}"
                ) from exc

    def stop(self) -> None:
        """Stop watching."""
        with self._state_lock:
            if not self._running:
                raise FileMonitorError("file monitor is not running")
            observer = self._observer
            self._running = False
        if observer is not None:
            observer.stop()
            observer.join()
            with self._state_lock:
                self._observer = None

    def refresh_watches(self) -> None:
        """Re-scan every group and watch exactly the directories now needed."""
        if not self.is_running():
            raise FileMonitorError("file monitor is not running")
        with self._lock:
            groups = list(self._groups.values())
            old_watches = self._watch_dirs
            self._watch_dirs = {}

        for group in groups:
            try:
                self._setup_watch_for_group(group)
            except FileMonitorError as exc:
                raise FileMonitorError(
                    f"failed to refresh watches for group {group.id!r}: {exc}"
                ) from exc

        observer = self._observer
        for directory, watch in old_watches.items():
            with self._lock:
                still_watched = directory in self._watch_dirs
            if not still_watched and observer is not None:
                try:
                    observer.unschedule(watch)
                except (KeyError, OSError):
                    pass
                _log.debug("removed watch for directory %s", directory)

    def _add_watch_dir(self, dir_path: str) -> None:
        with self._lock:
            if any(item in dir_path for item in self._blacklist):
                _log.debug("skipping blacklisted directory %s", dir_path)
                return
            if dir_path in self._watch_dirs:
                return
        observer = self._observer
        if observer is None:
            raise FileMonitorError("file monitor is not running")
        if not os.path.isdir(dir_path):
            raise FileMonitorError(
                f"failed to watch directory {dir_path!r}: not a directory"
            )
        # The observer's own lock is taken here, so ours must not be held.
        try:
            watch = observer.schedule(self._handler, dir_path, recursive=False)
        except OSError as exc:
            raise FileMonitorError(
                f"failed to watch directory {dir_path!r}: {exc}"
            ) from exc
        with self._lock:
            self._watch_dirs.setdefault(dir_path, watch)

    def _setup_watch_for_group(self, group: FileGroup) -> None:
        if not self.is_running():
            raise FileMonitorError("file monitor is not running")
        matching = group.list_matching_directories()
        self._add_watch_dir(os.path.normpath(group.root_dir))
        for directory in sorted(matching):
            self._add_watch_dir(directory)

    def _on_event(self, event: FileEvent) -> None:
        if not self.is_running():
            return

        if os.path.isdir(event.name) and event.op & (EventOp.CREATE | EventOp.RENAME):
            try:
                self._add_watch_dir(event.name)
            except FileMonitorError as exc:
                _log.error("error watching new directory %s: %s", event.name, exc)
            return

        if event.op & (EventOp.CREATE | EventOp.WRITE):
            with self._lock:
                groups = list(self._groups.values())
            if any(group.match(event.name) for group in groups):
                directory = os.path.dirname(event.name)
                try:
                    self._add_watch_dir(directory)
                except FileMonitorError as exc:
                    _log.error(
                        "error watching directory of matching file %s: %s",
                        directory,
                        exc,
                    )

        self._forward_event_to_groups(event)

    def _forward_event_to_groups(self, event: FileEvent) -> None:
        with self._lock:
            groups = list(self._groups.values())
        for group in groups:
            group.handle_event(event)