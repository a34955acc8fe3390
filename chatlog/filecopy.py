"""Cached temporary copies of files that other programs may hold open.

A :class:`TempCopyManager` copies a file into its own temporary directory
and hands out the copy's path. While the original is unchanged, the same
copy is returned. When the original changes, a fresh copy is made and the
previous one is deleted after a delay, so readers still using it are not
cut off.
"""

from __future__ import annotations

import errno
import json
import os
import queue
import re
import shutil
import sys
import tempfile
import threading
import time
from dataclasses import dataclass

__all__ = [
    "DEFAULT_DELETION_DELAY",
    "MAPPING_FILE_NAME",
    "TempCopyManager",
    "hash_string",
    "get_hash_prefix",
    "process_name",
]

DEFAULT_DELETION_DELAY = 30.0
DEFAULT_CLEANUP_INTERVAL = 30.0
MAPPING_FILE_NAME = "file_mappings.json"

_COPY_BUFFER = 256 * 1024
_COPY_RETRIES = 3
_QUEUE_SIZE = 1000
_HASH_PREFIX_LEN = 8
_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193
_LEADING_INT_RE = re.compile(r"[+-]?\d+")
_NAME_CHAR_RE = re.compile(r"[^A-Za-z0-9_-]")


def hash_string(text: str) -> str:
    """Return the 32-bit FNV-1a hash of ``text`` as lowercase hex."""
    value = _FNV32_OFFSET
    for byte in text.encode("utf-8", errors="surrogatepass"):
        value = ((value ^ byte) * _FNV32_PRIME) & 0xFFFFFFFF
    return f"{value:x}"


def get_hash_prefix(hash_value: str, length: int) -> str:
    """Return at most ``length`` leading characters of ``hash_value``."""
    return hash_value if len(hash_value) <= length else hash_value[:length]


def _ext(path: str) -> str:
    """Extension of the last path element, leading dot included."""
    name = os.path.basename(path)
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


def _strip_ext(path: str) -> str:
    ext = _ext(path)
    return path[: -len(ext)] if ext else path


def process_name() -> str:
    """Return the running program's name, reduced to ``[A-Za-z0-9_-]``."""
    program = sys.argv[0] if sys.argv and sys.argv[0] else sys.executable
    if not program:
        return "unknown"
    base = _strip_ext(os.path.basename(program))
    return _NAME_CHAR_RE.sub("_", base)


def _copy_name_prefix(original_path: str) -> tuple[str, str]:
    """Return (``basename_hashprefix``, extension) for copies of a file."""
    file_name = os.path.basename(original_path)
    ext = _ext(file_name)
    base = file_name[: len(file_name) - len(ext)] or "file"
    prefix = get_hash_prefix(hash_string(original_path), _HASH_PREFIX_LEN)
    return f"{base}_{prefix}", ext


def _remove_quietly(path: str) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except OSError:
        pass


def _copy_file(src: str, dst: str) -> None:
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        shutil.copyfileobj(fin, fout, _COPY_BUFFER)
        fout.flush()
        os.fsync(fout.fileno())


def _default_temp_dir() -> str:
    base = tempfile.gettempdir()
    for candidate in (
        os.path.join(base, "filecopy_" + process_name()),
        os.path.join(base, "filecopy"),
    ):
        try:
            os.makedirs(candidate, mode=0o755, exist_ok=True)
            return candidate
        except OSError:
            continue
    return base


@dataclass(frozen=True)
class _FileMeta:
    mod_time_ns: int
    size: int

    @classmethod
    def of(cls, info: os.stat_result) -> _FileMeta:
        return cls(info.st_mtime_ns, info.st_size)


@dataclass(frozen=True)
class _Deletion:
    path: str
    due: float


class TempCopyManager:
    """Hands out temporary copies of files and cleans up stale ones.

    Background threads delete superseded copies after ``deletion_delay``
    seconds and sweep the directory every ``cleanup_interval`` seconds.
    Call :meth:`close` (or use the manager as a context manager) to stop them.
    """

    def __init__(
        self,
        temp_dir: str | None = None,
        deletion_delay: float = DEFAULT_DELETION_DELAY,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL,
        workers: int = 2,
    ) -> None:
        if temp_dir is None:
            temp_dir = _default_temp_dir()
        else:
            os.makedirs(temp_dir, mode=0o755, exist_ok=True)
        self.temp_dir = temp_dir
        self.mapping_file = os.path.join(temp_dir, MAPPING_FILE_NAME)
        self.deletion_delay = deletion_delay
        self.cleanup_interval = cleanup_interval

        self._file_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._map_lock = threading.RLock()
        self._temp_paths: dict[str, str] = {}
        self._metadata: dict[str, _FileMeta] = {}
        self._old_versions: dict[str, str] = {}
        self._deletions: queue.Queue[_Deletion] = queue.Queue(maxsize=_QUEUE_SIZE)
        self._stop = threading.Event()

        self.load_mappings()
        self._cleanup_existing_temp_files()

        self._threads = [
            threading.Thread(target=self._deletion_worker, daemon=True)
            for _ in range(workers)
        ]
        self._threads.append(threading.Thread(target=self._periodic_cleanup, daemon=True))
        for thread in self._threads:
            thread.start()

    def __enter__(self) -> TempCopyManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Stop the background threads and persist the current mappings."""
        if self._stop.is_set():
            return
        self._stop.set()
        for thread in self._threads:
            thread.join()
        self.save_mappings()

    def _listing(self) -> list[str]:
        try:
            with os.scandir(self.temp_dir) as it:
                return [
                    entry.name
                    for entry in it
                    if not entry.is_dir() and entry.name != MAPPING_FILE_NAME
                ]
        except OSError:
            return []

    def load_mappings(self) -> None:
        """Restore mappings saved earlier whose files are still unchanged."""
        try:
            with open(self.mapping_file, encoding="utf-8") as fh:
                records = json.load(fh)
        except (OSError, ValueError):
            return
        if not isinstance(records, list):
            return
        with self._map_lock:
            for record in records:
                try:
                    original = record["original_path"]
                    temp_path = record["temp_path"]
                    meta = _FileMeta(
                        int(record["metadata"]["mod_time"]),
                        int(record["metadata"]["size"]),
                    )
                    info = os.stat(original)
                    os.stat(temp_path)
                except (OSError, KeyError, TypeError, ValueError):
                    continue
                if _FileMeta.of(info) == meta:
                    self._temp_paths[original] = temp_path
                    self._metadata[original] = meta

    def save_mappings(self) -> None:
        """Write the current mappings to the mapping file, ignoring failures."""
        with self._map_lock:
            records = [
                {
                    "original_path": original,
                    "temp_path": temp_path,
                    "metadata": {
                        "mod_time": meta.mod_time_ns,
                        "size": meta.size,
                    },
                }
                for original, temp_path in self._temp_paths.items()
                if (meta := self._metadata.get(original)) is not None
            ]
            try:
                with open(self.mapping_file, "w", encoding="utf-8") as fh:
                    json.dump(records, fh, indent=2)
                    fh.write("\n")
            except OSError:
                pass

    def _cleanup_existing_temp_files(self) -> None:
        """Keep only the newest copy of each file; drop foreign-named files."""
        with self._map_lock:
            known = set(self._temp_paths.values())
        groups: dict[str, list[tuple[str, int]]] = {}
        for name in self._listing():
            path = os.path.join(self.temp_dir, name)
            parts = name.split("_")
            if len(parts) < 3:
                _remove_quietly(path)
                continue
            stamp = _LEADING_INT_RE.match(parts[2].split(".")[0])
            if stamp is None:
                _remove_quietly(path)
                continue
            groups.setdefault(f"{parts[0]}_{parts[1]}", []).append((path, int(stamp[0])))

        for entries in groups.values():
            newest_path, newest_stamp = "", 0
            for path, stamp in entries:
                if stamp > newest_stamp:
                    newest_path, newest_stamp = path, stamp
            for path, _ in entries:
                if path != newest_path and path not in known:
                    _remove_quietly(path)

    def _file_lock(self, path: str) -> threading.Lock:
        with self._locks_guard:
            return self._file_locks.setdefault(path, threading.Lock())

    def get_temp_copy(self, original_path: str) -> str:
        """Return the path of an up-to-date temporary copy of ``original_path``.

        Raises OSError (FileNotFoundError when it is missing) if the original
        cannot be read or copied.
        """
        with self._file_lock(original_path):
            try:
                current = _FileMeta.of(os.stat(original_path))
            except OSError as exc:
                raise OSError(
                    exc.errno,
                    f"original file does not exist: {exc.strerror}",
                    original_path,
                ) from exc

            with self._map_lock:
                cached_path = self._temp_paths.get(original_path)
                cached_meta = self._metadata.get(original_path)

            if cached_path is not None and cached_meta is not None:
                changed = (
                    current.mod_time_ns > cached_meta.mod_time_ns
                    or current.size != cached_meta.size
                )
                if not changed:
                    try:
                        with open(cached_path, "rb"):
                            return cached_path
                    except OSError:
                        pass

            prefix, ext = _copy_name_prefix(original_path)
            temp_path = os.path.join(self.temp_dir, f"{prefix}_{time.time_ns()}{ext}")
            self._copy_with_retry(original_path, temp_path)

            with self._map_lock:
                old_path = self._temp_paths.get(original_path, "")
                if old_path and old_path != temp_path:
                    previous = self._old_versions.get(original_path)
                    if previous is not None and previous != old_path:
                        _remove_quietly(previous)
                    self._old_versions[original_path] = old_path
                    self._schedule_deletion(old_path)
                self._temp_paths[original_path] = temp_path
                self._metadata[original_path] = current

            self.save_mappings()
            self._cleanup_related(original_path, temp_path, old_path)
            return temp_path

    @staticmethod
    def _copy_with_retry(src: str, dst: str) -> None:
        last_error: OSError | None = None
        for attempt in range(_COPY_RETRIES):
            try:
                _copy_file(src, dst)
                return
            except OSError as exc:
                last_error = exc
                time.sleep(0.1 * (attempt + 1))
        raise OSError(
            last_error.errno if last_error else errno.EIO,
            f"failed to copy file after {_COPY_RETRIES} attempts: {last_error}",
            src,
        ) from last_error

    def _cleanup_related(self, original_path: str, current: str, known_old: str) -> None:
        """Remove other copies of ``original_path`` besides current and old."""
        prefix, _ = _copy_name_prefix(original_path)
        keep = {_strip_ext(current)}
        if known_old:
            keep.add(_strip_ext(known_old))
        for name in self._listing():
            path = os.path.join(self.temp_dir, name)
            if _strip_ext(path) in keep:
                continue
            if name.startswith(prefix):
                _remove_quietly(path)

    def _schedule_deletion(self, path: str) -> None:
        if not path or not os.path.exists(path):
            return
        try:
            self._deletions.put_nowait(_Deletion(path, time.monotonic() + self.deletion_delay))
        except queue.Full:
            _remove_quietly(path)

    def _is_active(self, path: str) -> bool:
        with self._map_lock:
            return path in self._temp_paths.values()

    def _deletion_worker(self) -> None:
        while not self._stop.is_set():
            try:
                item = self._deletions.get(timeout=0.1)
            except queue.Empty:
                continue
            remaining = item.due - time.monotonic()
            if remaining > 0 and self._stop.wait(remaining):
                return
            if not self._is_active(item.path):
                _remove_quietly(item.path)

    def _periodic_cleanup(self) -> None:
        while not self._stop.wait(self.cleanup_interval):
            self.cleanup_temp_files()
            self.save_mappings()

    def cleanup_temp_files(self) -> None:
        """Schedule deletion of copies that are neither current nor previous."""
        with self._map_lock:
            active = {_strip_ext(p) for p in self._temp_paths.values()}
            active.update(_strip_ext(p) for p in self._old_versions.values())
        for name in self._listing():
            path = os.path.join(self.temp_dir, name)
            if _strip_ext(path) not in active:
                self._schedule_deletion(path)