"""Flat string-keyed persistent storage with atomic file writes."""

import json
import os
import sys
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional


def _lock_file(file_obj: Any, exclusive: bool = True) -> None:
    """Lock a file in a cross-platform way.

    Args:
        file_obj: File object to lock
        exclusive: If True, acquire exclusive lock; if False, acquire shared lock
    """
    if sys.platform == "win32":
        import msvcrt  # type: ignore[import-not-found]

        # msvcrt has no shared mode; both kinds take the blocking lock
        mode = msvcrt.LK_LOCK
        msvcrt.locking(file_obj.fileno(), mode, 1)
    else:
        import fcntl  # type: ignore[import-not-found]

        mode = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
        fcntl.flock(file_obj.fileno(), mode)


def _unlock_file(file_obj: Any) -> None:
    """Unlock a file in a cross-platform way.

    Args:
        file_obj: File object to unlock
    """
    if sys.platform == "win32":
        import msvcrt  # type: ignore[import-not-found]

        msvcrt.locking(file_obj.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        import fcntl  # type: ignore[import-not-found]

        fcntl.flock(file_obj.fileno(), fcntl.LOCK_UN)


class PersistentStore(ABC):
    """Flat string-keyed storage used by the cache."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored text for key, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store text under key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete key. Missing keys are ignored."""

    @abstractmethod
    def keys(self) -> list[str]:
        """Return all stored keys."""

    @abstractmethod
    def clear(self) -> None:
        """Delete every key."""


class MemoryStore(PersistentStore):
    """In-process store, lost when the process exits."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def clear(self) -> None:
        self._data.clear()


class JSONFileStore(PersistentStore):
    """Store backed by a single JSON object file.

    Every mutation is a read-modify-write done under an exclusive lock on a
    sidecar ``<name>.lock`` file, so several processes (for example ``watch``
    next to ``log``) can share one cache file without losing updates. The
    new content goes through a uniquely named temporary file and a rename.
    """

    def __init__(self, path: Optional[Path] = None):
        """Initialize file store.

        Args:
            path: JSON file path. Defaults to ~/.jira-timekeeper/cache/cache.json
        """
        if path is None:
            path = Path.home() / ".jira-timekeeper" / "cache" / "cache.json"

        self.path = path
        self.lock_path = path.with_name(path.name + ".lock")
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _locked(self, exclusive: bool) -> Iterator[None]:
        """Hold the sidecar lock for the duration of the block."""
        with open(self.lock_path, "a+", encoding="utf-8") as lock:
            lock.seek(0)
            _lock_file(lock, exclusive=exclusive)
            try:
                yield
            finally:
                lock.seek(0)
                _unlock_file(lock)

    def _read(self) -> dict[str, str]:
        """Read the whole store. Callers hold the lock.

        An unreadable or non-object file is treated as empty; the next write
        replaces it.

        Returns:
            Mapping of keys to stored text
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            return {}

        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_atomic(self, data: dict[str, str]) -> None:
        """Replace the file with data. Callers hold the exclusive lock.

        Args:
            data: Mapping of keys to stored text
        """
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f"{self.path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            temp_file = Path(f.name)
            try:
                json.dump(data, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            except Exception:
                f.close()
                temp_file.unlink()
                raise

        try:
            temp_file.replace(self.path)
        except OSError:
            temp_file.unlink()
            raise

    @contextmanager
    def _update(self) -> Iterator[dict[str, str]]:
        """Read, let the caller mutate, then write back under one lock."""
        with self._locked(exclusive=True):
            data = self._read()
            before = dict(data)
            yield data
            if data != before:
                self._write_atomic(data)

    def get(self, key: str) -> Optional[str]:
        with self._locked(exclusive=False):
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._update() as data:
            data[key] = value

    def delete(self, key: str) -> None:
        with self._update() as data:
            data.pop(key, None)

    def keys(self) -> list[str]:
        with self._locked(exclusive=False):
            return list(self._read())

    def clear(self) -> None:
        with self._locked(exclusive=True):
            self._write_atomic({})
