"""Key-value backends for widget storage.

A backend maps string keys to string values, the way browser local storage
does. Values are JSON documents serialized by the conversation store.
"""

from __future__ import annotations

import errno
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from gary_ai.widget.errors import StorageError, StorageQuotaExceeded


class KeyValueBackend(ABC):
    """Abstract string key-value store.

    Implementations raise ``StorageQuotaExceeded`` when a write does not fit
    and ``StorageError`` for any other failure.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value stored under ``key``, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key`` if present."""

    @abstractmethod
    def keys(self) -> list[str]:
        """All keys currently stored."""

    def is_available(self) -> bool:
        """Probe the backend with a throwaway write."""
        probe = "__gary_ai_test__"
        try:
            self.set(probe, "test")
            self.remove(probe)
            return True
        except StorageError:
            return False


class MemoryBackend(KeyValueBackend):
    """
    In-memory backend for tests and storage-less hosts.

    Args:
        quota_bytes: Optional capacity. A write that would push the total size
            of keys plus values above it raises ``StorageQuotaExceeded``.
    """

    def __init__(self, quota_bytes: int | None = None) -> None:
        self._data: dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def _size_with(self, key: str, value: str) -> int:
        total = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
        return total + len(key) + len(value)

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self._quota_bytes is not None and self._size_with(key, value) > self._quota_bytes:
            raise StorageQuotaExceeded(f"Quota of {self._quota_bytes} bytes exceeded")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileBackend(KeyValueBackend):
    """
    Backend persisted as a single JSON object on disk.

    Every write rewrites the whole file through a temporary file and an
    atomic rename, so a reader sees either the old or the new document.
    Concurrent writers are not coordinated: the last write wins.

    Example:
        backend = JsonFileBackend(Path("~/.gary_ai/storage.json").expanduser())
        backend.set("preferences", '{"theme": "dark"}')
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"{self._path} does not contain a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=self._path.name, suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise StorageQuotaExceeded(f"No space left for {self._path}") from e
            raise StorageError(f"Cannot write {self._path}: {e}") from e

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._write(data)

    def keys(self) -> list[str]:
        return list(self._load())
