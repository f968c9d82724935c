"""Tests for gary_ai.widget.backends."""

from __future__ import annotations

import errno
import json
from unittest.mock import patch

import pytest

from gary_ai.widget.backends import JsonFileBackend, MemoryBackend
from gary_ai.widget.errors import StorageError, StorageQuotaExceeded


class TestMemoryBackend:
    """Test the in-memory backend."""

    def test_get_set_remove(self):
        backend = MemoryBackend()
        assert backend.get("a") is None
        backend.set("a", "1")
        assert backend.get("a") == "1"
        assert backend.keys() == ["a"]
        backend.remove("a")
        assert backend.get("a") is None
        backend.remove("a")

    def test_quota_exceeded(self):
        backend = MemoryBackend(quota_bytes=10)
        backend.set("k", "12345")
        with pytest.raises(StorageQuotaExceeded):
            backend.set("k2", "123456789")
        assert backend.get("k2") is None

    def test_quota_counts_replacement_once(self):
        backend = MemoryBackend(quota_bytes=10)
        backend.set("k", "123456789")
        backend.set("k", "987654321")
        assert backend.get("k") == "987654321"

    def test_is_available(self):
        assert MemoryBackend().is_available() is True
        assert MemoryBackend(quota_bytes=1).is_available() is False

    def test_probe_key_is_removed(self):
        backend = MemoryBackend()
        backend.is_available()
        assert backend.keys() == []


class TestJsonFileBackend:
    """Test the JSON file backend."""

    def test_missing_file_is_empty(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "store.json")
        assert backend.keys() == []
        assert backend.get("a") is None

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "store.json"
        JsonFileBackend(path).set("gary_ai_preferences", '{"theme": "dark"}')

        reopened = JsonFileBackend(path)
        assert reopened.get("gary_ai_preferences") == '{"theme": "dark"}'
        assert json.loads(path.read_text()) == {"gary_ai_preferences": '{"theme": "dark"}'}

    def test_remove(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "store.json")
        backend.set("a", "1")
        backend.set("b", "2")
        backend.remove("a")
        assert backend.keys() == ["b"]

    def test_no_temp_files_left(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "store.json")
        backend.set("a", "1")
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        with pytest.raises(StorageError, match="Cannot read"):
            JsonFileBackend(path).get("a")

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[1, 2]")
        with pytest.raises(StorageError, match="JSON object"):
            JsonFileBackend(path).keys()

    def test_disk_full_maps_to_quota(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "store.json")
        with patch(
            "gary_ai.widget.backends.os.replace",
            side_effect=OSError(errno.ENOSPC, "No space left on device"),
        ):
            with pytest.raises(StorageQuotaExceeded):
                backend.set("a", "1")
        assert [p.name for p in tmp_path.iterdir()] == []

    def test_other_os_error(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "store.json")
        with patch(
            "gary_ai.widget.backends.os.replace",
            side_effect=OSError(errno.EACCES, "Permission denied"),
        ):
            with pytest.raises(StorageError) as exc_info:
                backend.set("a", "1")
        assert not isinstance(exc_info.value, StorageQuotaExceeded)
