from pathlib import Path

import pytest

from entry_drafts.persistence import (
    JsonFileStorage,
    MemoryStorage,
    StorageQuotaExceededError,
    StorageUnavailableError,
)
from entry_drafts.persistence.database import SqlStorage


def test_memory_storage_round_trip():
    storage = MemoryStorage()
    assert storage.get_item("k") is None
    storage.set_item("k", "v1")
    storage.set_item("k", "v2")
    assert storage.get_item("k") == "v2"
    storage.remove_item("k")
    storage.remove_item("k")
    assert storage.get_item("k") is None
    assert storage.is_available() is True
    assert storage.keys() == []


def test_memory_storage_quota():
    storage = MemoryStorage(quota_bytes=20)
    storage.set_item("a", "x" * 10)
    with pytest.raises(StorageQuotaExceededError):
        storage.set_item("b", "y" * 15)
    # Replacing an existing key only counts the new value.
    storage.set_item("a", "z" * 19)
    assert storage.get_item("a") == "z" * 19


def test_disabled_memory_storage_is_unavailable():
    storage = MemoryStorage(disabled=True)
    assert storage.is_available() is False
    with pytest.raises(StorageUnavailableError):
        storage.get_item("k")


def test_json_file_storage_persists_across_instances(tmp_path: Path):
    path = tmp_path / "nested" / "session.json"
    storage = JsonFileStorage(path)
    storage.set_item("entry_draft_registry", "{}")
    storage.set_item("entry_editor_draft", "legacy")

    reopened = JsonFileStorage(path)
    assert reopened.get_item("entry_draft_registry") == "{}"
    reopened.remove_item("entry_draft_registry")
    assert JsonFileStorage(path).get_item("entry_draft_registry") is None
    assert JsonFileStorage(path).get_item("entry_editor_draft") == "legacy"
    assert not list(path.parent.glob(".session.json.*"))


def test_json_file_storage_rejects_corrupt_file(tmp_path: Path):
    path = tmp_path / "session.json"
    path.write_text("not json", encoding="utf-8")
    storage = JsonFileStorage(path)
    with pytest.raises(StorageUnavailableError):
        storage.get_item("anything")
    assert storage.is_available() is False
    assert path.read_text(encoding="utf-8") == "not json"


def test_json_file_storage_rejects_invalid_utf8(tmp_path: Path):
    path = tmp_path / "session.json"
    path.write_bytes(b'{"k": "\xff\xfe"}')
    storage = JsonFileStorage(path)
    with pytest.raises(StorageUnavailableError):
        storage.get_item("k")
    assert storage.is_available() is False


def test_sql_storage_round_trip(tmp_path: Path):
    storage = SqlStorage(f"sqlite:///{tmp_path / 'session.sqlite3'}")
    assert storage.is_available() is True
    assert storage.get_item("k") is None
    storage.set_item("k", "first")
    storage.set_item("k", "second")
    assert storage.get_item("k") == "second"

    reopened = SqlStorage(f"sqlite:///{tmp_path / 'session.sqlite3'}")
    assert reopened.get_item("k") == "second"
    reopened.remove_item("k")
    assert reopened.get_item("k") is None


def test_sql_storage_unreachable_database(tmp_path: Path):
    storage = SqlStorage(f"sqlite:///{tmp_path / 'missing' / 'session.sqlite3'}")
    assert storage.is_available() is False
    with pytest.raises(StorageUnavailableError):
        storage.get_item("k")
