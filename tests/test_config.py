import json
from pathlib import Path

import pytest

from entry_drafts.config import REGISTRY_LIMITS, Settings, build_registry, build_storage, load_settings
from entry_drafts.persistence import JsonFileStorage, MemoryStorage
from entry_drafts.persistence.database import SqlStorage


def test_default_limits():
    assert REGISTRY_LIMITS.MAX_DRAFTS == 10
    assert REGISTRY_LIMITS.MAX_SINGLE_DRAFT_KB == 100
    assert REGISTRY_LIMITS.WARN_TOTAL_SIZE_KB == 500
    assert REGISTRY_LIMITS.MAX_TOTAL_SIZE_KB == 2000
    assert REGISTRY_LIMITS.TTL_MS == 30 * 60 * 1000
    assert REGISTRY_LIMITS.TTL_WARNING_MS == 25 * 60 * 1000
    assert REGISTRY_LIMITS.PERSIST_DEBOUNCE_MS == 500


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("ENTRY_DRAFTS_STORAGE_BACKEND", "memory")
    monkeypatch.setenv("ENTRY_DRAFTS_STORAGE_PATH", str(tmp_path / "s.json"))
    settings = Settings()
    assert settings.storage_backend == "memory"
    assert settings.storage_path == tmp_path / "s.json"


def test_load_settings_from_json_file(tmp_path: Path):
    config_path = tmp_path / "drafts.json"
    config_path.write_text(
        json.dumps(
            {
                "storage_backend": "json",
                "storage_path": str(tmp_path / "session.json"),
                "limits": {"MAX_DRAFTS": 3, "TTL_MS": 60000},
            }
        ),
        encoding="utf-8",
    )
    settings = load_settings(config_path)
    assert settings.limits.MAX_DRAFTS == 3
    assert settings.limits.TTL_MS == 60000
    assert settings.limits.PERSIST_DEBOUNCE_MS == 500

    registry = build_registry(settings)
    assert registry.limits.MAX_DRAFTS == 3
    assert isinstance(registry.persistence.storage, JsonFileStorage)


def test_build_storage_backends(tmp_path: Path):
    assert isinstance(build_storage(Settings(storage_backend="memory")), MemoryStorage)

    json_storage = build_storage(Settings(storage_backend="json", storage_path=tmp_path / "s.json"))
    assert isinstance(json_storage, JsonFileStorage)
    assert json_storage.path == tmp_path / "s.json"

    sql_storage = build_storage(Settings(storage_backend="sqlite", storage_path=tmp_path / "db" / "s.json"))
    assert isinstance(sql_storage, SqlStorage)
    assert sql_storage.database_url == f"sqlite:///{tmp_path / 'db' / 's.sqlite3'}"
    assert sql_storage.is_available() is True


def test_registry_capacity_follows_configured_limits(tmp_path: Path):
    settings = Settings(storage_backend="memory", limits={"MAX_DRAFTS": 2})
    registry = build_registry(settings)
    registry.load()
    assert registry.create_draft() is not None
    assert registry.create_draft() is not None
    assert registry.create_draft() is None
    registry.persistence.cancel_pending_save()
