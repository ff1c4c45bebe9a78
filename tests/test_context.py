import json

import pytest

from entry_drafts.config import REGISTRY_STORAGE_KEY
from entry_drafts.context import DraftRegistryProvider, use_draft_registry, use_draft_registry_safe
from entry_drafts.persistence import MemoryStorage, RegistryPersistence
from entry_drafts.registry import DraftRegistry
from entry_drafts.timing import ManualScheduler


def _registry(storage: MemoryStorage) -> DraftRegistry:
    scheduler = ManualScheduler(start_ms=1_700_000_000_000)
    return DraftRegistry(persistence=RegistryPersistence(storage, clock=scheduler, scheduler=scheduler))


def test_hook_outside_provider_raises():
    with pytest.raises(RuntimeError, match="DraftRegistryProvider"):
        use_draft_registry()
    assert use_draft_registry_safe() is None


def test_provider_loads_binds_and_flushes():
    storage = MemoryStorage()
    registry = _registry(storage)

    with DraftRegistryProvider(registry) as provided:
        assert provided is registry
        assert use_draft_registry() is registry
        assert registry.is_loaded is True
        draft_id = registry.create_draft({"title": "A"})
        assert storage.get_item(REGISTRY_STORAGE_KEY) is None

    assert use_draft_registry_safe() is None
    blob = json.loads(storage.get_item(REGISTRY_STORAGE_KEY))
    assert list(blob["drafts"]) == [draft_id]
    assert registry.persistence.has_pending_save is False


def test_nested_providers_restore_outer_registry():
    outer = _registry(MemoryStorage())
    inner = _registry(MemoryStorage())

    with DraftRegistryProvider(outer, flush_on_exit=False):
        with DraftRegistryProvider(inner, flush_on_exit=False):
            assert use_draft_registry() is inner
        assert use_draft_registry() is outer
