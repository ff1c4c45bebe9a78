import json
import threading
import time

from entry_drafts.config import REGISTRY_LIMITS, REGISTRY_STORAGE_KEY
from entry_drafts.persistence import MemoryStorage, RegistryPersistence
from entry_drafts.registry import DraftRegistry
from entry_drafts.timing import ManualScheduler, ThreadingScheduler


def test_threading_scheduler_runs_callback_after_delay():
    fired = threading.Event()
    ThreadingScheduler().call_later(10, fired.set)
    assert fired.wait(2)


def test_threading_scheduler_cancel_prevents_callback():
    fired = threading.Event()
    handle = ThreadingScheduler().call_later(200, fired.set)
    handle.cancel()
    assert not fired.wait(0.4)


def test_manual_scheduler_runs_due_callbacks_in_order():
    scheduler = ManualScheduler(start_ms=1_000)
    calls = []
    scheduler.call_later(30, lambda: calls.append(("b", scheduler())))
    scheduler.call_later(10, lambda: calls.append(("a", scheduler())))
    skipped = scheduler.call_later(20, lambda: calls.append(("x", scheduler())))
    skipped.cancel()
    assert scheduler.pending == 2

    scheduler.advance(25)
    assert calls == [("a", 1_010)]
    assert scheduler() == 1_025

    scheduler.advance(10)
    assert calls == [("a", 1_010), ("b", 1_030)]
    assert scheduler.pending == 0


def test_registry_changes_reach_storage_with_real_timers():
    storage = MemoryStorage()
    limits = REGISTRY_LIMITS.model_copy(update={"PERSIST_DEBOUNCE_MS": 20})
    registry = DraftRegistry(RegistryPersistence(storage, limits=limits, scheduler=ThreadingScheduler()))
    registry.load()
    draft_id = registry.create_draft({"title": "Draft A"})
    registry.update_draft(draft_id, {"excerpt": "hello"})

    deadline = time.monotonic() + 2
    stored = None
    while time.monotonic() < deadline:
        raw = storage.get_item(REGISTRY_STORAGE_KEY)
        stored = json.loads(raw) if raw else None
        if stored and stored["drafts"].get(draft_id, {}).get("excerpt") == "hello":
            break
        time.sleep(0.01)

    assert stored is not None
    assert stored["drafts"][draft_id]["title"] == "Draft A"
    assert stored["drafts"][draft_id]["isDirty"] is True
    assert registry.persistence.has_pending_save is False
