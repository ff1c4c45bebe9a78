"""
Draft registry persistence.

The registry is stored as one JSON blob under a single key of a session-scoped
key-value store. Writes are debounced; an immediate path exists for shutdown.
The legacy single-draft key shares the same store and is never touched here.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from typing import Dict, Mapping, Optional, Tuple

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from ..config import LEGACY_STORAGE_KEY, REGISTRY_LIMITS, REGISTRY_STORAGE_KEY, RegistryLimits
from ..schemas import CapacityCheck, PersistedRegistry, RegistryDraftState, TTLStatus
from ..timing import Clock, Scheduler, ThreadingScheduler, TimerHandle, system_clock
from .storage import KeyValueStorage, StorageError


LOGGER = logging.getLogger("entry_drafts.persistence")

SCHEMA_VERSION = 1

Registry = Dict[str, RegistryDraftState]


class RegistryPersistence:
    """Reads and writes the draft registry, enforcing TTL on load and size limits on save."""

    def __init__(
        self,
        storage: KeyValueStorage,
        limits: RegistryLimits = REGISTRY_LIMITS,
        clock: Clock = system_clock,
        scheduler: Optional[Scheduler] = None,
        storage_key: str = REGISTRY_STORAGE_KEY,
    ) -> None:
        if storage_key == LEGACY_STORAGE_KEY:
            raise ValueError(f"{LEGACY_STORAGE_KEY!r} is reserved for the legacy single-draft editor")
        self.storage = storage
        self.limits = limits
        self.storage_key = storage_key
        self.clock = clock
        self._scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self._lock = threading.Lock()
        # Held across the stale-generation check and the storage write.
        self._write_lock = threading.RLock()
        self._pending: Optional[TimerHandle] = None
        self._generation = 0
        self._last_seen_persisted_at: Optional[int] = None

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load_registry(self) -> Tuple[Registry, Optional[str]]:
        """
        Load the registry, dropping drafts whose age reached the TTL.

        Returns an empty registry when nothing is stored, the store is unavailable, or the
        blob is unreadable or of an unknown version.
        """
        if not self.storage.is_available():
            LOGGER.warning("Storage not available, using in-memory registry only")
            return {}, None

        try:
            stored = self.storage.get_item(self.storage_key)
        except StorageError as exc:
            LOGGER.error("Failed to read registry: %s", exc)
            return {}, None
        if not stored:
            return {}, None

        try:
            parsed = json.loads(stored)
        except ValueError as exc:
            LOGGER.error("Failed to parse registry: %s", exc)
            return {}, None

        version = parsed.get("version") if isinstance(parsed, dict) else None
        if isinstance(version, bool) or not isinstance(version, int) or version != SCHEMA_VERSION:
            LOGGER.warning("Unknown registry version, starting fresh")
            return {}, None

        raw_drafts = parsed.get("drafts")
        if not isinstance(raw_drafts, dict):
            LOGGER.error("Registry blob has no drafts mapping, starting fresh")
            return {}, None

        now = self.clock()
        registry: Registry = {}
        for draft_id, raw in raw_drafts.items():
            try:
                draft = RegistryDraftState.model_validate(raw)
            except ValidationError as exc:
                LOGGER.warning("Dropping unreadable draft %s: %s", draft_id, exc.errors()[0]["msg"])
                continue
            if draft.draft_id != draft_id:
                LOGGER.warning("Dropping draft stored under mismatched key %s (draftId %s)", draft_id, draft.draft_id)
                continue
            if now - draft.updated_at < self.limits.TTL_MS:
                registry[draft_id] = draft
            else:
                LOGGER.info("Expired draft removed: %s", draft_id)

        active_draft_id = parsed.get("activeDraftId")
        if not isinstance(active_draft_id, str) or active_draft_id not in registry:
            active_draft_id = None

        persisted_at = parsed.get("persistedAt")
        if isinstance(persisted_at, int) and not isinstance(persisted_at, bool):
            self._last_seen_persisted_at = persisted_at

        return registry, active_draft_id

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save_registry(self, registry: Mapping[str, RegistryDraftState], active_draft_id: Optional[str]) -> None:
        """Schedule a write once no further save has been requested for the debounce interval."""
        snapshot = dict(registry)
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            self._generation += 1
            generation = self._generation
            self._pending = self._scheduler.call_later(
                self.limits.PERSIST_DEBOUNCE_MS,
                lambda: self._run_scheduled(generation, snapshot, active_draft_id),
            )

    def save_registry_immediate(
        self, registry: Mapping[str, RegistryDraftState], active_draft_id: Optional[str]
    ) -> bool:
        """
        Write now, bypassing the debounce. Returns ``False`` when nothing was written.

        Writes are serialised with scheduled ones, so a debounced write that was already
        running finishes before this one starts and cannot land on top of it.
        """
        with self._write_lock:
            return self._write(registry, active_draft_id)

    def _write(self, registry: Mapping[str, RegistryDraftState], active_draft_id: Optional[str]) -> bool:
        if not self.storage.is_available():
            LOGGER.warning("Storage not available, skipping save")
            return False

        persisted_at = self.clock()
        payload = PersistedRegistry(
            version=SCHEMA_VERSION,
            drafts=dict(registry),
            active_draft_id=active_draft_id,
            persisted_at=persisted_at,
        )
        try:
            serialized = payload.model_dump_json(by_alias=True)
        except PydanticSerializationError as exc:
            LOGGER.error("Failed to serialise registry: %s", exc)
            return False

        size_kb = len(serialized) / 1024
        if size_kb > self.limits.MAX_TOTAL_SIZE_KB:
            LOGGER.error("Registry too large (%.1fKB), not saving", size_kb)
            return False
        if size_kb > self.limits.WARN_TOTAL_SIZE_KB:
            LOGGER.warning("Registry size warning: %.1fKB", size_kb)
        for draft_id, draft in payload.drafts.items():
            draft_kb = estimate_draft_size(draft)
            if draft_kb > self.limits.MAX_SINGLE_DRAFT_KB:
                LOGGER.warning("Draft %s is oversized (%.1fKB)", draft_id, draft_kb)

        self._warn_on_foreign_write()
        try:
            self.storage.set_item(self.storage_key, serialized)
        except StorageError as exc:
            LOGGER.error("Failed to save registry: %s", exc)
            return False
        self._last_seen_persisted_at = persisted_at
        return True

    def cancel_pending_save(self) -> None:
        """Drop any scheduled write without flushing it."""
        with self._lock:
            self._generation += 1
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None

    @property
    def has_pending_save(self) -> bool:
        with self._lock:
            return self._pending is not None

    def clear_registry(self) -> None:
        """Cancel pending writes and remove the stored registry."""
        self.cancel_pending_save()
        with self._write_lock:
            if not self.storage.is_available():
                return
            try:
                self.storage.remove_item(self.storage_key)
            except StorageError as exc:
                LOGGER.error("Failed to clear registry: %s", exc)
                return
            self._last_seen_persisted_at = None

    def _run_scheduled(self, generation: int, registry: Registry, active_draft_id: Optional[str]) -> None:
        with self._write_lock:
            with self._lock:
                if generation != self._generation:
                    return
                self._pending = None
            self._write(registry, active_draft_id)

    def _warn_on_foreign_write(self) -> None:
        # Last writer wins; this only makes a concurrent writer visible in the logs.
        try:
            stored = self.storage.get_item(self.storage_key)
            other = json.loads(stored).get("persistedAt") if stored else None
        except (StorageError, ValueError, AttributeError):
            return
        if not isinstance(other, int):
            return
        if self._last_seen_persisted_at is None or other > self._last_seen_persisted_at:
            LOGGER.warning("Overwriting registry persisted by another session at %s", other)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def can_add_draft(current_count: int, limits: RegistryLimits = REGISTRY_LIMITS) -> CapacityCheck:
    """Check whether one more draft fits under ``MAX_DRAFTS``."""
    if current_count >= limits.MAX_DRAFTS:
        return CapacityCheck(
            allowed=False,
            reason=f"Maximum {limits.MAX_DRAFTS} drafts reached. Please save or discard existing drafts.",
        )
    return CapacityCheck(allowed=True)


def get_draft_ttl_status(
    updated_at: int, now: Optional[int] = None, limits: RegistryLimits = REGISTRY_LIMITS
) -> TTLStatus:
    """Report how much of the TTL remains; the warning window is the final ``TTL_MS - TTL_WARNING_MS``."""
    current = system_clock() if now is None else now
    remaining_ms = limits.TTL_MS - (current - updated_at)
    return TTLStatus(
        is_expired=remaining_ms <= 0,
        is_warning=0 < remaining_ms <= limits.TTL_MS - limits.TTL_WARNING_MS,
        remaining_ms=max(0, remaining_ms),
    )


def estimate_draft_size(draft: RegistryDraftState) -> float:
    """Serialised size of *draft* in KB, or 0 when it cannot be serialised."""
    try:
        return len(draft.model_dump_json(by_alias=True)) / 1024
    except PydanticSerializationError:
        return 0.0


def generate_draft_id() -> str:
    return f"draft-{uuid.uuid4()}"


__all__ = [
    "RegistryPersistence",
    "SCHEMA_VERSION",
    "can_add_draft",
    "estimate_draft_size",
    "generate_draft_id",
    "get_draft_ttl_status",
]
