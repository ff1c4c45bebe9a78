"""
Draft registry.

In-memory source of truth for every open entry draft plus the active-draft pointer.
Each mutation notifies subscribers and, once the initial load has completed,
schedules a debounced write through :class:`RegistryPersistence`.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .config import REGISTRY_LIMITS, RegistryLimits
from .persistence.registry_store import RegistryPersistence, can_add_draft, generate_draft_id, get_draft_ttl_status
from .schemas import (
    DraftEntryFields,
    DraftFieldsUpdate,
    DraftSource,
    RegistryDraftState,
    TTLStatus,
    ValidationResult,
)
from .timing import Clock, system_clock
from .validation import draft_not_found, validate_draft_fields


LOGGER = logging.getLogger("entry_drafts.registry")

Listener = Callable[["DraftRegistry"], None]
FieldsInput = Union[DraftFieldsUpdate, DraftEntryFields, Mapping[str, Any], None]


class DraftRegistry:
    """Holds open drafts keyed by draft id. All public operations are safe to call from any thread."""

    def __init__(
        self,
        persistence: Optional[RegistryPersistence] = None,
        limits: Optional[RegistryLimits] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._persistence = persistence
        if limits is None:
            limits = persistence.limits if persistence is not None else REGISTRY_LIMITS
        if clock is None:
            clock = persistence.clock if persistence is not None else system_clock
        self.limits = limits
        self._clock = clock
        self._drafts: Dict[str, RegistryDraftState] = {}
        self._active_draft_id: Optional[str] = None
        self._loaded = False
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    def load(self) -> None:
        """
        Populate the registry from persistence.

        Until this has run the in-memory state is not authoritative, so no automatic
        write happens; otherwise an empty registry could overwrite a stored one.
        """
        if self._persistence is not None:
            drafts, active_draft_id = self._persistence.load_registry()
        else:
            drafts, active_draft_id = {}, None
        with self._lock:
            self._drafts = dict(drafts)
            self._active_draft_id = active_draft_id
            self._loaded = True
        if drafts:
            LOGGER.info("Loaded %d draft(s) from storage", len(drafts))
        self._changed()

    def flush(self) -> bool:
        """Cancel any pending debounced write and persist the current state now."""
        if self._persistence is None:
            return False
        if not self._loaded:
            LOGGER.debug("Skipping flush; registry was never loaded")
            return False
        with self._lock:
            self._persistence.cancel_pending_save()
            return self._persistence.save_registry_immediate(dict(self._drafts), self._active_draft_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* after every state change. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # --------------------------------------------------------
    # Read
    # --------------------------------------------------------

    def get_draft(self, draft_id: str) -> Optional[RegistryDraftState]:
        with self._lock:
            return self._drafts.get(draft_id)

    @property
    def drafts(self) -> List[RegistryDraftState]:
        with self._lock:
            return list(self._drafts.values())

    @property
    def active_draft_id(self) -> Optional[str]:
        return self._active_draft_id

    @property
    def active_draft(self) -> Optional[RegistryDraftState]:
        with self._lock:
            if self._active_draft_id is None:
                return None
            return self._drafts.get(self._active_draft_id)

    @property
    def draft_count(self) -> int:
        with self._lock:
            return len(self._drafts)

    @property
    def can_create_draft(self) -> bool:
        return can_add_draft(self.draft_count, self.limits).allowed

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def persistence(self) -> Optional[RegistryPersistence]:
        return self._persistence

    def snapshot(self) -> Tuple[Dict[str, RegistryDraftState], Optional[str]]:
        """Consistent copy of the draft map and the active pointer."""
        with self._lock:
            return dict(self._drafts), self._active_draft_id

    def get_ttl_status(self, draft_id: str) -> Optional[TTLStatus]:
        draft = self.get_draft(draft_id)
        if draft is None:
            return None
        return get_draft_ttl_status(draft.updated_at, now=self._clock(), limits=self.limits)

    # --------------------------------------------------------
    # Write
    # --------------------------------------------------------

    def create_draft(self, initial: FieldsInput = None, source: Union[DraftSource, str] = DraftSource.NEW) -> Optional[str]:
        """
        Create a draft from the defaults overlaid with *initial*.

        Returns the new draft id, or ``None`` when the registry is full.
        """
        changes = DraftFieldsUpdate.coerce(initial).changes()
        source = DraftSource(source)
        with self._lock:
            check = can_add_draft(len(self._drafts), self.limits)
            if not check.allowed:
                LOGGER.warning("Cannot create draft: %s", check.reason)
                return None

            draft_id = generate_draft_id()
            while draft_id in self._drafts:
                draft_id = generate_draft_id()
            now = self._clock()
            self._drafts[draft_id] = RegistryDraftState(
                **changes,
                draft_id=draft_id,
                post_id=None,
                created_at=now,
                updated_at=now,
                is_dirty=False,
                source=source,
                validation_errors=None,
            )

        LOGGER.info("Created draft: %s (source: %s)", draft_id, source.value)
        self._changed()
        return draft_id

    def create_drafts(self, entries: Iterable[FieldsInput], source: Union[DraftSource, str] = DraftSource.IMPORT) -> List[str]:
        """Create one draft per entry, stopping at the first one refused for capacity."""
        created: List[str] = []
        for entry in entries:
            draft_id = self.create_draft(entry, source)
            if draft_id is None:
                break
            created.append(draft_id)
        return created

    def duplicate_draft(self, draft_id: str) -> Optional[str]:
        """Copy the fields of an existing draft into a new, unsaved draft."""
        existing = self.get_draft(draft_id)
        if existing is None:
            LOGGER.warning("Cannot duplicate non-existent draft: %s", draft_id)
            return None
        return self.create_draft(existing.entry_fields(), DraftSource.DUPLICATE)

    def update_draft(self, draft_id: str, partial: FieldsInput) -> None:
        """Merge *partial* into the draft, mark it dirty, and drop its stale validation result."""
        changes = DraftFieldsUpdate.coerce(partial).changes()
        with self._lock:
            existing = self._drafts.get(draft_id)
            if existing is None:
                LOGGER.warning("Cannot update non-existent draft: %s", draft_id)
                return
            self._drafts[draft_id] = existing.model_copy(
                update={
                    **changes,
                    "updated_at": self._clock(),
                    "is_dirty": True,
                    "validation_errors": None,
                }
            )
        self._changed()

    def remove_draft(self, draft_id: str) -> None:
        with self._lock:
            if draft_id not in self._drafts:
                return
            del self._drafts[draft_id]
            if self._active_draft_id == draft_id:
                self._active_draft_id = None
        LOGGER.info("Removed draft: %s", draft_id)
        self._changed()

    def discard_all_drafts(self) -> None:
        with self._lock:
            self._drafts = {}
            self._active_draft_id = None
        LOGGER.info("Discarded all drafts")
        self._changed()

    def prune_expired(self) -> List[str]:
        """Drop drafts whose age reached the TTL. Never runs on its own."""
        with self._lock:
            now = self._clock()
            expired = [
                draft_id
                for draft_id, draft in self._drafts.items()
                if now - draft.updated_at >= self.limits.TTL_MS
            ]
            for draft_id in expired:
                del self._drafts[draft_id]
            if self._active_draft_id in expired:
                self._active_draft_id = None
        if expired:
            LOGGER.info("Pruned %d expired draft(s)", len(expired))
            self._changed()
        return expired

    # --------------------------------------------------------
    # Focus
    # --------------------------------------------------------

    def select_draft(self, draft_id: Optional[str]) -> None:
        with self._lock:
            if draft_id is not None and draft_id not in self._drafts:
                LOGGER.warning("Cannot select non-existent draft: %s", draft_id)
                return
            if self._active_draft_id == draft_id:
                return
            self._active_draft_id = draft_id
        self._changed()

    # --------------------------------------------------------
    # Save state
    # --------------------------------------------------------

    def mark_saved(self, draft_id: str, post_id: str) -> None:
        """Record that the draft was persisted server-side as *post_id*."""
        with self._lock:
            existing = self._drafts.get(draft_id)
            if existing is None:
                LOGGER.warning("Cannot mark saved non-existent draft: %s", draft_id)
                return
            self._drafts[draft_id] = existing.model_copy(
                update={"post_id": post_id, "is_dirty": False, "updated_at": self._clock()}
            )
        LOGGER.info("Marked saved: %s -> postId: %s", draft_id, post_id)
        self._changed()

    def mark_dirty(self, draft_id: str) -> None:
        self._set_dirty(draft_id, True)

    def clear_dirty(self, draft_id: str) -> None:
        self._set_dirty(draft_id, False)

    def _set_dirty(self, draft_id: str, dirty: bool) -> None:
        with self._lock:
            existing = self._drafts.get(draft_id)
            if existing is None or existing.is_dirty == dirty:
                return
            self._drafts[draft_id] = existing.model_copy(update={"is_dirty": dirty, "updated_at": self._clock()})
        self._changed()

    # --------------------------------------------------------
    # Validation
    # --------------------------------------------------------

    def validate_draft(self, draft_id: str) -> ValidationResult:
        """Validate the draft and cache the errors on it (``None`` when valid)."""
        with self._lock:
            draft = self._drafts.get(draft_id)
            if draft is None:
                return ValidationResult(is_valid=False, errors=[draft_not_found()])
            errors = validate_draft_fields(draft)
            self._drafts[draft_id] = draft.model_copy(update={"validation_errors": errors or None})
        self._changed()
        return ValidationResult(is_valid=not errors, errors=errors)

    # --------------------------------------------------------
    # Notification
    # --------------------------------------------------------

    def _changed(self) -> None:
        with self._lock:
            if self._loaded and self._persistence is not None:
                self._persistence.save_registry(dict(self._drafts), self._active_draft_id)
            listeners = list(self._listeners)
        for listener in listeners:
            listener(self)


__all__ = ["DraftRegistry", "FieldsInput", "Listener"]
