"""
Scoped access to a shared draft registry.

``DraftRegistryProvider`` loads a registry, makes it current for the enclosed block,
and flushes it on exit and at interpreter shutdown::

    with DraftRegistryProvider(build_registry(settings)):
        registry = use_draft_registry()
        draft_id = registry.create_draft({"title": "New Entry"}, "new")
"""

from __future__ import annotations

import atexit
import logging
from contextvars import ContextVar, Token
from typing import Optional

from .registry import DraftRegistry


LOGGER = logging.getLogger("entry_drafts.context")

_current_registry: ContextVar[Optional[DraftRegistry]] = ContextVar("entry_drafts_registry", default=None)


class DraftRegistryProvider:
    """Context manager binding *registry* as the current one."""

    def __init__(self, registry: DraftRegistry, flush_on_exit: bool = True) -> None:
        self.registry = registry
        self.flush_on_exit = flush_on_exit
        self._token: Optional[Token[Optional[DraftRegistry]]] = None

    def __enter__(self) -> DraftRegistry:
        if not self.registry.is_loaded:
            self.registry.load()
        self._token = _current_registry.set(self.registry)
        if self.flush_on_exit:
            atexit.register(self._flush_at_exit)
        return self.registry

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._token is not None:
            _current_registry.reset(self._token)
            self._token = None
        if self.flush_on_exit:
            atexit.unregister(self._flush_at_exit)
            self.registry.flush()

    def _flush_at_exit(self) -> None:
        if not self.registry.flush():
            LOGGER.debug("Exit flush did not persist the registry")


def use_draft_registry() -> DraftRegistry:
    """
    Return the registry bound by the innermost active provider.

    Raises:
        RuntimeError: if called outside a ``DraftRegistryProvider`` block.
    """
    registry = _current_registry.get()
    if registry is None:
        raise RuntimeError("use_draft_registry must be used within a DraftRegistryProvider")
    return registry


def use_draft_registry_safe() -> Optional[DraftRegistry]:
    """Like :func:`use_draft_registry` but returns ``None`` outside a provider."""
    return _current_registry.get()


__all__ = ["DraftRegistryProvider", "use_draft_registry", "use_draft_registry_safe"]
