"""
Entry Drafts - multi-draft registry for the entry editor.

This package exposes the draft registry, its TTL-bounded persistence layer,
field validation, and the operator CLI.
"""

from importlib.metadata import PackageNotFoundError, version

from .config import REGISTRY_LIMITS, RegistryLimits, Settings
from .context import DraftRegistryProvider, use_draft_registry, use_draft_registry_safe
from .registry import DraftRegistry
from .schemas import (
    DraftContent,
    DraftEntryFields,
    DraftFieldsUpdate,
    DraftSource,
    EntryStatus,
    FieldError,
    RegistryDraftState,
    ValidationResult,
)
from .validation import validate_draft_fields

try:
    __version__ = version("entry-drafts")
except PackageNotFoundError:  # pragma: no cover - fallback for editable installs
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "REGISTRY_LIMITS",
    "DraftContent",
    "DraftEntryFields",
    "DraftFieldsUpdate",
    "DraftRegistry",
    "DraftRegistryProvider",
    "DraftSource",
    "EntryStatus",
    "FieldError",
    "RegistryDraftState",
    "RegistryLimits",
    "Settings",
    "ValidationResult",
    "use_draft_registry",
    "use_draft_registry_safe",
    "validate_draft_fields",
]
