"""Shared data models for the entry draft registry."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DraftSource(str, Enum):
    """How a draft came into the registry. Informational only."""

    NEW = "new"
    EDIT = "edit"
    IMPORT = "import"
    DUPLICATE = "duplicate"


class EntryStatus(str, Enum):
    """Publication status carried by an entry."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"
    PRIVATE = "private"
    SYSTEM = "system"


class _CamelModel(BaseModel):
    """Base for models persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DraftContent(_CamelModel):
    """Rich-text body in its structured and rendered forms. Opaque to the registry."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    structured_document: Any = None
    rendered_html: str = ""


class FieldError(_CamelModel):
    """A single validation failure."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    field: str
    message: str
    code: str


class DraftEntryFields(_CamelModel):
    """User-editable content of one draft."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    title: str = ""
    excerpt: str = ""
    cover_image_url: str = ""
    cover_image_alt: str = ""
    content: Optional[DraftContent] = None
    status: EntryStatus = EntryStatus.DRAFT
    selected_journals: List[str] = Field(default_factory=list)
    selected_collections: List[str] = Field(default_factory=list)


class DraftFieldsUpdate(_CamelModel):
    """
    Partial update of :class:`DraftEntryFields`.

    Only fields that were explicitly supplied are applied; unknown keys are rejected so a
    misspelt field name fails loudly instead of being merged into the draft.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    title: Optional[str] = None
    excerpt: Optional[str] = None
    cover_image_url: Optional[str] = None
    cover_image_alt: Optional[str] = None
    content: Optional[DraftContent] = None
    status: Optional[EntryStatus] = None
    selected_journals: Optional[List[str]] = None
    selected_collections: Optional[List[str]] = None

    @classmethod
    def coerce(cls, value: "DraftFieldsUpdate | DraftEntryFields | Dict[str, Any] | None") -> "DraftFieldsUpdate":
        """Accept an update, a full field set, or a plain mapping."""

        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, DraftEntryFields):
            return cls.model_validate(value.model_dump(include=set(DraftEntryFields.model_fields)))
        return cls.model_validate(value)

    def changes(self) -> Dict[str, Any]:
        """
        Return the supplied fields, keyed by attribute name.

        ``None`` leaves a field untouched, except for ``content`` where it clears the body.
        """

        changes: Dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None and name != "content":
                continue
            changes[name] = list(value) if isinstance(value, list) else value
        return changes


class RegistryDraftState(DraftEntryFields):
    """A draft record: editable fields plus registry bookkeeping."""

    draft_id: str
    post_id: Optional[str] = None
    created_at: int
    updated_at: int
    is_dirty: bool = False
    source: DraftSource = DraftSource.NEW
    validation_errors: Optional[List[FieldError]] = None

    def entry_fields(self) -> DraftEntryFields:
        """Return only the user-editable portion of the record."""

        return DraftEntryFields.model_validate(self.model_dump(include=set(DraftEntryFields.model_fields)))


class ValidationResult(BaseModel):
    """Outcome of validating a draft."""

    is_valid: bool
    errors: List[FieldError] = Field(default_factory=list)


class CapacityCheck(BaseModel):
    """Whether another draft may be added, with a human-readable reason when not."""

    allowed: bool
    reason: Optional[str] = None


class TTLStatus(BaseModel):
    """Remaining lifetime of a draft relative to the registry TTL."""

    is_expired: bool
    is_warning: bool
    remaining_ms: int


class PersistedRegistry(_CamelModel):
    """Envelope written to storage."""

    version: int = 1
    drafts: Dict[str, RegistryDraftState] = Field(default_factory=dict)
    active_draft_id: Optional[str] = None
    persisted_at: int


__all__ = [
    "CapacityCheck",
    "DraftContent",
    "DraftEntryFields",
    "DraftFieldsUpdate",
    "DraftSource",
    "EntryStatus",
    "FieldError",
    "PersistedRegistry",
    "RegistryDraftState",
    "TTLStatus",
    "ValidationResult",
]
