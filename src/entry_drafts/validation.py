"""Field validation for draft entries."""
from __future__ import annotations

from typing import List

from .schemas import DraftEntryFields, FieldError

REQUIRED = "REQUIRED"
NOT_FOUND = "NOT_FOUND"


def validate_draft_fields(draft: DraftEntryFields) -> List[FieldError]:
    """
    Check a draft's fields and return the failures in rule order.

    The title is always required; alt text is required only when a cover image is set.
    Error fields carry the camelCase key the draft is persisted under. An empty list
    means the draft is valid.
    """
    errors: List[FieldError] = []

    if not (draft.title or "").strip():
        errors.append(FieldError(field="title", message="Title is required", code=REQUIRED))

    if (draft.cover_image_url or "").strip() and not (draft.cover_image_alt or "").strip():
        errors.append(
            FieldError(
                field="coverImageAlt",
                message="Alt text is required when cover image is provided",
                code=REQUIRED,
            )
        )

    return errors


def draft_not_found() -> FieldError:
    return FieldError(field="general", message="Draft not found", code=NOT_FOUND)
