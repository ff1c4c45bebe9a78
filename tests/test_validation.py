from entry_drafts.schemas import DraftEntryFields
from entry_drafts.validation import validate_draft_fields


def test_empty_title_is_required():
    errors = validate_draft_fields(DraftEntryFields(title=""))
    assert [(error.field, error.code) for error in errors] == [("title", "REQUIRED")]
    assert errors[0].message == "Title is required"


def test_whitespace_title_counts_as_empty():
    errors = validate_draft_fields(DraftEntryFields(title="   "))
    assert [(error.field, error.code) for error in errors] == [("title", "REQUIRED")]


def test_alt_text_not_required_without_cover_image():
    fields = DraftEntryFields(title="x", cover_image_url="", cover_image_alt="")
    assert validate_draft_fields(fields) == []


def test_alt_text_required_with_cover_image():
    fields = DraftEntryFields(title="x", cover_image_url="http://x/y.png", cover_image_alt="")
    errors = validate_draft_fields(fields)
    assert len(errors) == 1
    assert errors[0].field == "coverImageAlt"
    assert errors[0].code == "REQUIRED"


def test_whitespace_cover_url_does_not_require_alt_text():
    fields = DraftEntryFields(title="x", cover_image_url="  ", cover_image_alt="")
    assert validate_draft_fields(fields) == []


def test_errors_follow_rule_order():
    fields = DraftEntryFields(title="", cover_image_url="http://x/y.png", cover_image_alt=" ")
    assert [error.field for error in validate_draft_fields(fields)] == ["title", "coverImageAlt"]


def test_complete_draft_is_valid():
    fields = DraftEntryFields(title="Harbour at dusk", cover_image_url="http://x/y.png", cover_image_alt="Boats")
    assert validate_draft_fields(fields) == []
