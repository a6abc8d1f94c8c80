"""Tests for content limits and error translation."""
import pytest
from pydantic import ValidationError as PydanticValidationError

from blocknotes.core.validation import (
    from_pydantic,
    validate_block,
    validate_label_name,
    validate_note,
)
from blocknotes.exceptions import ErrorCode, ValidationError
from blocknotes.models.schema import (
    ChecklistBlock,
    Note,
    TextBlock,
    ToggleBlock,
)


class TestBlockLimits:
    """Per-type content length limits."""

    def test_checklist_limit(self, test_config):
        validate_block(ChecklistBlock(content="x" * 500), test_config)
        with pytest.raises(ValidationError) as exc_info:
            validate_block(ChecklistBlock(content="x" * 501), test_config)
        assert exc_info.value.code == ErrorCode.BLOCK_CONTENT_TOO_LONG

    def test_text_and_toggle_limit(self, test_config):
        validate_block(TextBlock(content="x" * 10000), test_config)
        for block in (TextBlock(content="x" * 10001), ToggleBlock(content="x" * 10001)):
            with pytest.raises(ValidationError) as exc_info:
                validate_block(block, test_config)
            assert exc_info.value.code == ErrorCode.BLOCK_CONTENT_TOO_LONG


class TestNoteLimits:
    """Whole-note validation."""

    def test_nested_block_checked(self, test_config):
        note = Note(
            blocks=[ToggleBlock(children=[ChecklistBlock(content="x" * 501)])]
        )
        with pytest.raises(ValidationError) as exc_info:
            validate_note(note, test_config)
        assert exc_info.value.code == ErrorCode.BLOCK_CONTENT_TOO_LONG

    def test_title_limit(self, test_config):
        validate_note(Note(title="x" * 200), test_config)
        with pytest.raises(ValidationError) as exc_info:
            validate_note(Note(title="x" * 201), test_config)
        assert exc_info.value.code == ErrorCode.NOTE_TITLE_TOO_LONG

    def test_top_level_block_limit(self, test_config):
        validate_note(Note(blocks=[TextBlock(order=i) for i in range(25)]), test_config)
        with pytest.raises(ValidationError) as exc_info:
            validate_note(Note(blocks=[TextBlock(order=i) for i in range(26)]), test_config)
        assert exc_info.value.code == ErrorCode.NOTE_TOO_MANY_BLOCKS


class TestLabelNames:
    """Label name normalisation."""

    def test_strips(self, test_config):
        assert validate_label_name("  Work ", test_config) == "Work"

    def test_rejects_empty_and_long(self, test_config):
        for bad in ("", "  ", None, "x" * 31):
            with pytest.raises(ValidationError) as exc_info:
                validate_label_name(bad, test_config)
            assert exc_info.value.code == ErrorCode.LABEL_NAME_INVALID


class TestFromPydantic:
    """Translation of pydantic errors into domain errors."""

    def _error(self, **fields):
        with pytest.raises(PydanticValidationError) as exc_info:
            Note.model_validate(fields)
        return from_pydantic(exc_info.value)

    def test_extra_field(self):
        error = self._error(bogus=1)
        assert error.code == ErrorCode.INVALID_FIELD
        assert error.field == "bogus"

    def test_color(self):
        assert self._error(color="ultraviolet").code == ErrorCode.INVALID_COLOR

    def test_block_type(self):
        error = self._error(blocks=[{"type": "heading"}])
        assert error.code == ErrorCode.INVALID_BLOCK_TYPE

    def test_other(self):
        assert self._error(is_pinned="maybe").code == ErrorCode.VALIDATION_FAILED
