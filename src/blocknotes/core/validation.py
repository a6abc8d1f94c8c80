"""Content limit checks applied at the note and label boundaries."""
import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from blocknotes.config import BlockNotesConfig, config as default_config
from blocknotes.exceptions import ErrorCode, ValidationError
from blocknotes.models.schema import ChecklistBlock, ContentBlock, Note, iter_blocks

logger = logging.getLogger(__name__)


def from_pydantic(error: PydanticValidationError) -> ValidationError:
    """Translate a pydantic validation failure into the domain error."""
    first = error.errors()[0] if error.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    error_type = first.get("type", "")
    if error_type == "extra_forbidden":
        code = ErrorCode.INVALID_FIELD
    elif field == "color":
        code = ErrorCode.INVALID_COLOR
    elif error_type == "union_tag_invalid":
        code = ErrorCode.INVALID_BLOCK_TYPE
    else:
        code = ErrorCode.VALIDATION_FAILED
    message = first.get("msg", str(error))
    return ValidationError(
        f"Invalid {field}: {message}" if field else message,
        field=field,
        value=first.get("input"),
        code=code,
    )


def validate_block(block: ContentBlock, cfg: Optional[BlockNotesConfig] = None) -> None:
    """Check a single block's content length for its type."""
    cfg = cfg or default_config
    if isinstance(block, ChecklistBlock):
        limit = cfg.checklist_item_max_length
        kind = "Checklist item"
    else:
        limit = cfg.text_block_max_length
        kind = "Text block" if block.type == "text" else "Toggle heading"
    if len(block.content) > limit:
        raise ValidationError(
            f"{kind} exceeds {limit} characters ({len(block.content)})",
            field="content",
            value=block.id,
            code=ErrorCode.BLOCK_CONTENT_TOO_LONG,
        )


def validate_note(note: Note, cfg: Optional[BlockNotesConfig] = None) -> None:
    """Validate title length, top-level block count and every block's content.

    Raises:
        ValidationError: On the first limit that is exceeded
    """
    cfg = cfg or default_config
    if len(note.title) > cfg.title_max_length:
        raise ValidationError(
            f"Title exceeds {cfg.title_max_length} characters",
            field="title",
            value=note.title,
            code=ErrorCode.NOTE_TITLE_TOO_LONG,
        )
    if len(note.blocks) > cfg.max_blocks_per_note:
        raise ValidationError(
            f"A note can hold at most {cfg.max_blocks_per_note} blocks "
            f"(got {len(note.blocks)})",
            field="blocks",
            value=len(note.blocks),
            code=ErrorCode.NOTE_TOO_MANY_BLOCKS,
        )
    for block in iter_blocks(note.blocks):
        validate_block(block, cfg)


def validate_label_name(name: str, cfg: Optional[BlockNotesConfig] = None) -> str:
    """Return the stripped label name or raise ValidationError."""
    cfg = cfg or default_config
    stripped = (name or "").strip()
    if not stripped:
        raise ValidationError(
            "Label name cannot be empty",
            field="name",
            value=name,
            code=ErrorCode.LABEL_NAME_INVALID,
        )
    if len(stripped) > cfg.label_name_max_length:
        raise ValidationError(
            f"Label name exceeds {cfg.label_name_max_length} characters",
            field="name",
            value=name,
            code=ErrorCode.LABEL_NAME_INVALID,
        )
    return stripped
