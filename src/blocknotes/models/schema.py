"""Data models for BlockNotes."""

import datetime
import uuid
from dataclasses import dataclass, field
from datetime import timezone
from enum import Enum
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from blocknotes.exceptions import BlockNotesError, BulkOperationError, ErrorCode


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC."""
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def generate_id() -> str:
    """Generate a random UUID4 string for notes, labels, blocks and queue items."""
    return str(uuid.uuid4())


class NoteColor(str, Enum):
    """Card colours available for notes."""

    DEFAULT = "default"
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    TEAL = "teal"
    BLUE = "blue"
    DARKBLUE = "darkblue"
    PURPLE = "purple"
    PINK = "pink"
    BROWN = "brown"
    GRAY = "gray"


class BlockType(str, Enum):
    """Kinds of content block."""

    TEXT = "text"
    CHECKLIST = "checklist"
    TOGGLE = "toggle"


class SyncStatus(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"
    CONFLICT = "conflict"


class EntityType(str, Enum):
    NOTE = "note"
    LABEL = "label"


class SyncOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class RecurringPattern(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class CollaboratorRole(str, Enum):
    EDITOR = "editor"
    VIEWER = "viewer"


class ViewMode(str, Enum):
    GRID = "grid"
    LIST = "list"


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


class _BlockBase(BaseModel):
    """Fields shared by every block variant."""

    id: str = Field(default_factory=generate_id, description="Block ID")
    order: float = Field(default=0, description="Position among siblings")
    content: str = Field(default="", description="Text of the block")

    model_config = {"validate_assignment": True, "extra": "forbid"}


class TextBlock(_BlockBase):
    """A paragraph of free text."""

    type: Literal["text"] = "text"


class ChecklistBlock(_BlockBase):
    """A single checklist item."""

    type: Literal["checklist"] = "checklist"
    checked: bool = Field(default=False, description="Whether the item is ticked")


class ToggleBlock(_BlockBase):
    """A collapsible heading owning an ordered list of child blocks."""

    type: Literal["toggle"] = "toggle"
    is_expanded: bool = Field(default=True, description="Whether children are shown")
    children: List["ContentBlock"] = Field(
        default_factory=list, description="Child blocks, ordered by `order`"
    )


ContentBlock = Annotated[
    Union[TextBlock, ChecklistBlock, ToggleBlock], Field(discriminator="type")
]

ToggleBlock.model_rebuild()

BLOCK_CLASSES = {
    BlockType.TEXT: TextBlock,
    BlockType.CHECKLIST: ChecklistBlock,
    BlockType.TOGGLE: ToggleBlock,
}


def iter_blocks(blocks: List[ContentBlock]) -> Iterator[ContentBlock]:
    """Depth-first iteration over a block list and all toggle descendants."""
    for block in sorted(blocks, key=lambda b: b.order):
        yield block
        if isinstance(block, ToggleBlock):
            yield from iter_blocks(block.children)


# ---------------------------------------------------------------------------
# Note and its satellites
# ---------------------------------------------------------------------------


class Reminder(BaseModel):
    """A reminder attached to a note."""

    id: str = Field(default_factory=generate_id)
    date_time: datetime.datetime = Field(..., description="When the reminder fires")
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None
    notified: bool = False

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("date_time")
    @classmethod
    def _aware(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)


class Collaborator(BaseModel):
    """A person a note is shared with. Stored data only, nothing enforces it."""

    id: str = Field(default_factory=generate_id)
    email: str = Field(..., description="Collaborator e-mail address")
    name: Optional[str] = None
    role: CollaboratorRole = CollaboratorRole.EDITOR
    added_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Collaborator email must look like user@host")
        return v


class Note(BaseModel):
    """A note card holding a tree of content blocks."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    title: str = Field(default="", description="Title of the note")
    color: NoteColor = Field(default=NoteColor.DEFAULT, description="Card colour")
    blocks: List[ContentBlock] = Field(
        default_factory=list,
        validate_default=True,
        description="Top-level content blocks",
    )
    labels: List[str] = Field(default_factory=list, description="Referenced label IDs")
    is_pinned: bool = False
    is_archived: bool = False
    is_trashed: bool = False
    trashed_at: Optional[datetime.datetime] = None
    reminder: Optional[Reminder] = None
    collaborators: List[Collaborator] = Field(default_factory=list)
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )
    order: float = Field(default=0, description="Position in the notes grid")
    sync_status: SyncStatus = Field(default=SyncStatus.SYNCED)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("blocks")
    @classmethod
    def seed_empty_blocks(cls, v: List[ContentBlock]) -> List[ContentBlock]:
        """A note always presents at least one (empty) text block."""
        if not v:
            return [TextBlock(order=0)]
        return v

    @field_validator("labels")
    @classmethod
    def dedupe_labels(cls, v: List[str]) -> List[str]:
        """Keep label references unique, preserving first-seen order."""
        return list(dict.fromkeys(v))

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @field_validator("trashed_at")
    @classmethod
    def validate_trashed_at(
        cls, v: Optional[datetime.datetime]
    ) -> Optional[datetime.datetime]:
        return ensure_timezone_aware(v) if v is not None else None

    def has_label(self, label_id: str) -> bool:
        return label_id in self.labels

    def add_label(self, label_id: str) -> None:
        """Add a label reference to the note."""
        if label_id not in self.labels:
            self.labels = [*self.labels, label_id]

    def remove_label(self, label_id: str) -> None:
        """Remove a label reference from the note."""
        self.labels = [lid for lid in self.labels if lid != label_id]

    @property
    def plain_text(self) -> str:
        """Text and checklist contents, depth-first, joined by newlines."""
        return "\n".join(
            block.content
            for block in iter_blocks(self.blocks)
            if not isinstance(block, ToggleBlock)
        )

    @property
    def is_empty(self) -> bool:
        return not self.title.strip() and not self.plain_text.strip()


class Label(BaseModel):
    """A label for organising notes. Names are unique case-insensitively."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the label")
    name: str = Field(..., description="Label name")
    order: float = Field(default=0)
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Strip surrounding whitespace and reject empty names."""
        v = v.strip()
        if not v:
            raise ValueError("Label name cannot be empty")
        return v

    def __str__(self) -> str:
        return self.name


class SyncQueueItem(BaseModel):
    """One mutation recorded while offline, waiting for an external sync consumer."""

    id: str = Field(default_factory=generate_id)
    entity_type: EntityType
    entity_id: str
    operation: SyncOperation
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime.datetime = Field(default_factory=utc_now)
    retry_count: int = Field(default=0, ge=0)

    model_config = {"validate_assignment": True, "extra": "forbid"}


class AppSettings(BaseModel):
    """Application settings stored under a single key."""

    view_mode: ViewMode = ViewMode.GRID
    dark_mode: bool = False
    notifications_enabled: bool = True
    sync_enabled: bool = True
    last_sync_timestamp: Optional[datetime.datetime] = None

    model_config = {"validate_assignment": True, "extra": "forbid"}


class NoteFilter(BaseModel):
    """Filter options for listing notes.

    Trashed and archived notes are excluded unless the filter asks for them.
    """

    label_id: Optional[str] = None
    is_pinned: Optional[bool] = None
    is_archived: Optional[bool] = None
    is_trashed: Optional[bool] = None
    color: Optional[NoteColor] = None
    has_reminder: Optional[bool] = None

    model_config = {"extra": "forbid"}

    def matches(self, note: Note) -> bool:
        if not self.is_trashed and note.is_trashed:
            return False
        if not self.is_archived and note.is_archived:
            return False
        if self.label_id and not note.has_label(self.label_id):
            return False
        if self.is_pinned is not None and note.is_pinned != self.is_pinned:
            return False
        if self.is_archived is not None and note.is_archived != self.is_archived:
            return False
        if self.is_trashed is not None and note.is_trashed != self.is_trashed:
            return False
        if self.color is not None and note.color != self.color:
            return False
        if self.has_reminder and note.reminder is None:
            return False
        return True


# ---------------------------------------------------------------------------
# Bulk results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BulkItemOutcome:
    """Outcome of a bulk operation for a single id."""

    id: str
    ok: bool
    error_code: Optional[str] = None
    message: Optional[str] = None


@dataclass
class BulkResult:
    """Per-id report of a best-effort bulk operation.

    Attributes:
        operation: Name of the bulk operation (e.g. "bulk_archive").
        outcomes: One entry per requested id, in request order.
    """

    operation: str
    outcomes: List[BulkItemOutcome] = field(default_factory=list)

    def record_success(self, item_id: str) -> None:
        self.outcomes.append(BulkItemOutcome(id=item_id, ok=True))

    def record_failure(self, item_id: str, error: BlockNotesError) -> None:
        self.outcomes.append(
            BulkItemOutcome(
                id=item_id, ok=False, error_code=error.code.name, message=error.message
            )
        )

    @property
    def succeeded_ids(self) -> List[str]:
        return [o.id for o in self.outcomes if o.ok]

    @property
    def failed_ids(self) -> List[str]:
        return [o.id for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    def outcome_for(self, item_id: str) -> Optional[BulkItemOutcome]:
        for outcome in self.outcomes:
            if outcome.id == item_id:
                return outcome
        return None

    def raise_for_failures(self) -> None:
        """Raise BulkOperationError if any id failed."""
        failed = self.failed_ids
        if not failed:
            return
        success_count = len(self.outcomes) - len(failed)
        code = (
            ErrorCode.BULK_OPERATION_FAILED
            if success_count == 0
            else ErrorCode.BULK_OPERATION_PARTIAL
        )
        raise BulkOperationError(
            f"{'Failed' if success_count == 0 else 'Partial success'}: "
            f"{success_count} of {len(self.outcomes)} items",
            operation=self.operation,
            total_count=len(self.outcomes),
            success_count=success_count,
            failed_ids=failed,
            code=code,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "succeeded": self.succeeded_ids,
            "failed": [
                {"id": o.id, "error_code": o.error_code, "message": o.message}
                for o in self.outcomes
                if not o.ok
            ],
        }
