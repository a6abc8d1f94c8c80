"""Custom exceptions for BlockNotes.

Provides a structured exception hierarchy with error codes and
machine-readable error information. ``NotFoundError`` and
``ValidationError`` are expected conditions meant for user-facing
messages; ``StorageError`` means a persistence write or read failed and
the change it belonged to was not saved.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    NOTE_TOO_MANY_BLOCKS = 1003
    NOTE_TITLE_TOO_LONG = 1004
    COLLABORATOR_NOT_FOUND = 1005

    # Label errors (2xxx)
    LABEL_NOT_FOUND = 2001
    LABEL_NAME_DUPLICATE = 2002
    LABEL_NAME_INVALID = 2003

    # Block errors (3xxx)
    BLOCK_NOT_FOUND = 3001
    BLOCK_CONTENT_TOO_LONG = 3002
    BLOCK_ANCHOR_NOT_FOUND = 3003
    BLOCK_INVALID_PARENT = 3004
    BLOCK_CHILDREN_WOULD_BE_LOST = 3005
    BLOCK_DUPLICATE_ID = 3006

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_CONNECTION_FAILED = 4004
    STORAGE_CORRUPTED = 4005

    # Bulk operation errors (45xx)
    BULK_OPERATION_FAILED = 4501
    BULK_OPERATION_PARTIAL = 4502

    # Sync queue errors (46xx)
    SYNC_ITEM_NOT_FOUND = 4601

    # Search errors (5xxx)
    SEARCH_FAILED = 5001

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_BLOCK_TYPE = 7002
    INVALID_COLOR = 7003
    INVALID_FIELD = 7004


class BlockNotesError(Exception):
    """Base exception for all BlockNotes errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NotFoundError(BlockNotesError):
    """Raised when an operation references an entity that does not exist."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOTE_NOT_FOUND,
    ):
        super().__init__(
            message or f"{entity_type.capitalize()} with ID '{entity_id}' not found",
            code=code,
            details={f"{entity_type}_id": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class NoteNotFoundError(NotFoundError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__("note", note_id, message, code=ErrorCode.NOTE_NOT_FOUND)
        self.note_id = note_id


class LabelNotFoundError(NotFoundError):
    """Raised when a label cannot be found."""

    def __init__(self, label_id: str, message: Optional[str] = None):
        super().__init__("label", label_id, message, code=ErrorCode.LABEL_NOT_FOUND)
        self.label_id = label_id


class BlockNotFoundError(NotFoundError):
    """Raised when a block cannot be found in a note's block tree."""

    def __init__(self, block_id: str, message: Optional[str] = None):
        super().__init__("block", block_id, message, code=ErrorCode.BLOCK_NOT_FOUND)
        self.block_id = block_id


class SyncItemNotFoundError(NotFoundError):
    """Raised when a sync queue entry cannot be found."""

    def __init__(self, item_id: str, message: Optional[str] = None):
        super().__init__(
            "sync_item", item_id, message, code=ErrorCode.SYNC_ITEM_NOT_FOUND
        )
        self.item_id = item_id


class ValidationError(BlockNotesError):
    """Raised when content exceeds a limit or violates a uniqueness rule."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class AnchorNotFoundError(BlockNotesError):
    """Raised when an ordering operation references an absent sibling."""

    def __init__(self, anchor_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Anchor '{anchor_id}' is not in the sibling list",
            code=ErrorCode.BLOCK_ANCHOR_NOT_FOUND,
            details={"anchor_id": anchor_id},
        )
        self.anchor_id = anchor_id


class StorageError(BlockNotesError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if key:
            details["key"] = key
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.key = key
        self.original_error = original_error


class ConfigurationError(BlockNotesError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class BulkOperationError(BlockNotesError):
    """Raised when a caller asks a bulk result to fail on any failed item.

    Attributes:
        operation: Name of the bulk operation (e.g., "bulk_archive")
        total_count: Total number of items attempted
        success_count: Number of items that succeeded
        failed_ids: List of IDs that failed (full list, not truncated)

    Note:
        The `details` dict contains `failed_ids` truncated to 10 items for
        safe serialization. Access `self.failed_ids` for the complete list.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        total_count: int = 0,
        success_count: int = 0,
        failed_ids: Optional[List[str]] = None,
        code: ErrorCode = ErrorCode.BULK_OPERATION_FAILED,
    ):
        if total_count < 0:
            raise ValueError("total_count must be non-negative")
        if success_count < 0:
            raise ValueError("success_count must be non-negative")
        if success_count > total_count:
            raise ValueError("success_count cannot exceed total_count")

        details = {
            "operation": operation,
            "total_count": total_count,
            "success_count": success_count,
            "failed_count": total_count - success_count,
        }
        if failed_ids:
            details["failed_ids"] = failed_ids[:10]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.total_count = total_count
        self.success_count = success_count
        self.failed_ids: List[str] = list(failed_ids) if failed_ids else []

    @property
    def failed_count(self) -> int:
        """Number of items that failed (computed from total - success)."""
        return self.total_count - self.success_count
