"""Configuration module for BlockNotes."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from blocknotes import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the default data directory
_USER_ENV = Path.home() / ".blocknotes" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class BlockNotesConfig(BaseModel):
    """Configuration for BlockNotes."""

    # Base directory for the project
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("BLOCKNOTES_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("BLOCKNOTES_DATABASE_PATH", "data/db/blocknotes.db")
        )
    )
    # When True, the key-value store lives in an in-memory SQLite database
    # and nothing survives the process.
    in_memory_db: bool = Field(
        default_factory=lambda: _env_flag("BLOCKNOTES_IN_MEMORY_DB", "false")
    )
    # Initial state of the connectivity signal
    start_online: bool = Field(
        default_factory=lambda: _env_flag("BLOCKNOTES_START_ONLINE", "true")
    )
    # Trash
    trash_retention_days: int = Field(
        default_factory=lambda: int(
            os.getenv("BLOCKNOTES_TRASH_RETENTION_DAYS", "7")
        )
    )
    # Content limits
    max_blocks_per_note: int = Field(
        default_factory=lambda: int(os.getenv("BLOCKNOTES_MAX_BLOCKS", "25"))
    )
    text_block_max_length: int = Field(
        default_factory=lambda: int(
            os.getenv("BLOCKNOTES_TEXT_BLOCK_MAX_LENGTH", "10000")
        )
    )
    checklist_item_max_length: int = Field(
        default_factory=lambda: int(
            os.getenv("BLOCKNOTES_CHECKLIST_ITEM_MAX_LENGTH", "500")
        )
    )
    title_max_length: int = Field(
        default_factory=lambda: int(os.getenv("BLOCKNOTES_TITLE_MAX_LENGTH", "200"))
    )
    label_name_max_length: int = Field(
        default_factory=lambda: int(
            os.getenv("BLOCKNOTES_LABEL_NAME_MAX_LENGTH", "30")
        )
    )
    # Search
    search_debounce_seconds: float = Field(
        default_factory=lambda: float(os.getenv("BLOCKNOTES_SEARCH_DEBOUNCE", "0.3"))
    )
    highlight_open: str = Field(default="<mark>")
    highlight_close: str = Field(default="</mark>")
    # Server configuration
    server_name: str = Field(default=os.getenv("BLOCKNOTES_SERVER_NAME", "blocknotes"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_limits(self) -> "BlockNotesConfig":
        """Reject limits that would make every note invalid."""
        for name in (
            "max_blocks_per_note",
            "text_block_max_length",
            "checklist_item_max_length",
            "title_max_length",
            "label_name_max_length",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.trash_retention_days < 0:
            raise ValueError("trash_retention_days must be >= 0")
        if self.search_debounce_seconds < 0:
            raise ValueError("search_debounce_seconds must be >= 0")
        if self.trash_retention_days == 0:
            logger.warning(
                "trash_retention_days=0: trashed notes are purged at the next startup"
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_db:
            return "sqlite://"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_log_dir(self) -> Optional[Path]:
        """Directory for rotating log files, or None to use the default."""
        log_dir = os.getenv("BLOCKNOTES_LOG_DIR")
        return Path(log_dir) if log_dir else None


# Create a global config instance
config = BlockNotesConfig()
