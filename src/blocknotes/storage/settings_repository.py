"""Repository for application settings."""
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from blocknotes.core.validation import from_pydantic
from blocknotes.models.schema import AppSettings
from blocknotes.storage.ports import SETTINGS, KeyValueStore
from blocknotes.storage.serialization import decode, encode

logger = logging.getLogger(__name__)

SETTINGS_KEY = "app"


class SettingsRepository:
    """Stores ``AppSettings`` under a single key."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get(self) -> AppSettings:
        """Stored settings, or defaults when nothing has been saved yet."""
        raw = self.store.get(SETTINGS, SETTINGS_KEY)
        if raw is None:
            return AppSettings()
        return decode(AppSettings, SETTINGS, SETTINGS_KEY, raw)

    def update(self, **changes: Any) -> AppSettings:
        try:
            settings = AppSettings.model_validate({**self.get().model_dump(), **changes})
        except PydanticValidationError as e:
            raise from_pydantic(e) from e
        self.store.set(SETTINGS, SETTINGS_KEY, encode(settings))
        logger.debug(f"Settings updated: {', '.join(sorted(changes))}")
        return settings
