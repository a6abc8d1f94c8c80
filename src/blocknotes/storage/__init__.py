"""Storage layer for BlockNotes."""

from blocknotes.storage.connectivity import ConnectivityMonitor
from blocknotes.storage.label_repository import LabelRepository
from blocknotes.storage.note_repository import NoteRepository
from blocknotes.storage.settings_repository import SettingsRepository
from blocknotes.storage.sql_store import SqlKeyValueStore
from blocknotes.storage.sync_queue import SyncQueue

__all__ = [
    "ConnectivityMonitor",
    "LabelRepository",
    "NoteRepository",
    "SettingsRepository",
    "SqlKeyValueStore",
    "SyncQueue",
]
