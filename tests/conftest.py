"""Common test fixtures for BlockNotes."""

import pytest

from blocknotes.config import config
from blocknotes.models.db_models import get_session_factory, init_db
from blocknotes.observability import metrics
from blocknotes.services.notes_service import NotesService
from blocknotes.storage.label_repository import LabelRepository
from blocknotes.storage.note_repository import NoteRepository
from blocknotes.storage.settings_repository import SettingsRepository
from blocknotes.storage.sql_store import SqlKeyValueStore
from blocknotes.storage.sync_queue import SyncQueue
from tests.fakes import FakeConnectivity, InMemoryStore


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Configure with test paths and deterministic settings (auto-restored)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "database_path", tmp_path / "db" / "test_blocknotes.db")
    monkeypatch.setattr(config, "in_memory_db", False)
    monkeypatch.setattr(config, "start_online", True)
    monkeypatch.setattr(config, "trash_retention_days", 7)
    monkeypatch.setattr(config, "max_blocks_per_note", 25)
    monkeypatch.setattr(config, "text_block_max_length", 10000)
    monkeypatch.setattr(config, "checklist_item_max_length", 500)
    monkeypatch.setattr(config, "title_max_length", 200)
    monkeypatch.setattr(config, "label_name_max_length", 30)
    # Rebuild synchronously so search assertions need no waiting
    monkeypatch.setattr(config, "search_debounce_seconds", 0)
    yield config


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def engine(test_config):
    """SQLite engine on a temporary file database."""
    engine = init_db(test_config)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(engine):
    return SqlKeyValueStore(get_session_factory(engine))


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def connectivity():
    return FakeConnectivity(online=True)


@pytest.fixture
def sync_queue(sql_store, connectivity):
    return SyncQueue(sql_store, connectivity)


@pytest.fixture
def note_repository(sql_store, sync_queue, test_config):
    """Create a test note repository on the temporary database."""
    return NoteRepository(sql_store, sync_queue, test_config)


@pytest.fixture
def label_repository(sql_store, note_repository, sync_queue, test_config):
    return LabelRepository(sql_store, note_repository, sync_queue, test_config)


@pytest.fixture
def settings_repository(sql_store):
    return SettingsRepository(sql_store)


@pytest.fixture
def notes_service(sql_store, connectivity, test_config):
    """Initialized NotesService over the temporary database."""
    service = NotesService(store=sql_store, connectivity=connectivity, cfg=test_config)
    service.initialize()
    yield service
    service.close()
