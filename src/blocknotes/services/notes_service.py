"""Service layer wiring storage, connectivity, repositories and search."""

import datetime
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.engine import Engine

from blocknotes.config import BlockNotesConfig, config as default_config
from blocknotes.models.db_models import get_session_factory, init_db
from blocknotes.models.schema import BulkResult, Label, Note
from blocknotes.observability import timed_operation
from blocknotes.services.search_index import RebuildScheduler, SearchIndex, SearchResult
from blocknotes.storage.connectivity import ConnectivityMonitor
from blocknotes.storage.label_repository import LabelRepository
from blocknotes.storage.note_repository import NoteRepository
from blocknotes.storage.ports import ConnectivitySignal, KeyValueStore
from blocknotes.storage.settings_repository import SettingsRepository
from blocknotes.storage.sql_store import SqlKeyValueStore
from blocknotes.storage.sync_queue import SyncQueue

logger = logging.getLogger(__name__)


class NotesService:
    """The application core, constructed once at startup.

    Owns the persistence port, the connectivity signal, the repositories and
    the search index. Repositories are exposed as ``notes``, ``labels``,
    ``settings`` and ``sync_queue``; every write they make schedules a
    debounced search index rebuild.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        connectivity: Optional[ConnectivitySignal] = None,
        cfg: Optional[BlockNotesConfig] = None,
        engine: Optional[Engine] = None,
    ):
        """Initialize the service.

        Args:
            store: Persistence port. A SQLite store is created when None.
            connectivity: Online signal. A ConnectivityMonitor starting in
                ``config.start_online`` state is created when None.
            cfg: Configuration. Defaults to the global config.
            engine: Pre-configured SQLAlchemy engine, used only when
                ``store`` is None.
        """
        self.config = cfg or default_config
        if store is None:
            store = SqlKeyValueStore(
                get_session_factory(engine or init_db(self.config))
            )
        self.store = store
        self.connectivity = connectivity or ConnectivityMonitor(
            online=self.config.start_online
        )

        self.search_index = SearchIndex(self.config)
        self.scheduler = RebuildScheduler(
            self.rebuild_search_index, self.config.search_debounce_seconds
        )

        self.sync_queue = SyncQueue(self.store, self.connectivity)
        self.notes = NoteRepository(
            self.store, self.sync_queue, self.config, on_change=self.scheduler.request
        )
        self.labels = LabelRepository(
            self.store,
            self.notes,
            self.sync_queue,
            self.config,
            on_change=self.scheduler.request,
        )
        self.settings = SettingsRepository(self.store)

        self._unsubscribe = self.connectivity.subscribe(self._on_connectivity_change)
        self._initialized = False

    def _on_connectivity_change(self, online: bool) -> None:
        if online:
            logger.info(
                f"Back online; {self.sync_queue.pending_count()} mutations queued for sync"
            )
        else:
            logger.info("Offline; mutations will be queued for sync")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self, now: Optional[datetime.datetime] = None) -> List[str]:
        """Startup sequence: sweep expired trash, then build the search index.

        Returns:
            Ids of notes removed by the trash sweep.
        """
        with timed_operation("service.initialize") as op:
            expired = self.notes.sweep_expired_trash(now)
            self.scheduler.cancel()
            self.rebuild_search_index()
            op["expired_count"] = len(expired)
            op["indexed_count"] = len(self.search_index)
        self._initialized = True
        logger.info(
            f"BlockNotes initialized: {len(self.search_index)} notes indexed, "
            f"{len(expired)} expired from trash"
        )
        return expired

    def close(self) -> None:
        """Stop listening for connectivity changes and drop pending rebuilds."""
        self._unsubscribe()
        self.scheduler.cancel()

    # =========================================================================
    # Search
    # =========================================================================

    def rebuild_search_index(self) -> None:
        """Full rebuild from current repository state."""
        self.search_index.rebuild(self.notes.get_all(), self.labels.get_all())

    def search(self, query: str) -> List[SearchResult]:
        """Ranked search; applies any pending rebuild first."""
        with timed_operation("search", query=query) as op:
            self.scheduler.flush()
            results = self.search_index.query(query)
            op["result_count"] = len(results)
        return results

    # =========================================================================
    # Cross-repository operations
    # =========================================================================

    def create_note(self, label_names: Optional[Sequence[str]] = None, **fields: Any) -> Note:
        """Create a note, resolving label names (creating missing labels)."""
        label_ids = list(fields.pop("labels", []) or [])
        for label_id in label_ids:
            self.labels.require(label_id)
        for name in label_names or []:
            label = self.labels.get_by_name(name) or self.labels.create(name)
            label_ids.append(label.id)
        return self.notes.create(labels=label_ids, **fields)

    def add_label_to_note(self, note_id: str, label_id: str) -> Note:
        """Attach an existing label to a note.

        Raises:
            LabelNotFoundError: If the label does not exist
            NoteNotFoundError: If the note does not exist
        """
        self.labels.require(label_id)
        return self.notes.add_label(note_id, label_id)

    def bulk_add_label(self, note_ids: Sequence[str], label_id: str) -> BulkResult:
        self.labels.require(label_id)
        return self.notes.bulk_add_label(note_ids, label_id)

    def label_names_for(self, note: Note) -> List[str]:
        names = {label.id: label.name for label in self.labels.get_all()}
        return [names[lid] for lid in note.labels if lid in names]

    def labels_by_id(self) -> Dict[str, Label]:
        return {label.id: label for label in self.labels.get_all()}

    def get_stats(self) -> Dict[str, Any]:
        """Counts for a status overview."""
        notes = self.notes.get_all()
        return {
            "total_notes": len(notes),
            "pinned": sum(1 for n in notes if n.is_pinned and not n.is_trashed),
            "archived": sum(1 for n in notes if n.is_archived and not n.is_trashed),
            "trashed": sum(1 for n in notes if n.is_trashed),
            "labels": len(self.labels.get_all()),
            "pending_sync": self.sync_queue.pending_count(),
            "online": self.connectivity.is_online(),
            "indexed": len(self.search_index),
        }
