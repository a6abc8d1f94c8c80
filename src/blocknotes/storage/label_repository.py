"""Repository for label storage and retrieval."""
import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from blocknotes.config import BlockNotesConfig, config as default_config
from blocknotes.core import ordering
from blocknotes.core.validation import validate_label_name
from blocknotes.exceptions import ErrorCode, LabelNotFoundError, ValidationError
from blocknotes.models.schema import EntityType, Label, SyncOperation, utc_now
from blocknotes.observability import traced
from blocknotes.storage.note_repository import NoteRepository
from blocknotes.storage.ports import LABELS, KeyValueStore
from blocknotes.storage.serialization import decode, encode
from blocknotes.storage.sync_queue import SyncQueue

logger = logging.getLogger(__name__)


class LabelRepository:
    """Repository for managing labels.

    Names are unique case-insensitively. Deleting a label strips its id
    from every note through the note repository.
    """

    def __init__(
        self,
        store: KeyValueStore,
        notes: NoteRepository,
        sync_queue: SyncQueue,
        cfg: Optional[BlockNotesConfig] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        """Initialize the label repository.

        Args:
            store: Key-value persistence port.
            notes: Note repository used for cascades and counts.
            sync_queue: Offline mutation log.
            cfg: Name limits. Defaults to the global config.
            on_change: Called after every successful write or delete.
        """
        self.store = store
        self.notes = notes
        self.sync_queue = sync_queue
        self.config = cfg or default_config
        self.on_change = on_change
        self._lock = threading.RLock()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def _check_unique(self, name: str, exclude_id: Optional[str] = None) -> None:
        existing = self.get_by_name(name)
        if existing is not None and existing.id != exclude_id:
            raise ValidationError(
                f"A label named '{existing.name}' already exists",
                field="name",
                value=name,
                code=ErrorCode.LABEL_NAME_DUPLICATE,
            )

    def _write(self, label: Label) -> None:
        self.store.set(LABELS, label.id, encode(label))
        self._notify()

    def get(self, label_id: str) -> Optional[Label]:
        raw = self.store.get(LABELS, label_id)
        if raw is None:
            return None
        return decode(Label, LABELS, label_id, raw)

    def require(self, label_id: str) -> Label:
        label = self.get(label_id)
        if label is None:
            raise LabelNotFoundError(label_id)
        return label

    def get_all(self) -> List[Label]:
        """All labels sorted by order."""
        labels = [
            decode(Label, LABELS, key, raw) for key, raw in self.store.items(LABELS)
        ]
        return ordering.sort_by_order(labels)

    def get_by_name(self, name: str) -> Optional[Label]:
        """Case-insensitive lookup by name."""
        wanted = name.strip().lower()
        for label in self.get_all():
            if label.name.lower() == wanted:
                return label
        return None

    @traced("label.create")
    def create(self, name: str) -> Label:
        """Create a label at the end of the label order.

        Raises:
            ValidationError: If the name is empty, too long or already taken
        """
        name = validate_label_name(name, self.config)
        with self._lock:
            self._check_unique(name)
            label = Label(name=name, order=ordering.append_position(self.get_all()))
            self._write(label)
        self.sync_queue.record(
            EntityType.LABEL, label.id, SyncOperation.CREATE, label.model_dump(mode="json")
        )
        logger.debug(f"Created label '{label.name}' ({label.id})")
        return label

    @traced("label.rename")
    def rename(self, label_id: str, name: str) -> Label:
        """Rename a label.

        Raises:
            LabelNotFoundError: If the label does not exist
            ValidationError: If the new name is invalid or taken by another label
        """
        name = validate_label_name(name, self.config)
        with self._lock:
            label = self.require(label_id)
            self._check_unique(name, exclude_id=label_id)
            label.name = name
            label.updated_at = utc_now()
            self._write(label)
        self.sync_queue.record(
            EntityType.LABEL,
            label_id,
            SyncOperation.UPDATE,
            {"name": label.name, "updated_at": label.updated_at.isoformat()},
        )
        return label

    @traced("label.delete")
    def delete(self, label_id: str) -> List[str]:
        """Delete a label and remove it from every note referencing it.

        Returns:
            Ids of the notes that were updated by the cascade.

        Raises:
            LabelNotFoundError: If the label does not exist
        """
        with self._lock:
            self.require(label_id)
            affected = self.notes.note_ids_with_label(label_id)
            for note_id in affected:
                self.notes.remove_label(note_id, label_id)
            self.store.delete(LABELS, label_id)
            self._notify()
        self.sync_queue.record(EntityType.LABEL, label_id, SyncOperation.DELETE, {})
        logger.info(f"Deleted label {label_id}; cascaded to {len(affected)} notes")
        return affected

    def reorder_labels(
        self, label_ids: Sequence[str], new_orders: Sequence[float]
    ) -> List[Label]:
        """Assign explicit order keys, then renumber all labels to 0..n-1."""
        if len(label_ids) != len(new_orders):
            raise ValidationError(
                "label_ids and new_orders must have the same length",
                field="new_orders",
                value=len(new_orders),
            )
        with self._lock:
            labels = self.get_all()
            known = {label.id for label in labels}
            for label_id in label_ids:
                if label_id not in known:
                    raise LabelNotFoundError(label_id)
            old_orders = {label.id: label.order for label in labels}
            reordered = ordering.apply_orders(labels, label_ids, new_orders)
            for label in reordered:
                if old_orders[label.id] != label.order:
                    label.updated_at = utc_now()
                    self._write(label)
                    self.sync_queue.record(
                        EntityType.LABEL,
                        label.id,
                        SyncOperation.UPDATE,
                        {"order": label.order},
                    )
        return reordered

    def get_with_counts(self) -> Dict[str, int]:
        """Label name -> number of non-trashed notes carrying it."""
        counts = self.notes.label_counts()
        return {label.name: counts.get(label.id, 0) for label in self.get_all()}
