"""Repository for note storage and retrieval."""

import datetime
import logging
import threading
import weakref
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from blocknotes.config import BlockNotesConfig, config as default_config
from blocknotes.core import ordering
from blocknotes.core.blocks import BlockTree, duplicate, new_block
from blocknotes.core.validation import from_pydantic, validate_note
from blocknotes.exceptions import (
    BlockNotesError,
    ErrorCode,
    NoteNotFoundError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from blocknotes.models.schema import (
    BlockType,
    BulkResult,
    ChecklistBlock,
    Collaborator,
    CollaboratorRole,
    ContentBlock,
    EntityType,
    Note,
    NoteColor,
    NoteFilter,
    Reminder,
    SyncOperation,
    SyncStatus,
    ToggleBlock,
    ensure_timezone_aware,
    utc_now,
)
from blocknotes.observability import traced
from blocknotes.storage.ports import NOTES, KeyValueStore
from blocknotes.storage.serialization import decode, encode
from blocknotes.storage.sync_queue import SyncQueue

logger = logging.getLogger(__name__)

_SAME_PARENT = ...


class NoteRepository:
    """Persists notes through the key-value port and records offline mutations.

    The store is the only source of truth: every read goes to it and every
    public method returns after its write has completed. Mutations of the
    same note id are serialized with a per-note lock.
    """

    def __init__(
        self,
        store: KeyValueStore,
        sync_queue: SyncQueue,
        cfg: Optional[BlockNotesConfig] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        """Initialize the note repository.

        Args:
            store: Key-value persistence port.
            sync_queue: Offline mutation log; its connectivity signal also
                decides each note's ``sync_status``.
            cfg: Limits and retention settings. Defaults to the global config.
            on_change: Called after every successful write or delete.
        """
        self.store = store
        self.sync_queue = sync_queue
        self.config = cfg or default_config
        self.on_change = on_change
        self._note_locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._note_locks_lock = threading.Lock()
        # Guards order assignment on create and note-level reordering
        self._order_lock = threading.RLock()

    # =========================================================================
    # Internals
    # =========================================================================

    def _get_note_lock(self, note_id: str) -> threading.RLock:
        """Get or create the reentrant lock for a specific note.

        Uses WeakValueDictionary so locks are garbage collected when no longer
        held.
        """
        with self._note_locks_lock:
            lock = self._note_locks.get(note_id)
            if lock is None:
                lock = threading.RLock()
                self._note_locks[note_id] = lock
            return lock

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def _current_sync_status(self) -> SyncStatus:
        if self.sync_queue.connectivity.is_online():
            return SyncStatus.SYNCED
        return SyncStatus.PENDING

    def _require(self, note_id: str) -> Note:
        note = self.get(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    def _write(self, note: Note) -> None:
        # Rejects repeated block ids and renumbers every sibling list to 0..n-1.
        note.blocks = BlockTree.from_blocks(note.blocks).to_blocks()
        validate_note(note, self.config)
        self.store.set(NOTES, note.id, encode(note))
        self._notify()

    def _merge(self, note: Note, changes: Dict[str, Any]) -> Note:
        if "id" in changes and changes["id"] != note.id:
            raise ValidationError(
                "A note's id cannot be changed",
                field="id",
                value=changes["id"],
                code=ErrorCode.INVALID_FIELD,
            )
        try:
            return Note.model_validate({**note.model_dump(), **changes})
        except PydanticValidationError as e:
            raise from_pydantic(e) from e

    # =========================================================================
    # CRUD
    # =========================================================================

    @traced("note.create")
    def create(self, **fields: Any) -> Note:
        """Create a note from partial fields and persist it.

        Fills in the id, ``order = max(0, existing) + 1``, timestamps and the
        sync status. Appends a ``create`` sync entry when offline.

        Raises:
            ValidationError: If a field is invalid or a limit is exceeded
        """
        for managed in ("order", "created_at", "updated_at", "sync_status"):
            fields.pop(managed, None)
        try:
            note = Note.model_validate(fields)
        except PydanticValidationError as e:
            raise from_pydantic(e) from e

        with self._order_lock:
            if self.store.get(NOTES, note.id) is not None:
                raise ValidationError(
                    f"Note with ID '{note.id}' already exists",
                    field="id",
                    value=note.id,
                )
            now = utc_now()
            note.order = max([0.0, *(n.order for n in self.get_all())]) + 1
            note.created_at = now
            note.updated_at = now
            note.sync_status = self._current_sync_status()
            self._write(note)

        self.sync_queue.record(
            EntityType.NOTE,
            note.id,
            SyncOperation.CREATE,
            note.model_dump(mode="json"),
        )
        logger.debug(f"Created note {note.id}")
        return note

    def get(self, note_id: str) -> Optional[Note]:
        """Get a note by ID, or None if it does not exist."""
        raw = self.store.get(NOTES, note_id)
        if raw is None:
            return None
        return decode(Note, NOTES, note_id, raw)

    def get_all(self) -> List[Note]:
        """All notes (including archived and trashed), sorted by order."""
        notes = [decode(Note, NOTES, key, raw) for key, raw in self.store.items(NOTES)]
        return ordering.sort_by_order(notes)

    def count_notes(self) -> int:
        return sum(1 for _ in self.store.items(NOTES))

    @traced("note.update")
    def update(self, note_id: str, **changes: Any) -> Note:
        """Merge partial fields into a note, refresh its stamps and persist.

        Appends an ``update`` sync entry carrying the changed fields when
        offline.

        Raises:
            NoteNotFoundError: If the note does not exist
            ValidationError: If a field is invalid or a limit is exceeded
        """
        with self._get_note_lock(note_id):
            existing = self._require(note_id)
            updated = self._merge(existing, changes)
            updated.updated_at = utc_now()
            updated.sync_status = self._current_sync_status()
            self._write(updated)

        dumped = updated.model_dump(mode="json")
        payload = {key: dumped[key] for key in changes if key in dumped}
        payload["updated_at"] = dumped["updated_at"]
        self.sync_queue.record(EntityType.NOTE, note_id, SyncOperation.UPDATE, payload)
        return updated

    @traced("note.delete")
    def delete(self, note_id: str) -> None:
        """Hard delete a note.

        Raises:
            NoteNotFoundError: If the note does not exist
        """
        with self._get_note_lock(note_id):
            if not self.store.delete(NOTES, note_id):
                raise NoteNotFoundError(note_id)
            self._notify()
        self.sync_queue.record(EntityType.NOTE, note_id, SyncOperation.DELETE, {})
        logger.debug(f"Deleted note {note_id}")

    # =========================================================================
    # Trash lifecycle
    # =========================================================================

    def move_to_trash(self, note_id: str) -> Note:
        return self.update(
            note_id, is_trashed=True, trashed_at=utc_now(), is_pinned=False
        )

    def restore_from_trash(self, note_id: str) -> Note:
        return self.update(note_id, is_trashed=False, trashed_at=None)

    def permanently_delete(self, note_id: str) -> None:
        self.delete(note_id)

    @traced("note.empty_trash")
    def empty_trash(self) -> List[str]:
        """Hard delete every trashed note; return the deleted ids."""
        deleted = []
        for note in self.get_all():
            if note.is_trashed:
                self.delete(note.id)
                deleted.append(note.id)
        logger.info(f"Emptied trash: {len(deleted)} notes deleted")
        return deleted

    @traced("note.sweep_expired_trash")
    def sweep_expired_trash(self, now: Optional[datetime.datetime] = None) -> List[str]:
        """Hard delete trashed notes whose retention period has elapsed.

        A note expires when ``now - trashed_at`` is strictly greater than the
        configured retention. Returns the deleted ids so dependent indices
        can be invalidated.
        """
        now = ensure_timezone_aware(now)
        retention = datetime.timedelta(days=self.config.trash_retention_days)
        expired = []
        for note in self.get_all():
            if note.is_trashed and note.trashed_at and now - note.trashed_at > retention:
                self.delete(note.id)
                expired.append(note.id)
        if expired:
            logger.info(f"Trash sweep removed {len(expired)} expired notes")
        return expired

    # =========================================================================
    # Single-note conveniences
    # =========================================================================

    def toggle_pin(self, note_id: str) -> Note:
        with self._get_note_lock(note_id):
            note = self._require(note_id)
            return self.update(note_id, is_pinned=not note.is_pinned)

    def toggle_archive(self, note_id: str) -> Note:
        """Archive (which clears the pin) or unarchive a note."""
        with self._get_note_lock(note_id):
            note = self._require(note_id)
            if note.is_archived:
                return self.update(note_id, is_archived=False)
            return self.update(note_id, is_archived=True, is_pinned=False)

    def set_color(self, note_id: str, color: Union[NoteColor, str]) -> Note:
        return self.update(note_id, color=color)

    def add_label(self, note_id: str, label_id: str) -> Note:
        with self._get_note_lock(note_id):
            note = self._require(note_id)
            if note.has_label(label_id):
                return note
            return self.update(note_id, labels=[*note.labels, label_id])

    def remove_label(self, note_id: str, label_id: str) -> Note:
        with self._get_note_lock(note_id):
            note = self._require(note_id)
            if not note.has_label(label_id):
                return note
            return self.update(
                note_id, labels=[lid for lid in note.labels if lid != label_id]
            )

    def set_reminder(self, note_id: str, reminder: Optional[Reminder]) -> Note:
        return self.update(note_id, reminder=reminder)

    def add_collaborator(
        self,
        note_id: str,
        email: str,
        name: Optional[str] = None,
        role: Union[CollaboratorRole, str] = CollaboratorRole.EDITOR,
    ) -> Note:
        try:
            collaborator = Collaborator(email=email, name=name, role=role)
        except PydanticValidationError as e:
            raise from_pydantic(e) from e
        with self._get_note_lock(note_id):
            note = self._require(note_id)
            return self.update(
                note_id, collaborators=[*note.collaborators, collaborator]
            )

    def remove_collaborator(self, note_id: str, collaborator_id: str) -> Note:
        with self._get_note_lock(note_id):
            note = self._require(note_id)
            remaining = [c for c in note.collaborators if c.id != collaborator_id]
            if len(remaining) == len(note.collaborators):
                raise NotFoundError(
                    "collaborator", collaborator_id, code=ErrorCode.COLLABORATOR_NOT_FOUND
                )
            return self.update(note_id, collaborators=remaining)

    @traced("note.duplicate")
    def duplicate_note(self, note_id: str) -> Note:
        """Copy a note with fresh block ids; the copy is active and unpinned."""
        source = self._require(note_id)
        blocks = ordering.renumber([duplicate(block) for block in source.blocks])
        return self.create(
            title=f"{source.title} (copy)" if source.title else "",
            color=source.color,
            blocks=blocks,
            labels=list(source.labels),
        )

    # =========================================================================
    # Note ordering
    # =========================================================================

    def _persist_orders(self, before: List[Note], after: List[Note]) -> List[Note]:
        old_orders = {note.id: note.order for note in before}
        for note in after:
            if old_orders.get(note.id) != note.order:
                self.update(note.id, order=note.order)
        return self.get_all()

    @traced("note.reorder")
    def reorder_notes(self, note_ids: Sequence[str], new_orders: Sequence[float]) -> List[Note]:
        """Assign explicit order keys, then renumber every note to 0..n-1.

        Raises:
            ValidationError: If ids and orders differ in length
            NoteNotFoundError: If any id does not exist
        """
        if len(note_ids) != len(new_orders):
            raise ValidationError(
                "note_ids and new_orders must have the same length",
                field="new_orders",
                value=len(new_orders),
            )
        with self._order_lock:
            notes = self.get_all()
            known = {note.id for note in notes}
            for note_id in note_ids:
                if note_id not in known:
                    raise NoteNotFoundError(note_id)
            return self._persist_orders(
                notes, ordering.apply_orders(notes, note_ids, new_orders)
            )

    def move_note(self, note_id: str, target_index: int) -> List[Note]:
        """Move a note to ``target_index`` in the overall order."""
        with self._order_lock:
            notes = self.get_all()
            try:
                moved = ordering.move(notes, note_id, target_index)
            except NotFoundError:
                raise NoteNotFoundError(note_id)
            return self._persist_orders(notes, moved)

    # =========================================================================
    # Views
    # =========================================================================

    def list_notes(self, note_filter: Optional[NoteFilter] = None) -> List[Note]:
        note_filter = note_filter or NoteFilter()
        return [note for note in self.get_all() if note_filter.matches(note)]

    def _active(self) -> List[Note]:
        return [n for n in self.get_all() if not n.is_trashed and not n.is_archived]

    def pinned(self) -> List[Note]:
        return [n for n in self._active() if n.is_pinned]

    def others(self) -> List[Note]:
        return [n for n in self._active() if not n.is_pinned]

    def archived(self) -> List[Note]:
        notes = [n for n in self.get_all() if n.is_archived and not n.is_trashed]
        return sorted(notes, key=lambda n: n.updated_at, reverse=True)

    def trashed(self) -> List[Note]:
        notes = [n for n in self.get_all() if n.is_trashed]
        return sorted(
            notes, key=lambda n: n.trashed_at or n.updated_at, reverse=True
        )

    def by_label(self, label_id: str) -> List[Note]:
        return [n for n in self.get_all() if n.has_label(label_id) and not n.is_trashed]

    def with_reminder(self) -> List[Note]:
        notes = [n for n in self.get_all() if n.reminder and not n.is_trashed]
        return sorted(notes, key=lambda n: n.reminder.date_time)

    def note_ids_with_label(self, label_id: str) -> List[str]:
        """Ids of every note (trashed included) referencing a label."""
        return [n.id for n in self.get_all() if n.has_label(label_id)]

    def label_counts(self) -> Dict[str, int]:
        """Non-trashed note count per referenced label id."""
        counts: Dict[str, int] = {}
        for note in self.get_all():
            if note.is_trashed:
                continue
            for label_id in note.labels:
                counts[label_id] = counts.get(label_id, 0) + 1
        return counts

    # =========================================================================
    # Block editing
    # =========================================================================

    def _edit_blocks(self, note_id: str, edit: Callable[[BlockTree], Any]) -> Any:
        """Run ``edit`` against the note's block tree and persist the result."""
        with self._get_note_lock(note_id):
            note = self._require(note_id)
            tree = BlockTree.from_blocks(note.blocks)
            result = edit(tree)
            self.update(note_id, blocks=tree.to_blocks())
            return result

    @traced("block.add")
    def add_block(
        self,
        note_id: str,
        block_type: Union[BlockType, str] = BlockType.TEXT,
        content: str = "",
        after_block_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        at_top: bool = False,
    ) -> ContentBlock:
        """Insert a new block after ``after_block_id`` (end when absent).

        ``at_top`` places it before every sibling instead and ignores
        ``after_block_id``.

        Raises:
            NoteNotFoundError: If the note does not exist
            ValidationError: If the note is at its block limit
        """
        block = new_block(block_type, content)

        def _add(tree: BlockTree) -> ContentBlock:
            if parent_id is None and tree.top_level_count >= self.config.max_blocks_per_note:
                raise ValidationError(
                    f"A note can hold at most {self.config.max_blocks_per_note} blocks",
                    field="blocks",
                    value=tree.top_level_count,
                    code=ErrorCode.NOTE_TOO_MANY_BLOCKS,
                )
            if at_top:
                return tree.insert_first(block, parent_id)
            return tree.insert(block, parent_id, after_block_id)

        return self._edit_blocks(note_id, _add)

    def update_block(self, note_id: str, block_id: str, **fields: Any) -> ContentBlock:
        """Set content, ``checked`` or ``is_expanded`` on a block."""
        return self._edit_blocks(note_id, lambda tree: tree.update(block_id, **fields))

    def toggle_checked(self, note_id: str, block_id: str) -> ContentBlock:
        def _toggle(tree: BlockTree) -> ContentBlock:
            block = tree.get(block_id)
            if not isinstance(block, ChecklistBlock):
                raise ValidationError(
                    f"Block '{block_id}' is not a checklist item",
                    field="type",
                    value=block.type,
                    code=ErrorCode.INVALID_BLOCK_TYPE,
                )
            return tree.update(block_id, checked=not block.checked)

        return self._edit_blocks(note_id, _toggle)

    def toggle_expanded(self, note_id: str, block_id: str) -> ContentBlock:
        def _toggle(tree: BlockTree) -> ContentBlock:
            block = tree.get(block_id)
            if not isinstance(block, ToggleBlock):
                raise ValidationError(
                    f"Block '{block_id}' is not a toggle",
                    field="type",
                    value=block.type,
                    code=ErrorCode.INVALID_BLOCK_TYPE,
                )
            return tree.update(block_id, is_expanded=not block.is_expanded)

        return self._edit_blocks(note_id, _toggle)

    @traced("block.remove")
    def remove_block(self, note_id: str, block_id: str) -> Note:
        """Remove a block and its subtree.

        Removing the last block leaves the note with one empty text block.
        """
        self._edit_blocks(note_id, lambda tree: tree.remove(block_id))
        return self._require(note_id)

    @traced("block.move")
    def move_block(
        self,
        note_id: str,
        block_id: str,
        target_index: int,
        parent_id: Any = _SAME_PARENT,
    ) -> ContentBlock:
        """Reorder a block among its siblings or re-parent it.

        ``parent_id`` omitted keeps the current parent; ``None`` moves to the
        top level; a toggle id nests the block inside that toggle.
        """
        def _move(tree: BlockTree) -> ContentBlock:
            new_parent = tree.parent_of(block_id) if parent_id is _SAME_PARENT else parent_id
            if (
                new_parent is None
                and tree.parent_of(block_id) is not None
                and tree.top_level_count >= self.config.max_blocks_per_note
            ):
                raise ValidationError(
                    f"A note can hold at most {self.config.max_blocks_per_note} blocks",
                    field="blocks",
                    value=tree.top_level_count,
                    code=ErrorCode.NOTE_TOO_MANY_BLOCKS,
                )
            return tree.move(block_id, target_index, new_parent)

        return self._edit_blocks(note_id, _move)

    @traced("block.duplicate")
    def duplicate_block(self, note_id: str, block_id: str) -> ContentBlock:
        def _duplicate(tree: BlockTree) -> ContentBlock:
            if (
                tree.parent_of(block_id) is None
                and tree.top_level_count >= self.config.max_blocks_per_note
            ):
                raise ValidationError(
                    f"A note can hold at most {self.config.max_blocks_per_note} blocks",
                    field="blocks",
                    value=tree.top_level_count,
                    code=ErrorCode.NOTE_TOO_MANY_BLOCKS,
                )
            return tree.duplicate(block_id)

        return self._edit_blocks(note_id, _duplicate)

    @traced("block.change_type")
    def change_block_type(
        self,
        note_id: str,
        block_id: str,
        new_type: Union[BlockType, str],
        discard_children: bool = False,
    ) -> ContentBlock:
        return self._edit_blocks(
            note_id,
            lambda tree: tree.change_type(block_id, new_type, discard_children),
        )

    # =========================================================================
    # Bulk operations
    # =========================================================================

    def _bulk_operation(
        self,
        note_ids: Sequence[str],
        operation_name: str,
        per_note_fn: Callable[[str], Any],
    ) -> BulkResult:
        """Template method for best-effort bulk operations.

        Applies ``per_note_fn`` to each id sequentially. A domain error on one
        id is recorded against that id and processing continues.

        Returns:
            BulkResult with one outcome per requested id, in request order.
        """
        result = BulkResult(operation=operation_name)
        for note_id in note_ids:
            try:
                per_note_fn(note_id)
            except StorageError as e:
                logger.error(f"{operation_name}: storage failure for {note_id}: {e}")
                result.record_failure(note_id, e)
            except BlockNotesError as e:
                logger.warning(f"{operation_name}: {note_id} failed: {e}")
                result.record_failure(note_id, e)
            else:
                result.record_success(note_id)

        logger.info(
            f"{operation_name}: {len(result.succeeded_ids)} of {len(note_ids)} notes updated"
        )
        return result

    def bulk_pin(self, note_ids: Sequence[str], pinned: bool = True) -> BulkResult:
        return self._bulk_operation(
            note_ids, "bulk_pin", lambda nid: self.update(nid, is_pinned=pinned)
        )

    def bulk_archive(self, note_ids: Sequence[str]) -> BulkResult:
        return self._bulk_operation(
            note_ids,
            "bulk_archive",
            lambda nid: self.update(nid, is_archived=True, is_pinned=False),
        )

    def bulk_trash(self, note_ids: Sequence[str]) -> BulkResult:
        return self._bulk_operation(note_ids, "bulk_trash", self.move_to_trash)

    def bulk_restore(self, note_ids: Sequence[str]) -> BulkResult:
        return self._bulk_operation(note_ids, "bulk_restore", self.restore_from_trash)

    def bulk_permanently_delete(self, note_ids: Sequence[str]) -> BulkResult:
        return self._bulk_operation(
            note_ids, "bulk_permanently_delete", self.permanently_delete
        )

    def bulk_set_color(
        self, note_ids: Sequence[str], color: Union[NoteColor, str]
    ) -> BulkResult:
        return self._bulk_operation(
            note_ids, "bulk_set_color", lambda nid: self.set_color(nid, color)
        )

    def bulk_add_label(self, note_ids: Sequence[str], label_id: str) -> BulkResult:
        return self._bulk_operation(
            note_ids, "bulk_add_label", lambda nid: self.add_label(nid, label_id)
        )

    def bulk_remove_label(self, note_ids: Sequence[str], label_id: str) -> BulkResult:
        return self._bulk_operation(
            note_ids, "bulk_remove_label", lambda nid: self.remove_label(nid, label_id)
        )
