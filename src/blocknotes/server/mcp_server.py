"""MCP server exposing the BlockNotes core as tools."""

import atexit
import logging
import uuid
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from blocknotes.config import config
from blocknotes.exceptions import (
    BlockNotesError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from blocknotes.models.schema import (
    BulkResult,
    ChecklistBlock,
    ContentBlock,
    Note,
    NoteColor,
    ToggleBlock,
)
from blocknotes.observability import metrics, timed_operation
from blocknotes.services.notes_service import NotesService

logger = logging.getLogger(__name__)

VIEWS = ("all", "pinned", "others", "archived", "trashed", "reminders")
BULK_ACTIONS = (
    "pin",
    "unpin",
    "archive",
    "trash",
    "restore",
    "delete",
    "color",
    "add_label",
    "remove_label",
)


def _split_ids(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _format_block(block: ContentBlock, depth: int = 0) -> List[str]:
    indent = "  " * depth
    if isinstance(block, ChecklistBlock):
        mark = "x" if block.checked else " "
        lines = [f"{indent}- [{mark}] {block.content}  ({block.id})"]
    elif isinstance(block, ToggleBlock):
        arrow = "v" if block.is_expanded else ">"
        lines = [f"{indent}{arrow} {block.content}  ({block.id})"]
        for child in block.children:
            lines.extend(_format_block(child, depth + 1))
    else:
        lines = [f"{indent}{block.content}  ({block.id})"]
    return lines


class BlockNotesMcpServer:
    """MCP server for BlockNotes."""

    def __init__(self, service: Optional[NotesService] = None, engine=None):
        """Initialize the MCP server.

        Args:
            service: Pre-built application core. Created from the global
                config (sharing ``engine`` when given) if None.
            engine: Pre-configured SQLAlchemy engine for the default service.
        """
        self.mcp = FastMCP(config.server_name)
        self.service = service or NotesService(engine=engine)
        self.initialize()
        atexit.register(self._shutdown)
        self._register_tools()

    def initialize(self) -> None:
        """Run the startup trash sweep and build the search index."""
        expired = self.service.initialize()
        logger.info(
            f"BlockNotes MCP server initialized ({len(expired)} expired notes purged)"
        )

    def _shutdown(self) -> None:
        self.service.close()

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Expected domain conditions are returned verbatim; storage and
        unexpected failures get a reference id and are logged in full.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, (NotFoundError, ValidationError)):
            logger.warning(f"[{error.code.name}] [{error_id}]: {error.message}")
            return f"Error: {error.message}"
        elif isinstance(error, StorageError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: The change could not be saved (ref: {error_id})"
        elif isinstance(error, BlockNotesError):
            logger.error(f"[{error.code.name}] [{error_id}]: {error.message}")
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _format_note(self, note: Note) -> str:
        flags = [
            name
            for name, on in (
                ("pinned", note.is_pinned),
                ("archived", note.is_archived),
                ("trashed", note.is_trashed),
            )
            if on
        ]
        result = f"# {note.title or '(untitled)'}\n"
        result += f"ID: {note.id}\n"
        result += f"Color: {note.color.value}\n"
        if flags:
            result += f"Flags: {', '.join(flags)}\n"
        labels = self.service.label_names_for(note)
        if labels:
            result += f"Labels: {', '.join(labels)}\n"
        if note.reminder:
            result += f"Reminder: {note.reminder.date_time.isoformat()}\n"
        result += f"Updated: {note.updated_at.isoformat()}\n"
        result += f"Sync: {note.sync_status.value}\n\n"
        for block in note.blocks:
            result += "\n".join(_format_block(block)) + "\n"
        return result

    @staticmethod
    def _format_note_line(note: Note) -> str:
        pin = "* " if note.is_pinned else ""
        return f"- {pin}{note.title or '(untitled)'} ({note.id})"

    @staticmethod
    def _format_bulk(result: BulkResult) -> str:
        text = (
            f"{result.operation}: {len(result.succeeded_ids)} succeeded, "
            f"{len(result.failed_ids)} failed"
        )
        for outcome in result.outcomes:
            if not outcome.ok:
                text += f"\n- {outcome.id}: {outcome.message}"
        return text

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="bn_create_note")
        def bn_create_note(
            title: str = "",
            content: str = "",
            color: str = "default",
            labels: Optional[str] = None,
        ) -> str:
            """Create a note.
            Args:
                title: Title of the note
                content: Text of the first block
                color: Card colour (default, red, orange, yellow, green, teal,
                    blue, darkblue, purple, pink, brown, gray)
                labels: Comma-separated label names; missing labels are created
            """
            with timed_operation("bn_create_note", title=title[:30]) as op:
                try:
                    note = self.service.create_note(
                        title=title,
                        color=color,
                        blocks=[{"type": "text", "content": content}] if content else [],
                        label_names=_split_ids(labels) if labels else None,
                    )
                    op["note_id"] = note.id
                    return f"Note created successfully with ID: {note.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_get_note")
        def bn_get_note(note_id: str) -> str:
            """Show a note with its blocks (block ids in parentheses).
            Args:
                note_id: The ID of the note
            """
            with timed_operation("bn_get_note", note_id=note_id) as op:
                try:
                    note = self.service.notes.get(note_id)
                    op["found"] = note is not None
                    if note is None:
                        return f"Note not found: {note_id}"
                    return self._format_note(note)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_update_note")
        def bn_update_note(
            note_id: str,
            title: Optional[str] = None,
            color: Optional[str] = None,
        ) -> str:
            """Change a note's title and/or colour.
            Args:
                note_id: The ID of the note
                title: New title (optional)
                color: New colour (optional)
            """
            with timed_operation("bn_update_note", note_id=note_id):
                try:
                    changes = {}
                    if title is not None:
                        changes["title"] = title
                    if color is not None:
                        changes["color"] = color
                    if not changes:
                        return "Nothing to update: pass title and/or color"
                    self.service.notes.update(note_id, **changes)
                    return f"Note {note_id} updated"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_list_notes")
        def bn_list_notes(view: str = "all", label: Optional[str] = None) -> str:
            """List notes in a view.
            Args:
                view: One of all, pinned, others, archived, trashed, reminders
                label: Only notes carrying this label name (optional)
            """
            with timed_operation("bn_list_notes", view=view) as op:
                try:
                    if view not in VIEWS:
                        return f"Invalid view: {view}. Valid views are: {', '.join(VIEWS)}"
                    if label:
                        found = self.service.labels.get_by_name(label)
                        if found is None:
                            return f"Label not found: {label}"
                        notes = self.service.notes.by_label(found.id)
                    elif view == "pinned":
                        notes = self.service.notes.pinned()
                    elif view == "others":
                        notes = self.service.notes.others()
                    elif view == "archived":
                        notes = self.service.notes.archived()
                    elif view == "trashed":
                        notes = self.service.notes.trashed()
                    elif view == "reminders":
                        notes = self.service.notes.with_reminder()
                    else:
                        notes = self.service.notes.list_notes()
                    op["result_count"] = len(notes)
                    if not notes:
                        return "No notes found."
                    return "\n".join(self._format_note_line(n) for n in notes)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_note_action")
        def bn_note_action(note_id: str, action: str) -> str:
            """Apply a lifecycle action to one note.
            Args:
                note_id: The ID of the note
                action: One of pin, archive, trash, restore, delete, duplicate
            """
            with timed_operation("bn_note_action", note_id=note_id, action=action):
                try:
                    notes = self.service.notes
                    if action == "pin":
                        note = notes.toggle_pin(note_id)
                        return f"Note {note_id} {'pinned' if note.is_pinned else 'unpinned'}"
                    if action == "archive":
                        note = notes.toggle_archive(note_id)
                        return f"Note {note_id} {'archived' if note.is_archived else 'unarchived'}"
                    if action == "trash":
                        notes.move_to_trash(note_id)
                        return f"Note {note_id} moved to trash"
                    if action == "restore":
                        notes.restore_from_trash(note_id)
                        return f"Note {note_id} restored"
                    if action == "delete":
                        notes.permanently_delete(note_id)
                        return f"Note {note_id} permanently deleted"
                    if action == "duplicate":
                        copy = notes.duplicate_note(note_id)
                        return f"Note duplicated with ID: {copy.id}"
                    return f"Invalid action: {action}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_empty_trash")
        def bn_empty_trash() -> str:
            """Permanently delete every note in the trash."""
            with timed_operation("bn_empty_trash") as op:
                try:
                    deleted = self.service.notes.empty_trash()
                    op["deleted_count"] = len(deleted)
                    return f"Emptied trash: {len(deleted)} notes deleted"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_bulk")
        def bn_bulk(note_ids: str, action: str, value: Optional[str] = None) -> str:
            """Apply an action to several notes; failures are reported per id.
            Args:
                note_ids: Comma-separated note IDs
                action: One of pin, unpin, archive, trash, restore, delete,
                    color, add_label, remove_label
                value: Colour for "color", label name for the label actions
            """
            ids = _split_ids(note_ids)
            with timed_operation("bn_bulk", action=action, count=len(ids)):
                try:
                    if action not in BULK_ACTIONS:
                        return f"Invalid action: {action}. Valid actions are: {', '.join(BULK_ACTIONS)}"
                    notes = self.service.notes
                    if action in ("pin", "unpin"):
                        result = notes.bulk_pin(ids, pinned=action == "pin")
                    elif action == "archive":
                        result = notes.bulk_archive(ids)
                    elif action == "trash":
                        result = notes.bulk_trash(ids)
                    elif action == "restore":
                        result = notes.bulk_restore(ids)
                    elif action == "delete":
                        result = notes.bulk_permanently_delete(ids)
                    elif action == "color":
                        result = notes.bulk_set_color(ids, value or NoteColor.DEFAULT)
                    else:
                        if not value:
                            return f"Action {action} needs a label name in value"
                        label = self.service.labels.get_by_name(value)
                        if label is None:
                            return f"Label not found: {value}"
                        if action == "add_label":
                            result = self.service.bulk_add_label(ids, label.id)
                        else:
                            result = notes.bulk_remove_label(ids, label.id)
                    return self._format_bulk(result)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_add_block")
        def bn_add_block(
            note_id: str,
            block_type: str = "text",
            content: str = "",
            after_block_id: Optional[str] = None,
            parent_id: Optional[str] = None,
            at_top: bool = False,
        ) -> str:
            """Add a block to a note.
            Args:
                note_id: The ID of the note
                block_type: text, checklist or toggle
                content: Block text
                after_block_id: Insert after this sibling (end when omitted)
                parent_id: Toggle block to nest under (top level when omitted)
                at_top: Insert before every sibling instead of after_block_id
            """
            with timed_operation("bn_add_block", note_id=note_id) as op:
                try:
                    block = self.service.notes.add_block(
                        note_id, block_type, content, after_block_id, parent_id, at_top
                    )
                    op["block_id"] = block.id
                    return f"Block added with ID: {block.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_edit_block")
        def bn_edit_block(
            note_id: str,
            block_id: str,
            content: Optional[str] = None,
            block_type: Optional[str] = None,
            discard_children: bool = False,
        ) -> str:
            """Change a block's text and/or type.
            Args:
                note_id: The ID of the note
                block_id: The ID of the block
                content: New text (optional)
                block_type: Convert to text, checklist or toggle (optional)
                discard_children: Required to convert a toggle that has children
            """
            with timed_operation("bn_edit_block", note_id=note_id, block_id=block_id):
                try:
                    notes = self.service.notes
                    if block_type is not None:
                        notes.change_block_type(
                            note_id, block_id, block_type, discard_children
                        )
                    if content is not None:
                        notes.update_block(note_id, block_id, content=content)
                    return f"Block {block_id} updated"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_block_action")
        def bn_block_action(note_id: str, block_id: str, action: str) -> str:
            """Toggle, duplicate or remove a block.
            Args:
                note_id: The ID of the note
                block_id: The ID of the block
                action: One of check, expand, duplicate, remove
            """
            with timed_operation("bn_block_action", note_id=note_id, action=action):
                try:
                    notes = self.service.notes
                    if action == "check":
                        block = notes.toggle_checked(note_id, block_id)
                        return f"Block {block_id} {'checked' if block.checked else 'unchecked'}"
                    if action == "expand":
                        block = notes.toggle_expanded(note_id, block_id)
                        return f"Block {block_id} {'expanded' if block.is_expanded else 'collapsed'}"
                    if action == "duplicate":
                        copy = notes.duplicate_block(note_id, block_id)
                        return f"Block duplicated with ID: {copy.id}"
                    if action == "remove":
                        notes.remove_block(note_id, block_id)
                        return f"Block {block_id} removed"
                    return f"Invalid action: {action}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_move_block")
        def bn_move_block(
            note_id: str,
            block_id: str,
            target_index: int,
            parent_id: Optional[str] = None,
            to_top_level: bool = False,
        ) -> str:
            """Move a block within its parent, into a toggle, or to the top level.
            Args:
                note_id: The ID of the note
                block_id: The ID of the block
                target_index: Position among the new siblings (0-based)
                parent_id: Toggle block to move into (optional)
                to_top_level: Move out of any toggle to the top level
            """
            with timed_operation("bn_move_block", note_id=note_id, block_id=block_id):
                try:
                    notes = self.service.notes
                    if to_top_level:
                        notes.move_block(note_id, block_id, target_index, None)
                    elif parent_id:
                        notes.move_block(note_id, block_id, target_index, parent_id)
                    else:
                        notes.move_block(note_id, block_id, target_index)
                    return f"Block {block_id} moved"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_labels")
        def bn_labels(
            action: str = "list",
            name: Optional[str] = None,
            new_name: Optional[str] = None,
        ) -> str:
            """Manage labels.
            Args:
                action: One of list, create, rename, delete
                name: Label name (create/rename/delete)
                new_name: New label name (rename)
            """
            with timed_operation("bn_labels", action=action):
                try:
                    labels = self.service.labels
                    if action == "list":
                        counts = labels.get_with_counts()
                        if not counts:
                            return "No labels."
                        return "\n".join(f"- {n} ({c})" for n, c in counts.items())
                    if not name:
                        return f"Action {action} needs a label name"
                    if action == "create":
                        label = labels.create(name)
                        return f"Label created with ID: {label.id}"
                    label = labels.get_by_name(name)
                    if label is None:
                        return f"Label not found: {name}"
                    if action == "rename":
                        if not new_name:
                            return "Rename needs new_name"
                        labels.rename(label.id, new_name)
                        return f"Label renamed to {new_name}"
                    if action == "delete":
                        affected = labels.delete(label.id)
                        return f"Label deleted; removed from {len(affected)} notes"
                    return f"Invalid action: {action}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_label_note")
        def bn_label_note(note_id: str, label: str, remove: bool = False) -> str:
            """Attach a label to a note or detach it.
            Args:
                note_id: The ID of the note
                label: Label name
                remove: Detach instead of attach
            """
            with timed_operation("bn_label_note", note_id=note_id):
                try:
                    found = self.service.labels.get_by_name(label)
                    if found is None:
                        return f"Label not found: {label}"
                    if remove:
                        self.service.notes.remove_label(note_id, found.id)
                        return f"Label {found.name} removed from {note_id}"
                    self.service.add_label_to_note(note_id, found.id)
                    return f"Label {found.name} added to {note_id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_search")
        def bn_search(query: str, limit: int = 10) -> str:
            """Full-text search over titles, content and label names.
            Args:
                query: Text to look for (case-insensitive substring)
                limit: Maximum number of results (default: 10)
            """
            with timed_operation("bn_search", query=query[:30]) as op:
                try:
                    results = self.service.search(query)[:limit]
                    op["result_count"] = len(results)
                    if not results:
                        return f"No notes found matching '{query}'"
                    lines = [f"Found {len(results)} matching notes:"]
                    for i, result in enumerate(results, 1):
                        note = result.note
                        lines.append(
                            f"{i}. {note.title or '(untitled)'} (ID: {note.id}, score: {result.score})"
                        )
                        hl = result.highlights
                        if hl.title:
                            lines.append(f"   title: {hl.title}")
                        if hl.content:
                            lines.append(f"   content: {hl.content[:200]}")
                        if hl.labels:
                            lines.append(f"   labels: {', '.join(hl.labels)}")
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_sync")
        def bn_sync(action: str = "status", online: Optional[bool] = None) -> str:
            """Inspect the offline sync queue or change connectivity.
            Args:
                action: One of status, list, clear, set_online
                online: New connectivity state for set_online
            """
            with timed_operation("bn_sync", action=action):
                try:
                    queue = self.service.sync_queue
                    if action == "status":
                        state = "online" if self.service.connectivity.is_online() else "offline"
                        return f"{state}; {queue.pending_count()} queued mutations"
                    if action == "list":
                        items = queue.list()
                        if not items:
                            return "Sync queue is empty."
                        return "\n".join(
                            f"- {i.timestamp.isoformat()} {i.operation.value} "
                            f"{i.entity_type.value} {i.entity_id} (retries: {i.retry_count})"
                            for i in items
                        )
                    if action == "clear":
                        return f"Cleared {queue.clear()} queued mutations"
                    if action == "set_online":
                        if online is None:
                            return "set_online needs online=true/false"
                        setter = getattr(self.service.connectivity, "set_online", None)
                        if setter is None:
                            return "Connectivity is managed externally"
                        setter(online)
                        return f"Now {'online' if online else 'offline'}"
                    return f"Invalid action: {action}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="bn_status")
        def bn_status() -> str:
            """Counts, sync state and per-operation metrics."""
            with timed_operation("bn_status"):
                try:
                    stats = self.service.get_stats()
                    summary = metrics.get_summary()
                    lines = ["## Notes"]
                    lines.extend(f"- {k}: {v}" for k, v in stats.items())
                    lines.append("")
                    lines.append("## Server Metrics")
                    lines.append(f"- Uptime: {summary['uptime_seconds']:.0f}s")
                    lines.append(f"- Operations: {summary['total_operations']}")
                    total = summary["total_operations"]
                    rate = (summary["total_success"] / total * 100) if total else 100.0
                    lines.append(f"- Success Rate: {rate:.1f}%")
                    return "\n".join(lines)
                except Exception as e:
                    return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
