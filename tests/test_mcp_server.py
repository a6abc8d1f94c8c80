# tests/test_mcp_server.py
"""Tests for the MCP server implementation."""
from unittest.mock import MagicMock, patch

import pytest

from blocknotes.exceptions import NoteNotFoundError, StorageError
from blocknotes.server.mcp_server import BlockNotesMcpServer
from blocknotes.services.notes_service import NotesService
from blocknotes.storage.connectivity import ConnectivityMonitor
from tests.fakes import InMemoryStore


def _created_id(response):
    assert "successfully" in response or "with ID" in response, response
    return response.rsplit(": ", 1)[-1].strip()


class TestMcpServer:
    """Tests for the BlockNotesMcpServer class."""

    @pytest.fixture(autouse=True)
    def server(self, test_config):
        """Build a server whose tools are captured instead of served."""
        self.registered_tools = {}
        self.mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        self.service = NotesService(
            store=InMemoryStore(),
            connectivity=ConnectivityMonitor(online=True),
            cfg=test_config,
        )
        with patch("blocknotes.server.mcp_server.FastMCP", return_value=self.mock_mcp):
            self.server = BlockNotesMcpServer(service=self.service)
        yield self.server
        self.service.close()

    def call(self, name, /, **kwargs):
        return self.registered_tools[name](**kwargs)

    def test_server_initialization(self):
        """Startup initializes the service and registers every tool."""
        assert self.service.is_initialized
        assert set(self.registered_tools) == {
            "bn_create_note",
            "bn_get_note",
            "bn_update_note",
            "bn_list_notes",
            "bn_note_action",
            "bn_empty_trash",
            "bn_bulk",
            "bn_add_block",
            "bn_edit_block",
            "bn_block_action",
            "bn_move_block",
            "bn_labels",
            "bn_label_note",
            "bn_search",
            "bn_sync",
            "bn_status",
        }

    def test_create_and_get_note(self):
        """Test the bn_create_note and bn_get_note tools."""
        note_id = _created_id(
            self.call("bn_create_note", title="Groceries", content="milk", labels="Food, Weekly")
        )
        shown = self.call("bn_get_note", note_id=note_id)
        assert "# Groceries" in shown
        assert f"ID: {note_id}" in shown
        assert "Labels: Food, Weekly" in shown
        assert "milk" in shown
        assert self.service.labels.get_by_name("weekly") is not None

    def test_get_missing_note(self):
        assert self.call("bn_get_note", note_id="missing") == "Note not found: missing"

    def test_create_note_validation_error(self):
        result = self.call("bn_create_note", title="x", color="ultraviolet")
        assert result.startswith("Error: ")
        assert self.service.notes.count_notes() == 0

    def test_update_note(self):
        note_id = _created_id(self.call("bn_create_note", title="Old"))
        assert self.call("bn_update_note", note_id=note_id, title="New") == f"Note {note_id} updated"
        assert self.service.notes.get(note_id).title == "New"
        assert self.call("bn_update_note", note_id=note_id).startswith("Nothing to update")

    def test_list_views(self):
        pinned = _created_id(self.call("bn_create_note", title="Pinned"))
        _created_id(self.call("bn_create_note", title="Plain"))
        self.call("bn_note_action", note_id=pinned, action="pin")

        assert "* Pinned" in self.call("bn_list_notes", view="pinned")
        assert "Plain" in self.call("bn_list_notes", view="others")
        assert self.call("bn_list_notes", view="trashed") == "No notes found."
        assert self.call("bn_list_notes", view="bogus").startswith("Invalid view")

    def test_note_actions(self):
        note_id = _created_id(self.call("bn_create_note", title="Lifecycle"))
        assert "moved to trash" in self.call("bn_note_action", note_id=note_id, action="trash")
        assert "Lifecycle" in self.call("bn_list_notes", view="trashed")
        assert "restored" in self.call("bn_note_action", note_id=note_id, action="restore")
        copy_id = _created_id(self.call("bn_note_action", note_id=note_id, action="duplicate"))
        assert self.service.notes.get(copy_id).title == "Lifecycle (copy)"
        assert self.call("bn_note_action", note_id=note_id, action="fly") == "Invalid action: fly"

    def test_note_action_on_missing_note(self):
        result = self.call("bn_note_action", note_id="missing", action="pin")
        assert result == "Error: Note with ID 'missing' not found"

    def test_empty_trash(self):
        note_id = _created_id(self.call("bn_create_note", title="Trash me"))
        self.call("bn_note_action", note_id=note_id, action="trash")
        assert self.call("bn_empty_trash") == "Emptied trash: 1 notes deleted"

    def test_bulk_reports_per_id(self):
        note_id = _created_id(self.call("bn_create_note", title="Bulk"))
        result = self.call("bn_bulk", note_ids=f"{note_id}, missing", action="archive")
        assert result.startswith("bulk_archive: 1 succeeded, 1 failed")
        assert "- missing:" in result
        assert self.service.notes.get(note_id).is_archived

    def test_bulk_label_actions(self):
        note_id = _created_id(self.call("bn_create_note", title="Bulk"))
        assert self.call("bn_bulk", note_ids=note_id, action="add_label", value="Nope") == (
            "Label not found: Nope"
        )
        self.call("bn_labels", action="create", name="Yes")
        assert "1 succeeded" in self.call(
            "bn_bulk", note_ids=note_id, action="add_label", value="yes"
        )
        assert self.call("bn_bulk", note_ids=note_id, action="jump").startswith("Invalid action")

    def test_block_tools(self):
        note_id = _created_id(self.call("bn_create_note", title="Blocks"))
        toggle_id = _created_id(
            self.call("bn_add_block", note_id=note_id, block_type="toggle", content="Group")
        )
        item_id = _created_id(
            self.call(
                "bn_add_block",
                note_id=note_id,
                block_type="checklist",
                content="Task",
                parent_id=toggle_id,
            )
        )
        assert self.call("bn_block_action", note_id=note_id, block_id=item_id, action="check") == (
            f"Block {item_id} checked"
        )
        shown = self.call("bn_get_note", note_id=note_id)
        assert "v Group" in shown
        assert "  - [x] Task" in shown

        self.call("bn_move_block", note_id=note_id, block_id=item_id, target_index=0, to_top_level=True)
        assert self.service.notes.get(note_id).blocks[0].id == item_id

        result = self.call("bn_edit_block", note_id=note_id, block_id=item_id, block_type="text", content="Plain")
        assert result == f"Block {item_id} updated"
        assert self.service.notes.get(note_id).blocks[0].content == "Plain"

        assert "removed" in self.call("bn_block_action", note_id=note_id, block_id=item_id, action="remove")
        assert self.call("bn_block_action", note_id=note_id, block_id="gone", action="remove").startswith(
            "Error: Block with ID 'gone' not found"
        )

    def test_add_block_at_top(self):
        note_id = _created_id(self.call("bn_create_note", title="Top"))
        first_id = self.service.notes.get(note_id).blocks[0].id
        top_id = _created_id(
            self.call("bn_add_block", note_id=note_id, content="Header", at_top=True)
        )
        assert [b.id for b in self.service.notes.get(note_id).blocks] == [top_id, first_id]

    def test_label_tools(self):
        assert self.call("bn_labels") == "No labels."
        self.call("bn_labels", action="create", name="Work")
        note_id = _created_id(self.call("bn_create_note", title="Tagged"))
        assert "added" in self.call("bn_label_note", note_id=note_id, label="work")
        assert self.call("bn_labels") == "- Work (1)"
        assert self.call("bn_labels", action="create", name="WORK").startswith("Error: ")
        assert self.call("bn_labels", action="rename", name="Work", new_name="Job") == (
            "Label renamed to Job"
        )
        assert self.call("bn_labels", action="delete", name="Job") == (
            "Label deleted; removed from 1 notes"
        )
        assert self.service.notes.get(note_id).labels == []

    def test_search(self):
        note_id = _created_id(self.call("bn_create_note", title="Milk run", content="buy milk"))
        result = self.call("bn_search", query="milk")
        assert "Found 1 matching notes" in result
        assert f"ID: {note_id}, score: 15" in result
        assert "title: <mark>Milk</mark> run" in result
        assert self.call("bn_search", query="absent") == "No notes found matching 'absent'"

    def test_sync_tools(self):
        assert self.call("bn_sync") == "online; 0 queued mutations"
        assert self.call("bn_sync", action="set_online", online=False) == "Now offline"
        self.call("bn_create_note", title="Offline note")
        assert self.call("bn_sync") == "offline; 1 queued mutations"
        assert "create note" in self.call("bn_sync", action="list")
        assert self.call("bn_sync", action="clear") == "Cleared 1 queued mutations"

    def test_status(self):
        self.call("bn_create_note", title="Counted")
        status = self.call("bn_status")
        assert "- total_notes: 1" in status
        assert "Server Metrics" in status
        assert "Uptime:" in status
        assert "Operations:" in status
        assert "Success Rate:" in status


class TestErrorFormatting:
    """Tests for format_error_response."""

    @pytest.fixture
    def server(self, test_config):
        service = MagicMock()
        service.initialize.return_value = []
        with patch("blocknotes.server.mcp_server.FastMCP", return_value=MagicMock()):
            return BlockNotesMcpServer(service=service)

    def test_domain_error_message_verbatim(self, server):
        assert server.format_error_response(NoteNotFoundError("n1")) == (
            "Error: Note with ID 'n1' not found"
        )

    def test_storage_error_hides_details(self, server):
        result = server.format_error_response(StorageError("disk I/O error at /secret"))
        assert result.startswith("Error: The change could not be saved (ref: ")
        assert "/secret" not in result

    def test_value_error(self, server):
        assert server.format_error_response(ValueError("bad")).startswith("Error: Invalid input")

    def test_unexpected_error(self, server):
        result = server.format_error_response(RuntimeError("boom"))
        assert result.startswith("Error: An unexpected error occurred")
