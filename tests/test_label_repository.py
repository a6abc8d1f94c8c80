"""Tests for the LabelRepository class."""
import pytest

from blocknotes.exceptions import ErrorCode, LabelNotFoundError, ValidationError
from blocknotes.models.schema import EntityType, SyncOperation


class TestLabelCrud:
    """Create, rename and look up labels."""

    def test_create_appends_in_order(self, label_repository):
        work = label_repository.create("Work")
        home = label_repository.create("  Home ")
        assert home.name == "Home"
        assert [l.id for l in label_repository.get_all()] == [work.id, home.id]
        assert work.order < home.order

    def test_name_unique_case_insensitively(self, label_repository):
        label_repository.create("Work")
        with pytest.raises(ValidationError) as exc_info:
            label_repository.create("wORK")
        assert exc_info.value.code == ErrorCode.LABEL_NAME_DUPLICATE

    def test_invalid_names(self, label_repository):
        for bad in ("", "   ", "x" * 31):
            with pytest.raises(ValidationError) as exc_info:
                label_repository.create(bad)
            assert exc_info.value.code == ErrorCode.LABEL_NAME_INVALID

    def test_get_by_name(self, label_repository):
        label = label_repository.create("Recipes")
        assert label_repository.get_by_name("recipes").id == label.id
        assert label_repository.get_by_name(" RECIPES ").id == label.id
        assert label_repository.get_by_name("other") is None

    def test_require_missing(self, label_repository):
        assert label_repository.get("missing") is None
        with pytest.raises(LabelNotFoundError):
            label_repository.require("missing")

    def test_rename(self, label_repository):
        label = label_repository.create("Todo")
        renamed = label_repository.rename(label.id, "Tasks")
        assert renamed.name == "Tasks"
        assert label_repository.get(label.id).name == "Tasks"

    def test_rename_to_own_name_in_other_case(self, label_repository):
        label = label_repository.create("todo")
        assert label_repository.rename(label.id, "Todo").name == "Todo"

    def test_rename_onto_other_label(self, label_repository):
        label_repository.create("Work")
        other = label_repository.create("Home")
        with pytest.raises(ValidationError) as exc_info:
            label_repository.rename(other.id, "work")
        assert exc_info.value.code == ErrorCode.LABEL_NAME_DUPLICATE

    def test_rename_missing(self, label_repository):
        with pytest.raises(LabelNotFoundError):
            label_repository.rename("missing", "x")


class TestLabelDelete:
    """Deleting a label cascades to notes."""

    def test_delete_strips_label_from_every_note(self, label_repository, note_repository):
        label = label_repository.create("Work")
        keep = label_repository.create("Keep")
        tagged = [
            note_repository.create(labels=[label.id, keep.id]) for _ in range(3)
        ]
        trashed = note_repository.create(labels=[label.id])
        note_repository.move_to_trash(trashed.id)
        untouched = note_repository.create(labels=[keep.id])

        affected = label_repository.delete(label.id)

        assert sorted(affected) == sorted([n.id for n in tagged] + [trashed.id])
        assert label_repository.get(label.id) is None
        for note in tagged:
            assert note_repository.get(note.id).labels == [keep.id]
        assert note_repository.get(trashed.id).labels == []
        assert note_repository.get(untouched.id).labels == [keep.id]

    def test_delete_missing(self, label_repository):
        with pytest.raises(LabelNotFoundError):
            label_repository.delete("missing")


class TestLabelOrderingAndCounts:
    """Reordering and per-label counts."""

    def test_reorder_labels(self, label_repository):
        a, b, c = (label_repository.create(n) for n in ("A", "B", "C"))
        reordered = label_repository.reorder_labels([c.id, a.id], [0.5, 5])
        assert [l.id for l in reordered] == [c.id, b.id, a.id]
        assert [l.order for l in label_repository.get_all()] == [0, 1, 2]

    def test_reorder_unknown_label(self, label_repository):
        with pytest.raises(LabelNotFoundError):
            label_repository.reorder_labels(["missing"], [1])

    def test_counts_exclude_trash(self, label_repository, note_repository):
        work = label_repository.create("Work")
        label_repository.create("Empty")
        note_repository.create(labels=[work.id])
        trashed = note_repository.create(labels=[work.id])
        note_repository.move_to_trash(trashed.id)
        assert label_repository.get_with_counts() == {"Work": 1, "Empty": 0}


class TestLabelSync:
    """Offline label mutations are queued."""

    def test_offline_label_mutations(self, label_repository, sync_queue, connectivity):
        connectivity.set_online(False)
        label = label_repository.create("Offline")
        label_repository.rename(label.id, "Renamed")
        label_repository.delete(label.id)

        items = sync_queue.list()
        assert [i.operation for i in items] == [
            SyncOperation.CREATE,
            SyncOperation.UPDATE,
            SyncOperation.DELETE,
        ]
        assert all(i.entity_type == EntityType.LABEL for i in items)
        assert items[1].payload["name"] == "Renamed"
