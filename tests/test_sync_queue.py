"""Tests for the offline sync queue."""
import pytest

from blocknotes.exceptions import SyncItemNotFoundError, ValidationError
from blocknotes.models.schema import EntityType, SyncOperation
from blocknotes.storage.sync_queue import SyncQueue


class TestSyncQueue:
    """Recording and consuming queued mutations."""

    def test_online_records_nothing(self, sync_queue):
        assert sync_queue.record(EntityType.NOTE, "n1", SyncOperation.CREATE, {"a": 1}) is None
        assert sync_queue.pending_count() == 0

    def test_offline_records_in_append_order(self, sync_queue, connectivity):
        connectivity.set_online(False)
        for i in range(5):
            sync_queue.record(EntityType.NOTE, f"n{i}", SyncOperation.UPDATE, {"i": i})
        items = sync_queue.list()
        assert [item.entity_id for item in items] == [f"n{i}" for i in range(5)]
        timestamps = [item.timestamp for item in items]
        assert timestamps == sorted(timestamps)
        assert len(set(timestamps)) == 5
        assert all(item.retry_count == 0 for item in items)

    def test_entries_are_not_deduplicated(self, sync_queue, connectivity):
        connectivity.set_online(False)
        sync_queue.record(EntityType.NOTE, "n1", SyncOperation.UPDATE, {"title": "a"})
        sync_queue.record(EntityType.NOTE, "n1", SyncOperation.UPDATE, {"title": "b"})
        assert [i.payload["title"] for i in sync_queue.list()] == ["a", "b"]

    def test_get_and_remove(self, sync_queue, connectivity):
        connectivity.set_online(False)
        item = sync_queue.record(EntityType.LABEL, "l1", SyncOperation.DELETE)
        assert sync_queue.get(item.id) == item
        assert item.payload == {}
        sync_queue.remove(item.id)
        assert sync_queue.pending_count() == 0
        with pytest.raises(SyncItemNotFoundError):
            sync_queue.remove(item.id)
        with pytest.raises(SyncItemNotFoundError):
            sync_queue.get(item.id)

    def test_update_retry_count(self, sync_queue, connectivity):
        connectivity.set_online(False)
        item = sync_queue.record(EntityType.NOTE, "n1", SyncOperation.CREATE)
        assert sync_queue.update_retry_count(item.id, 3).retry_count == 3
        assert sync_queue.get(item.id).retry_count == 3
        with pytest.raises(ValidationError):
            sync_queue.update_retry_count(item.id, -1)
        with pytest.raises(SyncItemNotFoundError):
            sync_queue.update_retry_count("missing", 1)

    def test_clear(self, sync_queue, connectivity):
        connectivity.set_online(False)
        for i in range(3):
            sync_queue.record(EntityType.NOTE, f"n{i}", SyncOperation.DELETE)
        assert sync_queue.clear() == 3
        assert sync_queue.list() == []

    def test_survives_new_queue_instance(self, sql_store, connectivity):
        """Entries live in the store, not in the queue object."""
        connectivity.set_online(False)
        SyncQueue(sql_store, connectivity).record(EntityType.NOTE, "n1", SyncOperation.CREATE)
        assert SyncQueue(sql_store, connectivity).pending_count() == 1
