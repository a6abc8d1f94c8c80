"""Offline mutation log."""
import datetime
import logging
import threading
from typing import Any, Dict, List, Optional

from blocknotes.exceptions import SyncItemNotFoundError, ValidationError
from blocknotes.models.schema import (
    EntityType,
    SyncOperation,
    SyncQueueItem,
    utc_now,
)
from blocknotes.storage.ports import SYNC_QUEUE, ConnectivitySignal, KeyValueStore
from blocknotes.storage.serialization import decode, encode

logger = logging.getLogger(__name__)


class SyncQueue:
    """Append-only log of mutations made while offline.

    Entries are never deduplicated or compacted. Transmission is the job of
    an external consumer, which uses ``list``/``remove``/``update_retry_count``.
    """

    def __init__(self, store: KeyValueStore, connectivity: ConnectivitySignal):
        self.store = store
        self.connectivity = connectivity
        self._lock = threading.Lock()
        self._last_timestamp: Optional[datetime.datetime] = None

    def _next_timestamp(self) -> datetime.datetime:
        # Strictly increasing so reads ordered by timestamp match append order.
        now = utc_now()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + datetime.timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def record(
        self,
        entity_type: EntityType,
        entity_id: str,
        operation: SyncOperation,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[SyncQueueItem]:
        """Append an entry iff the connectivity signal reports offline.

        Returns:
            The stored entry, or None when online (nothing is appended).
        """
        if self.connectivity.is_online():
            return None
        with self._lock:
            item = SyncQueueItem(
                entity_type=entity_type,
                entity_id=entity_id,
                operation=operation,
                payload=payload or {},
                timestamp=self._next_timestamp(),
            )
            self.store.set(SYNC_QUEUE, item.id, encode(item))
        logger.debug(
            f"Queued {operation.value} of {entity_type.value} {entity_id} for sync"
        )
        return item

    def list(self) -> List[SyncQueueItem]:
        """All entries ordered by timestamp (oldest first)."""
        items = [
            decode(SyncQueueItem, SYNC_QUEUE, key, raw)
            for key, raw in self.store.items(SYNC_QUEUE)
        ]
        return sorted(items, key=lambda item: item.timestamp)

    def get(self, item_id: str) -> SyncQueueItem:
        raw = self.store.get(SYNC_QUEUE, item_id)
        if raw is None:
            raise SyncItemNotFoundError(item_id)
        return decode(SyncQueueItem, SYNC_QUEUE, item_id, raw)

    def remove(self, item_id: str) -> None:
        if not self.store.delete(SYNC_QUEUE, item_id):
            raise SyncItemNotFoundError(item_id)

    def update_retry_count(self, item_id: str, retry_count: int) -> SyncQueueItem:
        if retry_count < 0:
            raise ValidationError(
                "retry_count must be >= 0", field="retry_count", value=retry_count
            )
        with self._lock:
            item = self.get(item_id)
            item.retry_count = retry_count
            self.store.set(SYNC_QUEUE, item.id, encode(item))
        return item

    def clear(self) -> int:
        removed = self.store.clear(SYNC_QUEUE)
        logger.info(f"Cleared {removed} sync queue entries")
        return removed

    def pending_count(self) -> int:
        return sum(1 for _ in self.store.items(SYNC_QUEUE))
