"""SQLite implementation of the key-value persistence port."""
import logging
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from blocknotes.exceptions import ErrorCode, StorageError
from blocknotes.models.db_models import DBEntry, get_session_factory
from blocknotes.storage.ports import COLLECTIONS

logger = logging.getLogger(__name__)


class SqlKeyValueStore:
    """Key-value store backed by the ``kv_entries`` table.

    Each call runs in its own session and commits before returning. Any
    SQLAlchemy failure is logged and re-raised as ``StorageError`` so no
    mutation is ever reported as saved when it was not.
    """

    def __init__(self, session_factory=None):
        """Initialize the store.

        Args:
            session_factory: SQLAlchemy session factory. Defaults to one bound
                to a fresh engine built from the global config.
        """
        self.session_factory = session_factory or get_session_factory()

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")

    def _fail(
        self, action: str, collection: str, key: Optional[str], code: ErrorCode, e: Exception
    ) -> StorageError:
        target = f"{collection}/{key}" if key else collection
        logger.error(f"Storage {action} failed for {target}: {e}")
        return StorageError(
            f"Failed to {action} {target}",
            operation=action,
            key=target,
            code=code,
            original_error=e,
        )

    def get(self, collection: str, key: str) -> Optional[str]:
        self._check_collection(collection)
        try:
            with self.session_factory() as session:
                entry = session.get(DBEntry, (collection, key))
                return entry.value if entry is not None else None
        except SQLAlchemyError as e:
            raise self._fail("read", collection, key, ErrorCode.STORAGE_READ_FAILED, e) from e

    def set(self, collection: str, key: str, value: str) -> None:
        self._check_collection(collection)
        try:
            with self.session_factory() as session:
                entry = session.get(DBEntry, (collection, key))
                if entry is None:
                    session.add(DBEntry(collection=collection, key=key, value=value))
                else:
                    entry.value = value
                session.commit()
        except SQLAlchemyError as e:
            raise self._fail("write", collection, key, ErrorCode.STORAGE_WRITE_FAILED, e) from e

    def delete(self, collection: str, key: str) -> bool:
        self._check_collection(collection)
        try:
            with self.session_factory() as session:
                result = session.execute(
                    delete(DBEntry).where(
                        DBEntry.collection == collection, DBEntry.key == key
                    )
                )
                session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise self._fail("delete", collection, key, ErrorCode.STORAGE_DELETE_FAILED, e) from e

    def items(self, collection: str) -> Iterator[Tuple[str, str]]:
        self._check_collection(collection)
        try:
            with self.session_factory() as session:
                rows: List[Tuple[str, str]] = [
                    (row.key, row.value)
                    for row in session.execute(
                        select(DBEntry.key, DBEntry.value)
                        .where(DBEntry.collection == collection)
                        .order_by(DBEntry.key)
                    )
                ]
        except SQLAlchemyError as e:
            raise self._fail("read", collection, None, ErrorCode.STORAGE_READ_FAILED, e) from e
        return iter(rows)

    def clear(self, collection: str) -> int:
        self._check_collection(collection)
        try:
            with self.session_factory() as session:
                result = session.execute(
                    delete(DBEntry).where(DBEntry.collection == collection)
                )
                session.commit()
                return result.rowcount
        except SQLAlchemyError as e:
            raise self._fail("delete", collection, None, ErrorCode.STORAGE_DELETE_FAILED, e) from e
