"""Ports the repositories depend on.

Persistence is a set of independent keyed collections of JSON documents;
connectivity is an online predicate plus a transition hook. Anything that
satisfies these protocols can be injected (the SQLite store in production,
fakes in tests).
"""
from typing import Callable, Iterator, Optional, Protocol, Tuple

NOTES = "notes"
LABELS = "labels"
SETTINGS = "settings"
SYNC_QUEUE = "syncQueue"

COLLECTIONS = (NOTES, LABELS, SETTINGS, SYNC_QUEUE)

ConnectivityListener = Callable[[bool], None]


class KeyValueStore(Protocol):
    """Keyed document storage, one namespace per collection.

    Implementations raise ``StorageError`` on any I/O failure. Every call
    returns only after the underlying write has completed.
    """

    def get(self, collection: str, key: str) -> Optional[str]:
        """Return the stored document or None."""
        ...

    def set(self, collection: str, key: str, value: str) -> None:
        """Insert or replace a document."""
        ...

    def delete(self, collection: str, key: str) -> bool:
        """Remove a document; return whether it existed."""
        ...

    def items(self, collection: str) -> Iterator[Tuple[str, str]]:
        """All ``(key, document)`` pairs of a collection."""
        ...

    def clear(self, collection: str) -> int:
        """Remove every document of a collection; return how many."""
        ...


class ConnectivitySignal(Protocol):
    """Online/offline predicate with a subscription hook."""

    def is_online(self) -> bool:
        ...

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a listener for transitions; returns an unsubscribe callable."""
        ...
