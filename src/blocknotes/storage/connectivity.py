"""In-process connectivity signal."""
import logging
import threading
from typing import Callable, List

from blocknotes.storage.ports import ConnectivityListener

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Settable online flag that notifies listeners on transitions.

    Something outside the core (a network probe, the host application,
    a test) calls ``set_online``. Listeners fire only when the value
    actually changes.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: List[ConnectivityListener] = []
        self._lock = threading.Lock()

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        with self._lock:
            if online == self._online:
                return
            self._online = online
            listeners = list(self._listeners)
        logger.debug(f"Connectivity changed: {'online' if online else 'offline'}")
        for listener in listeners:
            listener(online)

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
