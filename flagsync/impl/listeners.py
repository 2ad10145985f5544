from threading import Lock
from typing import Callable, Tuple

from flagsync.impl.util import log
from flagsync.interfaces import SyncMode

ModeListener = Callable[[SyncMode], None]


class ModeListeners:
    """
    Callbacks interested in sync mode changes. The registered set is replaced on every add or
    remove, so notifying never holds the lock while user code runs. A callback that raises is
    logged and skipped.
    """

    def __init__(self):
        self._lock = Lock()
        self._listeners: Tuple[ModeListener, ...] = ()

    def __len__(self) -> int:
        return len(self._listeners)

    def has_listeners(self) -> bool:
        return len(self) > 0

    def add(self, listener: ModeListener):
        with self._lock:
            self._listeners = self._listeners + (listener,)

    def remove(self, listener: ModeListener):
        """Unregisters one occurrence of ``listener``; unknown listeners are ignored."""
        with self._lock:
            remaining = list(self._listeners)
            if listener in remaining:
                remaining.remove(listener)
                self._listeners = tuple(remaining)

    def notify(self, mode: SyncMode):
        listeners = self._listeners
        log.debug("Notifying %d listeners of sync mode %s", len(listeners), mode.value)
        for listener in listeners:
            try:
                listener(mode)
            except Exception as e:
                log.exception("Unexpected error in sync mode listener: %s" % e)
