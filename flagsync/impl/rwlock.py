import threading
from contextlib import contextmanager


class ReadWriteLock:
    """A lock object that allows many simultaneous "read locks", but only one "write lock".

    Writers take priority: once a writer is waiting, new readers queue up behind it, so a steady
    stream of evaluation reads cannot starve a worker that needs to merge a change."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writers_waiting = 0
        self._writing = False

    def rlock(self):
        """Acquire a read lock. Blocks while a writer holds or is waiting for the lock."""
        with self._cond:
            while self._writing or self._writers_waiting > 0:
                self._cond.wait()
            self._readers += 1

    def runlock(self):
        """Release a read lock."""
        with self._cond:
            self._readers -= 1
            if not self._readers:
                self._cond.notify_all()

    def lock(self):
        """Acquire a write lock. Blocks until there are no active readers or writers."""
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writing or self._readers > 0:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writing = True

    def unlock(self):
        """Release a write lock."""
        with self._cond:
            self._writing = False
            self._cond.notify_all()

    @contextmanager
    def read(self):
        """Context manager for acquiring a read lock.

        Usage:
            with lock.read():
                # read lock held here
                pass
        """
        self.rlock()
        try:
            yield self
        finally:
            self.runlock()

    @contextmanager
    def write(self):
        """Context manager for acquiring a write lock."""
        self.lock()
        try:
            yield self
        finally:
            self.unlock()
