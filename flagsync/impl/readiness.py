from threading import Condition
from typing import Optional


class ReadinessGate:
    """
    One-shot signal that the initial synchronization of both collections has completed. A single
    instance is created by the client and handed to whatever needs to signal or observe it.
    """

    def __init__(self):
        self._cond = Condition()
        self._flags = False
        self._segments = False

    def flags_ready(self):
        with self._cond:
            self._flags = True
            self._cond.notify_all()

    def segments_ready(self):
        with self._cond:
            self._segments = True
            self._cond.notify_all()

    def is_ready(self) -> bool:
        with self._cond:
            return self._flags and self._segments

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Blocks until both collections have been synchronized at least once.

        :param timeout: maximum time to wait in seconds, or None to wait indefinitely
        :return: True if ready, False if the timeout elapsed first
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._flags and self._segments, timeout)
