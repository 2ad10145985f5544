import random
from threading import Event, Thread
from typing import Callable, Optional

from flagsync.impl.util import log

MIN_JITTER_FACTOR = 0.5
MAX_JITTER_FACTOR = 1.0


def jitter_factor() -> float:
    """A random multiplier in [0.5, 1.0], so that many clients polling the same server drift apart."""
    return random.uniform(MIN_JITTER_FACTOR, MAX_JITTER_FACTOR)


class RepeatingTask:
    """
    Calls a callback repeatedly on a worker thread, sleeping between invocations.

    The sleep after each invocation is ``interval`` multiplied by a fresh value from ``jitter``.
    Sleeping waits on an event, so :func:`stop()` interrupts it immediately.
    """

    def __init__(self, label, interval: float, initial_delay: float, callable: Callable, jitter: Optional[Callable[[], float]] = jitter_factor):
        """
        Creates the task, but does not start the worker thread yet.

        :param interval: nominal time in seconds between the end of one invocation and the start of the next
        :param initial_delay: time in seconds to wait before the first invocation
        :param callable: the function to execute repeatedly
        :param jitter: returns the factor applied to ``interval`` each time; None for a fixed interval
        """
        self.__interval = interval
        self.__initial_delay = initial_delay
        self.__action = callable
        self.__jitter = jitter
        self.__stop = Event()
        self.__thread = Thread(target=self._run, name=f"{label}.repeating")
        self.__thread.daemon = True

    def start(self):
        """
        Starts the worker thread.
        """
        self.__thread.start()

    def stop(self):
        """
        Tells the worker thread to stop. It cannot be restarted after this.
        """
        self.__stop.set()

    @property
    def stopped(self) -> bool:
        return self.__stop.is_set()

    def join(self, timeout: Optional[float] = None):
        if self.__thread.is_alive():
            self.__thread.join(timeout)

    def next_delay(self) -> float:
        if self.__jitter is None:
            return self.__interval
        return self.__interval * self.__jitter()

    def _run(self):
        if self.__initial_delay > 0:
            if self.__stop.wait(self.__initial_delay):
                return
        while not self.__stop.is_set():
            try:
                self.__action()
            except Exception as e:
                log.exception("Unexpected exception on worker thread: %s" % e)
            if self.__stop.wait(self.next_delay()):
                return
