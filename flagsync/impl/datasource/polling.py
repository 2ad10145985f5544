"""
Polling stores: the pull side of synchronization.
"""

# A polling store has two independent stages. sync_once() runs one fetch-and-merge on the caller's
# thread and reports whether it succeeded; start() runs the jittered periodic loop on a background
# thread. Readiness gating is left to whoever composes the two.

from threading import Lock
from typing import Callable, Optional

from flagsync.impl.datasource.fetchers import FlagsFetcher, SegmentsFetcher
from flagsync.impl.repeating_task import RepeatingTask, jitter_factor
from flagsync.impl.util import FetchError, log
from flagsync.interfaces import DataSource


class PollingStore(DataSource):
    def __init__(self, label: str, interval: float, sync: Callable[[], object], jitter: Optional[Callable[[], float]] = jitter_factor):
        self._label = label
        self._interval = interval
        self._sync = sync
        self._jitter = jitter
        self._lock = Lock()
        self._task: Optional[RepeatingTask] = None

    @property
    def label(self) -> str:
        return self._label

    @property
    def running(self) -> bool:
        with self._lock:
            return self._task is not None and not self._task.stopped

    def sync_once(self) -> bool:
        """
        Performs one blocking fetch-and-merge.

        :return: True if the repository is now up to date with the server
        """
        try:
            self._sync()
            return True
        except FetchError as e:
            log.debug("%s: sync failed: %s", self._label, e)
            return False

    def start(self):
        with self._lock:
            if self._task is not None and not self._task.stopped:
                return
            log.info("Starting %s with refresh interval: %s", self._label, self._interval)
            self._task = RepeatingTask(self._label, self._interval, 0, self._poll, self._jitter)
            self._task.start()

    def stop(self):
        with self._lock:
            task = self._task
            self._task = None
        if task is not None:
            log.info("Stopping %s", self._label)
            task.stop()

    def _poll(self):
        # fetch errors were already logged with their cause by the fetcher
        self.sync_once()


def flags_polling_store(config, fetcher: FlagsFetcher) -> PollingStore:
    return PollingStore("flagsync.datasource.polling.flags", config.features_refresh_interval, fetcher.fetch)


def segments_polling_store(config, fetcher: SegmentsFetcher) -> PollingStore:
    return PollingStore("flagsync.datasource.polling.segments", config.segments_refresh_interval, fetcher.fetch_all)
