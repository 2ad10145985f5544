"""
Per-collection workers that turn queued notifications into fetches.
"""

from queue import Queue
from threading import Event, Lock, Thread
from typing import Optional

from flagsync.data_kind import FLAGS
from flagsync.impl.datasource.fetchers import FlagsFetcher, SegmentsFetcher
from flagsync.impl.push.notifications import FlagKill, FlagUpdate, SegmentUpdate
from flagsync.impl.util import FetchError, log
from flagsync.interfaces import Repository

MAX_FETCH_ATTEMPTS = 3
FETCH_RETRY_DELAY = 0.5

_STOP = object()


class Worker:
    """
    Single consumer of an unbounded queue of notifications for one collection. Notifications are
    handled strictly in order and never concurrently, even across a stop() and start().
    """

    def __init__(self, label: str, repository: Repository):
        self._label = label
        self._repository = repository
        self._lock = Lock()
        self._process_lock = Lock()
        self._queue: Optional[Queue] = None
        self._stopped = Event()
        self._stopped.set()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._queue is not None

    def start(self):
        with self._lock:
            if self._queue is not None:
                return
            log.debug("Starting %s", self._label)
            self._queue = Queue()
            self._stopped = Event()
            thread = Thread(target=self._run, args=(self._queue, self._stopped), name=self._label)
            thread.daemon = True
            thread.start()

    def stop(self):
        """Stops consuming. A fetch already in progress completes; queued notifications are dropped."""
        with self._lock:
            if self._queue is None:
                return
            log.debug("Stopping %s", self._label)
            self._stopped.set()
            self._queue.put(_STOP)
            self._queue = None

    def add_to_queue(self, notification):
        with self._lock:
            if self._queue is None:
                log.debug("%s is not running, dropping %s", self._label, notification)
                return
            self._queue.put(notification)

    def _run(self, queue: Queue, stopped: Event):
        while True:
            notification = queue.get()
            if notification is _STOP or stopped.is_set():
                return
            with self._process_lock:
                try:
                    self._process(notification, stopped)
                except Exception as e:
                    log.exception("Unexpected error in %s: %s" % (self._label, e))

    def _fetch_with_retries(self, fetch, stopped: Event) -> bool:
        for attempt in range(1, MAX_FETCH_ATTEMPTS + 1):
            try:
                fetch()
                return True
            except FetchError as e:
                if not e.recoverable or attempt == MAX_FETCH_ATTEMPTS:
                    break
                if stopped.wait(FETCH_RETRY_DELAY * attempt):
                    return False
        log.warning("%s gave up on a fetch; the next notification or poll will catch up", self._label)
        return False

    def _process(self, notification, stopped: Event):
        raise NotImplementedError


class FlagsWorker(Worker):
    def __init__(self, repository: Repository, flags_fetcher: FlagsFetcher, segments_fetcher: SegmentsFetcher):
        super().__init__("flagsync.push.worker.flags", repository)
        self._flags_fetcher = flags_fetcher
        self._segments_fetcher = segments_fetcher

    def _process(self, notification, stopped: Event):
        if not isinstance(notification, (FlagUpdate, FlagKill)):
            log.warning("%s ignoring unexpected notification %s", self._label, notification)
            return
        cursor = self._repository.get_change_number(FLAGS)
        if notification.change_number <= cursor:
            log.debug("Flag notification %d is not newer than cursor %d, discarding", notification.change_number, cursor)
            return

        def fetch():
            self._flags_fetcher.fetch(till=notification.change_number)
            self._segments_fetcher.fetch_missing()

        self._fetch_with_retries(fetch, stopped)


class SegmentsWorker(Worker):
    def __init__(self, repository: Repository, segments_fetcher: SegmentsFetcher):
        super().__init__("flagsync.push.worker.segments", repository)
        self._segments_fetcher = segments_fetcher

    def _process(self, notification, stopped: Event):
        if not isinstance(notification, SegmentUpdate):
            log.warning("%s ignoring unexpected notification %s", self._label, notification)
            return
        name = notification.segment_name
        if name not in self._repository.used_segment_names():
            log.debug("Segment %s is not referenced by any flag, discarding update", name)
            return
        cursor = self._repository.segment_change_number(name)
        if notification.change_number <= cursor:
            log.debug("Segment %s notification %d is not newer than cursor %d, discarding", name, notification.change_number, cursor)
            return

        self._fetch_with_retries(lambda: self._segments_fetcher.fetch_segment(name, till=notification.change_number), stopped)
