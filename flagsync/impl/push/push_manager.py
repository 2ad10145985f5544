import time
from threading import Event, Lock, Thread
from typing import Callable, Optional

from flagsync.impl.datasource.fetchers import FlagsFetcher, SegmentsFetcher
from flagsync.impl.push.notifications import Control
from flagsync.impl.push.occupancy import OccupancyKeeper
from flagsync.impl.push.processor import NotificationProcessor
from flagsync.impl.push.status import PushStatus
from flagsync.impl.push.streaming_client import StreamingClient
from flagsync.impl.push.workers import FlagsWorker, SegmentsWorker
from flagsync.impl.retry_delay import RetryDelayStrategy
from flagsync.impl.util import log
from flagsync.interfaces import Repository


class PushManager:
    """
    Wires the streaming client, notification processor, occupancy keeper and workers together, and
    reconnects the stream with backoff after retryable failures.

    Every :class:`PushStatus` is forwarded to ``on_status``. Workers are only started and stopped on
    request; deciding when is the synchronizer's job.
    """

    def __init__(
        self,
        config,
        repository: Repository,
        flags_fetcher: FlagsFetcher,
        segments_fetcher: SegmentsFetcher,
        on_status: Callable[[PushStatus], None],
        on_control: Callable[[Control], None],
    ):
        self._config = config
        self._on_status = on_status
        self._flags_worker = FlagsWorker(repository, flags_fetcher, segments_fetcher)
        self._segments_worker = SegmentsWorker(repository, segments_fetcher)
        self._occupancy_keeper = OccupancyKeeper(config.occupancy_debounce, self._handle_status)
        self._processor = NotificationProcessor(repository, self._flags_worker, self._segments_worker, self._occupancy_keeper, on_control, config.client_id)
        self._client = StreamingClient(config, self._processor, self._handle_status)
        self._retry = RetryDelayStrategy.default(config.initial_reconnect_delay, config.max_reconnect_delay)
        self._lock = Lock()
        self._stopped = Event()
        self._disabled = False
        self._reconnect_thread: Optional[Thread] = None

    @property
    def connected(self) -> bool:
        return self._client.connected

    @property
    def disabled(self) -> bool:
        """True once the stream failed permanently; no further connections are attempted."""
        with self._lock:
            return self._disabled

    @property
    def streaming_client(self) -> StreamingClient:
        return self._client

    @property
    def occupancy_keeper(self) -> OccupancyKeeper:
        return self._occupancy_keeper

    def start(self) -> bool:
        """
        Connects the stream, blocking until it is confirmed or has failed. A retryable failure
        schedules a reconnection.
        """
        with self._lock:
            if self._stopped.is_set() or self._disabled:
                return False
        self._occupancy_keeper.reset()
        connected = self._client.start(self._config.stream_uri)
        if connected:
            self._retry.set_good_since(time.time())
        return connected

    def stop(self):
        log.info("Stopping push subsystem")
        self._stopped.set()
        self._occupancy_keeper.stop()
        self._client.close()
        self.stop_workers()

    def disable(self):
        """Closes the stream for good after a permanent failure."""
        with self._lock:
            self._disabled = True
        self._occupancy_keeper.stop()
        self._client.close()
        self.stop_workers()

    def start_workers(self):
        self._flags_worker.start()
        self._segments_worker.start()

    def stop_workers(self):
        self._flags_worker.stop()
        self._segments_worker.stop()

    def _handle_status(self, status: PushStatus):
        if self._stopped.is_set():
            return
        if status == PushStatus.PUSH_NONRETRYABLE_ERROR:
            with self._lock:
                self._disabled = True
        elif status == PushStatus.PUSH_RETRYABLE_ERROR:
            self._schedule_reconnect()
        self._on_status(status)

    def _schedule_reconnect(self):
        with self._lock:
            if self._disabled or self._stopped.is_set():
                return
            if self._reconnect_thread is not None and self._reconnect_thread.is_alive():
                return
            delay = self._retry.next_retry_delay(time.time())
            thread = Thread(target=self._reconnect, args=(delay,), name="flagsync.push.reconnect")
            thread.daemon = True
            self._reconnect_thread = thread
        log.info("Will reconnect stream in %0.3f seconds", delay)
        thread.start()

    def _reconnect(self, delay: float):
        if self._stopped.wait(delay):
            return
        self._client.close()
        with self._lock:
            self._reconnect_thread = None
        self.start()
