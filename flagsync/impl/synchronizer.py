"""
The synchronizer: initial full sync, then streaming or polling, switching between the two.
"""

import time
from queue import Queue
from threading import Event, Lock, RLock, Thread, Timer
from typing import Callable, Optional

from flagsync.impl.datasource.fetchers import FlagsFetcher, SegmentsFetcher
from flagsync.impl.datasource.polling import (flags_polling_store,
                                              segments_polling_store)
from flagsync.impl.listeners import ModeListeners
from flagsync.impl.push.notifications import Control
from flagsync.impl.push.push_manager import PushManager
from flagsync.impl.push.status import PushStatus
from flagsync.impl.readiness import ReadinessGate
from flagsync.impl.retry_delay import RetryDelayStrategy
from flagsync.impl.util import log
from flagsync.interfaces import ChangesRequester, Repository, SyncMode

_STOP = object()


class Synchronizer:
    """
    Owns every background activity that keeps the repository current.

    Startup runs on its own thread: flags are fetched, then the segments they reference, retrying
    with backoff until both succeed. Readiness is signalled only then, after which the synchronizer
    enters streaming mode (if enabled) or polling mode.

    Push status changes are queued and handled one at a time on a dedicated thread, which is the
    only place the mode changes and mode-specific tasks are started or stopped:

    - publishers gone, or a retryable stream failure: stop the workers and poll from the current
      cursors (the stream stays open in the first case, so recovery can be heard)
    - stream connected, or publishers back: stop polling, catch up from the current cursors, and
      resume the workers; if the catch-up fails, keep polling and try again after a backoff delay
    - permanent stream failure: close the stream for good and keep polling
    """

    def __init__(
        self,
        config,
        repository: Repository,
        requester: ChangesRequester,
        readiness: ReadinessGate,
        push_manager_factory: Optional[Callable[..., PushManager]] = None,
    ):
        self._config = config
        self._repository = repository
        self._readiness = readiness
        self._flags_fetcher = FlagsFetcher(requester, repository)
        self._segments_fetcher = SegmentsFetcher(requester, repository)
        self._flags_poller = flags_polling_store(config, self._flags_fetcher)
        self._segments_poller = segments_polling_store(config, self._segments_fetcher)
        self._push: Optional[PushManager] = None
        if config.stream:
            factory = push_manager_factory or PushManager
            self._push = factory(config, repository, self._flags_fetcher, self._segments_fetcher, self._enqueue_status, self._handle_control)
        self._retry = RetryDelayStrategy.default(config.initial_reconnect_delay, config.max_reconnect_delay)
        self._mode_listeners = ModeListeners()
        self._mode_lock = Lock()
        self._transition_lock = RLock()
        self._failback_retry: Optional[Timer] = None
        self._mode = SyncMode.OFF
        self._last_control_type: Optional[str] = None
        self._stopped = Event()
        self._statuses: Queue = Queue()
        self._started = False

    @property
    def mode(self) -> SyncMode:
        with self._mode_lock:
            return self._mode

    @property
    def mode_listeners(self) -> ModeListeners:
        """Callbacks that receive the new :class:`SyncMode` on every change."""
        return self._mode_listeners

    @property
    def last_control_type(self) -> Optional[str]:
        return self._last_control_type

    @property
    def polling_active(self) -> bool:
        return self._flags_poller.running or self._segments_poller.running

    @property
    def push_manager(self) -> Optional[PushManager]:
        return self._push

    @property
    def flags_fetcher(self) -> FlagsFetcher:
        return self._flags_fetcher

    @property
    def segments_fetcher(self) -> SegmentsFetcher:
        return self._segments_fetcher

    def start(self):
        if self._started:
            return
        self._started = True
        Thread(target=self._handle_statuses, name="flagsync.synchronizer.status", daemon=True).start()
        Thread(target=self._startup, name="flagsync.synchronizer.startup", daemon=True).start()

    def stop(self):
        """
        Terminates every background task and releases the stream. Returns without waiting for an
        in-flight fetch to finish; the repository keeps its last consistent state.
        """
        if self._stopped.is_set():
            return
        log.info("Stopping synchronizer")
        self._stopped.set()
        self._statuses.put(_STOP)
        with self._transition_lock:
            if self._failback_retry is not None:
                self._failback_retry.cancel()
                self._failback_retry = None
            if self._push is not None:
                self._push.stop()
            self._stop_polling()
            self._set_mode(SyncMode.OFF)

    def sync_all(self) -> bool:
        """
        Fetches flags, then the segments they reference, from the current cursors. Readiness is
        signalled per collection as each one succeeds.

        :return: True if both collections are up to date
        """
        if not self._flags_poller.sync_once():
            return False
        self._readiness.flags_ready()
        if not self._segments_poller.sync_once():
            return False
        self._readiness.segments_ready()
        return True

    def _startup(self):
        if not self._initial_sync():
            return
        log.info("Initial synchronization complete")
        if self._push is not None:
            # the outcome arrives as a push status, which picks the mode
            self._push.start()
        else:
            self._start_polling_mode()

    def _initial_sync(self) -> bool:
        while not self._stopped.is_set():
            try:
                synced = self.sync_all()
            except Exception as e:
                log.exception("Unexpected error during initial synchronization: %s" % e)
                synced = False
            if synced:
                self._retry.set_good_since(time.time())
                return True
            delay = self._retry.next_retry_delay(time.time())
            log.warning("Initial synchronization failed, will retry in %0.3f seconds", delay)
            if self._stopped.wait(delay):
                break
        return False

    def _enqueue_status(self, status: PushStatus):
        if not self._stopped.is_set():
            self._statuses.put(status)

    def _handle_statuses(self):
        while True:
            status = self._statuses.get()
            if status is _STOP or self._stopped.is_set():
                return
            try:
                self._handle_status(status)
            except Exception as e:
                log.exception("Unexpected error handling push status %s: %s" % (status, e))

    def _handle_status(self, status: PushStatus):
        log.debug("Handling push status %s", status.value)
        if status == PushStatus.PUSH_CONNECTED:
            self._start_streaming_mode()
        elif status == PushStatus.PUSH_SUBSYSTEM_READY:
            if self._push.connected:
                self._start_streaming_mode()
        elif status in (PushStatus.PUSH_SUBSYSTEM_DOWN, PushStatus.PUSH_RETRYABLE_ERROR):
            self._start_polling_mode()
        elif status == PushStatus.PUSH_NONRETRYABLE_ERROR:
            log.warning("Streaming disabled after a permanent error, polling from now on")
            self._push.disable()
            self._start_polling_mode()
        elif status == PushStatus.PUSH_DISCONNECTED:
            pass  # closed on purpose

    def _handle_control(self, control: Control):
        self._last_control_type = control.control_type
        log.info("Received streaming control notification: %s", control.control_type)

    def _start_streaming_mode(self):
        with self._transition_lock:
            if self._stopped.is_set() or self.mode == SyncMode.STREAMING:
                return
            self._stop_polling()
        # cover whatever changed while notifications were not being applied
        try:
            synced = self.sync_all()
        except Exception as e:
            log.exception("Unexpected error during catch-up fetch: %s" % e)
            synced = False
        if not synced:
            self._start_polling_mode()
            self._schedule_failback_retry()
            return
        with self._transition_lock:
            if self._stopped.is_set():
                return
            self._push.start_workers()
            self._retry.set_good_since(time.time())
            self._set_mode(SyncMode.STREAMING)

    def _start_polling_mode(self):
        with self._transition_lock:
            if self._stopped.is_set():
                return
            if self._push is not None:
                self._push.stop_workers()
            self._flags_poller.start()
            self._segments_poller.start()
            self._set_mode(SyncMode.POLLING)

    def _schedule_failback_retry(self):
        with self._transition_lock:
            if self._stopped.is_set():
                return
            if self._failback_retry is not None:
                self._failback_retry.cancel()
            delay = self._retry.next_retry_delay(time.time())
            log.warning("Catch-up fetch failed, staying in polling mode; will retry streaming in %0.3f seconds", delay)
            timer = Timer(delay, self._enqueue_status, [PushStatus.PUSH_SUBSYSTEM_READY])
            timer.daemon = True
            self._failback_retry = timer
            timer.start()

    def _stop_polling(self):
        self._flags_poller.stop()
        self._segments_poller.stop()

    def _set_mode(self, mode: SyncMode):
        with self._mode_lock:
            if self._mode == mode:
                return
            self._mode = mode
        log.info("Synchronization mode is now %s", mode.value)
        self._mode_listeners.notify(mode)
