from threading import RLock, Timer
from typing import Callable, Dict, Optional

from flagsync.impl.push.notifications import Occupancy
from flagsync.impl.push.status import PushStatus
from flagsync.impl.util import log

CONTROL_PRI = 'control_pri'
CONTROL_SEC = 'control_sec'


class OccupancyKeeper:
    """
    Tracks the publisher count of each control channel and decides whether push notifications can
    be relied on. Streaming is usable while any channel has at least one publisher.

    A change in availability is only reported once it has held for ``debounce`` seconds; a sample
    that flips it back before then cancels the pending report. Samples older than the last one seen
    for their channel are ignored.
    """

    def __init__(self, debounce: float, on_status: Callable[[PushStatus], None]):
        self._debounce = debounce
        self._on_status = on_status
        self._lock = RLock()
        self._publishers: Dict[str, int] = {}
        self._timestamps: Dict[str, int] = {}
        self._reported_available = True
        self._pending: Optional[Timer] = None

    @property
    def publishers_available(self) -> bool:
        with self._lock:
            return self._current_availability()

    def publishers(self, channel: str) -> Optional[int]:
        with self._lock:
            return self._publishers.get(channel)

    def handle(self, notification: Occupancy):
        with self._lock:
            last = self._timestamps.get(notification.channel)
            if last is not None and notification.timestamp < last:
                log.debug("Ignoring stale occupancy sample for %s", notification.channel)
                return
            self._timestamps[notification.channel] = notification.timestamp
            self._publishers[notification.channel] = notification.publishers
            log.debug("Occupancy for %s: %d publishers", notification.channel, notification.publishers)

            available = self._current_availability()
            if available == self._reported_available:
                self._cancel_pending()
                return
            if self._pending is not None:
                return
            if self._debounce > 0:
                self._schedule(available)
                return
        self._fire(available, None)

    def reset(self):
        """Forgets all samples; used when a new connection starts."""
        with self._lock:
            self._cancel_pending()
            self._publishers.clear()
            self._timestamps.clear()
            self._reported_available = True

    def stop(self):
        with self._lock:
            self._cancel_pending()

    def _current_availability(self) -> bool:
        if not self._publishers:
            return True
        return any(count > 0 for count in self._publishers.values())

    def _schedule(self, available: bool):
        timer = Timer(self._debounce, lambda: self._fire(available, timer))
        timer.daemon = True
        self._pending = timer
        timer.start()

    def _cancel_pending(self):
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _fire(self, available: bool, timer: Optional[Timer]):
        with self._lock:
            if timer is not None:
                if self._pending is not timer:
                    return  # cancelled or superseded
                self._pending = None
            if self._current_availability() != available or self._reported_available == available:
                return
            self._reported_available = available
        status = PushStatus.PUSH_SUBSYSTEM_READY if available else PushStatus.PUSH_SUBSYSTEM_DOWN
        log.info("Streaming publishers %s", "available" if available else "gone")
        self._on_status(status)
