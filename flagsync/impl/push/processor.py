from typing import Callable, Optional

from flagsync.impl.push.notifications import (Control, FlagKill, FlagUpdate,
                                              Notification, Occupancy,
                                              SegmentUpdate, StreamError)
from flagsync.impl.push.occupancy import OccupancyKeeper
from flagsync.impl.push.workers import FlagsWorker, SegmentsWorker
from flagsync.impl.util import RepositoryError, log
from flagsync.interfaces import Repository


class NotificationProcessor:
    """
    Routes each parsed notification to the component that owns it.

    A kill is written to the repository on the calling thread before the follow-up fetch is queued,
    so evaluation sees it even if the fetch is slow or fails.
    """

    def __init__(
        self,
        repository: Repository,
        flags_worker: FlagsWorker,
        segments_worker: SegmentsWorker,
        occupancy_keeper: OccupancyKeeper,
        on_control: Callable[[Control], None],
        client_id: Optional[str] = None,
    ):
        self._repository = repository
        self._flags_worker = flags_worker
        self._segments_worker = segments_worker
        self._occupancy_keeper = occupancy_keeper
        self._on_control = on_control
        self._client_id = client_id

    def process(self, notification: Notification):
        if self._client_id is not None and notification.client_id == self._client_id:
            log.debug("Ignoring notification published by this client: %s", notification)
            return

        if isinstance(notification, FlagUpdate):
            self._flags_worker.add_to_queue(notification)
        elif isinstance(notification, FlagKill):
            self._kill(notification)
            self._flags_worker.add_to_queue(notification)
        elif isinstance(notification, SegmentUpdate):
            self._segments_worker.add_to_queue(notification)
        elif isinstance(notification, Control):
            self._on_control(notification)
        elif isinstance(notification, Occupancy):
            self._occupancy_keeper.handle(notification)
        elif isinstance(notification, StreamError):
            log.warning("Stream error notification reached the processor, ignoring: %s", notification)
        else:
            raise TypeError("unknown notification type: %s" % type(notification).__name__)

    def _kill(self, notification: FlagKill):
        try:
            if self._repository.kill(notification.flag_name, notification.default_treatment, notification.change_number):
                log.info("Flag %s killed, default treatment %s", notification.flag_name, notification.default_treatment)
        except RepositoryError as e:
            log.warning("Could not apply kill of flag %s locally, the fetch will bring it: %s", notification.flag_name, e)
