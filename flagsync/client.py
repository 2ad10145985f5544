"""
This submodule contains the client class that keeps a local repository of flags and segments in sync.
"""

from typing import Callable, Optional

from flagsync.config import Config
from flagsync.data_kind import FLAGS, SEGMENTS
from flagsync.impl.datasource.changes_requester import ChangesRequesterImpl
from flagsync.impl.model import FlagDefinition, SegmentMembership
from flagsync.impl.readiness import ReadinessGate
from flagsync.impl.synchronizer import Synchronizer
from flagsync.impl.util import log
from flagsync.interfaces import ChangesRequester, Repository, SyncMode


class FlagSyncClient:
    """The synchronization client.

    Creating an instance starts background synchronization immediately: an initial full fetch, then
    either the streaming channel or periodic polling. Reads never perform network I/O; they only
    consult the repository.

    Applications should instantiate a single ``FlagSyncClient`` for the lifetime of their
    application, and call :func:`close()` when shutting down.
    """

    def __init__(self, config: Config, start_wait: float = 5, requester: Optional[ChangesRequester] = None):
        """Constructs a new FlagSyncClient instance.

        :param config: optional custom configuration
        :param start_wait: the number of seconds to wait for the initial synchronization to finish
          before returning from the constructor; use 0 to return immediately
        :param requester: replaces the HTTP changes requester; intended for testing
        """
        self._config = config
        self._repository = config.repository
        self._owns_requester = requester is None
        self._requester = ChangesRequesterImpl(config) if requester is None else requester
        self._readiness = ReadinessGate()
        self._synchronizer = Synchronizer(config, self._repository, self._requester, self._readiness)
        self._closed = False

        self._synchronizer.start()
        if not config.stream:
            log.info("Streaming is disabled; changes will be polled")

        if start_wait > 60:
            log.warning(f"Client was configured to block for up to {start_wait} seconds when initializing. We recommend blocking no longer than 60.")
        if start_wait > 0:
            log.info("Waiting up to " + str(start_wait) + " seconds for the initial synchronization...")
            if self._readiness.wait_ready(start_wait):
                log.info("Started FlagSync client: OK")
            else:
                log.warning("Initialization timeout exceeded for FlagSync client. Flags may not yet be available.")

    def get_sdk_key(self) -> Optional[str]:
        return self._config.sdk_key

    @property
    def repository(self) -> Repository:
        return self._repository

    def is_ready(self) -> bool:
        """Returns true once both flags and segments have been synchronized at least once."""
        return self._readiness.is_ready()

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Blocks until the initial synchronization completes.

        :param timeout: maximum seconds to wait, or None to wait indefinitely
        :return: False if the timeout elapsed first
        """
        return self._readiness.wait_ready(timeout)

    def sync_mode(self) -> SyncMode:
        return self._synchronizer.mode

    def add_sync_mode_listener(self, listener: Callable[[SyncMode], None]):
        """Registers a callback that is invoked with the new :class:`SyncMode` every time it changes."""
        self._synchronizer.mode_listeners.add(listener)

    def remove_sync_mode_listener(self, listener: Callable[[SyncMode], None]):
        self._synchronizer.mode_listeners.remove(listener)

    def get_flag(self, name: str) -> Optional[FlagDefinition]:
        return self._repository.get(FLAGS, name)

    def get_segment(self, name: str) -> Optional[SegmentMembership]:
        return self._repository.get(SEGMENTS, name)

    def close(self):
        """Stops all background synchronization and releases network resources.

        The repository keeps whatever it contained, so reads still work after closing.
        """
        if self._closed:
            return
        self._closed = True
        log.info("Closing FlagSync client..")
        self._synchronizer.stop()
        if self._owns_requester:
            self._requester.close()

    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.close()


__all__ = ['FlagSyncClient']
