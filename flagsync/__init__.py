"""
The flagsync module contains the most common top-level entry points for the synchronization client.

Most applications call :func:`set_config()` once at startup and then :func:`get()` wherever the
shared client is needed.
"""

from flagsync.impl.rwlock import ReadWriteLock as _ReadWriteLock
from flagsync.impl.util import log
from flagsync.version import VERSION

from .client import *
from .config import *

__version__ = VERSION

"""Seconds that :func:`get()` and :func:`set_config()` wait for a new client's initial synchronization."""
start_wait = 5

__client = None
__config = None
__lock = _ReadWriteLock()


class ClientNotConfiguredError(Exception):
    """Raised by :func:`get()` when :func:`set_config()` was never called."""


def set_config(config: Config):
    """Sets the configuration for the shared client instance.

    Before the first :func:`get()`, this only stores the configuration. Afterwards, a new client is
    built from ``config`` and swapped in, and the previous client is closed.

    :param config: the client configuration
    """
    global __config
    global __client
    old_client = None
    with __lock.write():
        __config = config
        if __client is not None:
            log.info("Reinitializing FlagSync client %s with new config", VERSION)
            old_client = __client
            __client = FlagSyncClient(config=config, start_wait=start_wait)
    if old_client is not None:
        old_client.close()


def get() -> FlagSyncClient:
    """Returns the shared client instance, creating it on first use.

    If you need several clients with different configurations, call the
    :class:`flagsync.client.FlagSyncClient` constructor directly instead.

    :raises ClientNotConfiguredError: if :func:`set_config()` has not been called
    """
    global __client
    with __lock.read():
        if __client is not None:
            return __client

    with __lock.write():
        if __client is None:
            if __config is None:
                raise ClientNotConfiguredError("set_config was not called")
            log.info("Initializing FlagSync client %s", VERSION)
            __client = FlagSyncClient(config=__config, start_wait=start_wait)
        return __client


# for testing only
def _reset_client():
    global __client
    global __config
    with __lock.write():
        c = __client
        __client = None
        __config = None
    if c is not None:
        c.close()


__all__ = ['Config', 'HTTPConfig', 'FlagSyncClient', 'ClientNotConfiguredError', 'set_config', 'get', 'client', 'config', 'integrations', 'interfaces']
