from enum import Enum


class ConnectionState(Enum):
    """
    Lifecycle of the streaming connection. Only :class:`StreamingClient` changes it.
    """

    DISCONNECTED = 'DISCONNECTED'
    CONNECTING = 'CONNECTING'
    CONNECTED = 'CONNECTED'
    ERRORED = 'ERRORED'


class PushStatus(Enum):
    """
    Signals raised by the push subsystem to the synchronizer.
    """

    PUSH_CONNECTED = 'PUSH_CONNECTED'
    """The stream connection was confirmed."""

    PUSH_DISCONNECTED = 'PUSH_DISCONNECTED'
    """The stream connection was closed on purpose."""

    PUSH_RETRYABLE_ERROR = 'PUSH_RETRYABLE_ERROR'
    """The stream failed in a way that a new connection may fix."""

    PUSH_NONRETRYABLE_ERROR = 'PUSH_NONRETRYABLE_ERROR'
    """The stream failed permanently, for instance because the SDK key was rejected."""

    PUSH_SUBSYSTEM_DOWN = 'PUSH_SUBSYSTEM_DOWN'
    """No publisher is present on any control channel; notifications will not arrive."""

    PUSH_SUBSYSTEM_READY = 'PUSH_SUBSYSTEM_READY'
    """Publishers are present again."""
