"""
This submodule contains interfaces for the pluggable components of the synchronization core.

The most common reason to use these is to provide a custom :class:`Repository` backed by some
other storage system.
"""

from abc import ABCMeta, abstractmethod
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Set

from flagsync.data_kind import DataKind


class SyncMode(Enum):
    """
    How the repository is currently being kept up to date.
    """

    OFF = 'OFF'
    """Synchronization has not started yet, or has been stopped."""

    STREAMING = 'STREAMING'
    """Changes are pushed over the stream and fetched by the workers."""

    POLLING = 'POLLING'
    """Changes are pulled periodically by the polling stores."""


class Repository(metaclass=ABCMeta):
    """
    Thread-safe storage for flag definitions, segment memberships and one change-number cursor per
    collection. This is the only place synchronized state lives; evaluation reads from it and never
    triggers network I/O through it.

    Implementations must allow any number of concurrent readers alongside a single writer per
    collection. Writes for different collections never conflict. Every mutating method applies its
    changes as a whole: a reader sees either the state before or the state after, never a partial
    merge.

    A change number of -1 means the collection (or segment) has never been synchronized. Backend
    failures are raised as :class:`flagsync.impl.util.RepositoryError`.
    """

    @abstractmethod
    def get(self, kind: DataKind, key: str) -> Optional[Any]:
        """
        Retrieves the entity stored under a key, or None if there is none.

        :param kind: the collection to read from
        :param key: the flag name or segment name
        """

    @abstractmethod
    def all(self, kind: DataKind) -> Dict[str, Any]:
        """
        Retrieves a snapshot of every entity in a collection, keyed by name.
        """

    @abstractmethod
    def put(self, kind: DataKind, key: str, item: Any):
        """
        Stores an entity, replacing any existing one with the same key.
        """

    @abstractmethod
    def remove(self, kind: DataKind, key: str):
        """
        Removes an entity. Removing a missing key is a no-op.
        """

    @abstractmethod
    def update(self, kind: DataKind, to_put: Mapping[str, Any], to_remove: Iterable[str], change_number: int):
        """
        Applies a batch of upserts and removals and moves the collection cursor, all at once. The
        cursor never moves backwards; a lower ``change_number`` leaves it unchanged.
        """

    @abstractmethod
    def get_change_number(self, kind: DataKind) -> int:
        """
        Returns the collection cursor, or -1 if the collection was never synchronized.
        """

    @abstractmethod
    def set_change_number(self, kind: DataKind, change_number: int):
        """
        Sets the collection cursor unconditionally. Only a full resync should lower it.
        """

    @abstractmethod
    def merge_segment(self, name: str, added: Iterable[str], removed: Iterable[str], change_number: int):
        """
        Adds and removes member keys of one segment and advances that segment's own change number.
        The segments collection cursor is raised to ``change_number`` if it is lower.
        """

    @abstractmethod
    def segment_change_number(self, name: str) -> int:
        """
        Returns the change number of one segment, or -1 if it was never synchronized.
        """

    @abstractmethod
    def kill(self, flag_name: str, default_treatment: str, change_number: int) -> bool:
        """
        Marks a flag as killed with the given default treatment, unless the stored definition is
        already at or past ``change_number``. The collection cursor is not touched, so the next
        fetch still retrieves the full change.

        :return: True if the stored flag was changed
        """

    @abstractmethod
    def used_segment_names(self) -> Set[str]:
        """
        Returns the names of all segments referenced by the current flag definitions.
        """

    @abstractmethod
    def clear(self):
        """
        Removes everything and resets both cursors to -1.
        """


class ChangesRequester(metaclass=ABCMeta):
    """
    The "fetch since cursor" capability of the remote changes API. Implementations return the
    decoded JSON body of one response and raise on transport or HTTP errors.
    """

    @abstractmethod
    def fetch_flag_changes(self, since: int, till: Optional[int] = None) -> dict:
        """
        :param since: the cursor to fetch changes after
        :param till: optional target change number, used to request content newer than any cache
        :return: a dict with ``changes``, ``since`` and ``till``
        """

    @abstractmethod
    def fetch_segment_changes(self, name: str, since: int, till: Optional[int] = None) -> dict:
        """
        :return: a dict with ``name``, ``added``, ``removed``, ``since`` and ``till``
        """


class DataSource(metaclass=ABCMeta):
    """
    A background component that feeds a repository: a polling store or the push subsystem.
    """

    @abstractmethod
    def start(self):
        """
        Starts the background work. Does not block.
        """

    @abstractmethod
    def stop(self):
        """
        Stops the background work. Safe to call from any thread, more than once, and never blocks
        indefinitely.
        """
