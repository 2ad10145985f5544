"""
This submodule contains the default :class:`flagsync.interfaces.Repository` implementation, which
keeps all synchronized state in memory. Implementations backed by external stores are in
:class:`flagsync.integrations`.
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Set

from flagsync.data_kind import ALL_KINDS, FLAGS, SEGMENTS, DataKind
from flagsync.impl.model import SegmentMembership
from flagsync.impl.rwlock import ReadWriteLock
from flagsync.impl.util import log
from flagsync.interfaces import Repository


class InMemoryRepository(Repository):
    """The default repository, which holds all data in thread-safe structures in memory.

    Each collection has its own read/write lock, so a segment merge never waits for a flag merge.
    """

    def __init__(self):
        self._locks = {kind: ReadWriteLock() for kind in ALL_KINDS}
        self._items = {kind: {} for kind in ALL_KINDS}
        self._change_numbers = {kind: -1 for kind in ALL_KINDS}

    def get(self, kind: DataKind, key: str) -> Optional[Any]:
        with self._locks[kind].read():
            item = self._items[kind].get(key)
        if item is None:
            log.debug("Attempted to get missing key %s in '%s', returning None", key, kind.namespace)
        return item

    def all(self, kind: DataKind) -> Dict[str, Any]:
        with self._locks[kind].read():
            return dict(self._items[kind])

    def put(self, kind: DataKind, key: str, item: Any):
        item = kind.decode(item)
        with self._locks[kind].write():
            self._items[kind][key] = item

    def remove(self, kind: DataKind, key: str):
        with self._locks[kind].write():
            self._items[kind].pop(key, None)

    def update(self, kind: DataKind, to_put: Mapping[str, Any], to_remove: Iterable[str], change_number: int):
        decoded = {key: kind.decode(item) for key, item in to_put.items()}
        with self._locks[kind].write():
            items = self._items[kind]
            items.update(decoded)
            for key in to_remove:
                items.pop(key, None)
            if change_number > self._change_numbers[kind]:
                self._change_numbers[kind] = change_number
            cursor = self._change_numbers[kind]
        log.debug("Updated '%s' with %d upserts, cursor now %d", kind.namespace, len(decoded), cursor)

    def get_change_number(self, kind: DataKind) -> int:
        with self._locks[kind].read():
            return self._change_numbers[kind]

    def set_change_number(self, kind: DataKind, change_number: int):
        with self._locks[kind].write():
            self._change_numbers[kind] = change_number

    def merge_segment(self, name: str, added: Iterable[str], removed: Iterable[str], change_number: int):
        with self._locks[SEGMENTS].write():
            segments = self._items[SEGMENTS]
            current = segments.get(name) or SegmentMembership.empty(name)
            segments[name] = current.merged(added, removed, change_number)
            if change_number > self._change_numbers[SEGMENTS]:
                self._change_numbers[SEGMENTS] = change_number

    def segment_change_number(self, name: str) -> int:
        with self._locks[SEGMENTS].read():
            segment = self._items[SEGMENTS].get(name)
        return -1 if segment is None else segment.change_number

    def kill(self, flag_name: str, default_treatment: str, change_number: int) -> bool:
        with self._locks[FLAGS].write():
            flag = self._items[FLAGS].get(flag_name)
            if flag is None or flag.change_number >= change_number:
                return False
            self._items[FLAGS][flag_name] = flag.with_kill(default_treatment, change_number)
        log.debug("Killed flag %s locally with default treatment %s", flag_name, default_treatment)
        return True

    def used_segment_names(self) -> Set[str]:
        with self._locks[FLAGS].read():
            flags = list(self._items[FLAGS].values())
        names = set()
        for flag in flags:
            names.update(flag.segment_names)
        return names

    def clear(self):
        for kind in ALL_KINDS:
            with self._locks[kind].write():
                self._items[kind].clear()
                self._change_numbers[kind] = -1
