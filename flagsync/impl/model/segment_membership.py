from typing import FrozenSet, Iterable

from flagsync.impl.model.entity import *


class SegmentMembership(ModelEntity):
    __slots__ = ['_keys']

    def __init__(self, data: dict):
        super().__init__(data)
        self._keys = frozenset(opt_str_list(data, 'keys'))

    @property
    def keys(self) -> FrozenSet[str]:
        return self._keys

    def contains(self, key: str) -> bool:
        return key in self._keys

    def merged(self, added: Iterable[str], removed: Iterable[str], change_number: int) -> 'SegmentMembership':
        keys = (self._keys | set(added)) - set(removed)
        return SegmentMembership.build(self._name, keys, max(self._change_number, change_number))

    @staticmethod
    def build(name: str, keys: Iterable[str], change_number: int) -> 'SegmentMembership':
        return SegmentMembership({'name': name, 'keys': sorted(keys), 'changeNumber': change_number})

    @staticmethod
    def empty(name: str) -> 'SegmentMembership':
        return SegmentMembership.build(name, [], -1)
