"""
This submodule describes the two collections kept in sync: flag definitions and segment
memberships.

A :class:`DataKind` is passed as the ``kind`` parameter to every :class:`flagsync.interfaces.Repository`
method. Its ``namespace`` property names the collection ("flags" or "segments"); repositories may
use it to build storage keys.
"""

from typing import Any, Callable

from flagsync.impl.model import FlagDefinition, ModelEntity, SegmentMembership


class DataKind:
    def __init__(self, namespace: str, request_api_path: str, decoder: Callable[[dict], Any]):
        self._namespace = namespace
        self._request_api_path = request_api_path
        self._decoder = decoder

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def request_api_path(self) -> str:
        return self._request_api_path

    def decode(self, data: Any) -> Any:
        if isinstance(data, ModelEntity):
            return data
        return self._decoder(data)

    def encode(self, item: Any) -> dict:
        return item.to_json_dict() if isinstance(item, ModelEntity) else item

    def __repr__(self) -> str:
        return 'DataKind(%s)' % self._namespace


FLAGS = DataKind(namespace="flags", request_api_path="/flagChanges", decoder=FlagDefinition)

SEGMENTS = DataKind(namespace="segments", request_api_path="/segmentChanges/", decoder=SegmentMembership)

ALL_KINDS = (FLAGS, SEGMENTS)
